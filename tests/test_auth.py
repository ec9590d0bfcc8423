#!/usr/bin/env python
# -*- coding: UTF-8 -*-
#
# Copyright 2024-2025 NXP
#
# SPDX-License-Identifier: BSD-3-Clause

"""Tests of authenticated variable payloads and their packaging."""

import struct
from datetime import datetime, timezone
from uuid import uuid4

import pytest

from efikeys.auth import AuthenticatedPayload, AuthPackager, signed_data
from efikeys.crypto.certificate import Certificate
from efikeys.crypto.keys import PrivateKeyRsa
from efikeys.efi.guids import EFI_CERT_TYPE_PKCS7_GUID, guid_to_bytes
from efikeys.efi.time import EfiTime
from efikeys.efi.variables import write_attributes
from efikeys.exceptions import (
    EFIKeysHierarchyViolationError,
    EFIKeysParsingError,
    EFIKeysValueError,
)
from efikeys.hierarchy import KeyMaterial, KeyRole, check_authorization
from efikeys.siglist import SignatureList, SignatureListBuilder

OWNER = uuid4()


def _material(role: KeyRole) -> KeyMaterial:
    key = PrivateKeyRsa.generate_key()
    return KeyMaterial(role, key, Certificate.generate_self_signed(f"auth {role.label}", key), OWNER)


@pytest.fixture(scope="module")
def materials() -> dict[KeyRole, KeyMaterial]:
    return {role: _material(role) for role in KeyRole}


@pytest.fixture
def packager(clock) -> AuthPackager:
    return AuthPackager(clock=clock)


def _esl(material: KeyMaterial) -> SignatureList:
    return SignatureListBuilder.build(OWNER, [material.certificate])


@pytest.mark.parametrize(
    "target,authorizer,allowed",
    [
        (KeyRole.PK, KeyRole.PK, True),
        (KeyRole.KEK, KeyRole.PK, True),
        (KeyRole.DB, KeyRole.KEK, True),
        (KeyRole.DB, KeyRole.PK, False),
        (KeyRole.KEK, KeyRole.KEK, False),
        (KeyRole.PK, KeyRole.DB, False),
        (KeyRole.DB, KeyRole.DB, False),
    ],
)
def test_check_authorization(target, authorizer, allowed):
    if allowed:
        check_authorization(target, authorizer)
    else:
        with pytest.raises(EFIKeysHierarchyViolationError):
            check_authorization(target, authorizer)


def test_package_db_by_pk_violates_hierarchy(packager, materials):
    with pytest.raises(EFIKeysHierarchyViolationError):
        packager.package(_esl(materials[KeyRole.DB]), KeyRole.DB, materials[KeyRole.PK])


@pytest.mark.parametrize(
    "target,authorizer",
    [(KeyRole.PK, KeyRole.PK), (KeyRole.KEK, KeyRole.PK), (KeyRole.DB, KeyRole.KEK)],
)
@pytest.mark.parametrize("append", [False, True])
def test_package_verifies_with_authorizer(packager, materials, target, authorizer, append):
    """Payload verifies with the parent certificate and no other."""
    payload = packager.package(_esl(materials[target]), target, materials[authorizer], append)
    assert payload.authorizing_role == authorizer
    assert payload.verify(materials[authorizer].certificate)
    assert payload.verify()
    others = [m for role, m in materials.items() if role != authorizer]
    assert not any(payload.verify(other.certificate) for other in others)


def test_payload_layout(packager, materials, clock):
    payload = packager.package(_esl(materials[KeyRole.KEK]), KeyRole.KEK, materials[KeyRole.PK])
    data = payload.export()
    assert data[:16] == EfiTime(clock.now).export()
    length, revision, cert_type, guid = struct.unpack_from("<IHH16s", data, 16)
    assert revision == 0x0200
    assert cert_type == 0x0EF1
    assert guid == guid_to_bytes(EFI_CERT_TYPE_PKCS7_GUID)
    assert length == 24 + len(payload.signature)
    assert data[16 + length :] == _esl(materials[KeyRole.KEK]).export()


def test_payload_parse(packager, materials):
    payload = packager.package(
        _esl(materials[KeyRole.DB]), KeyRole.DB, materials[KeyRole.KEK], append=True
    )
    parsed = AuthenticatedPayload.parse(payload.export(), target=KeyRole.DB, append=True)
    assert parsed.timestamp == payload.timestamp
    assert parsed.signature_list == payload.signature_list
    assert parsed.signer_certificates() == [materials[KeyRole.KEK].certificate]
    assert parsed.verify(materials[KeyRole.KEK].certificate)
    # the append attribute is covered by the signature
    assert not AuthenticatedPayload.parse(payload.export(), target=KeyRole.DB).verify()


def test_signed_data_layout(materials):
    timestamp = EfiTime(datetime(2024, 2, 29, 23, 59, 59))
    esl = _esl(materials[KeyRole.PK])
    data = signed_data(KeyRole.PK, write_attributes(), timestamp, esl)
    assert data.startswith("PK".encode("utf-16-le") + KeyRole.PK.vendor_guid.bytes_le)
    assert data[20:24] == struct.pack("<I", 0x27)
    assert data[24:40] == timestamp.export()
    assert data[40:] == esl.export()
    assert write_attributes(append=True) == 0x67


def test_package_empty(packager, materials):
    payload = packager.package_empty(materials[KeyRole.PK])
    assert payload.is_empty
    assert payload.target == KeyRole.PK
    assert payload.verify(materials[KeyRole.PK].certificate)
    parsed = AuthenticatedPayload.parse(payload.export(), target=KeyRole.PK)
    assert parsed.is_empty


def test_package_empty_only_pk(packager, materials):
    with pytest.raises(EFIKeysValueError):
        packager.package_empty(materials[KeyRole.PK], target=KeyRole.KEK)
    with pytest.raises(EFIKeysHierarchyViolationError):
        packager.package_empty(materials[KeyRole.KEK])


def test_timestamps_strictly_increase(packager, materials, clock):
    """Timestamps increase even when the clock stands still or goes back."""
    pk = materials[KeyRole.PK]
    timestamps = []
    for step in (0, 0, -3600, 5, 0):
        clock.advance(step)
        timestamps.append(packager.package(_esl(pk), KeyRole.PK, pk).timestamp)
    assert all(a < b for a, b in zip(timestamps, timestamps[1:]))
    assert (timestamps[-1].timestamp - timestamps[0].timestamp).total_seconds() == 4


def test_timestamp_follows_clock(packager, clock):
    first = packager.next_timestamp()
    clock.advance(60)
    second = packager.next_timestamp()
    assert (second.timestamp - first.timestamp).total_seconds() == 60


@pytest.mark.parametrize(
    "data",
    [
        b"",
        EfiTime(datetime(2025, 1, 1, tzinfo=timezone.utc)).export(),
        EfiTime(datetime(2025, 1, 1)).export() + struct.pack("<IHH16s", 24, 0x0100, 0x0EF1, b"\0" * 16),
        EfiTime(datetime(2025, 1, 1)).export()
        + struct.pack("<IHH16s", 500, 0x0200, 0x0EF1, guid_to_bytes(EFI_CERT_TYPE_PKCS7_GUID)),
        b"\x00" * 40,
    ],
)
def test_parse_invalid_payload(data):
    with pytest.raises(EFIKeysParsingError):
        AuthenticatedPayload.parse(data)
