#!/usr/bin/env python
# -*- coding: UTF-8 -*-
#
# Copyright 2024-2025 NXP
#
# SPDX-License-Identifier: BSD-3-Clause

"""Tests of the on-disk key store."""

import os
import stat
from datetime import datetime

import pytest

from efikeys.crypto.certificate import Certificate
from efikeys.crypto.keys import PrivateKeyRsa
from efikeys.efi.guids import MICROSOFT_OWNER_GUID
from efikeys.exceptions import EFIKeysAbortedError, EFIKeysMissingKeyMaterialError
from efikeys.hierarchy import KeyRole
from efikeys.keystore import KEY_EXTENSIONS, KeyStore, KeyStoreConfig
from efikeys.siglist import SignatureListBuilder
from tests.conftest import Confirm


def _snapshot(directory: str) -> dict[str, bytes]:
    files = {}
    for name in sorted(os.listdir(directory)):
        path = os.path.join(directory, name)
        if os.path.isfile(path):
            with open(path, "rb") as f:
                files[name] = f.read()
    return files


@pytest.mark.parametrize("common_name", ["host", "Test Machine", "efi-keys.example.com"])
def test_create(keystore, sync, common_name):
    """Creates all files; every certificate is self-signed and matches its key."""
    materials = keystore.create(common_name)
    assert set(materials) == set(KeyRole)
    for role in KeyRole:
        for extension in KEY_EXTENSIONS:
            assert os.path.isfile(keystore.path(role, extension))
        assert keystore.verify_material(role)
        material = keystore.load(role)
        assert material.certificate.common_name == f"{common_name} {role.label}"
        assert material.owner_guid == keystore.guid()
        assert material.certificate == materials[role].certificate
    assert keystore.has_empty_pk_payload()
    assert not keystore.has_vendor_payload()
    assert sync.count >= 1


def test_create_payload_authorization(created_keystore):
    """PK and KEK payloads are signed by PK, db payload by KEK."""
    pk_cert = created_keystore.load_certificate(KeyRole.PK)
    kek_cert = created_keystore.load_certificate(KeyRole.KEK)
    for role, authorizer in ((KeyRole.PK, pk_cert), (KeyRole.KEK, pk_cert), (KeyRole.DB, kek_cert)):
        payload = created_keystore.load_payload(role)
        assert payload.verify(authorizer)
        assert payload.signature_list == created_keystore.signature_list(role)
    assert not created_keystore.load_payload(KeyRole.DB).verify(pk_cert)
    empty = created_keystore.load_empty_pk_payload()
    assert empty.is_empty
    assert empty.verify(pk_cert)


def test_create_payload_timestamps_increase(created_keystore):
    timestamps = [created_keystore.load_payload(role).timestamp for role in KeyRole]
    timestamps.append(created_keystore.load_empty_pk_payload().timestamp)
    assert all(a < b for a, b in zip(timestamps, timestamps[1:]))


def test_esl_owner_guid(created_keystore):
    guid = created_keystore.guid()
    for role in KeyRole:
        sig_list = created_keystore.signature_list(role)
        assert [entry.owner for entry in sig_list] == [guid]
        assert sig_list.certificates() == [created_keystore.load_certificate(role)]


def test_private_key_mode(keys_dir):
    keystore = KeyStore(KeyStoreConfig(keys_dir), Confirm(), sync=lambda: None)
    keystore.create("locked")
    for role in KeyRole:
        assert stat.S_IMODE(os.stat(keystore.path(role, "key")).st_mode) == 0


def test_recreate_backs_up_existing_keys(keystore_factory, keys_dir):
    """Existing keys move into a backup byte-identical and with locked permissions."""
    confirm = Confirm(True)
    keystore = keystore_factory(confirm)
    keystore.create("first")
    before = _snapshot(keys_dir)

    keystore.create("second")
    assert len(confirm.prompts) == 1
    backups = keystore.backups()
    assert len(backups) == 1
    assert _snapshot(backups[0]) == before
    for name in os.listdir(backups[0]):
        assert not stat.S_IMODE(os.stat(os.path.join(backups[0], name)).st_mode) & 0o377
    assert keystore.load_certificate(KeyRole.PK).common_name == "second PK"
    assert _snapshot(keys_dir) != before


def test_recreate_refused_leaves_keys_untouched(keystore_factory, keys_dir):
    keystore_factory().create("first")
    before = _snapshot(keys_dir)
    confirm = Confirm(False)
    with pytest.raises(EFIKeysAbortedError):
        keystore_factory(confirm).create("second")
    assert confirm.prompts
    assert _snapshot(keys_dir) == before
    assert not os.path.exists(os.path.join(keys_dir, "backup"))


def test_backup_name_collision(keystore_factory):
    keystore = keystore_factory()
    keystore.clock = lambda: datetime(2025, 3, 1, 10, 0, 0)
    keystore.create("one")
    keystore.create("two")
    keystore.create("three")
    names = [os.path.basename(path) for path in keystore.backups()]
    assert names == ["20250301-100000", "20250301-100000-1"]


def test_missing_material(keystore):
    assert not keystore.exists()
    with pytest.raises(EFIKeysMissingKeyMaterialError):
        keystore.load(KeyRole.DB)
    with pytest.raises(EFIKeysMissingKeyMaterialError):
        keystore.verify_material(KeyRole.PK)
    with pytest.raises(EFIKeysMissingKeyMaterialError):
        keystore.load_payload(KeyRole.KEK)
    with pytest.raises(EFIKeysMissingKeyMaterialError):
        keystore.guid()


def test_verify_material_mismatch(keystore):
    keystore.create("mismatch")
    other = PrivateKeyRsa.generate_key()
    os.chmod(keystore.path(KeyRole.DB, "key"), 0o600)
    other.save(keystore.path(KeyRole.DB, "key"))
    assert not keystore.verify_material(KeyRole.DB)
    assert keystore.verify_material(KeyRole.KEK)


def test_create_with_vendor_bundle(keystore):
    vendor_key = PrivateKeyRsa.generate_key()
    vendor_cert = Certificate.generate_self_signed("Vendor CA", vendor_key)
    vendor_list = SignatureListBuilder.build(MICROSOFT_OWNER_GUID, [vendor_cert])
    keystore.create("vendor", vendor_list)
    assert keystore.has_vendor_payload()
    payload = keystore.load_vendor_payload()
    assert payload.append
    assert payload.verify(keystore.load_certificate(KeyRole.KEK))
    assert payload.signature_list.certificates() == [vendor_cert]
    assert Certificate.load(keystore.vendor_path("crt")) == vendor_cert
