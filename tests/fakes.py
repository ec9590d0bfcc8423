#!/usr/bin/env python
# -*- coding: UTF-8 -*-
#
# Copyright 2024-2025 NXP
#
# SPDX-License-Identifier: BSD-3-Clause
"""In-memory firmware variable store and image tool used by the tests."""

from typing import Optional
from uuid import UUID

from efikeys.auth import AuthenticatedPayload
from efikeys.crypto.certificate import Certificate
from efikeys.crypto.hash import get_hash
from efikeys.efi.variables import (
    DB,
    EFI_VARIABLE_APPEND_WRITE,
    KEK,
    PK,
    SECURE_BOOT,
    SETUP_MODE,
    variable_guid,
)
from efikeys.efivars import FirmwareVariableStore
from efikeys.exceptions import EFIKeysFirmwareWriteError, EFIKeysIOError
from efikeys.hierarchy import KeyRole
from efikeys.signer import EfiImageTool, SignatureInfo
from efikeys.siglist import SignatureList, SignatureListBuilder
from efikeys.utils.misc import load_binary

PARENT = {PK: PK, KEK: PK, DB: KEK}


class FakeVariableStore(FirmwareVariableStore):
    """Firmware model with SetupMode/UserMode, immutability flags and injected failures."""

    def __init__(self, secure_boot: bool = False) -> None:
        self.variables: dict[tuple[str, UUID], bytes] = {}
        self.immutable: set[str] = {PK, KEK, DB}
        self.fail_on: set[str] = set()
        self.fail_clear_immutable = False
        self.reject_reset = False
        self.writes: list[str] = []
        self.secure_boot = secure_boot

    # helpers
    @property
    def setup_mode(self) -> bool:
        return not self.signature_list(PK).entries

    def signature_list(self, name: str) -> SignatureList:
        data = self.variables.get((name, variable_guid(name)))
        return SignatureList.parse(data) if data else SignatureList()

    def _authorized(self, name: str, payload: AuthenticatedPayload) -> bool:
        if self.setup_mode:
            return True
        certificates = self.signature_list(PARENT[name]).certificates()
        return any(payload.verify(certificate) for certificate in certificates)

    # store interface
    def read(self, name: str, guid: UUID) -> Optional[bytes]:
        if name == SETUP_MODE:
            return b"\x01" if self.setup_mode else b"\x00"
        if name == SECURE_BOOT:
            return b"\x01" if self.secure_boot else b"\x00"
        return self.variables.get((name, guid))

    def write(self, name: str, guid: UUID, data: bytes, attributes: int) -> None:
        if name in self.immutable:
            raise EFIKeysFirmwareWriteError(f"{name} is immutable", variable=name)
        if name in self.fail_on:
            raise EFIKeysFirmwareWriteError(f"Injected failure of {name}", variable=name)
        append = bool(attributes & EFI_VARIABLE_APPEND_WRITE)
        payload = AuthenticatedPayload.parse(data, target=KeyRole.from_label(name), append=append)
        if name == PK and payload.is_empty and self.reject_reset:
            raise EFIKeysFirmwareWriteError("Reset rejected", variable=name)
        if not self._authorized(name, payload):
            raise EFIKeysFirmwareWriteError(f"Security violation writing {name}", variable=name)
        if append:
            sig_list = SignatureListBuilder.merge([self.signature_list(name), payload.signature_list])
        else:
            sig_list = payload.signature_list
        self.writes.append(f"{name}+" if append else name)
        if sig_list.is_empty:
            self.variables.pop((name, guid), None)
        else:
            self.variables[(name, guid)] = sig_list.export()

    def clear_immutable(self, name: str, guid: UUID) -> bool:
        if self.fail_clear_immutable:
            raise EFIKeysIOError(f"Cannot clear immutable flag of {name}")
        if name in self.immutable:
            self.immutable.discard(name)
            return True
        return False


class FakeImageTool(EfiImageTool):
    """Image tool appending a marker with the certificate fingerprint to the image."""

    MARKER = b"\nSIGNED-BY:"

    def __init__(self) -> None:
        self.sign_calls: list[str] = []

    @classmethod
    def _fingerprint(cls, cert_path: str) -> bytes:
        return get_hash(Certificate.load(cert_path).export()).hex().encode()

    def sign(self, image: str, key_path: str, cert_path: str) -> None:
        self.sign_calls.append(image)
        with open(image, "ab") as f:
            f.write(self.MARKER + self._fingerprint(cert_path))

    def verify(self, image: str, cert_path: str) -> bool:
        return self.MARKER + self._fingerprint(cert_path) in load_binary(image)

    def list_signatures(self, image: str) -> list[SignatureInfo]:
        chunks = load_binary(image).split(self.MARKER)[1:]
        return [
            SignatureInfo(index, subject=chunk[:64].decode())
            for index, chunk in enumerate(chunks, start=1)
        ]
