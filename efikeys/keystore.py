#!/usr/bin/env python
# -*- coding: UTF-8 -*-
#
# Copyright 2024-2025 NXP
#
# SPDX-License-Identifier: BSD-3-Clause

"""On-disk Secure Boot key store.

The key directory holds, for every role (PK, KEK, db):

    <role>.key   private key (PEM, PKCS#8), locked to no access bits
    <role>.crt   certificate (PEM)
    <role>.cer   certificate (DER)
    <role>.esl   EFI signature list of the certificate
    <role>.auth  authenticated payload for enrollment

plus the ``GUID`` file with the shared owner GUID, ``noPK.auth`` (signed empty PK),
optional ``vendor.crt/.esl/.auth`` and the ``backup`` directory with timestamped
snapshots of replaced key sets.
"""

import logging
import os
import shutil
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional
from uuid import UUID, uuid4

from efikeys.auth import AuthenticatedPayload, AuthPackager
from efikeys.crypto.certificate import Certificate
from efikeys.crypto.crypto_types import EFIKeysEncoding
from efikeys.crypto.keys import PrivateKey, PrivateKeyRsa
from efikeys.exceptions import (
    EFIKeysAbortedError,
    EFIKeysError,
    EFIKeysMissingKeyMaterialError,
    EFIKeysValueError,
)
from efikeys.hierarchy import KeyMaterial, KeyRole
from efikeys.siglist import SignatureList, SignatureListBuilder
from efikeys.utils.misc import (
    get_printable_path,
    load_text,
    lock_permissions,
    sync_storage,
    write_file,
)

logger = logging.getLogger(__name__)

KEY_EXTENSIONS = ("key", "crt", "cer", "esl", "auth")
GUID_FILE = "GUID"
EMPTY_PK_AUTH = "noPK.auth"
VENDOR_STEM = "vendor"
BACKUP_DIR = "backup"

ConfirmCallback = Callable[[str], bool]


@dataclass(frozen=True)
class KeyStoreConfig:
    """Settings of the key store."""

    keys_dir: str
    key_size: int = 2048
    validity_days: int = 3650
    private_key_mode: int = 0o000
    backup_mode: int = 0o400


@dataclass
class Backup:
    """Snapshot of a replaced key set."""

    timestamp: datetime
    path: str
    files: list[str] = field(default_factory=list)

    def __str__(self) -> str:
        return f"Backup {self.timestamp:%Y-%m-%d %H:%M:%S} at {get_printable_path(self.path)}"


class KeyStore:
    """Owner of the on-disk key material."""

    def __init__(
        self,
        config: KeyStoreConfig,
        confirm: ConfirmCallback,
        packager: Optional[AuthPackager] = None,
        sync: Callable[[], None] = sync_storage,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        """Constructor.

        :param config: Key store settings
        :param confirm: Callback asking the operator to confirm a destructive action
        :param packager: Packager of authenticated payloads
        :param sync: Storage durability callback
        :param clock: Source of local time used for backup names
        """
        self.config = config
        self.confirm = confirm
        self.packager = packager or AuthPackager()
        self.sync = sync
        self.clock = clock

    @property
    def keys_dir(self) -> str:
        """Root of the key store."""
        return self.config.keys_dir

    @property
    def backup_dir(self) -> str:
        """Directory with backups of replaced key sets."""
        return os.path.join(self.keys_dir, BACKUP_DIR)

    def path(self, role: KeyRole, extension: str) -> str:
        """Get path of a key store file of the role.

        :param role: Key role
        :param extension: One of KEY_EXTENSIONS
        :return: Path to the file
        """
        if extension not in KEY_EXTENSIONS:
            raise EFIKeysValueError(f"Unknown key file extension: {extension}")
        return os.path.join(self.keys_dir, f"{role.label}.{extension}")

    @property
    def guid_path(self) -> str:
        """Path to the owner GUID file."""
        return os.path.join(self.keys_dir, GUID_FILE)

    @property
    def empty_pk_path(self) -> str:
        """Path to the PK removal payload."""
        return os.path.join(self.keys_dir, EMPTY_PK_AUTH)

    def vendor_path(self, extension: str) -> str:
        """Path to the vendor bundle file with given extension (crt, esl, auth)."""
        return os.path.join(self.keys_dir, f"{VENDOR_STEM}.{extension}")

    def _entries(self) -> list[str]:
        if not os.path.isdir(self.keys_dir):
            return []
        return sorted(name for name in os.listdir(self.keys_dir) if name != BACKUP_DIR)

    def exists(self) -> bool:
        """True if the store holds any key material."""
        return bool(self._entries())

    def guid(self) -> UUID:
        """Owner GUID shared by all roles.

        :raises EFIKeysMissingKeyMaterialError: GUID file is missing or invalid
        """
        if not os.path.isfile(self.guid_path):
            raise EFIKeysMissingKeyMaterialError(f"Owner GUID file not found: {self.guid_path}")
        try:
            return UUID(load_text(self.guid_path).strip())
        except ValueError as exc:
            raise EFIKeysMissingKeyMaterialError(
                f"Invalid owner GUID in {self.guid_path}: {str(exc)}"
            ) from exc

    def backups(self) -> list[str]:
        """Paths of existing backups, oldest first."""
        if not os.path.isdir(self.backup_dir):
            return []
        return sorted(os.path.join(self.backup_dir, name) for name in os.listdir(self.backup_dir))

    def backup(self) -> Backup:
        """Move the current key set into a new permission-locked backup.

        :return: Created backup
        """
        timestamp = self.clock()
        name = timestamp.strftime("%Y%m%d-%H%M%S")
        path = os.path.join(self.backup_dir, name)
        counter = 0
        while os.path.exists(path):
            counter += 1
            path = os.path.join(self.backup_dir, f"{name}-{counter}")
        os.makedirs(path)
        files = self._entries()
        for entry in files:
            shutil.move(os.path.join(self.keys_dir, entry), os.path.join(path, entry))
        lock_permissions(path, self.config.backup_mode)
        self.sync()
        backup = Backup(timestamp, path, files)
        logger.info(f"Existing keys moved to {str(backup)}")
        return backup

    def create(
        self, common_name: str, vendor_list: Optional[SignatureList] = None
    ) -> dict[KeyRole, KeyMaterial]:
        """Generate a new PK, KEK and db key set.

        Existing key material is moved into a backup after the operator confirms it.

        :param common_name: Common name prefix of the certificates
        :param vendor_list: Verified vendor signature list appended to db, optional
        :raises EFIKeysAbortedError: Operator refused to replace existing keys
        :return: Generated key material per role
        """
        if not common_name:
            raise EFIKeysValueError("Common name of the keys must not be empty")
        if self.exists():
            prompt = (
                f"Secure Boot keys already exist in {self.keys_dir}. "
                "They will be moved to a backup and replaced by new keys."
            )
            if not self.confirm(prompt):
                raise EFIKeysAbortedError("Key creation aborted, existing keys are untouched")
            self.backup()

        owner_guid = uuid4()
        materials: dict[KeyRole, KeyMaterial] = {}
        for role in KeyRole:
            logger.info(f"Generating {role.label} key ({self.config.key_size} bits)")
            private_key = PrivateKeyRsa.generate_key(key_size=self.config.key_size)
            certificate = Certificate.generate_self_signed(
                f"{common_name} {role.label}", private_key, duration=self.config.validity_days
            )
            materials[role] = KeyMaterial(role, private_key, certificate, owner_guid)

        write_file(f"{owner_guid}\n", self.guid_path)
        for role, material in materials.items():
            self._save_material(material)
            sig_list = SignatureListBuilder.build(owner_guid, [material.certificate])
            sig_list.save(self.path(role, "esl"))

        pk, kek = materials[KeyRole.PK], materials[KeyRole.KEK]
        for role, authorizer in (
            (KeyRole.PK, pk),
            (KeyRole.KEK, pk),
            (KeyRole.DB, kek),
        ):
            payload = self.packager.package(self.signature_list(role), role, authorizer)
            payload.save(self.path(role, "auth"))
        self.packager.package_empty(pk).save(self.empty_pk_path)

        if vendor_list is not None:
            self.save_vendor_bundle(vendor_list, kek)

        self.sync()
        logger.info(f"Secure Boot keys created in {self.keys_dir}")
        return materials

    def save_vendor_bundle(self, vendor_list: SignatureList, kek: KeyMaterial) -> None:
        """Store the vendor bundle and its db append payload authorized by KEK.

        :param vendor_list: Verified vendor signature list
        :param kek: KEK key material
        """
        write_file(
            b"".join(cert.export(EFIKeysEncoding.PEM) for cert in vendor_list.certificates()),
            self.vendor_path("crt"),
            mode="wb",
        )
        vendor_list.save(self.vendor_path("esl"))
        payload = self.packager.package(vendor_list, KeyRole.DB, kek, append=True)
        payload.save(self.vendor_path("auth"))
        logger.info(f"Vendor bundle with {len(vendor_list)} entries stored")

    def _save_material(self, material: KeyMaterial) -> None:
        key_path = self.path(material.role, "key")
        material.private_key.save(key_path)
        os.chmod(key_path, self.config.private_key_mode)
        material.certificate.save(self.path(material.role, "crt"), EFIKeysEncoding.PEM)
        material.certificate.save(self.path(material.role, "cer"), EFIKeysEncoding.DER)

    def has_material(self, role: KeyRole) -> bool:
        """True if private key and certificate of the role exist."""
        return os.path.isfile(self.path(role, "key")) and os.path.isfile(self.path(role, "crt"))

    def load(self, role: KeyRole) -> KeyMaterial:
        """Load key material of the role.

        :param role: Key role
        :raises EFIKeysMissingKeyMaterialError: Key or certificate doesn't exist
        :return: Key material
        """
        if not self.has_material(role):
            raise EFIKeysMissingKeyMaterialError(
                f"Key material of {role.label} not found in {self.keys_dir}"
            )
        return KeyMaterial(
            role,
            PrivateKey.load(self.path(role, "key")),
            Certificate.load(self.path(role, "crt")),
            self.guid(),
        )

    def load_certificate(self, role: KeyRole) -> Certificate:
        """Load certificate of the role.

        :raises EFIKeysMissingKeyMaterialError: Certificate doesn't exist
        """
        path = self.path(role, "crt")
        if not os.path.isfile(path):
            raise EFIKeysMissingKeyMaterialError(f"Certificate of {role.label} not found: {path}")
        return Certificate.load(path)

    def verify_material(self, role: KeyRole) -> bool:
        """Check that the certificate is self-signed and matches the private key.

        :param role: Key role
        :raises EFIKeysMissingKeyMaterialError: Key or certificate doesn't exist
        :return: True if the material is consistent
        """
        if not self.has_material(role):
            raise EFIKeysMissingKeyMaterialError(
                f"Key material of {role.label} not found in {self.keys_dir}"
            )
        try:
            material = self.load(role)
        except EFIKeysError as exc:
            logger.warning(f"Key material of {role.label} is not valid: {str(exc)}")
            return False
        return material.certificate.self_signed

    def signature_list(self, role: KeyRole) -> SignatureList:
        """Load signature list of the role."""
        path = self.path(role, "esl")
        if not os.path.isfile(path):
            raise EFIKeysMissingKeyMaterialError(f"Signature list of {role.label} not found: {path}")
        return SignatureList.load(path)

    def has_payload(self, role: KeyRole) -> bool:
        """True if authenticated payload of the role exists."""
        return os.path.isfile(self.path(role, "auth"))

    def load_payload(self, role: KeyRole) -> AuthenticatedPayload:
        """Load authenticated payload of the role.

        :raises EFIKeysMissingKeyMaterialError: The payload doesn't exist
        """
        if not self.has_payload(role):
            raise EFIKeysMissingKeyMaterialError(
                f"Authenticated payload of {role.label} not found: {self.path(role, 'auth')}"
            )
        return AuthenticatedPayload.load(self.path(role, "auth"), target=role)

    def has_empty_pk_payload(self) -> bool:
        """True if the PK removal payload exists."""
        return os.path.isfile(self.empty_pk_path)

    def load_empty_pk_payload(self) -> AuthenticatedPayload:
        """Load the PK removal payload.

        :raises EFIKeysMissingKeyMaterialError: The payload doesn't exist
        """
        if not self.has_empty_pk_payload():
            raise EFIKeysMissingKeyMaterialError(f"PK removal payload not found: {self.empty_pk_path}")
        return AuthenticatedPayload.load(self.empty_pk_path, target=KeyRole.PK)

    def has_vendor_payload(self) -> bool:
        """True if vendor bundle payload exists."""
        return os.path.isfile(self.vendor_path("auth"))

    def load_vendor_payload(self) -> AuthenticatedPayload:
        """Load vendor bundle payload (append write to db).

        :raises EFIKeysMissingKeyMaterialError: The payload doesn't exist
        """
        if not self.has_vendor_payload():
            raise EFIKeysMissingKeyMaterialError(
                f"Vendor bundle payload not found: {self.vendor_path('auth')}"
            )
        return AuthenticatedPayload.load(self.vendor_path("auth"), target=KeyRole.DB, append=True)
