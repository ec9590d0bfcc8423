#!/usr/bin/env python
# -*- coding: UTF-8 -*-
#
# Copyright 2024-2025 NXP
#
# SPDX-License-Identifier: BSD-3-Clause

"""EFIKeys settings loaded from the configuration file.

The configuration is read once per invocation and converted into explicit
settings objects passed to the components.
"""

import logging
import os
import socket
from dataclasses import dataclass, field
from typing import Any, Optional
from uuid import UUID

from efikeys import EFIKEYS_DATA_FOLDER
from efikeys.efi.guids import MICROSOFT_OWNER_GUID
from efikeys.efivars import EFIVARFS_PATH
from efikeys.enroll import EnrollmentConfig
from efikeys.exceptions import (
    EFIKeysConfigMissingError,
    EFIKeysError,
    EFIKeysInvalidConfigError,
)
from efikeys.keystore import KeyStoreConfig
from efikeys.utils.config import Config
from efikeys.utils.misc import load_configuration, load_text
from efikeys.vendor import VendorCertSource, VendorTrustBundle

logger = logging.getLogger(__name__)

SCHEMA_FILE = os.path.join(EFIKEYS_DATA_FOLDER, "efikeys_schema.yaml")
TEMPLATE_FILE = os.path.join(EFIKEYS_DATA_FOLDER, "efikeys_config.yaml")


def get_schema() -> dict[str, Any]:
    """Get validation schema of the configuration."""
    return load_configuration(SCHEMA_FILE)


def get_template() -> str:
    """Get commented configuration template."""
    return load_text(TEMPLATE_FILE)


@dataclass
class EFIKeysSettings:
    """Validated EFIKeys settings."""

    efi_dir: str
    keys_dir: str
    to_sign: list[str] = field(default_factory=list)
    enable_oprom: bool = False
    vendor_sources: list[VendorCertSource] = field(default_factory=list)
    key_size: int = 2048
    validity_days: int = 3650
    common_name: str = ""
    efivars_dir: str = EFIVARFS_PATH

    @classmethod
    def load(cls, path: str) -> "EFIKeysSettings":
        """Load settings from configuration file.

        :param path: Path to YAML or JSON configuration
        :raises EFIKeysConfigMissingError: The file doesn't exist
        :raises EFIKeysInvalidConfigError: The configuration is not valid
        :return: Settings
        """
        if not os.path.isfile(path):
            raise EFIKeysConfigMissingError(f"Configuration file not found: {path}")
        try:
            config = Config.create_from_file(path)
        except EFIKeysError as exc:
            raise EFIKeysInvalidConfigError(exc.description) from exc
        logger.debug(f"Configuration loaded from {path}")
        return cls.from_config(config)

    @classmethod
    def from_config(cls, config: Config) -> "EFIKeysSettings":
        """Create settings from configuration.

        :param config: Configuration, relative paths resolve against its directory
        :raises EFIKeysInvalidConfigError: The configuration is not valid
        :return: Settings
        """
        config.check([get_schema()])
        efi_dir = config.get_path("EFI_DIR")
        sources = [
            VendorCertSource(
                sha256=item["sha256"],
                url=item.get("url"),
                path=config.resolve_path(item["path"]) if item.get("path") else None,
                owner_guid=UUID(item["owner_guid"]) if item.get("owner_guid") else MICROSOFT_OWNER_GUID,
            )
            for item in config.get("VENDOR_CERTS", [])
        ]
        enable_oprom = config.get_bool("ENABLE_OPROM")
        if enable_oprom and not sources:
            raise EFIKeysInvalidConfigError("ENABLE_OPROM requires at least one VENDOR_CERTS entry")
        return cls(
            efi_dir=efi_dir,
            keys_dir=config.get_path("EFI_KEYS_DIR"),
            to_sign=[
                config.resolve_path(directory, base_dir=efi_dir)
                for directory in config.get_list("TO_SIGN", ["EFI"])
            ],
            enable_oprom=enable_oprom,
            vendor_sources=sources,
            key_size=config.get_int("KEY_SIZE", 2048),
            validity_days=config.get_int("CERT_VALIDITY_DAYS", 3650),
            common_name=config.get("COMMON_NAME") or socket.gethostname(),
            efivars_dir=config.get_path("EFIVARS_DIR") if "EFIVARS_DIR" in config else EFIVARFS_PATH,
        )

    def keystore_config(self, private_key_mode: Optional[int] = None) -> KeyStoreConfig:
        """Key store settings.

        :param private_key_mode: Permission bits of private keys, no access bits by default
        """
        if private_key_mode is None:
            return KeyStoreConfig(
                self.keys_dir, key_size=self.key_size, validity_days=self.validity_days
            )
        return KeyStoreConfig(
            self.keys_dir,
            key_size=self.key_size,
            validity_days=self.validity_days,
            private_key_mode=private_key_mode,
        )

    def enrollment_config(self) -> EnrollmentConfig:
        """Enrollment settings."""
        return EnrollmentConfig(enable_vendor_bundle=self.enable_oprom)

    def vendor_bundle(self) -> Optional[VendorTrustBundle]:
        """Vendor trust bundle, None when option ROMs are not enabled."""
        if not self.enable_oprom:
            return None
        return VendorTrustBundle(self.vendor_sources)
