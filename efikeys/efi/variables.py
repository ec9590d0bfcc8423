#!/usr/bin/env python
# -*- coding: UTF-8 -*-
#
# Copyright 2024-2025 NXP
#
# SPDX-License-Identifier: BSD-3-Clause

"""EFI variable attributes and the Secure Boot related variables."""

from uuid import UUID

from efikeys.efi.guids import EFI_GLOBAL_VARIABLE_GUID, EFI_IMAGE_SECURITY_DATABASE_GUID
from efikeys.exceptions import EFIKeysKeyError

EFI_VARIABLE_NON_VOLATILE = 0x00000001
EFI_VARIABLE_BOOTSERVICE_ACCESS = 0x00000002
EFI_VARIABLE_RUNTIME_ACCESS = 0x00000004
EFI_VARIABLE_TIME_BASED_AUTHENTICATED_WRITE_ACCESS = 0x00000020
EFI_VARIABLE_APPEND_WRITE = 0x00000040

# attributes of PK, KEK, db and dbx writes
SECURE_BOOT_ATTRIBUTES = (
    EFI_VARIABLE_NON_VOLATILE
    | EFI_VARIABLE_BOOTSERVICE_ACCESS
    | EFI_VARIABLE_RUNTIME_ACCESS
    | EFI_VARIABLE_TIME_BASED_AUTHENTICATED_WRITE_ACCESS
)

PK = "PK"
KEK = "KEK"
DB = "db"
DBX = "dbx"
SECURE_BOOT = "SecureBoot"
SETUP_MODE = "SetupMode"

VARIABLE_GUIDS: dict[str, UUID] = {
    PK: EFI_GLOBAL_VARIABLE_GUID,
    KEK: EFI_GLOBAL_VARIABLE_GUID,
    DB: EFI_IMAGE_SECURITY_DATABASE_GUID,
    DBX: EFI_IMAGE_SECURITY_DATABASE_GUID,
    SECURE_BOOT: EFI_GLOBAL_VARIABLE_GUID,
    SETUP_MODE: EFI_GLOBAL_VARIABLE_GUID,
}

SIGNATURE_DATABASES = (PK, KEK, DB, DBX)


def variable_guid(name: str) -> UUID:
    """Get vendor GUID of known Secure Boot variable.

    :param name: Variable name
    :raises EFIKeysKeyError: Unknown variable
    :return: Vendor GUID
    """
    try:
        return VARIABLE_GUIDS[name]
    except KeyError as exc:
        raise EFIKeysKeyError(f"Unknown EFI variable: {name}") from exc


def write_attributes(append: bool = False) -> int:
    """Attributes used for a write of signature database variable."""
    return SECURE_BOOT_ATTRIBUTES | (EFI_VARIABLE_APPEND_WRITE if append else 0)
