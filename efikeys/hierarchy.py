#!/usr/bin/env python
# -*- coding: UTF-8 -*-
#
# Copyright 2024-2025 NXP
#
# SPDX-License-Identifier: BSD-3-Clause

"""Secure Boot key roles and the authorization rules between them.

PK authorizes updates of PK and KEK, KEK authorizes updates of db (including
appended vendor certificates).
"""

from dataclasses import dataclass
from uuid import UUID

from efikeys.crypto.certificate import Certificate
from efikeys.crypto.keys import PrivateKey
from efikeys.efi.variables import variable_guid
from efikeys.exceptions import EFIKeysHierarchyViolationError, EFIKeysValueError
from efikeys.utils.efi_enum import EfiEnum


class KeyRole(EfiEnum):
    """Role of a key in the Secure Boot hierarchy; the label is the variable name."""

    PK = (0, "PK", "Platform Key")
    KEK = (1, "KEK", "Key Exchange Key")
    DB = (2, "db", "Signature Database")

    @property
    def variable_name(self) -> str:
        """Name of the firmware variable holding the role's signature list."""
        return self.label

    @property
    def vendor_guid(self) -> UUID:
        """Vendor GUID of the firmware variable."""
        return variable_guid(self.label)


AUTHORIZED_BY: dict[KeyRole, tuple[KeyRole, ...]] = {
    KeyRole.PK: (KeyRole.PK,),
    KeyRole.KEK: (KeyRole.PK,),
    KeyRole.DB: (KeyRole.KEK,),
}


def check_authorization(target: KeyRole, authorizer: KeyRole) -> None:
    """Check that the authorizer is a parent of the target variable.

    :param target: Role of the written variable
    :param authorizer: Role of the key signing the update
    :raises EFIKeysHierarchyViolationError: The authorizer may not update the target
    """
    if authorizer not in AUTHORIZED_BY[target]:
        allowed = ", ".join(role.label for role in AUTHORIZED_BY[target])
        raise EFIKeysHierarchyViolationError(
            f"{authorizer.label} is not allowed to authorize {target.label}, use {allowed}"
        )


@dataclass
class KeyMaterial:
    """Private key and certificate of one role."""

    role: KeyRole
    private_key: PrivateKey
    certificate: Certificate
    owner_guid: UUID

    def __post_init__(self) -> None:
        if not self.private_key.verify_public_key(self.certificate.get_public_key()):
            raise EFIKeysValueError(
                f"Private key of {self.role.label} doesn't match its certificate"
            )

    def __str__(self) -> str:
        return f"{self.role.label} ({self.certificate.common_name}, owner {self.owner_guid})"
