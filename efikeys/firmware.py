#!/usr/bin/env python
# -*- coding: UTF-8 -*-
#
# Copyright 2024-2025 NXP
#
# SPDX-License-Identifier: BSD-3-Clause

"""Read-only queries of the firmware Secure Boot state."""

import logging
from typing import Optional

from efikeys.efi.variables import SECURE_BOOT, SETUP_MODE, SIGNATURE_DATABASES
from efikeys.efivars import FirmwareVariableStore
from efikeys.exceptions import ExitCode
from efikeys.siglist import SignatureList
from efikeys.utils.efi_enum import EfiEnum

logger = logging.getLogger(__name__)


class SecureBootStatus(EfiEnum):
    """Secure Boot activation state."""

    ACTIVE = (1, "Active", "Secure Boot is enforced")
    INACTIVE = (0, "Inactive", "Secure Boot is not enforced")

    @property
    def exit_code(self) -> int:
        """Process exit code reporting the state."""
        return ExitCode.SUCCESS if self == SecureBootStatus.ACTIVE else ExitCode.SECURE_BOOT_INACTIVE


class EnrollmentState(EfiEnum):
    """Firmware enrollment state derived from the SetupMode variable."""

    USER_MODE = (0, "UserMode", "Platform Key is enrolled, writes must be authenticated")
    SETUP_MODE = (1, "SetupMode", "No Platform Key, variables may be written without authentication")
    UNKNOWN = (2, "Unknown", "SetupMode variable is not available")


def _indicator(data: Optional[bytes]) -> Optional[int]:
    if not data:
        return None
    return data[0]


class FirmwareStateReader:
    """Queries of Secure Boot variables."""

    def __init__(self, store: FirmwareVariableStore) -> None:
        """Constructor.

        :param store: Firmware variable store
        """
        self.store = store

    def status(self) -> SecureBootStatus:
        """Secure Boot state; Active exactly when the SecureBoot variable byte equals 1."""
        value = _indicator(self.store.read_variable(SECURE_BOOT))
        logger.debug(f"SecureBoot indicator: {value}")
        return SecureBootStatus.ACTIVE if value == 1 else SecureBootStatus.INACTIVE

    def enrollment_state(self) -> EnrollmentState:
        """SetupMode or UserMode, Unknown when firmware doesn't expose the state."""
        value = _indicator(self.store.read_variable(SETUP_MODE))
        logger.debug(f"SetupMode indicator: {value}")
        if value is None:
            return EnrollmentState.UNKNOWN
        return EnrollmentState.SETUP_MODE if value == 1 else EnrollmentState.USER_MODE

    def list_enrolled_keys(self) -> dict[str, SignatureList]:
        """Signature lists of PK, KEK, db and dbx; missing variables give empty lists."""
        enrolled = {}
        for name in SIGNATURE_DATABASES:
            data = self.store.read_variable(name)
            enrolled[name] = SignatureList.parse(data) if data else SignatureList()
            logger.debug(f"{name}: {len(enrolled[name])} entries enrolled")
        return enrolled
