#!/usr/bin/env python
# -*- coding: UTF-8 -*-
#
# Copyright 2024-2025 NXP
#
# SPDX-License-Identifier: BSD-3-Clause

"""EFIKeys exception classes and process exit codes.

Every error raised by the library derives from :class:`EFIKeysError`. The error kinds
an operator has to react to (aborted confirmation, missing key material, invalid
configuration, firmware write failure, ...) carry a distinct process exit code.
"""

from enum import IntEnum
from typing import Optional


class ExitCode(IntEnum):
    """Process exit codes of the efikeys application."""

    SUCCESS = 0
    ABORTED = 1
    MISSING_KEYS = 2
    INVALID_CONFIG = 3
    FIRMWARE_ERROR = 4
    VERIFICATION_FAILED = 5
    CHECKSUM_MISMATCH = 6
    NOT_PRIVILEGED = 7
    HIERARCHY_VIOLATION = 8
    GENERAL_ERROR = 9
    SECURE_BOOT_INACTIVE = 10


#######################################################################
# # EFIKeys Exceptions
#######################################################################


class EFIKeysError(Exception):
    """EFIKeys Base Exception.

    Base exception class for all EFIKeys-related errors. It provides consistent
    error formatting and the process exit code reported by the command line tool.

    :cvar fmt: Default error message format template.
    :cvar exit_code: Exit code passed to the OS when the error reaches the CLI.
    """

    fmt = "EFIKeys: {description}"
    exit_code = ExitCode.GENERAL_ERROR

    def __init__(self, desc: Optional[str] = None) -> None:
        """Initialize the base EFIKeys Exception.

        :param desc: Optional description of the exception.
        """
        super().__init__()
        self.description = desc

    def __str__(self) -> str:
        """Return string representation of the exception.

        :return: Formatted exception message as string.
        """
        return self.fmt.format(description=self.description or "Unknown Error")


class EFIKeysKeyError(EFIKeysError, KeyError):
    """EFIKeys Key Error exception for missing dictionary keys."""


class EFIKeysValueError(EFIKeysError, ValueError):
    """EFIKeys standard value error exception."""


class EFIKeysTypeError(EFIKeysError, TypeError):
    """EFIKeys standard type error exception."""


class EFIKeysIOError(EFIKeysError, IOError):
    """EFIKeys standard IO error exception."""


class EFIKeysParsingError(EFIKeysError):
    """EFIKeys parsing error exception.

    Raised when a binary structure (signature list, authenticated variable,
    EFI time) cannot be decoded.
    """


#######################################################################
# # Operator facing error kinds
#######################################################################


class EFIKeysConfigMissingError(EFIKeysError):
    """The configuration file does not exist or cannot be read."""

    exit_code = ExitCode.INVALID_CONFIG


class EFIKeysInvalidConfigError(EFIKeysError, ValueError):
    """Configuration value, path or glob is not valid."""

    exit_code = ExitCode.INVALID_CONFIG


class EFIKeysNotPrivilegedError(EFIKeysError, PermissionError):
    """Operation requires elevated privileges."""

    exit_code = ExitCode.NOT_PRIVILEGED


class EFIKeysAbortedError(EFIKeysError):
    """User declined a destructive confirmation."""

    exit_code = ExitCode.ABORTED


class EFIKeysMissingKeyMaterialError(EFIKeysError):
    """Required key, certificate or authenticated payload is not present."""

    exit_code = ExitCode.MISSING_KEYS


class EFIKeysNoKeysError(EFIKeysMissingKeyMaterialError):
    """No db signing key is available for image signing."""


class EFIKeysHierarchyViolationError(EFIKeysError):
    """Authorizing key is not the parent of the target variable."""

    exit_code = ExitCode.HIERARCHY_VIOLATION


class EFIKeysFirmwareWriteError(EFIKeysError):
    """Firmware variable store rejected a write."""

    exit_code = ExitCode.FIRMWARE_ERROR

    def __init__(self, desc: Optional[str] = None, variable: Optional[str] = None) -> None:
        """Initialize the firmware write error.

        :param desc: Description of the failure.
        :param variable: Name of the variable that failed to be written.
        """
        super().__init__(desc)
        self.variable = variable


class EFIKeysVerificationError(EFIKeysError):
    """Signature or certificate verification failed."""

    exit_code = ExitCode.VERIFICATION_FAILED


class EFIKeysChecksumMismatchError(EFIKeysError):
    """Vendor trust material does not match its pinned checksum."""

    exit_code = ExitCode.CHECKSUM_MISMATCH
