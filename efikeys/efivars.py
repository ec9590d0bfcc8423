#!/usr/bin/env python
# -*- coding: UTF-8 -*-
#
# Copyright 2024-2025 NXP
#
# SPDX-License-Identifier: BSD-3-Clause

"""Firmware variable store access.

The Linux implementation works on efivarfs, where every variable is a file named
``<Name>-<VendorGuid>`` whose content is the 32-bit attribute word followed by the
variable data. The kernel marks most variable files immutable, the flag has to be
cleared before a write.
"""

import abc
import array
import fcntl
import logging
import os
from struct import pack
from typing import Optional
from uuid import UUID

from efikeys.auth import AuthenticatedPayload
from efikeys.efi.variables import variable_guid
from efikeys.exceptions import EFIKeysFirmwareWriteError, EFIKeysIOError

logger = logging.getLogger(__name__)

EFIVARFS_PATH = "/sys/firmware/efi/efivars"

FS_IOC_GETFLAGS = 0x80086601
FS_IOC_SETFLAGS = 0x40086602
FS_IMMUTABLE_FL = 0x00000010

ATTRIBUTES_SIZE = 4


class FirmwareVariableStore(abc.ABC):
    """Abstract firmware variable store."""

    @abc.abstractmethod
    def read(self, name: str, guid: UUID) -> Optional[bytes]:
        """Read variable data.

        :param name: Variable name
        :param guid: Vendor GUID
        :return: Variable data without attributes, None if the variable doesn't exist
        """

    @abc.abstractmethod
    def write(self, name: str, guid: UUID, data: bytes, attributes: int) -> None:
        """Write variable.

        :param name: Variable name
        :param guid: Vendor GUID
        :param data: Data to write (authenticated payload for authenticated variables)
        :param attributes: Attributes of the write
        :raises EFIKeysFirmwareWriteError: The firmware rejected the write
        """

    @abc.abstractmethod
    def clear_immutable(self, name: str, guid: UUID) -> bool:
        """Clear immutability flag of the variable.

        :param name: Variable name
        :param guid: Vendor GUID
        :raises EFIKeysIOError: The flag cannot be changed
        :return: True if the flag was set and has been cleared
        """

    def exists(self, name: str, guid: UUID) -> bool:
        """True if the variable exists."""
        return self.read(name, guid) is not None

    def read_variable(self, name: str) -> Optional[bytes]:
        """Read a well-known Secure Boot variable."""
        return self.read(name, variable_guid(name))

    def write_payload(self, payload: AuthenticatedPayload) -> None:
        """Write authenticated payload into its target variable.

        :param payload: Authenticated payload
        :raises EFIKeysFirmwareWriteError: The firmware rejected the write
        """
        logger.debug(f"Writing {repr(payload)} with attributes 0x{payload.attributes:08X}")
        self.write(
            payload.target.variable_name,
            payload.target.vendor_guid,
            payload.export(),
            payload.attributes,
        )


class EfivarfsStore(FirmwareVariableStore):
    """Firmware variables exposed by the Linux efivarfs file system."""

    def __init__(self, root: str = EFIVARFS_PATH) -> None:
        """Constructor.

        :param root: Mount point of efivarfs
        """
        self.root = root

    def is_available(self) -> bool:
        """True if efivarfs is mounted."""
        return os.path.isdir(self.root)

    def variable_path(self, name: str, guid: UUID) -> str:
        """Path of the variable file."""
        return os.path.join(self.root, f"{name}-{guid}")

    def read(self, name: str, guid: UUID) -> Optional[bytes]:
        path = self.variable_path(name, guid)
        if not os.path.exists(path):
            return None
        try:
            with open(path, "rb") as f:
                data = f.read()
        except OSError as exc:
            raise EFIKeysIOError(f"Cannot read EFI variable {name}: {str(exc)}") from exc
        return data[ATTRIBUTES_SIZE:]

    def write(self, name: str, guid: UUID, data: bytes, attributes: int) -> None:
        path = self.variable_path(name, guid)
        # efivarfs requires the attributes and the data in a single write call
        buffer = pack("<I", attributes) + data
        try:
            fd = os.open(path, os.O_WRONLY | os.O_CREAT, 0o644)
            try:
                written = os.write(fd, buffer)
            finally:
                os.close(fd)
        except OSError as exc:
            raise EFIKeysFirmwareWriteError(
                f"Firmware rejected write of {name}: {str(exc)}", variable=name
            ) from exc
        if written != len(buffer):
            raise EFIKeysFirmwareWriteError(
                f"Incomplete write of {name}: {written} of {len(buffer)} bytes", variable=name
            )
        logger.debug(f"Variable {name} written ({len(data)} bytes)")

    def clear_immutable(self, name: str, guid: UUID) -> bool:
        path = self.variable_path(name, guid)
        if not os.path.exists(path):
            return False
        try:
            fd = os.open(path, os.O_RDONLY)
            try:
                flags = array.array("i", [0])
                fcntl.ioctl(fd, FS_IOC_GETFLAGS, flags, True)
                if not flags[0] & FS_IMMUTABLE_FL:
                    return False
                flags[0] &= ~FS_IMMUTABLE_FL
                fcntl.ioctl(fd, FS_IOC_SETFLAGS, flags)
            finally:
                os.close(fd)
        except OSError as exc:
            raise EFIKeysIOError(f"Cannot clear immutable flag of {name}: {str(exc)}") from exc
        logger.debug(f"Immutable flag of {name} cleared")
        return True
