#!/usr/bin/env python
# -*- coding: UTF-8 -*-
#
# Copyright 2024-2025 NXP
#
# SPDX-License-Identifier: BSD-3-Clause

"""Authenticated variable payloads (.auth files).

A payload written to a time based authenticated variable is an
EFI_VARIABLE_AUTHENTICATION_2 descriptor followed by the variable data:

    EFI_TIME | WIN_CERTIFICATE_UEFI_GUID (dwLength, wRevision, wCertificateType,
    CertType = EFI_CERT_TYPE_PKCS7_GUID, CertData = PKCS#7 SignedData) | data

The PKCS#7 signature covers VariableName (UTF-16LE, no terminator), VendorGuid,
Attributes, the EFI_TIME and the data.
"""

import logging
from datetime import datetime, timedelta, timezone
from struct import calcsize, pack, unpack_from
from typing import Callable, Optional

from typing_extensions import Self

from efikeys.crypto.certificate import Certificate
from efikeys.crypto.cms import cms_get_certificates, cms_sign, cms_verify
from efikeys.efi.guids import EFI_CERT_TYPE_PKCS7_GUID, guid_from_bytes, guid_to_bytes
from efikeys.efi.time import EfiTime
from efikeys.efi.variables import write_attributes
from efikeys.exceptions import EFIKeysParsingError, EFIKeysValueError
from efikeys.hierarchy import KeyMaterial, KeyRole, check_authorization
from efikeys.siglist import SignatureList
from efikeys.utils.abstract import BaseClass
from efikeys.utils.misc import load_binary, write_file

logger = logging.getLogger(__name__)

WIN_CERT_REVISION = 0x0200
WIN_CERT_TYPE_EFI_GUID = 0x0EF1


def signed_data(
    target: KeyRole, attributes: int, timestamp: EfiTime, signature_list: SignatureList
) -> bytes:
    """Serialize the data covered by the signature of an authenticated variable.

    :param target: Written variable
    :param attributes: Variable attributes of the write
    :param timestamp: Timestamp of the payload
    :param signature_list: Variable data
    :return: Data to be signed
    """
    return (
        target.variable_name.encode("utf-16-le")
        + guid_to_bytes(target.vendor_guid)
        + pack("<I", attributes)
        + timestamp.export()
        + signature_list.export()
    )


class AuthenticatedPayload(BaseClass):
    """Signed signature list ready to be written into a firmware variable."""

    WIN_CERT_FORMAT = "<IHH16s"
    WIN_CERT_SIZE = calcsize(WIN_CERT_FORMAT)

    def __init__(
        self,
        target: KeyRole,
        signature_list: SignatureList,
        timestamp: EfiTime,
        signature: bytes,
        append: bool = False,
        authorizing_role: Optional[KeyRole] = None,
    ) -> None:
        """Constructor.

        :param target: Variable the payload is written to
        :param signature_list: Variable data
        :param timestamp: Timestamp of the payload
        :param signature: PKCS#7 SignedData of the authorizing key
        :param append: The payload is written with the append attribute
        :param authorizing_role: Role of the authorizing key, if known
        """
        self.target = target
        self.signature_list = signature_list
        self.timestamp = timestamp
        self.signature = signature
        self.append = append
        self.authorizing_role = authorizing_role

    @property
    def attributes(self) -> int:
        """Attributes of the variable write."""
        return write_attributes(self.append)

    @property
    def is_empty(self) -> bool:
        """True for payload with empty signature list (PK removal)."""
        return self.signature_list.is_empty

    def signer_certificates(self) -> list[Certificate]:
        """Certificates embedded in the PKCS#7 signature."""
        return cms_get_certificates(self.signature)

    def verify(self, certificate: Optional[Certificate] = None) -> bool:
        """Verify the payload signature.

        :param certificate: Certificate of the authorizing key; embedded certificate if None
        :return: True if the signature is valid
        """
        data = signed_data(self.target, self.attributes, self.timestamp, self.signature_list)
        return cms_verify(data, self.signature, certificate)

    def export(self) -> bytes:
        """Export the payload (EFI_VARIABLE_AUTHENTICATION_2 + data)."""
        win_cert = pack(
            self.WIN_CERT_FORMAT,
            self.WIN_CERT_SIZE + len(self.signature),
            WIN_CERT_REVISION,
            WIN_CERT_TYPE_EFI_GUID,
            guid_to_bytes(EFI_CERT_TYPE_PKCS7_GUID),
        )
        return self.timestamp.export() + win_cert + self.signature + self.signature_list.export()

    @classmethod
    def parse(cls, data: bytes, target: KeyRole = KeyRole.DB, append: bool = False) -> Self:
        """Parse authenticated payload.

        The target variable and the append flag are not part of the binary format.

        :param data: Payload data
        :param target: Variable the payload is intended for
        :param append: The payload is intended for append write
        :raises EFIKeysParsingError: Malformed payload
        :return: Parsed payload
        """
        timestamp = EfiTime.parse(data)
        offset = EfiTime.SIZE
        if len(data) < offset + cls.WIN_CERT_SIZE:
            raise EFIKeysParsingError("Insufficient data for WIN_CERTIFICATE_UEFI_GUID")
        length, revision, cert_type, raw_guid = unpack_from(cls.WIN_CERT_FORMAT, data, offset)
        if revision != WIN_CERT_REVISION or cert_type != WIN_CERT_TYPE_EFI_GUID:
            raise EFIKeysParsingError(
                f"Unsupported WIN_CERTIFICATE revision 0x{revision:04X} type 0x{cert_type:04X}"
            )
        if guid_from_bytes(raw_guid) != EFI_CERT_TYPE_PKCS7_GUID:
            raise EFIKeysParsingError(f"Unsupported certificate type {guid_from_bytes(raw_guid)}")
        if length < cls.WIN_CERT_SIZE or offset + length > len(data):
            raise EFIKeysParsingError(f"Invalid WIN_CERTIFICATE length {length}")
        signature = data[offset + cls.WIN_CERT_SIZE : offset + length]
        signature_list = SignatureList.parse(data[offset + length :])
        return cls(target, signature_list, timestamp, signature, append=append)

    def save(self, file_path: str) -> None:
        """Save the payload into file."""
        write_file(self.export(), file_path, mode="wb")

    @classmethod
    def load(cls, file_path: str, target: KeyRole = KeyRole.DB, append: bool = False) -> Self:
        """Load the payload from file."""
        return cls.parse(load_binary(file_path), target=target, append=append)

    def __repr__(self) -> str:
        return f"AuthenticatedPayload({self.target.label}, {repr(self.timestamp)})"

    def __str__(self) -> str:
        signers = ", ".join(cert.common_name for cert in self.signer_certificates())
        nfo = f"Variable:      {self.target.label}{' (append)' if self.append else ''}\n"
        nfo += f"Timestamp:     {str(self.timestamp)}\n"
        nfo += f"Signed by:     {signers or 'unknown'}\n"
        nfo += f"Entries:       {len(self.signature_list)}\n"
        return nfo


class AuthPackager:
    """Packages signature lists into authenticated payloads.

    The packager keeps the last issued timestamp, every next payload gets a strictly
    later one, even when the clock does not advance (or goes back).
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        """Constructor.

        :param clock: Source of current time, UTC wall clock by default
        """
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.last_timestamp: Optional[EfiTime] = None

    def next_timestamp(self) -> EfiTime:
        """Get next timestamp, strictly later than the previous one."""
        timestamp = EfiTime(self.clock())
        if self.last_timestamp is not None and timestamp <= self.last_timestamp:
            timestamp = EfiTime(self.last_timestamp.timestamp + timedelta(seconds=1))
        self.last_timestamp = timestamp
        return timestamp

    def package(
        self,
        signature_list: SignatureList,
        target: KeyRole,
        authorizing_key: KeyMaterial,
        append: bool = False,
    ) -> AuthenticatedPayload:
        """Sign the signature list for a write into the target variable.

        :param signature_list: Variable data
        :param target: Written variable
        :param authorizing_key: Key material of the parent of the target
        :param append: Create payload for append write
        :raises EFIKeysHierarchyViolationError: Authorizing key is not the parent of the target
        :return: Authenticated payload
        """
        check_authorization(target, authorizing_key.role)
        timestamp = self.next_timestamp()
        attributes = write_attributes(append)
        signature = cms_sign(
            signed_data(target, attributes, timestamp, signature_list),
            authorizing_key.certificate,
            authorizing_key.private_key,
        )
        logger.debug(
            f"Packaged {len(signature_list)} entries for {target.label} "
            f"signed by {authorizing_key.role.label} at {timestamp}"
        )
        return AuthenticatedPayload(
            target,
            signature_list,
            timestamp,
            signature,
            append=append,
            authorizing_role=authorizing_key.role,
        )

    def package_empty(
        self, authorizing_key: KeyMaterial, target: KeyRole = KeyRole.PK
    ) -> AuthenticatedPayload:
        """Create payload clearing the Platform Key.

        Writing it while in UserMode moves the firmware back to SetupMode.

        :param authorizing_key: Platform Key material
        :param target: Cleared variable, only PK is supported
        :raises EFIKeysValueError: Target is not PK
        :return: Authenticated payload with empty signature list
        """
        if target != KeyRole.PK:
            raise EFIKeysValueError(f"Only PK can be cleared by an empty payload, not {target.label}")
        return self.package(SignatureList(), target, authorizing_key)
