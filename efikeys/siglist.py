#!/usr/bin/env python
# -*- coding: UTF-8 -*-
#
# Copyright 2024-2025 NXP
#
# SPDX-License-Identifier: BSD-3-Clause

"""EFI Signature Lists.

An EFI signature database (PK, KEK, db, dbx) is a sequence of EFI_SIGNATURE_LIST
structures. Each list carries signatures of one type, every signature is prefixed
by the GUID of its owner:

    EFI_SIGNATURE_LIST:  SignatureType (GUID) | ListSize (u32) | HeaderSize (u32) |
                         SignatureSize (u32) | header | signatures
    EFI_SIGNATURE_DATA:  SignatureOwner (GUID) | SignatureData
"""

import logging
from struct import calcsize, pack, unpack_from
from typing import Iterable, Iterator, Optional, Sequence
from uuid import UUID

from typing_extensions import Self

from efikeys.crypto.certificate import Certificate
from efikeys.crypto.hash import get_hash
from efikeys.efi.guids import (
    EFI_CERT_SHA256_GUID,
    EFI_CERT_X509_GUID,
    GUID_SIZE,
    guid_from_bytes,
    guid_to_bytes,
)
from efikeys.exceptions import EFIKeysError, EFIKeysParsingError, EFIKeysValueError
from efikeys.utils.abstract import BaseClass
from efikeys.utils.misc import load_binary, write_file

logger = logging.getLogger(__name__)

SIGNATURE_TYPE_NAMES = {
    EFI_CERT_X509_GUID: "X509",
    EFI_CERT_SHA256_GUID: "SHA256",
}


class SignatureListEntry:
    """Single signature (EFI_SIGNATURE_DATA) with its type."""

    def __init__(self, owner: UUID, data: bytes, signature_type: UUID = EFI_CERT_X509_GUID) -> None:
        """Constructor.

        :param owner: GUID of the signature owner
        :param data: Signature data, DER certificate for X509 or digest for SHA256 entries
        :param signature_type: GUID of the signature type
        """
        if signature_type == EFI_CERT_SHA256_GUID and len(data) != 32:
            raise EFIKeysValueError(f"SHA256 signature must be 32 bytes long, got {len(data)}")
        self.owner = owner
        self.data = bytes(data)
        self.signature_type = signature_type

    @classmethod
    def from_certificate(cls, owner: UUID, certificate: Certificate) -> Self:
        """Create X509 entry from certificate."""
        return cls(owner, certificate.export(), EFI_CERT_X509_GUID)

    @property
    def type_name(self) -> str:
        """Human readable signature type."""
        return SIGNATURE_TYPE_NAMES.get(self.signature_type, str(self.signature_type))

    @property
    def is_certificate(self) -> bool:
        """True for X509 entries."""
        return self.signature_type == EFI_CERT_X509_GUID

    @property
    def certificate(self) -> Optional[Certificate]:
        """Parsed certificate of X509 entry, None for other entry types."""
        if not self.is_certificate:
            return None
        return Certificate.parse(self.data)

    @property
    def fingerprint(self) -> bytes:
        """SHA-256 fingerprint identifying the entry.

        For certificates it is the digest of the DER data, for SHA256 entries the digest itself.
        """
        if self.signature_type == EFI_CERT_SHA256_GUID:
            return self.data
        return get_hash(self.data)

    @property
    def description(self) -> str:
        """Certificate subject, or the fingerprint for hashes and unparsable certificates."""
        if not self.is_certificate:
            return self.fingerprint.hex()
        try:
            return self.certificate.subject.rfc4514_string()  # type: ignore[union-attr]
        except EFIKeysError as exc:
            logger.warning(f"Certificate owned by {self.owner} cannot be parsed: {exc.description}")
            return f"unparsable certificate, sha256 {self.fingerprint.hex()}"

    def export(self) -> bytes:
        """Export EFI_SIGNATURE_DATA."""
        return guid_to_bytes(self.owner) + self.data

    def __eq__(self, obj: object) -> bool:
        return (
            isinstance(obj, SignatureListEntry)
            and self.owner == obj.owner
            and self.signature_type == obj.signature_type
            and self.data == obj.data
        )

    def __repr__(self) -> str:
        return f"SignatureListEntry({self.type_name}, owner={self.owner})"

    def __str__(self) -> str:
        description = f"{self.type_name} owner: {self.owner} fingerprint: {self.fingerprint.hex()}"
        if self.is_certificate:
            description += f" subject: {self.description}"
        return description


class SignatureList(BaseClass):
    """Ordered set of signatures of one signature database variable."""

    HEADER_FORMAT = "<16sIII"
    HEADER_SIZE = calcsize(HEADER_FORMAT)

    def __init__(self, entries: Optional[Iterable[SignatureListEntry]] = None) -> None:
        """Constructor.

        :param entries: Signature entries in their order
        """
        self.entries: list[SignatureListEntry] = list(entries or [])

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[SignatureListEntry]:
        return iter(self.entries)

    def __repr__(self) -> str:
        return f"SignatureList({len(self.entries)} entries)"

    def __str__(self) -> str:
        if not self.entries:
            return "Empty signature list"
        return "\n".join(f"[{idx}] {str(entry)}" for idx, entry in enumerate(self.entries))

    @property
    def is_empty(self) -> bool:
        """True if the list has no entries."""
        return not self.entries

    def certificates(self) -> list[Certificate]:
        """Certificates of all X509 entries."""
        return [entry.certificate for entry in self.entries if entry.certificate is not None]

    def fingerprints(self) -> list[bytes]:
        """Fingerprints of all entries in order."""
        return [entry.fingerprint for entry in self.entries]

    def export(self) -> bytes:
        """Export into EFI signature database format.

        Every certificate is stored in its own EFI_SIGNATURE_LIST; consecutive SHA256 entries
        share one list.
        """
        data = b""
        group: list[SignatureListEntry] = []
        for entry in self.entries:
            if group and (
                entry.signature_type != group[0].signature_type
                or entry.signature_type != EFI_CERT_SHA256_GUID
            ):
                data += self._export_group(group)
                group = []
            group.append(entry)
        if group:
            data += self._export_group(group)
        return data

    @classmethod
    def _export_group(cls, entries: Sequence[SignatureListEntry]) -> bytes:
        signature_size = GUID_SIZE + len(entries[0].data)
        list_size = cls.HEADER_SIZE + signature_size * len(entries)
        header = pack(
            cls.HEADER_FORMAT,
            guid_to_bytes(entries[0].signature_type),
            list_size,
            0,
            signature_size,
        )
        return header + b"".join(entry.export() for entry in entries)

    @classmethod
    def parse(cls, data: bytes) -> Self:
        """Parse EFI signature database.

        :param data: Concatenated EFI_SIGNATURE_LIST structures, may be empty
        :raises EFIKeysParsingError: Malformed list
        :return: Signature list with entries of all contained lists
        """
        entries = []
        offset = 0
        while offset < len(data):
            if len(data) - offset < cls.HEADER_SIZE:
                raise EFIKeysParsingError(f"Truncated EFI_SIGNATURE_LIST header at offset {offset}")
            raw_type, list_size, header_size, signature_size = unpack_from(
                cls.HEADER_FORMAT, data, offset
            )
            signature_type = guid_from_bytes(raw_type)
            body_size = list_size - cls.HEADER_SIZE - header_size
            if (
                offset + list_size > len(data)
                or body_size < 0
                or signature_size <= GUID_SIZE
                or body_size % signature_size
            ):
                raise EFIKeysParsingError(
                    f"Invalid EFI_SIGNATURE_LIST at offset {offset}: list size {list_size}, "
                    f"header size {header_size}, signature size {signature_size}"
                )
            if signature_type not in SIGNATURE_TYPE_NAMES:
                logger.debug(f"Unknown signature type {signature_type} at offset {offset}")
            position = offset + cls.HEADER_SIZE + header_size
            for _ in range(body_size // signature_size):
                owner = guid_from_bytes(data, position)
                sig_data = data[position + GUID_SIZE : position + signature_size]
                entries.append(SignatureListEntry(owner, sig_data, signature_type))
                position += signature_size
            offset += list_size
        return cls(entries)

    def save(self, file_path: str) -> None:
        """Save the signature list into file."""
        write_file(self.export(), file_path, mode="wb")

    @classmethod
    def load(cls, file_path: str) -> Self:
        """Load the signature list from file."""
        return cls.parse(load_binary(file_path))


class SignatureListBuilder:
    """Builds signature lists from certificates and merges them.

    Entries are deduplicated by their fingerprint, the first occurrence wins and the
    insertion order is kept, so the result is deterministic for the same input.
    """

    @staticmethod
    def build(owner_guid: UUID, certificates: Sequence[Certificate]) -> SignatureList:
        """Build signature list of certificates owned by one owner.

        :param owner_guid: GUID of the owner of all entries
        :param certificates: Certificates in required order
        :return: Signature list
        """
        entries = [SignatureListEntry.from_certificate(owner_guid, cert) for cert in certificates]
        return SignatureList(SignatureListBuilder._unique(entries))

    @staticmethod
    def merge(lists: Sequence[SignatureList]) -> SignatureList:
        """Concatenate signature lists, preserving the order inside each of them.

        :param lists: Signature lists to merge
        :return: Merged signature list
        """
        entries = [entry for sig_list in lists for entry in sig_list]
        return SignatureList(SignatureListBuilder._unique(entries))

    @staticmethod
    def _unique(entries: Iterable[SignatureListEntry]) -> list[SignatureListEntry]:
        seen: set[bytes] = set()
        result = []
        for entry in entries:
            if entry.fingerprint in seen:
                logger.debug(f"Skipping duplicate signature {entry.fingerprint.hex()}")
                continue
            seen.add(entry.fingerprint)
            result.append(entry)
        return result
