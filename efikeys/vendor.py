#!/usr/bin/env python
# -*- coding: UTF-8 -*-
#
# Copyright 2024-2025 NXP
#
# SPDX-License-Identifier: BSD-3-Clause

"""Vendor trust bundle.

Certificates of third parties (typically the vendor CA signing option ROMs of
add-in cards) are fetched from a URL or a local file and treated as untrusted
until their SHA-256 checksum matches the pinned value from the configuration.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence
from uuid import UUID

import requests

from efikeys import __version__ as efikeys_version
from efikeys.crypto.certificate import Certificate
from efikeys.crypto.hash import get_hash
from efikeys.efi.guids import MICROSOFT_OWNER_GUID
from efikeys.exceptions import (
    EFIKeysChecksumMismatchError,
    EFIKeysError,
    EFIKeysInvalidConfigError,
)
from efikeys.siglist import SignatureList, SignatureListBuilder
from efikeys.utils.misc import load_binary

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VendorCertSource:
    """Location and pinned checksum of one vendor certificate."""

    sha256: str
    url: Optional[str] = None
    path: Optional[str] = None
    owner_guid: UUID = MICROSOFT_OWNER_GUID

    def __post_init__(self) -> None:
        if bool(self.url) == bool(self.path):
            raise EFIKeysInvalidConfigError(
                "Vendor certificate source must define exactly one of 'url' or 'path'"
            )

    @property
    def location(self) -> str:
        """URL or path of the source."""
        return str(self.url or self.path)


class VendorFetcher:
    """Fetches raw vendor certificates over HTTP(S) or from local files."""

    def __init__(self, timeout: int = 60, session: Optional[requests.Session] = None) -> None:
        """Constructor.

        :param timeout: HTTP timeout in seconds
        :param session: Requests session, new one is created if not specified
        """
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": f"efikeys/{efikeys_version}"})

    def __call__(self, source: VendorCertSource) -> bytes:
        """Fetch the source data.

        :param source: Vendor certificate source
        :raises EFIKeysError: The data cannot be fetched
        :return: Raw data, not verified yet
        """
        if source.path:
            return load_binary(source.path)
        logger.info(f"Downloading vendor certificate from {source.url}")
        try:
            response = self.session.get(str(source.url), timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise EFIKeysError(f"Cannot download {source.url}: {str(exc)}") from exc
        return response.content


class VendorTrustBundle:
    """Set of vendor certificates folded into the db signature list."""

    def __init__(
        self,
        sources: Sequence[VendorCertSource],
        fetch: Optional[Callable[[VendorCertSource], bytes]] = None,
    ) -> None:
        """Constructor.

        :param sources: Vendor certificate sources
        :param fetch: Fetch primitive, VendorFetcher by default
        :raises EFIKeysInvalidConfigError: No sources are configured
        """
        if not sources:
            raise EFIKeysInvalidConfigError("Vendor trust bundle has no certificate sources")
        self.sources = list(sources)
        self.fetch = fetch or VendorFetcher()

    @staticmethod
    def verify_checksum(source: VendorCertSource, data: bytes) -> None:
        """Verify data against the pinned checksum.

        :raises EFIKeysChecksumMismatchError: Checksum doesn't match
        """
        digest = get_hash(data).hex()
        if digest != source.sha256.lower():
            raise EFIKeysChecksumMismatchError(
                f"Checksum of {source.location} doesn't match: expected {source.sha256.lower()}, "
                f"got {digest}"
            )
        logger.debug(f"Checksum of {source.location} verified")

    def assemble(self) -> SignatureList:
        """Fetch, verify and merge all vendor certificates.

        :raises EFIKeysChecksumMismatchError: Any source fails the checksum verification
        :return: Signature list with all vendor certificates
        """
        lists = []
        for source in self.sources:
            data = self.fetch(source)
            self.verify_checksum(source, data)
            certificate = Certificate.parse(data)
            logger.info(f"Vendor certificate accepted: {certificate.subject.rfc4514_string()}")
            lists.append(SignatureListBuilder.build(source.owner_guid, [certificate]))
        return SignatureListBuilder.merge(lists)
