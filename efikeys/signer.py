#!/usr/bin/env python
# -*- coding: UTF-8 -*-
#
# Copyright 2024-2025 NXP
#
# SPDX-License-Identifier: BSD-3-Clause

"""Signing and verification of EFI images with the db key.

Embedding of PE/COFF signatures is delegated to an image tool (sbsigntools by
default). Signing is idempotent: an image already verifiable by the db certificate
is left untouched, so repeated runs neither stack signatures nor rewrite files.
"""

import abc
import glob
import logging
import os
import shlex
import subprocess
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

from efikeys.exceptions import (
    EFIKeysError,
    EFIKeysInvalidConfigError,
    EFIKeysNoKeysError,
    EFIKeysVerificationError,
)
from efikeys.hierarchy import KeyRole
from efikeys.keystore import KeyStore
from efikeys.utils.efi_enum import EfiEnum
from efikeys.utils.misc import sync_storage

logger = logging.getLogger(__name__)

EFI_IMAGE_EXTENSION = ".efi"
NO_SIGNATURE_TABLE = "No signature table present"


@dataclass
class SignatureInfo:
    """Signature embedded in an EFI image."""

    index: int
    subject: str = ""
    issuer: str = ""

    def __str__(self) -> str:
        return f"Signature {self.index}: subject {self.subject or '?'}, issuer {self.issuer or '?'}"


class EfiImageTool(abc.ABC):
    """Opaque primitive signing and verifying EFI images."""

    @abc.abstractmethod
    def sign(self, image: str, key_path: str, cert_path: str) -> None:
        """Sign the image in place.

        :param image: Path to EFI image
        :param key_path: Path to the private key
        :param cert_path: Path to the certificate (PEM)
        :raises EFIKeysError: Signing failed
        """

    @abc.abstractmethod
    def verify(self, image: str, cert_path: str) -> bool:
        """Check that the image carries a signature verifiable by the certificate."""

    @abc.abstractmethod
    def list_signatures(self, image: str) -> list[SignatureInfo]:
        """List all signatures embedded in the image."""


class SbsignTool(EfiImageTool):
    """Image tool calling ``sbsign`` and ``sbverify`` from sbsigntools."""

    def __init__(self, sbsign: str = "sbsign", sbverify: str = "sbverify") -> None:
        """Constructor.

        :param sbsign: sbsign executable
        :param sbverify: sbverify executable
        """
        self.sbsign = sbsign
        self.sbverify = sbverify

    @staticmethod
    def _run(*args: str) -> subprocess.CompletedProcess:
        logger.debug(" ".join(shlex.quote(arg) for arg in args))
        try:
            return subprocess.run(args, check=False, capture_output=True, text=True)
        except OSError as exc:
            raise EFIKeysError(f"Cannot execute {args[0]}, is sbsigntools installed? {str(exc)}") from exc

    def sign(self, image: str, key_path: str, cert_path: str) -> None:
        process = self._run(
            self.sbsign, "--key", key_path, "--cert", cert_path, "--output", image, image
        )
        if process.returncode != 0:
            raise EFIKeysError(f"Signing of {image} failed: {process.stderr.strip()}")

    def verify(self, image: str, cert_path: str) -> bool:
        process = self._run(self.sbverify, "--cert", cert_path, image)
        logger.debug(f"sbverify exit code {process.returncode}: {process.stderr.strip()}")
        return process.returncode == 0

    def list_signatures(self, image: str) -> list[SignatureInfo]:
        process = self._run(self.sbverify, "--list", image)
        if process.returncode != 0:
            if NO_SIGNATURE_TABLE in process.stderr:
                logger.debug(f"{image} has no signature table")
                return []
            raise EFIKeysError(f"Cannot list signatures of {image}: {process.stderr.strip()}")
        return self.parse_signature_list(process.stdout)

    @staticmethod
    def parse_signature_list(output: str) -> list[SignatureInfo]:
        """Parse output of ``sbverify --list``.

        Only the first certificate of each signature (the signer) is reported.
        """
        signatures: list[SignatureInfo] = []
        for line in output.splitlines():
            line = line.strip()
            if line.startswith("signature "):
                signatures.append(SignatureInfo(int(line.split()[1])))
            elif signatures and line.startswith("- subject:") and not signatures[-1].subject:
                signatures[-1].subject = line.split(":", 1)[1].strip()
            elif signatures and line.startswith("issuer:") and not signatures[-1].issuer:
                signatures[-1].issuer = line.split(":", 1)[1].strip()
        return signatures


class SignStatus(EfiEnum):
    """Outcome of signing one image."""

    SIGNED = (0, "Signed")
    ALREADY_SIGNED = (1, "AlreadySigned")
    FAILED = (2, "Failed")


@dataclass
class SignResult:
    """Result of signing one image or of one batch entry."""

    path: str
    status: SignStatus
    error: Optional[EFIKeysError] = None

    @property
    def ok(self) -> bool:
        """True if the image is signed."""
        return self.status != SignStatus.FAILED

    def __str__(self) -> str:
        if self.error:
            return f"{self.path}: {self.status.label} ({self.error.description})"
        return f"{self.path}: {self.status.label}"


@dataclass
class VerifyReport:
    """Signatures present in an image and their validity against the db certificate."""

    path: str
    signatures: list[SignatureInfo] = field(default_factory=list)
    valid: bool = False


def expand_glob(pattern: str) -> list[str]:
    """Expand path pattern into existing files.

    :param pattern: File path or glob pattern, '**' matches recursively
    :raises EFIKeysInvalidConfigError: Nothing matches
    :return: Sorted list of files
    """
    files = sorted(path for path in glob.glob(pattern, recursive=True) if os.path.isfile(path))
    if not files:
        raise EFIKeysInvalidConfigError(f"No file matches {pattern}")
    return files


def find_efi_images(directory: str) -> list[str]:
    """Find EFI images in directory tree, the extension is matched case-insensitive."""
    images = []
    for root, _, files in os.walk(directory):
        for name in files:
            if name.lower().endswith(EFI_IMAGE_EXTENSION):
                images.append(os.path.join(root, name))
    return sorted(images)


class ImageSigner:
    """Signs and verifies EFI images with the db key of the key store."""

    def __init__(
        self,
        keystore: KeyStore,
        tool: Optional[EfiImageTool] = None,
        sync: Callable[[], None] = sync_storage,
    ) -> None:
        """Constructor.

        :param keystore: Key store with the db key
        :param tool: Image signing primitive, SbsignTool by default
        :param sync: Storage durability callback
        """
        self.keystore = keystore
        self.tool = tool or SbsignTool()
        self.sync = sync

    @property
    def cert_path(self) -> str:
        """Path to db certificate."""
        return self.keystore.path(KeyRole.DB, "crt")

    @property
    def key_path(self) -> str:
        """Path to db private key."""
        return self.keystore.path(KeyRole.DB, "key")

    def check_keys(self) -> None:
        """Check that db key and certificate exist.

        :raises EFIKeysNoKeysError: db key material is missing
        """
        if not self.keystore.has_material(KeyRole.DB):
            raise EFIKeysNoKeysError(
                f"db key or certificate not found in {self.keystore.keys_dir}, create the keys first"
            )

    def sign(self, path: str, sync: bool = True) -> SignResult:
        """Sign the image unless it is already signed by the db key.

        :param path: Path to EFI image
        :param sync: Sync the storage after signing
        :raises EFIKeysNoKeysError: db key material is missing
        :raises EFIKeysInvalidConfigError: Image doesn't exist
        :raises EFIKeysVerificationError: Signed image doesn't verify
        :return: Sign result
        """
        self.check_keys()
        if not os.path.isfile(path):
            raise EFIKeysInvalidConfigError(f"EFI image not found: {path}")
        if self.tool.verify(path, self.cert_path):
            logger.info(f"{path} is already signed")
            return SignResult(path, SignStatus.ALREADY_SIGNED)
        logger.info(f"Signing {path}")
        self.tool.sign(path, self.key_path, self.cert_path)
        if not self.tool.verify(path, self.cert_path):
            raise EFIKeysVerificationError(f"Signature of {path} doesn't verify after signing")
        if sync:
            self.sync()
        return SignResult(path, SignStatus.SIGNED)

    def verify(self, path: str) -> VerifyReport:
        """List signatures of the image and check it against the db certificate.

        :param path: Path to EFI image
        :raises EFIKeysMissingKeyMaterialError: db certificate is missing
        :raises EFIKeysInvalidConfigError: Image doesn't exist
        :return: Verification report
        """
        self.keystore.load_certificate(KeyRole.DB)
        if not os.path.isfile(path):
            raise EFIKeysInvalidConfigError(f"EFI image not found: {path}")
        signatures = self.tool.list_signatures(path)
        valid = self.tool.verify(path, self.cert_path)
        logger.debug(f"{path}: {len(signatures)} signatures, valid: {valid}")
        return VerifyReport(path, signatures, valid)

    def sign_batch(self, directories: Sequence[str]) -> list[SignResult]:
        """Sign EFI images in all directories.

        A missing directory is reported as a failed entry, the rest of the batch continues.
        The storage is synced once after the batch.

        :param directories: Directories to scan
        :raises EFIKeysNoKeysError: db key material is missing
        :return: Result per signed image and per failed directory
        """
        self.check_keys()
        results: list[SignResult] = []
        for directory in directories:
            if not os.path.isdir(directory):
                error = EFIKeysInvalidConfigError(f"Directory to sign doesn't exist: {directory}")
                logger.error(error.description)
                results.append(SignResult(directory, SignStatus.FAILED, error))
                continue
            for image in find_efi_images(directory):
                try:
                    results.append(self.sign(image, sync=False))
                except EFIKeysError as exc:
                    logger.error(f"Signing of {image} failed: {exc.description}")
                    results.append(SignResult(image, SignStatus.FAILED, exc))
        self.sync()
        return results
