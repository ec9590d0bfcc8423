#!/usr/bin/env python
# -*- coding: UTF-8 -*-
#
# Copyright 2024-2025 NXP
#
# SPDX-License-Identifier: BSD-3-Clause

"""EFIKeys cryptographic hash algorithms."""

from cryptography.hazmat.primitives import hashes

from efikeys.exceptions import EFIKeysError
from efikeys.utils.efi_enum import EfiEnum


class EnumHashAlgorithm(EfiEnum):
    """Hash algorithm enumeration for cryptographic operations."""

    SHA1 = (0, "sha1", "SHA1")
    SHA256 = (1, "sha256", "SHA256")
    SHA384 = (2, "sha384", "SHA384")
    SHA512 = (3, "sha512", "SHA512")


def get_hash_algorithm(algorithm: EnumHashAlgorithm) -> hashes.HashAlgorithm:
    """Get hash algorithm instance for specified algorithm type.

    :param algorithm: Hash algorithm type enumeration value.
    :raises EFIKeysError: If the specified algorithm is not supported.
    :return: Instance of the corresponding hash algorithm class.
    """
    algo_cls = getattr(hashes, algorithm.label.upper(), None)
    if algo_cls is None:
        raise EFIKeysError(f"Unsupported algorithm: hashes.{algorithm.label.upper()}")
    return algo_cls()  # pylint: disable=not-callable


def get_hash(data: bytes, algorithm: EnumHashAlgorithm = EnumHashAlgorithm.SHA256) -> bytes:
    """Compute hash digest from input data using specified algorithm.

    :param data: Input data to be hashed.
    :param algorithm: Hash algorithm to use for computation.
    :return: Hash digest as bytes.
    """
    hash_obj = hashes.Hash(get_hash_algorithm(algorithm))
    hash_obj.update(data)
    return hash_obj.finalize()
