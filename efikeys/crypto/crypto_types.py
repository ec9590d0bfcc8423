#!/usr/bin/env python
# -*- coding: UTF-8 -*-
#
# Copyright 2024-2025 NXP
#
# SPDX-License-Identifier: BSD-3-Clause

"""EFIKeys cryptographic type definitions and enumerations."""

from cryptography import utils
from cryptography.hazmat.primitives.serialization import Encoding
from cryptography.x509.name import Name, NameOID

from efikeys.exceptions import EFIKeysError


class EFIKeysEncoding(utils.Enum):
    """EFIKeys cryptographic encoding enumeration.

    Provides encoding detection of key and certificate files and conversion to the
    cryptography library encodings.
    """

    PEM = "PEM"
    DER = "DER"

    @staticmethod
    def get_cryptography_encodings(encoding: "EFIKeysEncoding") -> Encoding:
        """Get cryptography library encoding from EFIKeys encoding.

        :param encoding: EFIKeys encoding type to convert.
        :raises EFIKeysError: If the encoding format is not supported by cryptography.
        :return: Corresponding cryptography library encoding.
        """
        cryptography_encoding = {
            EFIKeysEncoding.PEM: Encoding.PEM,
            EFIKeysEncoding.DER: Encoding.DER,
        }.get(encoding)
        if cryptography_encoding is None:
            raise EFIKeysError(f"{encoding} format is not supported by cryptography.")
        return cryptography_encoding

    @staticmethod
    def get_file_encodings(data: bytes) -> "EFIKeysEncoding":
        """Determine encoding type of cryptographic data.

        Data which decodes as UTF-8 and contains PEM markers is PEM, anything else DER.

        :param data: Raw bytes of the data file to analyze for encoding detection.
        :return: Detected encoding type.
        """
        encoding = EFIKeysEncoding.PEM
        try:
            decoded = data.decode("utf-8")
        except UnicodeDecodeError:
            encoding = EFIKeysEncoding.DER
        else:
            if decoded.find("----") == -1:
                encoding = EFIKeysEncoding.DER
        return encoding


EFIKeysName = Name
EFIKeysNameOID = NameOID
