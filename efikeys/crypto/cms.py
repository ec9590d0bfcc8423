#!/usr/bin/env python
# -*- coding: UTF-8 -*-
#
# Copyright 2024-2025 NXP
#
# SPDX-License-Identifier: BSD-3-Clause

"""ASN1Crypto implementation of the PKCS#7 container of authenticated variables.

Firmware expects a detached SignedData structure without signed attributes. The
signature is computed directly over the serialized variable data, and the signer
certificate is embedded so the firmware can match it against the parent variable.
"""

import logging
from typing import Optional

from asn1crypto import cms, util, x509

from efikeys.crypto.certificate import Certificate
from efikeys.crypto.crypto_types import EFIKeysEncoding
from efikeys.crypto.hash import EnumHashAlgorithm
from efikeys.crypto.keys import PrivateKey, PrivateKeyRsa
from efikeys.exceptions import EFIKeysError, EFIKeysParsingError

logger = logging.getLogger(__name__)


def cms_sign(data: bytes, certificate: Certificate, signing_key: PrivateKey) -> bytes:
    """Sign provided data and return detached PKCS#7 SignedData.

    :param data: Data to be signed, it is not embedded in the result
    :param certificate: Certificate of the signer
    :param signing_key: Signing key
    :return: DER encoded SignedData (without the ContentInfo wrapper)
    :raises EFIKeysError: If certificate or private key is not present or doesn't match
    """
    if certificate is None:
        raise EFIKeysError("Certificate is not present")
    if signing_key is None:
        raise EFIKeysError("Private key is not present")
    if not isinstance(signing_key, PrivateKeyRsa):
        raise EFIKeysError(f"Unsupported private key type {type(signing_key)}.")
    if not signing_key.verify_public_key(certificate.get_public_key()):
        raise EFIKeysError("Signing key doesn't match the signer certificate")

    # signed data (main section)
    signed_data = cms.SignedData()
    signed_data["version"] = "v1"
    signed_data["encap_content_info"] = util.OrderedDict([("content_type", "data")])
    signed_data["digest_algorithms"] = [
        util.OrderedDict([("algorithm", "sha256"), ("parameters", None)])
    ]

    asn1_cert = x509.Certificate.load(certificate.export(EFIKeysEncoding.DER))
    signed_data["certificates"] = [cms.CertificateChoices(name="certificate", value=asn1_cert)]

    # signer info sub-section
    signer_info = cms.SignerInfo()
    signer_info["version"] = "v1"
    signer_info["digest_algorithm"] = util.OrderedDict(
        [("algorithm", "sha256"), ("parameters", None)]
    )
    signer_info["signature_algorithm"] = util.OrderedDict(
        [("algorithm", "rsassa_pkcs1v15"), ("parameters", None)]
    )
    # signed identifier: issuer and serial number
    signer_info["sid"] = cms.SignerIdentifier(
        {
            "issuer_and_serial_number": cms.IssuerAndSerialNumber(
                {
                    "issuer": asn1_cert.issuer,
                    "serial_number": asn1_cert.serial_number,
                }
            )
        }
    )
    # no signed attributes, the signature covers the data itself
    signer_info["signature"] = signing_key.sign(data, algorithm=EnumHashAlgorithm.SHA256)
    signed_data["signer_infos"] = [signer_info]

    return signed_data.dump()


def _load_signed_data(signature: bytes) -> cms.SignedData:
    try:
        content_info = cms.ContentInfo.load(signature)
        if content_info["content_type"].native == "signed_data":
            return content_info["content"]
    except (ValueError, TypeError):
        logger.debug("PKCS#7 data are not wrapped in ContentInfo")
    try:
        signed_data = cms.SignedData.load(signature)
        # force parsing of the whole structure
        signed_data.native  # pylint: disable=pointless-statement
        return signed_data
    except (ValueError, TypeError) as exc:
        raise EFIKeysParsingError(f"Cannot parse PKCS#7 SignedData: {str(exc)}") from exc


def cms_get_certificates(signature: bytes) -> list[Certificate]:
    """Get certificates embedded in PKCS#7 SignedData.

    Both plain SignedData and SignedData wrapped in ContentInfo are accepted.

    :param signature: DER encoded PKCS#7 data
    :return: List of embedded certificates
    """
    signed_data = _load_signed_data(signature)
    certificates = []
    for choice in signed_data["certificates"] or []:
        if choice.name == "certificate":
            certificates.append(Certificate.parse(choice.chosen.dump()))
    return certificates


def cms_verify(data: bytes, signature: bytes, certificate: Optional[Certificate] = None) -> bool:
    """Verify detached PKCS#7 signature of data.

    :param data: Signed data
    :param signature: DER encoded PKCS#7 data
    :param certificate: Trusted certificate; the embedded signer certificate is used if None
    :return: True if any signer info verifies with the certificate
    """
    signed_data = _load_signed_data(signature)
    if certificate is None:
        embedded = cms_get_certificates(signature)
        if not embedded:
            return False
        certificate = embedded[0]
    public_key = certificate.get_public_key()
    for signer_info in signed_data["signer_infos"]:
        if signer_info["signed_attrs"].native:
            logger.debug("Signer info with signed attributes is not supported")
            continue
        digest = EnumHashAlgorithm.from_label(signer_info["digest_algorithm"]["algorithm"].native)
        if public_key.verify_signature(signer_info["signature"].native, data, algorithm=digest):
            return True
    return False
