#!/usr/bin/env python
# -*- coding: UTF-8 -*-
#
# Copyright 2024-2025 NXP
#
# SPDX-License-Identifier: BSD-3-Clause

"""EFIKeys X.509 certificate handling.

Secure Boot keys are self-signed certificates; this module generates them, loads
them in PEM or DER form, exports them and checks their self-signature.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from typing_extensions import Self

from efikeys.crypto.crypto_types import EFIKeysEncoding, EFIKeysName, EFIKeysNameOID
from efikeys.crypto.hash import EnumHashAlgorithm, get_hash
from efikeys.crypto.keys import PrivateKey, PublicKey
from efikeys.exceptions import EFIKeysError, EFIKeysValueError
from efikeys.utils.misc import load_binary, write_file


class Certificate:
    """EFIKeys wrapper for X.509 certificates."""

    def __init__(self, certificate: x509.Certificate) -> None:
        """Initialize Certificate wrapper.

        :param certificate: Cryptography Certificate representation to wrap.
        """
        assert isinstance(certificate, x509.Certificate)
        self.cert = certificate

    @staticmethod
    def generate_certificate(
        subject: x509.Name,
        issuer: x509.Name,
        subject_public_key: PublicKey,
        issuer_private_key: PrivateKey,
        serial_number: Optional[int] = None,
        duration: int = 3650,
    ) -> "Certificate":
        """Generate X.509 certificate.

        The certificate carries CA basic constraints and key identifiers, which is what
        firmware key enrollment and image signing tools expect from Secure Boot keys.

        :param subject: Subject name that the CA issues the certificate to.
        :param issuer: Issuer name that issued the certificate.
        :param subject_public_key: Public key of the certificate subject.
        :param issuer_private_key: Private key of the certificate issuer for signing.
        :param serial_number: Certificate serial number, random if not specified.
        :param duration: Certificate validity period in days.
        :return: Generated X.509 certificate instance.
        """
        before = datetime.now(timezone.utc)
        after = before + timedelta(days=duration)
        crt = x509.CertificateBuilder(
            subject_name=subject,
            issuer_name=issuer,
            not_valid_before=before,
            not_valid_after=after,
            public_key=subject_public_key.key,
            serial_number=serial_number or x509.random_serial_number(),
        )
        crt = crt.add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        crt = crt.add_extension(
            x509.SubjectKeyIdentifier.from_public_key(subject_public_key.key), critical=False
        )
        crt = crt.add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(
                issuer_private_key.get_public_key().key
            ),
            critical=False,
        )
        return Certificate(crt.sign(issuer_private_key.key, hashes.SHA256()))

    @classmethod
    def generate_self_signed(
        cls, common_name: str, private_key: PrivateKey, duration: int = 3650
    ) -> "Certificate":
        """Generate self-signed certificate with the given common name.

        :param common_name: Common name of the subject (and issuer).
        :param private_key: Key which is certified and which signs the certificate.
        :param duration: Certificate validity period in days.
        :return: Self-signed certificate.
        """
        if not common_name:
            raise EFIKeysValueError("Certificate common name must not be empty")
        name = generate_name(common_name)
        return cls.generate_certificate(
            subject=name,
            issuer=name,
            subject_public_key=private_key.get_public_key(),
            issuer_private_key=private_key,
            duration=duration,
        )

    def save(self, file_path: str, encoding_type: EFIKeysEncoding = EFIKeysEncoding.PEM) -> None:
        """Save the certificate into file.

        :param file_path: Path to the file where certificate will be stored.
        :param encoding_type: Encoding type for the output file (PEM or DER).
        """
        write_file(self.export(encoding_type), file_path, mode="wb")

    @classmethod
    def load(cls, file_path: str) -> Self:
        """Load the Certificate from the given file.

        :param file_path: Path to the file where the certificate is stored.
        :return: Certificate instance loaded from the file.
        """
        return cls.parse(load_binary(file_path))

    def export(self, encoding: EFIKeysEncoding = EFIKeysEncoding.DER) -> bytes:
        """Export certificate to bytes in specified encoding format.

        :param encoding: The encoding format to use for export.
        :return: Certificate data as bytes.
        """
        return self.cert.public_bytes(EFIKeysEncoding.get_cryptography_encodings(encoding))

    def get_public_key(self) -> PublicKey:
        """Get public key from certificate."""
        return PublicKey.create(self.cert.public_key())

    @property
    def signature(self) -> bytes:
        """Signature bytes of the certificate."""
        return self.cert.signature

    @property
    def tbs_certificate_bytes(self) -> bytes:
        """The tbsCertificate payload bytes as defined in RFC 5280."""
        return self.cert.tbs_certificate_bytes

    @property
    def signature_hash_algorithm(self) -> Optional[hashes.HashAlgorithm]:
        """Hash algorithm used for signing the certificate, None if unsupported."""
        try:
            return self.cert.signature_hash_algorithm
        except UnsupportedAlgorithm:
            return None

    @property
    def issuer(self) -> EFIKeysName:
        """Issuer name of the certificate."""
        return self.cert.issuer

    @property
    def subject(self) -> EFIKeysName:
        """Subject name of the certificate."""
        return self.cert.subject

    @property
    def serial_number(self) -> int:
        """Serial number of the certificate."""
        return self.cert.serial_number

    @property
    def common_name(self) -> str:
        """Common name of the subject, empty string if not present."""
        attributes = self.subject.get_attributes_for_oid(EFIKeysNameOID.COMMON_NAME)
        return str(attributes[0].value) if attributes else ""

    @property
    def not_valid_before(self) -> datetime:
        """Certificate's not-valid-before time as UTC datetime."""
        return self.cert.not_valid_before_utc

    @property
    def not_valid_after(self) -> datetime:
        """Certificate's expiration time as UTC datetime."""
        return self.cert.not_valid_after_utc

    def validate_subject(self, subject_certificate: "Certificate") -> bool:
        """Validate subject certificate signature against this certificate.

        :param subject_certificate: The certificate to be validated against this certificate.
        :raises EFIKeysError: Unknown subject certificate's signature hash algorithm.
        :return: True if the certificate signature is valid, False otherwise.
        """
        if subject_certificate.signature_hash_algorithm is None:
            raise EFIKeysError("Unknown Subject Certificate's signature hash algorithm")
        return self.get_public_key().verify_signature(
            subject_certificate.signature,
            subject_certificate.tbs_certificate_bytes,
            EnumHashAlgorithm.from_label(subject_certificate.signature_hash_algorithm.name),
        )

    @property
    def self_signed(self) -> bool:
        """True when the certificate validates with its own public key."""
        return self.validate_subject(self)

    def fingerprint(self, algorithm: EnumHashAlgorithm = EnumHashAlgorithm.SHA256) -> bytes:
        """Get fingerprint (hash of the DER encoding) of the certificate.

        :param algorithm: Hash algorithm, defaults to SHA256.
        :return: Fingerprint bytes.
        """
        return get_hash(self.export(EFIKeysEncoding.DER), algorithm)

    def __eq__(self, obj: object) -> bool:
        return isinstance(obj, Certificate) and self.cert == obj.cert

    def __hash__(self) -> int:
        return hash(self.fingerprint())

    def __repr__(self) -> str:
        return f"Certificate, SN:{hex(self.cert.serial_number)}"

    def __str__(self) -> str:
        not_valid_before = self.not_valid_before.strftime("%d.%m.%Y (%H:%M:%S)")
        not_valid_after = self.not_valid_after.strftime("%d.%m.%Y (%H:%M:%S)")
        nfo = ""
        nfo += f"  Subject:                    {self.subject.rfc4514_string()}\n"
        nfo += f"  Issuer:                     {self.issuer.rfc4514_string()}\n"
        nfo += f"  Serial Number:              {hex(self.cert.serial_number)}\n"
        nfo += f"  Validity Range:             {not_valid_before} - {not_valid_after}\n"
        nfo += f"  SHA256 Fingerprint:         {self.fingerprint().hex()}\n"
        return nfo

    @classmethod
    def parse(cls, data: bytes) -> Self:
        """Parse X.509 certificate from bytes array.

        :param data: Certificate data in PEM or DER format.
        :return: Parsed certificate object.
        :raises EFIKeysError: Cannot load certificate due to invalid format or data.
        """
        try:
            cert = {
                EFIKeysEncoding.PEM: x509.load_pem_x509_certificate,
                EFIKeysEncoding.DER: x509.load_der_x509_certificate,
            }[EFIKeysEncoding.get_file_encodings(data)](data)
        except ValueError as exc:
            raise EFIKeysError(f"Cannot load certificate: ({str(exc)})") from exc
        return cls(cert)


def generate_name(common_name: str) -> x509.Name:
    """Generate x509 Name with a single common name attribute.

    :param common_name: Common name value.
    :return: x509.Name
    """
    return x509.Name([x509.NameAttribute(EFIKeysNameOID.COMMON_NAME, common_name)])
