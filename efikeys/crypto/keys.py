#!/usr/bin/env python
# -*- coding: UTF-8 -*-
#
# Copyright 2024-2025 NXP
#
# SPDX-License-Identifier: BSD-3-Clause
"""EFIKeys cryptographic key management and operations.

Secure Boot firmware implementations reliably accept RSA keys only, so the key
wrappers here cover RSA: generation, loading, saving, signing and verification.
"""

import abc
from typing import Any, Optional

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.serialization import (
    BestAvailableEncryption,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
    load_der_private_key,
    load_der_public_key,
    load_pem_private_key,
    load_pem_public_key,
)
from typing_extensions import Self

from efikeys.crypto.crypto_types import EFIKeysEncoding
from efikeys.crypto.hash import EnumHashAlgorithm, get_hash_algorithm
from efikeys.exceptions import EFIKeysError
from efikeys.utils.misc import load_binary, write_file


class EFIKeysInvalidKeyType(EFIKeysError):
    """Unsupported or invalid key type."""


class PrivateKey(abc.ABC):
    """EFIKeys Private Key abstract base class."""

    key: Any

    @classmethod
    @abc.abstractmethod
    def generate_key(cls) -> Self:
        """Generate private key.

        :return: Private key instance.
        """

    @property
    @abc.abstractmethod
    def key_size(self) -> int:
        """Get key size in bits."""

    @abc.abstractmethod
    def get_public_key(self) -> "PublicKey":
        """Get public key from the private key.

        :return: Public key object derived from this private key.
        """

    @abc.abstractmethod
    def sign(self, data: bytes, **kwargs: Any) -> bytes:
        """Sign input data with the key.

        :param data: Input data to be signed.
        :param kwargs: Additional keyword arguments specific to the key type.
        :return: Digital signature of the input data.
        """

    @abc.abstractmethod
    def export(
        self,
        password: Optional[str] = None,
        encoding: EFIKeysEncoding = EFIKeysEncoding.PEM,
    ) -> bytes:
        """Export key into bytes in requested format.

        :param password: Password to private key; None to store without password.
        :param encoding: Encoding type, default is PEM.
        :return: Byte representation of key.
        """

    def verify_public_key(self, public_key: "PublicKey") -> bool:
        """Verify that the given public key forms a pair with this private key.

        :param public_key: Public key to verify against this private key.
        :return: True if the keys form a valid pair, False otherwise.
        """
        return self.get_public_key() == public_key

    def __eq__(self, obj: Any) -> bool:
        return isinstance(obj, self.__class__) and self.get_public_key() == obj.get_public_key()

    def save(
        self,
        file_path: str,
        password: Optional[str] = None,
        encoding: EFIKeysEncoding = EFIKeysEncoding.PEM,
    ) -> None:
        """Save the Private key to the given file.

        :param file_path: Path to the file where the key will be stored.
        :param password: Password to encrypt private key; None to store without password.
        :param encoding: Encoding type for the saved key, default is PEM.
        """
        write_file(self.export(password=password, encoding=encoding), file_path, mode="wb")

    @classmethod
    def load(cls, file_path: str, password: Optional[str] = None) -> Self:
        """Load the Private key from the given file.

        :param file_path: Path to the file where the key is stored.
        :param password: Password to private key; None to load without password.
        :return: Loaded private key instance.
        """
        data = load_binary(file_path)
        return cls.parse(data=data, password=password)

    @classmethod
    def parse(cls, data: bytes, password: Optional[str] = None) -> Self:
        """Parse private key from bytes array.

        :param data: Raw key data (PEM or DER) to be parsed.
        :param password: Password for encrypted private key; None for unencrypted keys.
        :return: Recreated private key object.
        :raises EFIKeysError: Invalid key data or unsupported key type.
        """
        loader = {
            EFIKeysEncoding.PEM: load_pem_private_key,
            EFIKeysEncoding.DER: load_der_private_key,
        }[EFIKeysEncoding.get_file_encodings(data)]
        try:
            private_key = loader(data, password.encode("utf-8") if password else None)
        except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
            raise EFIKeysError(f"Cannot load private key: ({str(exc)})") from exc
        if isinstance(private_key, rsa.RSAPrivateKey):
            key = PrivateKeyRsa(private_key)
            if not isinstance(key, cls):
                raise EFIKeysInvalidKeyType(f"Can't parse {cls.__name__} from given data")
            return key
        raise EFIKeysInvalidKeyType(f"Unsupported private key: ({str(private_key)})")


class PublicKey(abc.ABC):
    """EFIKeys Public Key abstract base class."""

    key: Any

    @property
    @abc.abstractmethod
    def key_size(self) -> int:
        """Get key size in bits."""

    @abc.abstractmethod
    def verify_signature(self, signature: bytes, data: bytes, **kwargs: Any) -> bool:
        """Verify input data.

        :param signature: The signature of input data.
        :param data: Input data.
        :param kwargs: Additional keyword arguments specific to the key type.
        :return: True if signature is valid, False otherwise.
        """

    @abc.abstractmethod
    def export(self, encoding: EFIKeysEncoding = EFIKeysEncoding.PEM) -> bytes:
        """Export key into bytes in requested format.

        :param encoding: Encoding type.
        :return: Byte representation of key.
        """

    def save(self, file_path: str, encoding: EFIKeysEncoding = EFIKeysEncoding.PEM) -> None:
        """Save the public key to the file.

        :param file_path: Path to the file where the key will be stored.
        :param encoding: Encoding type for the key file.
        """
        write_file(self.export(encoding=encoding), file_path, mode="wb")

    @classmethod
    def load(cls, file_path: str) -> Self:
        """Load the public key from the given file.

        :param file_path: Path to the file where the key is stored.
        :return: Loaded public key instance.
        """
        return cls.parse(load_binary(file_path))

    @classmethod
    def parse(cls, data: bytes) -> Self:
        """Parse public key from bytes array.

        :param data: Raw key data (PEM or DER) to be parsed.
        :raises EFIKeysError: Invalid key data or unsupported key type.
        :return: Recreated public key object.
        """
        loader = {
            EFIKeysEncoding.PEM: load_pem_public_key,
            EFIKeysEncoding.DER: load_der_public_key,
        }[EFIKeysEncoding.get_file_encodings(data)]
        try:
            public_key = loader(data)
        except (ValueError, UnsupportedAlgorithm) as exc:
            raise EFIKeysError(f"Cannot load public key: ({str(exc)})") from exc
        return cls.create(public_key)

    @classmethod
    def create(cls, key: Any) -> Self:
        """Create Public Key object from cryptography key.

        :param key: A cryptography public key object.
        :raises EFIKeysInvalidKeyType: Unsupported public key type provided.
        :return: Public key wrapper.
        """
        if isinstance(key, rsa.RSAPublicKey):
            wrapped = PublicKeyRsa(key)
            if isinstance(wrapped, cls):
                return wrapped
        raise EFIKeysInvalidKeyType(f"Unsupported key type: {str(key)}")


class PrivateKeyRsa(PrivateKey):
    """EFIKeys RSA Private Key.

    :cvar SUPPORTED_KEY_SIZES: List of supported RSA key sizes in bits.
    """

    SUPPORTED_KEY_SIZES = [2048, 3072, 4096]

    key: rsa.RSAPrivateKey

    def __init__(self, key: rsa.RSAPrivateKey) -> None:
        """Create RSA private key wrapper.

        :param key: RSA private key instance to be wrapped.
        """
        self.key = key

    @classmethod
    def generate_key(cls, key_size: int = 2048, exponent: int = 65537) -> Self:
        """Generate RSA private key.

        :param key_size: Key size in bits, one of SUPPORTED_KEY_SIZES.
        :param exponent: Public exponent.
        :raises EFIKeysError: Unsupported key size.
        :return: New private key instance.
        """
        if key_size not in cls.SUPPORTED_KEY_SIZES:
            raise EFIKeysError(
                f"Unsupported RSA key size {key_size}, use one of {cls.SUPPORTED_KEY_SIZES}"
            )
        return cls(rsa.generate_private_key(public_exponent=exponent, key_size=key_size))

    @property
    def key_size(self) -> int:
        """Key size in bits."""
        return self.key.key_size

    def get_public_key(self) -> "PublicKeyRsa":
        """Get public key from RSA private key.

        :return: RSA public key object.
        """
        return PublicKeyRsa(self.key.public_key())

    def export(
        self,
        password: Optional[str] = None,
        encoding: EFIKeysEncoding = EFIKeysEncoding.PEM,
    ) -> bytes:
        """Export the Private key to the bytes in requested encoding.

        :param password: Password to private key; None to store without password.
        :param encoding: Encoding type, default is PEM.
        :return: Private key in bytes.
        """
        enc = (
            BestAvailableEncryption(password=password.encode("utf-8"))
            if password
            else NoEncryption()
        )
        return self.key.private_bytes(
            EFIKeysEncoding.get_cryptography_encodings(encoding), PrivateFormat.PKCS8, enc
        )

    def sign(
        self,
        data: bytes,
        algorithm: Optional[EnumHashAlgorithm] = None,
        **kwargs: Any,
    ) -> bytes:
        """Sign input data with PKCS#1 v1.5 padding.

        :param data: Input data to be signed.
        :param algorithm: Hash algorithm to use for signing, defaults to SHA256.
        :param kwargs: Additional unused parameters for compatibility.
        :return: Digital signature as bytes.
        """
        hash_alg = get_hash_algorithm(algorithm or EnumHashAlgorithm.SHA256)
        return self.key.sign(data=data, padding=padding.PKCS1v15(), algorithm=hash_alg)

    def __repr__(self) -> str:
        return f"RSA{self.key_size} Private Key"

    def __str__(self) -> str:
        return f"RSA{self.key_size} Private Key"


class PublicKeyRsa(PublicKey):
    """EFIKeys RSA Public Key."""

    key: rsa.RSAPublicKey

    def __init__(self, key: rsa.RSAPublicKey) -> None:
        """Create RSA public key wrapper.

        :param key: RSA public key object to be wrapped.
        """
        self.key = key

    @property
    def key_size(self) -> int:
        """Key size in bits."""
        return self.key.key_size

    @property
    def public_numbers(self) -> rsa.RSAPublicNumbers:
        """Public numbers of key."""
        return self.key.public_numbers()

    def export(self, encoding: EFIKeysEncoding = EFIKeysEncoding.PEM) -> bytes:
        """Export the public key in SubjectPublicKeyInfo format.

        :param encoding: Encoding format for the exported key.
        :return: Public key exported as bytes.
        """
        return self.key.public_bytes(
            EFIKeysEncoding.get_cryptography_encodings(encoding),
            PublicFormat.SubjectPublicKeyInfo,
        )

    def verify_signature(
        self,
        signature: bytes,
        data: bytes,
        algorithm: Optional[EnumHashAlgorithm] = None,
        **kwargs: Any,
    ) -> bool:
        """Verify PKCS#1 v1.5 signature against provided data.

        :param signature: The signature bytes to verify against the data.
        :param data: Input data bytes to verify signature against.
        :param algorithm: Hash algorithm to use for verification, defaults to SHA256.
        :param kwargs: Additional unused parameters for compatibility.
        :return: True if signature is valid, False otherwise.
        """
        hash_alg = get_hash_algorithm(algorithm or EnumHashAlgorithm.SHA256)
        try:
            self.key.verify(
                signature=signature, data=data, padding=padding.PKCS1v15(), algorithm=hash_alg
            )
        except InvalidSignature:
            return False
        return True

    def __eq__(self, obj: Any) -> bool:
        return isinstance(obj, self.__class__) and self.public_numbers == obj.public_numbers

    def __repr__(self) -> str:
        return f"RSA{self.key_size} Public Key"

    def __str__(self) -> str:
        return f"RSA{self.key_size} Public key: e({hex(self.public_numbers.e)})"
