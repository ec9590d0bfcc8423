#!/usr/bin/env python
# -*- coding: UTF-8 -*-
#
# Copyright 2024-2025 NXP
#
# SPDX-License-Identifier: BSD-3-Clause

"""Tests of certificate generation and PKCS#7 signing."""

import os

import pytest

from efikeys.crypto.certificate import Certificate, generate_name
from efikeys.crypto.cms import cms_get_certificates, cms_sign, cms_verify
from efikeys.crypto.crypto_types import EFIKeysEncoding
from efikeys.crypto.keys import PrivateKeyRsa
from efikeys.exceptions import EFIKeysError, EFIKeysParsingError, EFIKeysValueError


@pytest.fixture(scope="module")
def private_key() -> PrivateKeyRsa:
    return PrivateKeyRsa.generate_key()


@pytest.fixture(scope="module")
def certificate(private_key) -> Certificate:
    return Certificate.generate_self_signed("efikeys test", private_key, duration=30)


@pytest.mark.parametrize("common_name", ["host PK", "host KEK", "host db", "Ω unicode"])
def test_self_signed_certificate(private_key, common_name):
    """Generated certificate is self-signed, CA and carries the common name."""
    cert = Certificate.generate_self_signed(common_name, private_key)
    assert cert.common_name == common_name
    assert cert.self_signed
    assert cert.issuer == cert.subject
    assert cert.get_public_key() == private_key.get_public_key()
    assert private_key.verify_public_key(cert.get_public_key())


def test_certificate_validity(private_key):
    cert = Certificate.generate_self_signed("validity", private_key, duration=10)
    assert (cert.not_valid_after - cert.not_valid_before).days == 10


def test_empty_common_name(private_key):
    with pytest.raises(EFIKeysValueError):
        Certificate.generate_self_signed("", private_key)


@pytest.mark.parametrize("encoding", [EFIKeysEncoding.PEM, EFIKeysEncoding.DER])
def test_certificate_save_load(tmpdir, certificate, encoding):
    path = os.path.join(tmpdir, "cert.crt")
    certificate.save(path, encoding)
    loaded = Certificate.load(path)
    assert loaded == certificate
    assert loaded.fingerprint() == certificate.fingerprint()


def test_certificate_issued_by_other_key(private_key, certificate):
    other_key = PrivateKeyRsa.generate_key()
    cert = Certificate.generate_certificate(
        subject=generate_name("child"),
        issuer=certificate.subject,
        subject_public_key=other_key.get_public_key(),
        issuer_private_key=private_key,
    )
    assert not cert.self_signed
    assert certificate.validate_subject(cert)


def test_cms_sign_verify(private_key, certificate):
    data = b"signed variable data"
    signature = cms_sign(data, certificate, private_key)
    assert cms_verify(data, signature, certificate)
    assert cms_verify(data, signature)
    assert not cms_verify(data + b"x", signature, certificate)
    assert cms_get_certificates(signature) == [certificate]


def test_cms_verify_wrong_certificate(private_key, certificate):
    other_key = PrivateKeyRsa.generate_key()
    other = Certificate.generate_self_signed("other", other_key)
    signature = cms_sign(b"data", certificate, private_key)
    assert not cms_verify(b"data", signature, other)


def test_cms_sign_key_mismatch(certificate):
    with pytest.raises(EFIKeysError):
        cms_sign(b"data", certificate, PrivateKeyRsa.generate_key())


def test_cms_invalid_data():
    with pytest.raises(EFIKeysParsingError):
        cms_get_certificates(b"\x01\x02\x03 not a pkcs7 structure")
