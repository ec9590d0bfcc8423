#!/usr/bin/env python
# -*- coding: UTF-8 -*-
#
# Copyright 2024-2025 NXP
#
# SPDX-License-Identifier: BSD-3-Clause

"""Tests of EFI image signing."""

import os
import subprocess

import pytest

from efikeys.exceptions import (
    EFIKeysError,
    EFIKeysInvalidConfigError,
    EFIKeysMissingKeyMaterialError,
    EFIKeysNoKeysError,
)
from efikeys.signer import (
    ImageSigner,
    SbsignTool,
    SignStatus,
    expand_glob,
    find_efi_images,
)

SBVERIFY_LIST = """\
signature 1
image signature issuers:
 - /CN=host db
image signature certificates:
 - subject: /CN=host db
   issuer:  /CN=host db
signature 2
image signature issuers:
 - /C=US/O=Microsoft Corporation/CN=Microsoft Windows Production PCA 2011
image signature certificates:
 - subject: /C=US/O=Microsoft Corporation/CN=Microsoft Windows
   issuer:  /C=US/O=Microsoft Corporation/CN=Microsoft Windows Production PCA 2011
 - subject: /C=US/O=Microsoft Corporation/CN=Microsoft Windows Production PCA 2011
   issuer:  /C=US/O=Microsoft Corporation/CN=Microsoft Root Certificate Authority 2010
"""


def _image(directory, name: str, content: bytes = b"MZ efi image") -> str:
    path = os.path.join(str(directory), name)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "wb") as f:
        f.write(content)
    return path


def _read(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()


@pytest.fixture
def signer(created_keystore, fake_tool, sync) -> ImageSigner:
    return ImageSigner(created_keystore, tool=fake_tool, sync=sync)


def test_sign_is_idempotent(signer, fake_tool, tmpdir):
    """Signing an already signed image leaves it byte-identical."""
    image = _image(tmpdir, "grubx64.efi")
    result = signer.sign(image)
    assert result.status == SignStatus.SIGNED
    assert result.ok
    signed = _read(image)
    assert signed != b"MZ efi image"

    again = signer.sign(image)
    assert again.status == SignStatus.ALREADY_SIGNED
    assert _read(image) == signed
    assert fake_tool.sign_calls == [image]


def test_sign_syncs_storage(signer, sync, tmpdir):
    signer.sign(_image(tmpdir, "a.efi"))
    assert sync.count == 1
    signer.sign(_image(tmpdir, "b.efi"), sync=False)
    assert sync.count == 1


def test_sign_without_keys(keystore, fake_tool, tmpdir):
    signer = ImageSigner(keystore, tool=fake_tool)
    with pytest.raises(EFIKeysNoKeysError):
        signer.sign(_image(tmpdir, "a.efi"))
    with pytest.raises(EFIKeysNoKeysError):
        signer.sign_batch([str(tmpdir)])
    assert not fake_tool.sign_calls


def test_sign_missing_image(signer, tmpdir):
    with pytest.raises(EFIKeysInvalidConfigError):
        signer.sign(os.path.join(str(tmpdir), "missing.efi"))


def test_sign_batch(signer, fake_tool, sync, tmpdir):
    """Two images are signed, a missing directory is reported and the batch continues."""
    first = _image(tmpdir, "EFI/BOOT/BOOTX64.EFI")
    second = _image(tmpdir, "EFI/Linux/linux.efi")
    _image(tmpdir, "EFI/Linux/readme.txt")
    missing = os.path.join(str(tmpdir), "missing")

    results = signer.sign_batch([missing, os.path.join(str(tmpdir), "EFI")])
    assert [result.status for result in results] == [
        SignStatus.FAILED,
        SignStatus.SIGNED,
        SignStatus.SIGNED,
    ]
    assert isinstance(results[0].error, EFIKeysInvalidConfigError)
    assert [result.path for result in results[1:]] == [first, second]
    assert sync.count == 1

    results = signer.sign_batch([os.path.join(str(tmpdir), "EFI")])
    assert all(result.status == SignStatus.ALREADY_SIGNED for result in results)
    assert len(fake_tool.sign_calls) == 2


def test_sign_batch_tool_failure(signer, fake_tool, tmpdir, monkeypatch):
    good = _image(tmpdir, "good.efi")
    bad = _image(tmpdir, "bad.efi")
    original = fake_tool.sign

    def failing_sign(image, key_path, cert_path):
        if image == bad:
            raise EFIKeysError("sbsign failed")
        original(image, key_path, cert_path)

    monkeypatch.setattr(fake_tool, "sign", failing_sign)
    results = {result.path: result for result in signer.sign_batch([str(tmpdir)])}
    assert results[good].ok
    assert results[bad].status == SignStatus.FAILED
    assert "sbsign failed" in str(results[bad])


def test_verify(signer, tmpdir):
    image = _image(tmpdir, "shim.efi")
    report = signer.verify(image)
    assert not report.valid
    assert report.signatures == []

    signer.sign(image)
    report = signer.verify(image)
    assert report.valid
    assert len(report.signatures) == 1


def test_verify_without_certificate(keystore, fake_tool, tmpdir):
    with pytest.raises(EFIKeysMissingKeyMaterialError):
        ImageSigner(keystore, tool=fake_tool).verify(_image(tmpdir, "a.efi"))


def test_expand_glob(tmpdir):
    images = [_image(tmpdir, name) for name in ("b/x.efi", "a/y.efi", "a/z.bin")]
    assert expand_glob(os.path.join(str(tmpdir), "**", "*.efi")) == sorted(images[:2])
    assert expand_glob(images[2]) == [images[2]]
    with pytest.raises(EFIKeysInvalidConfigError):
        expand_glob(os.path.join(str(tmpdir), "*.none"))


def test_find_efi_images_case_insensitive(tmpdir):
    images = [_image(tmpdir, name) for name in ("BOOT/BOOTX64.EFI", "boot/grub.efi", "x.EfI")]
    _image(tmpdir, "config.cfg")
    assert find_efi_images(str(tmpdir)) == sorted(images)


def test_parse_sbverify_list():
    signatures = SbsignTool.parse_signature_list(SBVERIFY_LIST)
    assert [signature.index for signature in signatures] == [1, 2]
    assert signatures[0].subject == "/CN=host db"
    assert signatures[1].subject == "/C=US/O=Microsoft Corporation/CN=Microsoft Windows"
    assert signatures[1].issuer.endswith("Microsoft Windows Production PCA 2011")
    assert SbsignTool.parse_signature_list("No signature table present\n") == []


def test_sbsign_tool_commands(monkeypatch):
    calls = []

    def fake_run(args, **kwargs):
        calls.append(list(args))
        return subprocess.CompletedProcess(args, 0, stdout=SBVERIFY_LIST, stderr="")

    monkeypatch.setattr(subprocess, "run", fake_run)
    tool = SbsignTool()
    tool.sign("img.efi", "db.key", "db.crt")
    assert tool.verify("img.efi", "db.crt")
    assert len(tool.list_signatures("img.efi")) == 2
    assert calls == [
        ["sbsign", "--key", "db.key", "--cert", "db.crt", "--output", "img.efi", "img.efi"],
        ["sbverify", "--cert", "db.crt", "img.efi"],
        ["sbverify", "--list", "img.efi"],
    ]


def test_sbsign_tool_missing_executable():
    with pytest.raises(EFIKeysError):
        SbsignTool(sbsign="/nonexistent/sbsign").sign("img.efi", "db.key", "db.crt")


@pytest.mark.parametrize(
    "stderr,expected",
    [("No signature table present\n", []), ("Can't open image img.efi\n", None)],
)
def test_sbverify_list_failure(monkeypatch, stderr, expected):
    """An unsigned image lists no signatures, other sbverify failures are errors."""
    monkeypatch.setattr(
        subprocess,
        "run",
        lambda args, **kwargs: subprocess.CompletedProcess(args, 1, stdout="", stderr=stderr),
    )
    tool = SbsignTool()
    if expected is None:
        with pytest.raises(EFIKeysError):
            tool.list_signatures("img.efi")
    else:
        assert tool.list_signatures("img.efi") == expected
    assert not tool.verify("img.efi", "db.crt")
