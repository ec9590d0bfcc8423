#!/usr/bin/env python
# -*- coding: UTF-8 -*-
#
# Copyright 2024-2025 NXP
#
# SPDX-License-Identifier: BSD-3-Clause

"""Tests of the EFIKeys configuration."""

import os
from uuid import UUID

import pytest
import yaml

from efikeys.efi.guids import MICROSOFT_OWNER_GUID
from efikeys.efivars import EFIVARFS_PATH
from efikeys.exceptions import EFIKeysConfigMissingError, EFIKeysInvalidConfigError
from efikeys.settings import EFIKeysSettings, get_schema, get_template
from efikeys.utils.config import Config
from efikeys.utils.schema_validator import check_config

SHA = "ab" * 32


def _config_file(tmpdir, content) -> str:
    path = os.path.join(str(tmpdir), "efikeys.yaml")
    with open(path, "w", encoding="utf-8") as f:
        if isinstance(content, str):
            f.write(content)
        else:
            yaml.safe_dump(content, f)
    return path


def test_template_is_valid_configuration(tmpdir):
    """The commented template loads and passes validation."""
    settings = EFIKeysSettings.load(_config_file(tmpdir, get_template()))
    assert settings.efi_dir == "/boot/efi"
    assert settings.to_sign == ["/boot/efi/EFI"]
    assert settings.keys_dir == "/etc/efikeys/keys"
    assert not settings.enable_oprom
    assert settings.vendor_bundle() is None
    assert settings.key_size == 2048
    assert settings.efivars_dir == EFIVARFS_PATH
    assert settings.common_name


def test_relative_paths(tmpdir):
    path = _config_file(
        tmpdir,
        {
            "EFI_DIR": "esp",
            "EFI_KEYS_DIR": "keys",
            "TO_SIGN": "EFI/Linux",
            "COMMON_NAME": "workstation",
            "EFIVARS_DIR": "efivars",
            "KEY_SIZE": 4096,
            "CERT_VALIDITY_DAYS": 365,
        },
    )
    base = str(tmpdir).replace("\\", "/")
    settings = EFIKeysSettings.load(path)
    assert settings.efi_dir == f"{base}/esp"
    assert settings.keys_dir == f"{base}/keys"
    assert settings.to_sign == [f"{base}/esp/EFI/Linux"]
    assert settings.efivars_dir == f"{base}/efivars"
    assert settings.common_name == "workstation"
    keystore_config = settings.keystore_config()
    assert keystore_config.key_size == 4096
    assert keystore_config.validity_days == 365
    assert keystore_config.private_key_mode == 0
    assert settings.keystore_config(private_key_mode=0o400).private_key_mode == 0o400


def test_vendor_certs(tmpdir):
    path = _config_file(
        tmpdir,
        {
            "EFI_DIR": "/boot/efi",
            "EFI_KEYS_DIR": "/etc/efikeys/keys",
            "ENABLE_OPROM": True,
            "VENDOR_CERTS": [
                {"url": "https://example.com/ca.der", "sha256": SHA},
                {
                    "path": "certs/ca.pem",
                    "sha256": SHA,
                    "owner_guid": "11111111-2222-3333-4444-555555555555",
                },
            ],
        },
    )
    settings = EFIKeysSettings.load(path)
    assert settings.enrollment_config().enable_vendor_bundle
    first, second = settings.vendor_sources
    assert first.url == "https://example.com/ca.der"
    assert first.owner_guid == MICROSOFT_OWNER_GUID
    assert second.path == os.path.join(str(tmpdir), "certs", "ca.pem").replace("\\", "/")
    assert second.owner_guid == UUID("11111111-2222-3333-4444-555555555555")
    assert settings.vendor_bundle() is not None


def test_missing_config(tmpdir):
    with pytest.raises(EFIKeysConfigMissingError):
        EFIKeysSettings.load(os.path.join(str(tmpdir), "missing.yaml"))


@pytest.mark.parametrize(
    "content",
    [
        {"EFI_DIR": "/boot/efi"},
        {"EFI_DIR": "/boot/efi", "EFI_KEYS_DIR": "/keys", "UNKNOWN": 1},
        {"EFI_DIR": "/boot/efi", "EFI_KEYS_DIR": "/keys", "KEY_SIZE": 1024},
        {"EFI_DIR": "/boot/efi", "EFI_KEYS_DIR": "/keys", "ENABLE_OPROM": True},
        {
            "EFI_DIR": "/boot/efi",
            "EFI_KEYS_DIR": "/keys",
            "VENDOR_CERTS": [{"url": "https://example.com/ca.der", "sha256": "nothex"}],
        },
        {
            "EFI_DIR": "/boot/efi",
            "EFI_KEYS_DIR": "/keys",
            "VENDOR_CERTS": [{"sha256": SHA}],
        },
        "EFI_DIR: [unclosed",
    ],
)
def test_invalid_config(tmpdir, content):
    with pytest.raises(EFIKeysInvalidConfigError):
        EFIKeysSettings.load(_config_file(tmpdir, content))


def test_schema_formats():
    schema = get_schema()
    config = {
        "EFI_DIR": "/boot/efi",
        "EFI_KEYS_DIR": "/keys",
        "VENDOR_CERTS": [{"url": "https://x", "sha256": SHA, "owner_guid": "not-a-guid"}],
    }
    with pytest.raises(EFIKeysInvalidConfigError):
        check_config(config, [schema])
    config["VENDOR_CERTS"][0]["owner_guid"] = str(MICROSOFT_OWNER_GUID)
    check_config(config, [schema])


def test_config_nested_get():
    cfg = Config({"VENDOR_CERTS": [{"url": "https://x"}]})
    assert cfg["VENDOR_CERTS/0/url"] == "https://x"
    assert cfg.get("VENDOR_CERTS/1/url", "default") == "default"
    assert cfg.get_list("TO_SIGN", ["EFI"]) == ["EFI"]
    assert cfg.get_bool("MISSING") is False
