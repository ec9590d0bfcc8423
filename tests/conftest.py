#!/usr/bin/env python
# -*- coding: UTF-8 -*-
#
# Copyright 2024-2025 NXP
#
# SPDX-License-Identifier: BSD-3-Clause

"""EFIKeys pytest configuration and shared test fixtures."""

import os
from datetime import datetime, timedelta, timezone
from typing import Callable

import pytest
from cryptography.hazmat.backends.openssl import backend

from tests.cli_runner import CliRunner

# Disable RSA key blinding to speed up unit tests in cryptography 37+
# https://github.com/pyca/cryptography/issues/7236
setattr(backend, "_rsa_skip_check_key", True)

os.environ["EFIKEYS_DEBUG_LOGGING_DISABLED"] = "True"
os.environ["EFIKEYS_SKIP_PRIVILEGE_CHECK"] = "True"

# pylint: disable=wrong-import-position
from efikeys.auth import AuthPackager
from efikeys.keystore import KeyStore, KeyStoreConfig
from tests.fakes import FakeImageTool, FakeVariableStore


@pytest.fixture
def cli_runner() -> CliRunner:
    """Get CLI runner instance for testing."""
    return CliRunner()


class Clock:
    """Manually advanced clock."""

    def __init__(self) -> None:
        self.now = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> Clock:
    return Clock()


class Confirm:
    """Confirmation callback with a fixed answer, remembering the prompts."""

    def __init__(self, answer: bool = True) -> None:
        self.answer = answer
        self.prompts: list[str] = []

    def __call__(self, prompt: str) -> bool:
        self.prompts.append(prompt)
        return self.answer


@pytest.fixture
def confirm() -> Confirm:
    return Confirm()


class SyncCounter:
    def __init__(self) -> None:
        self.count = 0

    def __call__(self) -> None:
        self.count += 1


@pytest.fixture
def sync() -> SyncCounter:
    return SyncCounter()


@pytest.fixture
def keys_dir(tmp_path) -> str:
    return str(tmp_path / "keys")


@pytest.fixture
def keystore_factory(keys_dir, sync) -> Callable[..., KeyStore]:
    """Create key store over the test key directory; private keys stay readable by owner."""

    def factory(confirm: Callable[[str], bool] = Confirm(), **kwargs) -> KeyStore:
        config = KeyStoreConfig(keys_dir, private_key_mode=0o400, **kwargs)
        return KeyStore(config, confirm, packager=AuthPackager(), sync=sync)

    return factory


@pytest.fixture
def keystore(keystore_factory) -> KeyStore:
    return keystore_factory()


@pytest.fixture(scope="module")
def created_keystore(tmp_path_factory) -> KeyStore:
    """Key store with generated keys shared by the tests of a module."""
    config = KeyStoreConfig(str(tmp_path_factory.mktemp("keys")), private_key_mode=0o400)
    store = KeyStore(config, Confirm(), sync=lambda: None)
    store.create("Test")
    return store


@pytest.fixture
def fake_store() -> FakeVariableStore:
    return FakeVariableStore()


@pytest.fixture
def fake_tool() -> FakeImageTool:
    return FakeImageTool()
