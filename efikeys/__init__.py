#!/usr/bin/env python
# -*- coding: UTF-8 -*-
#
# Copyright 2024-2025 NXP
#
# SPDX-License-Identifier: BSD-3-Clause

"""EFIKeys - UEFI Secure Boot key lifecycle management.

The toolkit creates a private Secure Boot hierarchy (PK, KEK, db), packages it
into authenticated variable payloads, enrolls it into the firmware variable store
and keeps EFI boot images signed with the db key.
"""

import os
from typing import Optional, Union

from packaging.version import Version, parse
from platformdirs import PlatformDirs

from .__version__ import __version__ as efikeys_version


def value_to_bool(value: Optional[Union[bool, int, str]]) -> bool:
    """Convert value to boolean from various input formats.

    Supports conversion from string representations like "True", "true", "T", "1"
    and standard Python truthy/falsy values for other types.

    :param value: Value to convert to boolean (string, int, bool, or None).
    :return: Boolean representation of the input value.
    """
    if isinstance(value, str):
        return value in ("True", "true", "T", "1")
    return bool(value)


version: Version = parse(efikeys_version)

__author__ = "NXP"
__license__ = "BSD-3-Clause"
__version__ = str(version)


# The EFIKeys behavior settings
EFIKEYS_PLATFORM_DIRS = PlatformDirs(
    appauthor="nxp",
    appname="efikeys",
    version=version.base_version,
)

EFIKEYS_DATA_FOLDER = os.environ.get("EFIKEYS_DATA_FOLDER") or os.path.join(
    os.path.dirname(os.path.abspath(__file__)), "data"
)

EFIKEYS_CONFIG_FILE = os.environ.get("EFIKEYS_CONFIG", "/etc/efikeys/efikeys.yaml")

EFIKEYS_DEBUG_LOGGING_DISABLED = value_to_bool(os.environ.get("EFIKEYS_DEBUG_LOGGING_DISABLED"))
EFIKEYS_DEBUG_LOG_FILE = os.environ.get(
    "EFIKEYS_DEBUG_LOG_FILE", os.path.join(EFIKEYS_PLATFORM_DIRS.user_log_dir, "debug.log")
)

# privilege check is bypassed only by test harnesses
EFIKEYS_SKIP_PRIVILEGE_CHECK = value_to_bool(os.environ.get("EFIKEYS_SKIP_PRIVILEGE_CHECK"))

EFIKEYS_YML_INDENT = 2
