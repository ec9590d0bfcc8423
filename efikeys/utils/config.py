#!/usr/bin/env python
# -*- coding: UTF-8 -*-
# Copyright 2024-2025 NXP
#
# SPDX-License-Identifier: BSD-3-Clause

"""EFIKeys configuration management utilities.

The configuration is a dictionary that remembers where it was loaded from, so
relative paths inside it resolve against the configuration file directory rather
than the current working directory.
"""

import logging
import os
from typing import Any, Optional, Union

from typing_extensions import Self

from efikeys.exceptions import EFIKeysError, EFIKeysKeyError
from efikeys.utils.misc import load_configuration
from efikeys.utils.schema_validator import check_config

logger = logging.getLogger(__name__)


class Config(dict):
    """EFIKeys Configuration Manager.

    This class extends Python's dictionary with nested key addressing using path
    separators, file-based configuration loading and path resolution relative to
    the configuration source.

    :cvar SEP: Path separator used for nested key addressing in configuration.
    """

    SEP = "/"

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        """Initialize configuration dictionary with default settings.

        :param args: Variable length argument list passed to parent dictionary constructor.
        :param kwargs: Arbitrary keyword arguments passed to parent dictionary constructor.
        """
        super().__init__(*args, **kwargs)
        self.config_dir = os.getcwd()
        self.config_name = ""

    @classmethod
    def create_from_file(cls, file_path: str) -> Self:
        """Create configuration object from file.

        :param file_path: Path to the configuration file to load.
        :return: Configuration object with loaded data.
        """
        cfg_abs_path = os.path.abspath(file_path).replace("\\", "/")
        cfg = cls(load_configuration(cfg_abs_path))
        cfg.config_dir = os.path.dirname(cfg_abs_path)
        cfg.config_name = os.path.basename(cfg_abs_path)
        return cfg

    def get(self, key: str, defaults: Optional[Any] = None) -> Any:
        """Get configuration value with nested key support.

        :param key: Key name including support of key path with '/'.
        :param defaults: Default value in case that item doesn't exist, defaults to None.
        :return: Configuration value or default if key not found.
        """
        try:
            return self.__getitem__(key)
        except EFIKeysError:
            return defaults

    def __getitem__(self, key: str) -> Any:
        """Get configuration value by key path.

        :param key: Configuration key or '/' separated path to nested value
        :raises EFIKeysKeyError: Key doesn't exist in configuration
        :return: Configuration value at the specified key path
        """
        source: Any = self
        for part in key.split(self.SEP):
            if isinstance(source, list):
                try:
                    source = source[int(part)]
                except (ValueError, IndexError) as exc:
                    raise EFIKeysKeyError(f"Invalid list index '{part}' in key {key}") from exc
            elif isinstance(source, dict):
                source = dict.get(source, part)
            else:
                source = None
            if source is None:
                raise EFIKeysKeyError(f"The {key} doesn't exist in configuration")
        return source

    def get_bool(self, key: str, default: bool = False) -> bool:
        """Get the key value as boolean.

        :param key: Key name.
        :param default: Default value if configuration doesn't contain the key.
        :return: Boolean value.
        """
        value = self.get(key, default)
        if isinstance(value, str):
            return value.lower() in ("true", "yes", "1", "on")
        return bool(value)

    def get_int(self, key: str, default: Optional[int] = None) -> int:
        """Get the key value as integer.

        :param key: Key name.
        :param default: Default value if configuration doesn't contain the key.
        :raises EFIKeysError: The value cannot be converted.
        :return: Integer value.
        """
        value = self.get(key, default)
        try:
            return int(value, 0) if isinstance(value, str) else int(value)
        except (TypeError, ValueError) as exc:
            raise EFIKeysError(f"The value at key {key} is not an integer: {value}") from exc

    def get_list(self, key: str, default: Optional[list] = None) -> list:
        """Get the key value as list.

        A scalar value is promoted to a single item list.

        :param key: Key name.
        :param default: Default value if configuration doesn't contain the key.
        :return: List value.
        """
        ret = self.get(key, default)
        if ret is None:
            raise EFIKeysKeyError(f"The value is not in config at key: {key}")
        if not isinstance(ret, list):
            return [ret]
        return ret

    def get_path(self, key: str, base_dir: Optional[str] = None) -> str:
        """Get the key value as absolute path.

        Relative paths resolve against ``base_dir`` or the configuration file directory.

        :param key: Key name.
        :param base_dir: Base directory for relative paths.
        :return: Absolute normalized path.
        """
        return self.resolve_path(self[key], base_dir)

    def resolve_path(self, path: Union[str, os.PathLike], base_dir: Optional[str] = None) -> str:
        """Resolve a path value relative to the configuration.

        :param path: Path from the configuration.
        :param base_dir: Base directory for relative paths.
        :return: Absolute normalized path.
        """
        path = os.path.expanduser(str(path))
        if os.path.isabs(path):
            return os.path.normpath(path).replace("\\", "/")
        return os.path.normpath(os.path.join(base_dir or self.config_dir, path)).replace(
            "\\", "/"
        )

    def check(self, schemas: list[dict[str, Any]]) -> None:
        """Validate the configuration against the schemas.

        :param schemas: List of JSON schemas.
        """
        check_config(self, schemas)
