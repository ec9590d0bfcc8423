#!/usr/bin/env python
# -*- coding: UTF-8 -*-
#
# Copyright 2024-2025 NXP
#
# SPDX-License-Identifier: BSD-3-Clause

"""CLI helper for Click."""

import logging
from typing import Any, Callable, TypeVar, Union

import click

from efikeys import EFIKEYS_CONFIG_FILE
from efikeys import __version__ as efikeys_version
from efikeys.apps.utils.utils import catch_efikeys_error

FC = TypeVar("FC", bound=Union[Callable[..., Any], click.Command])
logger = logging.getLogger(__name__)


class EFIKeysClickGroup(click.Group):
    """EFIKeys Click group.

    Commands are listed in the order of their definition and EFIKeys errors raised by
    commands terminate the process with the exit code of the error kind.
    """

    def list_commands(self, ctx: click.Context) -> list[str]:
        """Get command names in the order of definition."""
        return list(self.commands)

    def invoke(self, ctx: click.Context) -> Any:
        """Invoke the command, errors are reported by the application error handler."""
        return catch_efikeys_error(super().invoke)(ctx)


def efikeys_apps_common_options(options: FC) -> FC:
    """Common click options.

    Sets --help, --version; provides: `log_level: int` for logging.

    :return: click decorator
    """
    options = click.help_option("--help")(options)
    options = click.version_option(efikeys_version, "--version")(options)
    options = click.option(
        "-vv",
        "--debug",
        "log_level",
        flag_value=logging.DEBUG,
        help="Display more debugging information.",
    )(options)
    options = click.option(
        "-v",
        "--verbose",
        "log_level",
        flag_value=logging.INFO,
        help="Print more detailed information",
    )(options)
    return options


def efikeys_config_option(options: FC) -> FC:
    """Click decorator handling the configuration file.

    Provides: `config: str` a full path to config file. The file is not required to
    exist, commands which need it report a missing configuration.

    :return: Click decorator.
    """
    return click.option(
        "-c",
        "--config",
        type=click.Path(resolve_path=True, dir_okay=False),
        default=EFIKEYS_CONFIG_FILE,
        show_default=True,
        envvar="EFIKEYS_CONFIG",
        help="Path to the YAML/JSON configuration file.",
    )(options)


def efikeys_output_option(options: FC) -> FC:
    """Click decorator handling output file.

    Provides: `output: str` a full path to the output file.

    :return: Click decorator.
    """
    return click.option(
        "-o",
        "--output",
        type=click.Path(resolve_path=True, dir_okay=False),
        required=True,
        help="Path to a file, where to store the output.",
    )(options)
