#!/usr/bin/env python
# -*- coding: UTF-8 -*-
#
# Copyright 2024-2025 NXP
#
# SPDX-License-Identifier: BSD-3-Clause

"""Module for general utilities used by the application."""

import logging
import os
import sys
from functools import wraps
from typing import Any, Callable, Optional

import click

from efikeys import EFIKEYS_DEBUG_LOG_FILE, EFIKEYS_DEBUG_LOGGING_DISABLED
from efikeys.exceptions import EFIKeysError, EFIKeysNotPrivilegedError, ExitCode

logger = logging.getLogger(__name__)


class EFIKeysAppError(EFIKeysError):
    """Non-fatal application error with explicit exit code."""

    fmt = "{description}"

    def __init__(self, desc: Optional[str] = None, error_code: int = ExitCode.GENERAL_ERROR) -> None:
        """Initialize the AppError.

        :param desc: Description to print out on command line, defaults to None
        :param error_code: Error code passed to OS
        """
        super().__init__(desc)
        self.error_code = error_code


class TokenConfirmation:
    """Confirmation requiring the operator to type an exact token."""

    def __init__(self, token: str, assume_yes: bool = False) -> None:
        """Constructor.

        :param token: Token the operator has to type
        :param assume_yes: Confirm without asking
        """
        self.token = token
        self.assume_yes = assume_yes

    def __call__(self, prompt: str) -> bool:
        if self.assume_yes:
            logger.info(f"Confirmed by command line option: {prompt}")
            return True
        click.secho(prompt, fg="yellow", err=True)
        answer = click.prompt(f"Type '{self.token}' to continue", default="", show_default=False)
        return answer.strip() == self.token


def check_privileges(skip: bool = False) -> None:
    """Check that the process runs with effective UID 0.

    :param skip: Skip the check
    :raises EFIKeysNotPrivilegedError: Not running as root
    """
    if skip:
        logger.debug("Privilege check skipped")
        return
    if os.geteuid() != 0:
        raise EFIKeysNotPrivilegedError("This command must be run as root")


def catch_efikeys_error(function: Callable) -> Callable:
    """Catch and handle EFIKeysError and other exceptions.

    EFIKeys errors are printed as 'ClassName: message' and the process exits with
    the exit code of the error kind. Other exceptions exit with the general error code.

    :param function: The function to be decorated.
    :return: The decorated function.
    """

    @wraps(function)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return function(*args, **kwargs)
        except (click.exceptions.Exit, click.exceptions.Abort, click.ClickException):
            raise
        except EFIKeysAppError as app_exc:
            if app_exc.description:
                click.echo(f"{app_exc.__class__.__name__}: {app_exc}", err=True)
            sys.exit(app_exc.error_code if 0 < app_exc.error_code < 256 else ExitCode.GENERAL_ERROR)
        except EFIKeysError as efikeys_exc:
            click.echo(f"{efikeys_exc.__class__.__name__}: {efikeys_exc}", err=True)
            logger.debug(str(efikeys_exc), exc_info=True)
            if not EFIKEYS_DEBUG_LOGGING_DISABLED:
                click.secho(
                    f"See debug log file: {EFIKEYS_DEBUG_LOG_FILE} for more info", fg="yellow", err=True
                )
            sys.exit(efikeys_exc.exit_code)
        except (Exception, KeyboardInterrupt) as base_exc:  # pylint: disable=broad-except
            click.echo(f"GENERAL ERROR: {type(base_exc).__name__}: {base_exc}", err=True)
            logger.debug(str(base_exc), exc_info=True)
            if not EFIKEYS_DEBUG_LOGGING_DISABLED:
                click.secho(
                    f"See debug log file: {EFIKEYS_DEBUG_LOG_FILE} for more info.", fg="yellow", err=True
                )
            sys.exit(ExitCode.GENERAL_ERROR)

    return wrapper
