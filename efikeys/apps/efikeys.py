#!/usr/bin/env python
# -*- coding: UTF-8 -*-
#
# Copyright 2024-2025 NXP
#
# SPDX-License-Identifier: BSD-3-Clause

"""EFIKeys - UEFI Secure Boot key management utility."""

import logging
import os
import sys
from typing import Optional

import click
import prettytable

from efikeys import EFIKEYS_SKIP_PRIVILEGE_CHECK
from efikeys.apps.utils import efikeys_logger
from efikeys.apps.utils.common_cli_options import (
    EFIKeysClickGroup,
    efikeys_apps_common_options,
    efikeys_config_option,
    efikeys_output_option,
)
from efikeys.apps.utils.utils import (
    EFIKeysAppError,
    TokenConfirmation,
    catch_efikeys_error,
    check_privileges,
)
from efikeys.crypto.certificate import Certificate
from efikeys.crypto.keys import PrivateKey
from efikeys.efivars import EfivarfsStore
from efikeys.enroll import EnrollmentSequencer
from efikeys.exceptions import EFIKeysIOError, EFIKeysMissingKeyMaterialError, ExitCode
from efikeys.firmware import FirmwareStateReader
from efikeys.hierarchy import KeyMaterial, KeyRole
from efikeys.keystore import KeyStore
from efikeys.settings import EFIKeysSettings, get_template
from efikeys.signer import ImageSigner, SignStatus, expand_glob, find_efi_images
from efikeys.utils.misc import get_printable_path, write_file

logger = logging.getLogger(__name__)

CREATE_TOKEN = "yes"
ENROLL_TOKEN = "ENROLL"


def _settings(ctx: click.Context) -> EFIKeysSettings:
    return EFIKeysSettings.load(ctx.obj["config"])


def _keystore(settings: EFIKeysSettings) -> KeyStore:
    return KeyStore(settings.keystore_config(), TokenConfirmation(CREATE_TOKEN))


def _efivars(settings: EFIKeysSettings) -> EfivarfsStore:
    store = EfivarfsStore(settings.efivars_dir)
    if not store.is_available():
        raise EFIKeysIOError(f"EFI variables are not available at {settings.efivars_dir}")
    return store


def _load_auth_key(
    path: Optional[str], role: KeyRole, keystore: KeyStore
) -> Optional[KeyMaterial]:
    """Load authorization key, the certificate is expected beside it as <stem>.crt."""
    if not path:
        return None
    cert_path = os.path.splitext(path)[0] + ".crt"
    if not os.path.isfile(cert_path):
        raise EFIKeysMissingKeyMaterialError(
            f"Certificate of {role.label} key not found: {cert_path}"
        )
    return KeyMaterial(role, PrivateKey.load(path), Certificate.load(cert_path), keystore.guid())


@click.group(name="efikeys", no_args_is_help=True, cls=EFIKeysClickGroup)
@efikeys_apps_common_options
@efikeys_config_option
@click.pass_context
def main(ctx: click.Context, log_level: int, config: str) -> None:
    """Manage UEFI Secure Boot keys: create, enroll, sign and verify EFI images."""
    efikeys_logger.install(level=log_level)
    ctx.obj = {"config": config}


@main.command(name="create")
@click.option("-n", "--common-name", help="Common name prefix of the certificates.")
@click.pass_context
def create(ctx: click.Context, common_name: Optional[str]) -> None:
    """Generate new PK, KEK and db keys; existing keys are moved to a backup."""
    check_privileges(EFIKEYS_SKIP_PRIVILEGE_CHECK)
    settings = _settings(ctx)
    keystore = _keystore(settings)
    bundle = settings.vendor_bundle()
    vendor_list = bundle.assemble() if bundle else None
    materials = keystore.create(common_name or settings.common_name, vendor_list)
    for material in materials.values():
        click.echo(f"Created {str(material)}")
    click.echo(f"Keys stored in {get_printable_path(keystore.keys_dir)}")


@main.command(name="enroll")
@click.argument("pk_key", required=False, type=click.Path(exists=True, dir_okay=False))
@click.argument("kek_key", required=False, type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def enroll(ctx: click.Context, pk_key: Optional[str], kek_key: Optional[str]) -> None:
    """Enroll the keys into firmware.

    PK_KEY is the private Platform Key currently enrolled in firmware, used to
    authorize the update when the firmware is not in SetupMode. KEK_KEY re-signs
    the db update instead of the stored payload. Certificates are expected beside
    the keys with the .crt extension.
    """
    check_privileges(EFIKEYS_SKIP_PRIVILEGE_CHECK)
    settings = _settings(ctx)
    keystore = _keystore(settings)
    sequencer = EnrollmentSequencer(
        keystore,
        _efivars(settings),
        settings.enrollment_config(),
        TokenConfirmation(ENROLL_TOKEN),
    )
    sequencer.enroll(
        pk_key=_load_auth_key(pk_key, KeyRole.PK, keystore),
        kek_key=_load_auth_key(kek_key, KeyRole.KEK, keystore),
    )
    click.echo("Secure Boot keys enrolled. Enable Secure Boot in the firmware setup.")


@main.command(name="sign")
@click.argument("path_glob", required=False)
@click.pass_context
def sign(ctx: click.Context, path_glob: Optional[str]) -> None:
    """Sign EFI images matching PATH_GLOB, or all images in TO_SIGN directories."""
    check_privileges(EFIKEYS_SKIP_PRIVILEGE_CHECK)
    settings = _settings(ctx)
    signer = ImageSigner(_keystore(settings))
    if path_glob:
        signer.check_keys()
        results = [signer.sign(path) for path in expand_glob(path_glob)]
    else:
        results = signer.sign_batch(settings.to_sign)
    for result in results:
        click.echo(str(result))
    failed = [result for result in results if result.status == SignStatus.FAILED]
    if failed:
        raise EFIKeysAppError(
            f"{len(failed)} of {len(results)} entries failed",
            error_code=failed[0].error.exit_code if failed[0].error else ExitCode.GENERAL_ERROR,
        )


@main.command(name="verify")
@click.argument("path_glob", required=False)
@click.pass_context
def verify(ctx: click.Context, path_glob: Optional[str]) -> None:
    """Verify EFI images matching PATH_GLOB, or all images in TO_SIGN directories."""
    settings = _settings(ctx)
    signer = ImageSigner(_keystore(settings))
    if path_glob:
        images = expand_glob(path_glob)
    else:
        images = []
        for directory in settings.to_sign:
            if not os.path.isdir(directory):
                logger.warning(f"Directory to verify doesn't exist: {directory}")
                continue
            images.extend(find_efi_images(directory))
    invalid = 0
    for image in images:
        report = signer.verify(image)
        click.echo(f"{get_printable_path(image)}:")
        for signature in report.signatures:
            click.echo(f"  {str(signature)}")
        if not report.signatures:
            click.echo("  No signatures")
        click.secho(
            f"  db signature: {'valid' if report.valid else 'NOT valid'}",
            fg="green" if report.valid else "red",
        )
        invalid += not report.valid
    if invalid:
        raise EFIKeysAppError(
            f"{invalid} of {len(images)} images are not signed by db key",
            error_code=ExitCode.VERIFICATION_FAILED,
        )


@main.command(name="list")
@click.pass_context
def list_keys(ctx: click.Context) -> None:
    """List keys enrolled in firmware."""
    reader = FirmwareStateReader(_efivars(_settings(ctx)))
    table = prettytable.PrettyTable(["Variable", "Type", "Owner", "Entry"])
    table.align = "l"
    for name, sig_list in reader.list_enrolled_keys().items():
        if sig_list.is_empty:
            table.add_row([name, "-", "-", "empty"])
        for entry in sig_list:
            table.add_row([name, entry.type_name, str(entry.owner), entry.description])
    click.echo(table)


@main.command(name="status")
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show Secure Boot state; exit code is non-zero when Secure Boot is inactive."""
    reader = FirmwareStateReader(_efivars(_settings(ctx)))
    state = reader.status()
    click.echo(f"Secure Boot: {state.label}")
    click.echo(f"Mode: {reader.enrollment_state().label}")
    ctx.exit(state.exit_code)


@main.command(name="get-template")
@efikeys_output_option
def get_template_command(output: str) -> None:
    """Create configuration template."""
    write_file(get_template(), output)
    click.echo(f"The configuration template has been created: {get_printable_path(output)}")


@catch_efikeys_error
def safe_main() -> None:
    """Call the main function."""
    sys.exit(main())  # pylint: disable=no-value-for-parameter


if __name__ == "__main__":
    safe_main()
