#!/usr/bin/env python
# -*- coding: UTF-8 -*-
#
# Copyright 2024-2025 NXP
#
# SPDX-License-Identifier: BSD-3-Clause

"""Enrollment of the key store into the firmware variable store.

The write order is fixed: KEK, db, the optional vendor bundle and PK last. Writing
PK commits the firmware into UserMode, so an interrupted enrollment never leaves
KEK and db under a Platform Key that cannot be rewritten. Firmware writes are not
transactional; a failed enrollment is recovered by running it again, every run
re-reads its payloads from the key store before the first firmware write.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from efikeys.auth import AuthenticatedPayload, AuthPackager
from efikeys.efivars import FirmwareVariableStore
from efikeys.exceptions import (
    EFIKeysAbortedError,
    EFIKeysError,
    EFIKeysFirmwareWriteError,
    EFIKeysMissingKeyMaterialError,
    EFIKeysValueError,
)
from efikeys.firmware import EnrollmentState, FirmwareStateReader
from efikeys.hierarchy import KeyMaterial, KeyRole
from efikeys.keystore import ConfirmCallback, KeyStore
from efikeys.utils.efi_enum import EfiEnum
from efikeys.utils.misc import sync_storage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnrollmentConfig:
    """Settings of the enrollment."""

    enable_vendor_bundle: bool = False


class EnrollmentStep(EfiEnum):
    """States of the enrollment sequence."""

    IDLE = (0, "Idle")
    CLEARING_IMMUTABILITY = (1, "ClearingImmutability")
    WRITING_KEK = (2, "WritingKEK")
    WRITING_DB = (3, "WritingDB")
    WRITING_VENDOR_BUNDLE = (4, "WritingVendorBundle")
    WRITING_PK = (5, "WritingPK")
    DONE = (6, "Done")
    FAILED = (7, "Failed")


@dataclass
class EnrollmentPayloads:
    """Payloads of one enrollment run, loaded before the firmware is touched."""

    kek: AuthenticatedPayload
    db: AuthenticatedPayload
    pk: AuthenticatedPayload
    vendor: Optional[AuthenticatedPayload] = None
    reset: Optional[AuthenticatedPayload] = None
    user_mode_kek: Optional[AuthenticatedPayload] = None
    user_mode_pk: Optional[AuthenticatedPayload] = None


class EnrollmentSequencer:
    """Drives the ordered write of PK, KEK, db and the vendor bundle."""

    def __init__(
        self,
        keystore: KeyStore,
        store: FirmwareVariableStore,
        config: EnrollmentConfig,
        confirm: ConfirmCallback,
        packager: Optional[AuthPackager] = None,
        sync: Callable[[], None] = sync_storage,
    ) -> None:
        """Constructor.

        :param keystore: Key store with the enrolled payloads
        :param store: Firmware variable store
        :param config: Enrollment settings
        :param confirm: Callback asking the operator to confirm the firmware update
        :param packager: Packager used for re-signed payloads, the key store one by default
        :param sync: Storage durability callback
        """
        self.keystore = keystore
        self.store = store
        self.config = config
        self.confirm = confirm
        self.packager = packager or keystore.packager
        self.sync = sync
        self.state = EnrollmentStep.IDLE
        self.history: list[EnrollmentStep] = [EnrollmentStep.IDLE]

    def _set_state(self, state: EnrollmentStep) -> None:
        logger.debug(f"Enrollment state: {self.state.label} -> {state.label}")
        self.state = state
        self.history.append(state)

    def _load(self, loader: Callable[[], AuthenticatedPayload], path: str) -> AuthenticatedPayload:
        try:
            return loader()
        except EFIKeysError as exc:
            raise EFIKeysMissingKeyMaterialError(
                f"Invalid authenticated payload {path}: {exc.description}. Create the keys again."
            ) from exc

    def _load_payload(self, role: KeyRole) -> AuthenticatedPayload:
        return self._load(lambda: self.keystore.load_payload(role), self.keystore.path(role, "auth"))

    def check_preconditions(
        self, pk_key: Optional[KeyMaterial] = None, kek_key: Optional[KeyMaterial] = None
    ) -> EnrollmentPayloads:
        """Load every payload the enrollment needs.

        Payloads re-signed by the given authorization keys are packaged here as well, so
        no key store file is read once the firmware is modified.

        :param pk_key: Key material of the Platform Key currently enrolled in firmware
        :param kek_key: Key material of the KEK authorizing db writes
        :raises EFIKeysMissingKeyMaterialError: Any payload is missing or malformed
        :return: Payloads of the enrollment
        """
        missing = [
            self.keystore.path(role, "auth")
            for role in (KeyRole.KEK, KeyRole.DB, KeyRole.PK)
            if not self.keystore.has_payload(role)
        ]
        if self.config.enable_vendor_bundle and not self.keystore.has_vendor_payload():
            missing.append(self.keystore.vendor_path("auth"))
        if missing:
            raise EFIKeysMissingKeyMaterialError(
                f"Missing authenticated payloads: {', '.join(missing)}. Create the keys first."
            )

        payloads = EnrollmentPayloads(
            kek=self._load_payload(KeyRole.KEK),
            db=self._load_payload(KeyRole.DB),
            pk=self._load_payload(KeyRole.PK),
        )
        if self.config.enable_vendor_bundle:
            payloads.vendor = self._load(
                self.keystore.load_vendor_payload, self.keystore.vendor_path("auth")
            )

        if pk_key is not None:
            payloads.reset = self.packager.package_empty(pk_key)
            payloads.user_mode_kek = self.packager.package(
                self.keystore.signature_list(KeyRole.KEK), KeyRole.KEK, pk_key
            )
            payloads.user_mode_pk = self.packager.package(
                self.keystore.signature_list(KeyRole.PK), KeyRole.PK, pk_key
            )
        elif self.keystore.has_empty_pk_payload():
            payloads.reset = self._load(
                self.keystore.load_empty_pk_payload, self.keystore.empty_pk_path
            )
        if kek_key is not None:
            payloads.db = self.packager.package(
                self.keystore.signature_list(KeyRole.DB), KeyRole.DB, kek_key
            )
            if payloads.vendor is not None:
                payloads.vendor = self.packager.package(
                    payloads.vendor.signature_list, KeyRole.DB, kek_key, append=True
                )
        return payloads

    def enroll(
        self, pk_key: Optional[KeyMaterial] = None, kek_key: Optional[KeyMaterial] = None
    ) -> None:
        """Enroll the key store into firmware.

        When the firmware stays in UserMode after the reset attempt, the KEK and PK
        payloads are re-signed by the Platform Key currently enrolled. The stored db
        payload is authorized by the new KEK, which is enrolled right before it; a
        given KEK key re-signs the db and vendor payloads instead.

        :param pk_key: Key material of the Platform Key currently enrolled in firmware
        :param kek_key: Key material of the KEK authorizing db writes
        :raises EFIKeysMissingKeyMaterialError: Required payloads are missing or malformed
        :raises EFIKeysAbortedError: Operator refused the firmware update
        :raises EFIKeysFirmwareWriteError: Firmware rejected a write
        """
        if pk_key is not None and pk_key.role != KeyRole.PK:
            raise EFIKeysValueError(f"PK authorization key has role {pk_key.role.label}")
        if kek_key is not None and kek_key.role != KeyRole.KEK:
            raise EFIKeysValueError(f"KEK authorization key has role {kek_key.role.label}")
        payloads = self.check_preconditions(pk_key, kek_key)

        prompt = (
            "The Secure Boot variables PK, KEK and db of this machine will be overwritten. "
            "A failed update may leave the machine unable to boot."
        )
        if not self.confirm(prompt):
            raise EFIKeysAbortedError("Enrollment aborted, firmware variables are untouched")

        self._set_state(EnrollmentStep.CLEARING_IMMUTABILITY)
        for role in (KeyRole.PK, KeyRole.KEK, KeyRole.DB):
            self._clear_immutable(role)

        kek_payload, pk_payload = payloads.kek, payloads.pk
        state = self._reset_setup_mode(payloads.reset)
        if state == EnrollmentState.USER_MODE and payloads.user_mode_kek is not None:
            logger.info("Firmware stays in UserMode, using KEK and PK signed by the current PK")
            kek_payload = payloads.user_mode_kek
            pk_payload = payloads.user_mode_pk or pk_payload

        self._write(EnrollmentStep.WRITING_KEK, kek_payload)
        self._write(EnrollmentStep.WRITING_DB, payloads.db)
        if payloads.vendor is not None:
            self._clear_immutable(KeyRole.DB)
            self._write(EnrollmentStep.WRITING_VENDOR_BUNDLE, payloads.vendor)
        self._write(EnrollmentStep.WRITING_PK, pk_payload)

        self._set_state(EnrollmentStep.DONE)
        logger.info("Secure Boot keys enrolled, firmware is in UserMode")

    def _clear_immutable(self, role: KeyRole) -> None:
        try:
            if self.store.clear_immutable(role.variable_name, role.vendor_guid):
                logger.info(f"Immutable flag of {role.label} cleared")
        except EFIKeysError as exc:
            logger.warning(f"Cannot clear immutable flag of {role.label}: {exc.description}")

    def _reset_setup_mode(self, payload: Optional[AuthenticatedPayload]) -> EnrollmentState:
        if payload is None:
            logger.warning("No PK removal payload available, SetupMode reset skipped")
        else:
            try:
                self.store.write_payload(payload)
                logger.info("Platform Key removed, firmware is in SetupMode")
            except EFIKeysFirmwareWriteError as exc:
                logger.warning(f"SetupMode reset not accepted: {exc.description}")
        state = FirmwareStateReader(self.store).enrollment_state()
        logger.info(f"Firmware enrollment state: {state.label}")
        return state

    def _write(self, step: EnrollmentStep, payload: AuthenticatedPayload) -> None:
        self._set_state(step)
        variable = payload.target.variable_name
        try:
            self.store.write_payload(payload)
        except EFIKeysFirmwareWriteError as exc:
            self._set_state(EnrollmentStep.FAILED)
            raise EFIKeysFirmwareWriteError(
                f"Writing {variable} failed: {exc.description}. Firmware variables are not "
                "rolled back, fix the cause and run the enrollment again.",
                variable=variable,
            ) from exc
        self.sync()
        logger.info(f"{variable} enrolled{' (append)' if payload.append else ''}")
