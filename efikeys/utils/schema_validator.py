#!/usr/bin/env python
# -*- coding: UTF-8 -*-
#
# Copyright 2024-2025 NXP
#
# SPDX-License-Identifier: BSD-3-Clause

"""Validation of configuration data by JSON schemas."""

import copy
import logging
import re
from typing import Any, Callable, Optional

import fastjsonschema

from efikeys.exceptions import EFIKeysInvalidConfigError

logger = logging.getLogger(__name__)

SHA256_RE = re.compile(r"^[0-9a-fA-F]{64}$")
GUID_RE = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)


def _merge_schemas(schemas: list[dict[str, Any]]) -> dict[str, Any]:
    schema: dict[str, Any] = {}
    for sch in schemas:
        for key, value in copy.deepcopy(sch).items():
            if isinstance(value, dict) and isinstance(schema.get(key), dict):
                schema[key].update(value)
            elif isinstance(value, list) and isinstance(schema.get(key), list):
                schema[key].extend(v for v in value if v not in schema[key])
            else:
                schema[key] = value
    return schema


def _print_validation_fail_reason(exc: fastjsonschema.JsonSchemaValueException) -> str:
    """Format JSON schema validation failure into human-readable error message.

    :param exc: The JSON schema validation exception to process.
    :return: Formatted error message explaining the validation failure reason.
    """
    message = str(exc)
    if exc.rule == "required":
        missing = [
            name for name in exc.rule_definition or [] if name not in (exc.value or {})
        ]
        message = f"Missing required configuration option(s): {', '.join(missing)}"
    elif exc.rule == "format":
        message = f"Value '{exc.value}' of {exc.name} doesn't match format '{exc.definition.get('format')}'"
    elif exc.rule == "enum":
        message = f"Value '{exc.value}' of {exc.name} must be one of {exc.rule_definition}"
    return message


def check_config(
    config: dict[str, Any],
    schemas: list[dict[str, Any]],
    extra_formatters: Optional[dict[str, Callable[[str], bool]]] = None,
) -> None:
    """Check the configuration by provided list of validation schemas.

    The schemas are merged together (properties and required lists are united) and
    compiled by fastjsonschema.

    :param config: Configuration dictionary to validate.
    :param schemas: List of JSON schema dictionaries for validation.
    :param extra_formatters: Additional custom format validators for schema validation.
    :raises EFIKeysInvalidConfigError: Invalid validation schema or configuration validation failed.
    """
    formats: dict[str, Callable[[str], bool]] = {
        "sha256": lambda x: bool(SHA256_RE.match(x)),
        "guid": lambda x: bool(GUID_RE.match(x)),
    }
    formats.update(extra_formatters or {})
    schema = _merge_schemas(schemas)
    try:
        validator = fastjsonschema.compile(schema, formats=formats)
    except (TypeError, fastjsonschema.JsonSchemaDefinitionException) as exc:
        raise EFIKeysInvalidConfigError(
            f"Invalid validation schema to check config: {str(exc)}"
        ) from exc
    try:
        validator(copy.deepcopy(dict(config)))
    except fastjsonschema.JsonSchemaValueException as exc:
        message = _print_validation_fail_reason(exc)
        logger.debug(f"Configuration validation failed: {exc}")
        raise EFIKeysInvalidConfigError(f"Configuration validation failed: {message}") from exc
