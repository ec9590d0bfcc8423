#!/usr/bin/env python
# -*- coding: UTF-8 -*-
#
# Copyright 2024-2025 NXP
#
# SPDX-License-Identifier: BSD-3-Clause

"""Well-known EFI GUIDs used by Secure Boot variables and signature lists.

GUIDs are serialized in the mixed-endian EFI layout (``uuid.UUID.bytes_le``).
"""

from uuid import UUID

GUID_SIZE = 16

# variable vendor GUIDs
EFI_GLOBAL_VARIABLE_GUID = UUID("8be4df61-93ca-11d2-aa0d-00e098032b8c")
EFI_IMAGE_SECURITY_DATABASE_GUID = UUID("d719b2cb-3d3a-4596-a3bc-dad00e67656f")

# signature types
EFI_CERT_X509_GUID = UUID("a5c059a1-94e4-4aa7-87b5-ab155c2bf072")
EFI_CERT_SHA256_GUID = UUID("c1c41626-504c-4092-aca9-41f936934328")

# WIN_CERTIFICATE_UEFI_GUID certificate type
EFI_CERT_TYPE_PKCS7_GUID = UUID("4aafd29d-68df-49ee-8aa9-347d375665a7")

# owner of Microsoft supplied certificates
MICROSOFT_OWNER_GUID = UUID("77fa9abd-0359-4d32-bd60-28f4e78f784b")


def guid_to_bytes(guid: UUID) -> bytes:
    """Serialize GUID into EFI binary layout."""
    return guid.bytes_le


def guid_from_bytes(data: bytes, offset: int = 0) -> UUID:
    """Deserialize GUID from EFI binary layout.

    :param data: Binary data
    :param offset: Offset of the GUID in data
    :return: Parsed GUID
    """
    return UUID(bytes_le=bytes(data[offset : offset + GUID_SIZE]))
