#!/usr/bin/env python
# -*- coding: UTF-8 -*-
#
# Copyright 2024-2025 NXP
#
# SPDX-License-Identifier: BSD-3-Clause

"""EFIKeys cryptographic operations module.

Thin wrappers over the cryptography and asn1crypto libraries covering what the
Secure Boot hierarchy needs: RSA keys, self-signed X.509 certificates and PKCS#7
signatures of authenticated variables.
"""
