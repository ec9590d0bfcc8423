#!/usr/bin/env python
# -*- coding: UTF-8 -*-
#
# Copyright 2024-2025 NXP
#
# SPDX-License-Identifier: BSD-3-Clause

import os

from setuptools import find_packages, setup  # type: ignore

with open("requirements.txt") as req_file:
    requirements = req_file.read().splitlines()

with open("requirements-develop.txt") as req_file:
    develop_requirements = [
        line for line in req_file.read().splitlines() if line and not line.startswith("-r")
    ]

with open("README.md", "r") as f:
    long_description = f.read()

version: dict = {}
with open(os.path.join("efikeys", "__version__.py")) as f:
    exec(f.read(), version)  # pylint: disable=exec-used

setup(
    name="efikeys",
    version=version["__version__"],
    description="UEFI Secure Boot key lifecycle management",
    author="NXP",
    license="BSD-3-Clause",
    long_description=long_description,
    long_description_content_type="text/markdown",
    platforms="Linux",
    python_requires=">=3.9",
    install_requires=requirements,
    extras_require={"test": develop_requirements},
    include_package_data=True,
    package_data={"efikeys": ["data/*.yaml"]},
    classifiers=[
        "Development Status :: 4 - Beta",
        "Programming Language :: Python :: 3 :: Only",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Operating System :: POSIX :: Linux",
        "License :: OSI Approved :: BSD License",
        "Topic :: Security :: Cryptography",
        "Topic :: System :: Boot",
        "Topic :: Utilities",
    ],
    packages=find_packages(exclude=["tests.*", "tests"]),
    entry_points={
        "console_scripts": [
            "efikeys=efikeys.apps.efikeys:safe_main",
        ],
    },
)
