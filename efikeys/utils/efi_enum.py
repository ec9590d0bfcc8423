#!/usr/bin/env python
# -*- coding: UTF-8 -*-
#
# Copyright 2024-2025 NXP
#
# SPDX-License-Identifier: BSD-3-Clause

"""EFIKeys enumeration with tag, label and description for every member."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from typing_extensions import Self

from efikeys.exceptions import EFIKeysKeyError, EFIKeysTypeError


@dataclass(frozen=True)
class EfiEnumMember:
    """EFIKeys Enum member representation."""

    tag: int
    label: str
    description: Optional[str] = None


class EfiEnum(EfiEnumMember, Enum):
    """EFIKeys enhanced enumeration.

    Members compare equal to both their tag and their label, which lets values read
    from configuration files or firmware be compared directly with the members.
    """

    def __eq__(self, __value: object) -> bool:
        """Check equality of enum value with tag, label or another member.

        :param __value: Object to compare with this enum value.
        :return: True if the object equals tag or label, False otherwise.
        """
        if isinstance(__value, EfiEnumMember):
            return self.tag == __value.tag and self.label == __value.label
        return self.tag == __value or self.label == __value

    def __hash__(self) -> int:
        return hash((self.tag, self.label, self.description))

    @classmethod
    def labels(cls) -> list[str]:
        """Get list of labels of all enum members.

        :return: List of all labels.
        """
        return [value.label for value in cls.__members__.values()]

    @classmethod
    def tags(cls) -> list[int]:
        """Get list of tags of all enum members.

        :return: List of all tags.
        """
        return [value.tag for value in cls.__members__.values()]

    @classmethod
    def contains(cls, obj: Union[int, str]) -> bool:
        """Check if given member with given tag/label exists in enum.

        :param obj: Label or tag of enum member to check for existence.
        :raises EFIKeysTypeError: Object must be either string or integer.
        :return: True if member exists, False otherwise.
        """
        if not isinstance(obj, (int, str)):
            raise EFIKeysTypeError("Object must be either string or integer")
        try:
            cls.from_attr(obj)
            return True
        except EFIKeysKeyError:
            return False

    @classmethod
    def from_attr(cls, attribute: Union[int, str]) -> Self:
        """Get enum member with given tag/label attribute.

        :param attribute: Tag value (int) or label value (str) of the enum member to find.
        :return: Found enum member matching the given attribute.
        """
        if isinstance(attribute, int):
            return cls.from_tag(attribute)
        return cls.from_label(attribute)

    @classmethod
    def from_tag(cls, tag: int) -> Self:
        """Get enum member with given tag.

        :param tag: Tag to be used for searching
        :raises EFIKeysKeyError: If enum with given tag is not found
        :return: Found enum member
        """
        for item in cls.__members__.values():
            if item.tag == tag:
                return item
        raise EFIKeysKeyError(f"There is no {cls.__name__} item in with tag {tag} defined")

    @classmethod
    def from_label(cls, label: str) -> Self:
        """Get enum member with given label, case-insensitive.

        :param label: Label to be used for searching
        :raises EFIKeysKeyError: If enum with given label is not found or label is not string
        :return: Found enum member
        """
        if not isinstance(label, str):
            raise EFIKeysKeyError("Label must be string")
        for item in cls.__members__.values():
            if item.label.upper() == label.upper():
                return item
        raise EFIKeysKeyError(f"There is no {cls.__name__} item with label {label} defined")
