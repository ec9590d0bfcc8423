#!/usr/bin/env python
# -*- coding: UTF-8 -*-
#
# Copyright 2024-2025 NXP
#
# SPDX-License-Identifier: BSD-3-Clause

"""EFI_TIME structure used as the timestamp of authenticated variables."""

from datetime import datetime, timezone
from struct import calcsize, pack, unpack_from

from typing_extensions import Self

from efikeys.exceptions import EFIKeysParsingError


class EfiTime:
    """EFI_TIME structure.

    For time based authenticated variables only the date and time fields are used;
    nanosecond, time zone and daylight fields are zero.
    """

    FORMAT = "<HBBBBBBIhBB"
    SIZE = calcsize(FORMAT)

    def __init__(self, timestamp: datetime) -> None:
        """Constructor.

        :param timestamp: Timestamp; naive values are treated as UTC, sub-second part is dropped
        """
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        self.timestamp = timestamp.astimezone(timezone.utc).replace(microsecond=0)

    @classmethod
    def now(cls) -> Self:
        """Current UTC time."""
        return cls(datetime.now(timezone.utc))

    def export(self) -> bytes:
        """Serialize into binary form."""
        ts = self.timestamp
        return pack(
            self.FORMAT, ts.year, ts.month, ts.day, ts.hour, ts.minute, ts.second, 0, 0, 0, 0, 0
        )

    @classmethod
    def parse(cls, data: bytes, offset: int = 0) -> Self:
        """Parse EFI_TIME from binary data.

        :param data: Binary data
        :param offset: Offset of the structure
        :raises EFIKeysParsingError: Data too short or the fields are not a valid date
        :return: Parsed time
        """
        if len(data) < offset + cls.SIZE:
            raise EFIKeysParsingError("Insufficient data for EFI_TIME")
        year, month, day, hour, minute, second, _, _, _, _, _ = unpack_from(
            cls.FORMAT, data, offset
        )
        try:
            return cls(datetime(year, month, day, hour, minute, second, tzinfo=timezone.utc))
        except ValueError as exc:
            raise EFIKeysParsingError(f"Invalid EFI_TIME value: {str(exc)}") from exc

    def __eq__(self, other: object) -> bool:
        return isinstance(other, EfiTime) and self.timestamp == other.timestamp

    def __lt__(self, other: "EfiTime") -> bool:
        return self.timestamp < other.timestamp

    def __le__(self, other: "EfiTime") -> bool:
        return self.timestamp <= other.timestamp

    def __repr__(self) -> str:
        return f"EfiTime({self.timestamp.isoformat()})"

    def __str__(self) -> str:
        return self.timestamp.strftime("%Y-%m-%d %H:%M:%S UTC")
