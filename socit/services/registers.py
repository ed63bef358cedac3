# socit/services/registers.py
"""Holding-register layout and encodings for Sunsynk/Deye hybrid inverters."""

from __future__ import annotations

import math
from datetime import datetime, time
from typing import Optional, Sequence

NUM_PROGRAMS = 6

REG_CLOCK = 22
REG_ZERO_EXPORT_POWER = 104  # 2 registers, second reserved
REG_SYSTEM_MODE = 142
REG_INVERTER_GRID_POWER = 167
REG_GRID_CT_POWER = 172
REG_SOC = 184
REG_BATTERY_CAPACITY_AH = 204
REG_BATTERY_RESTART_VOLTAGE = 221
REG_GRID_CHARGE_CURRENT = 230
REG_PROGRAM_TIME = 250
REG_PROGRAM_SOC = 268

# System mode (limit control) values
MODE_SELLING_FIRST = 0
MODE_ZERO_EXPORT_TO_LOAD = 1
MODE_ZERO_EXPORT_TO_CT = 2

TRICKLE_MAX_W = 32760


def to_signed16(raw: int) -> int:
    raw &= 0xFFFF
    return raw - 0x10000 if raw & 0x8000 else raw


def encode_clock(dt: datetime) -> list[int]:
    """Encode a local wall-clock time into the three clock registers."""
    return [
        ((dt.year - 2000) << 8) | dt.month,
        (dt.day << 8) | dt.hour,
        (dt.minute << 8) | dt.second,
    ]


def decode_clock(words: Sequence[int]) -> Optional[datetime]:
    """Decode the clock registers; returns None if they do not form a valid time."""
    if len(words) < 3:
        return None
    try:
        return datetime(
            2000 + (words[0] >> 8),
            words[0] & 0xFF,
            words[1] >> 8,
            words[1] & 0xFF,
            words[2] >> 8,
            words[2] & 0xFF,
        )
    except ValueError:
        return None


def encode_time(t: time) -> int:
    """Time of day as hours * 100 + minutes (seconds are dropped)."""
    return t.hour * 100 + t.minute


def decode_time(raw: int) -> Optional[time]:
    hour, minute = divmod(raw, 100)
    try:
        return time(hour, minute)
    except ValueError:
        return None


def encode_trickle(watts: float) -> list[int]:
    """Trickle setpoint rounded to the nearest 10 W and clamped to the register range."""
    value = int(math.floor(watts / 10.0 + 0.5)) * 10
    value = max(0, min(TRICKLE_MAX_W, value))
    return [value, 0]
