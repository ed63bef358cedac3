# socit/models/updates.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class SocUpdate:
    time: datetime
    target_soc_low: float
    target_soc_high: float
    alarm_soc: float
    current_soc: float
    predicted_pv: float  # W
    is_loadshedding: bool
    next_change: datetime | None


@dataclass(frozen=True)
class CoilUpdate:
    time: datetime
    active: bool
    target: float | None   # W
    setting: float | None  # W
