# socit/models/outage.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class OutageEvent:
    start: datetime
    end: datetime  # exclusive
    note: str = ""

    def contains(self, when: datetime) -> bool:
        return self.start <= when < self.end


@dataclass(frozen=True)
class OutageSnapshot:
    events: tuple[OutageEvent, ...]
    fetched_at: datetime

    def sorted_events(self) -> list[OutageEvent]:
        return sorted(self.events, key=lambda ev: ev.start)
