# socit/services/outage_state.py

from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Optional

from socit.models.outage import OutageSnapshot


class OutageStateStore:
    """
    Holds the latest outage forecast shared between the poller and the controllers.

    There is a single writer (the poller) and any number of readers. The lock
    is held only to swap or fetch the reference; snapshots are immutable, so
    readers work on what they got without holding the lock.
    """

    def __init__(self, staleness: timedelta = timedelta(hours=4)):
        self.staleness = staleness
        self._lock = threading.Lock()
        self._snapshot: Optional[OutageSnapshot] = None

    def publish(self, snapshot: OutageSnapshot) -> None:
        with self._lock:
            self._snapshot = snapshot

    def latest(self) -> Optional[OutageSnapshot]:
        with self._lock:
            return self._snapshot

    def current(self, now: datetime) -> Optional[OutageSnapshot]:
        """The latest snapshot, or None if there is none or it is too old."""
        snapshot = self.latest()
        if snapshot is None or now - snapshot.fetched_at > self.staleness:
            return None
        return snapshot
