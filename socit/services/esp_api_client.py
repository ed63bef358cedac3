# socit/services/esp_api_client.py

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import requests

from socit.config import EspConfig
from socit.models.outage import OutageEvent, OutageSnapshot


class OutageFeedError(Exception):
    """The outage schedule could not be fetched or understood."""


def _parse_instant(raw: Any) -> datetime:
    if not isinstance(raw, str) or not raw.strip():
        raise ValueError(f"invalid timestamp {raw!r}")
    text = raw.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        raise ValueError(f"timestamp {raw!r} has no UTC offset")
    return dt.astimezone(timezone.utc)


def parse_events(payload: Any) -> List[OutageEvent]:
    if not isinstance(payload, dict):
        raise OutageFeedError("response is not a JSON object")
    raw_events = payload.get("events")
    if not isinstance(raw_events, list):
        raise OutageFeedError("response has no 'events' list")

    events: List[OutageEvent] = []
    for entry in raw_events:
        if not isinstance(entry, dict):
            raise OutageFeedError(f"unexpected event entry {entry!r}")
        try:
            start = _parse_instant(entry.get("start"))
            end = _parse_instant(entry.get("end"))
        except ValueError as exc:
            raise OutageFeedError(f"bad event times: {exc}") from exc
        events.append(OutageEvent(start=start, end=end, note=str(entry.get("note") or "")))
    return events


class EspApiClient:
    """Minimal EskomSePush business API wrapper for area load-shedding events."""

    API_BASE_DEFAULT = "https://developer.sepush.co.za/business/2.0"

    def __init__(
        self,
        cfg: EspConfig,
        log,
        session: Optional[requests.Session] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.cfg = cfg
        self.log = log
        self.session = session or requests.Session()
        self.base_url = (cfg.base_url or self.API_BASE_DEFAULT).rstrip("/")
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ------------------------------------------------------------------
    @property
    def enabled(self) -> bool:
        return bool(self.cfg.enabled and self.cfg.api_key and self.cfg.area)

    # ------------------------------------------------------------------
    def fetch_area(self, area_id: str) -> OutageSnapshot:
        params: Dict[str, Any] = {"id": area_id}
        if self.cfg.test_mode:
            params["test"] = self.cfg.test_mode
        url = f"{self.base_url}/area"

        try:
            resp = self.session.get(
                url,
                params=params,
                headers={"Token": self.cfg.api_key or ""},
                timeout=self.cfg.timeout,
            )
        except requests.RequestException as exc:
            raise OutageFeedError(f"request failed: {exc}") from exc

        if resp.status_code != 200:
            raise OutageFeedError(f"HTTP {resp.status_code} from {url}")

        try:
            data = resp.json()
        except ValueError as exc:
            raise OutageFeedError("non-JSON payload") from exc

        events = parse_events(data)
        return OutageSnapshot(events=tuple(events), fetched_at=self._clock())
