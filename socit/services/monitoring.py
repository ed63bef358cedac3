# socit/services/monitoring.py

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, is_dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable, List, Optional, TypeVar

import requests

from socit.config import Influxdb2Config
from socit.models.updates import CoilUpdate, SocUpdate

U = TypeVar("U")


class Monitor(ABC):
    """Receives one record per control cycle."""

    @abstractmethod
    async def soc_update(self, update: SocUpdate) -> None: ...

    @abstractmethod
    async def coil_update(self, update: CoilUpdate) -> None: ...


class NullMonitor(Monitor):
    async def soc_update(self, update: SocUpdate) -> None:
        return None

    async def coil_update(self, update: CoilUpdate) -> None:
        return None


class FanoutMonitor(Monitor):
    """Forwards every update to each monitor; one failing does not stop the others."""

    def __init__(self, monitors: Iterable[Monitor], log: Optional[logging.Logger] = None):
        self.monitors: List[Monitor] = list(monitors)
        self.log = log or logging.getLogger("socit.monitoring")

    async def soc_update(self, update: SocUpdate) -> None:
        for monitor in self.monitors:
            await publish(monitor.soc_update, update, self.log)

    async def coil_update(self, update: CoilUpdate) -> None:
        for monitor in self.monitors:
            await publish(monitor.coil_update, update, self.log)


async def publish(send: Callable[[U], Awaitable[None]], update: U, log: logging.Logger) -> None:
    """Deliver ``update`` best-effort: failures are logged and dropped."""
    try:
        await send(update)
    except Exception as exc:
        log.warning("Failed to send %s to monitoring: %s", type(update).__name__, exc)


# ============================================================================
# JSONL
# ============================================================================

def _to_jsonable(obj: Any) -> Any:
    """Best-effort conversion to JSON-safe structures."""
    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj
    if isinstance(obj, datetime):
        return obj.isoformat()
    if is_dataclass(obj):
        return _to_jsonable(asdict(obj))
    if isinstance(obj, dict):
        return {k: _to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_to_jsonable(x) for x in obj]
    return str(obj)


class JsonlMonitor(Monitor):
    """Appends each update as one JSON line, tagged with its kind."""

    def __init__(self, path: str):
        self.path = Path(path).expanduser()
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def _append(self, kind: str, update: Any) -> None:
        payload = {"kind": kind, **_to_jsonable(update)}
        with self.path.open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(payload, default=str) + "\n")

    async def soc_update(self, update: SocUpdate) -> None:
        await asyncio.to_thread(self._append, "soc", update)

    async def coil_update(self, update: CoilUpdate) -> None:
        await asyncio.to_thread(self._append, "coil", update)


# ============================================================================
# InfluxDB 2 (line protocol over HTTP)
# ============================================================================

def _escape_key(text: str) -> str:
    return text.replace("\\", "\\\\").replace(",", "\\,").replace("=", "\\=").replace(" ", "\\ ")


def _format_field(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return f"{value}i"
    if isinstance(value, float):
        return repr(value)
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def line_protocol(measurement: str, fields: dict[str, Any], when: datetime) -> str:
    """One InfluxDB line-protocol point at second precision."""
    body = ",".join(
        f"{_escape_key(k)}={_format_field(v)}" for k, v in fields.items() if v is not None
    )
    return f"{_escape_key(measurement)} {body} {int(when.timestamp())}"


def soc_line(update: SocUpdate) -> str:
    fields: dict[str, Any] = {
        "target_soc_low": float(update.target_soc_low),
        "target_soc_high": float(update.target_soc_high),
        "alarm_soc": float(update.alarm_soc),
        "current_soc": float(update.current_soc),
        "predicted_pv": float(update.predicted_pv),
        "is_loadshedding": update.is_loadshedding,
    }
    if update.next_change is not None:
        fields["next_change_seconds"] = (update.next_change - update.time).total_seconds()
    return line_protocol("socit", fields, update.time)


def coil_line(update: CoilUpdate) -> str:
    fields: dict[str, Any] = {
        "active": update.active,
        "target": float(update.target) if update.target is not None else None,
        "setting": float(update.setting) if update.setting is not None else None,
    }
    return line_protocol("socit-coil", fields, update.time)


class InfluxMonitor(Monitor):
    """Writes updates to an InfluxDB 2 bucket through the HTTP write API."""

    def __init__(
        self,
        cfg: Influxdb2Config,
        log: Optional[logging.Logger] = None,
        session: Optional[requests.Session] = None,
    ):
        if not (cfg.host and cfg.org and cfg.bucket):
            raise ValueError("[influxdb2] requires host, org and bucket")
        self.cfg = cfg
        self.log = log or logging.getLogger("socit.monitoring")
        self.session = session or requests.Session()
        self.url = f"{cfg.host.rstrip('/')}/api/v2/write"

    def _write(self, line: str) -> None:
        resp = self.session.post(
            self.url,
            params={"org": self.cfg.org, "bucket": self.cfg.bucket, "precision": "s"},
            headers={
                "Authorization": f"Token {self.cfg.token or ''}",
                "Content-Type": "text/plain; charset=utf-8",
            },
            data=line.encode("utf-8"),
            timeout=self.cfg.timeout,
        )
        resp.raise_for_status()

    def check_health(self) -> None:
        """Log whether the server reports itself healthy; never raises."""
        try:
            resp = self.session.get(f"{self.cfg.host.rstrip('/')}/health", timeout=self.cfg.timeout)
            status = resp.json().get("status")
        except Exception as exc:
            self.log.warning("Could not connect to InfluxDB server: %s", exc)
            return
        if status == "fail":
            self.log.warning("InfluxDB server is unhealthy")
        else:
            self.log.info("Connected to InfluxDB server at %s", self.cfg.host)

    async def soc_update(self, update: SocUpdate) -> None:
        await asyncio.to_thread(self._write, soc_line(update))

    async def coil_update(self, update: CoilUpdate) -> None:
        await asyncio.to_thread(self._write, coil_line(update))
