# socit/services/soc_controller.py

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone, tzinfo
from typing import Callable, Optional

from socit.config import InverterConfig
from socit.models.updates import SocUpdate
from socit.services import simulator
from socit.services.inverter import Inverter, to_local
from socit.services.monitoring import Monitor, publish
from socit.services.orchestrator import Controller
from socit.services.outage_state import OutageStateStore
from socit.services.programs import clamp_soc


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SocController(Controller):
    """Keeps the inverter's minimum SoC high enough to ride out the next outage."""

    name = "soc"

    def __init__(
        self,
        config: InverterConfig,
        store: OutageStateStore,
        *,
        interval: float = 60.0,
        tz: Optional[tzinfo] = None,
        clock: Optional[Callable[[], datetime]] = None,
        log: Optional[logging.Logger] = None,
    ):
        self.config = config
        self.store = store
        self.interval = interval
        self.tz = tz
        self.clock = clock or utc_now
        self.log = log or logging.getLogger("socit.soc")

    async def update(self, device: Inverter, monitor: Monitor) -> None:
        now = self.clock()
        now_local = to_local(now, self.tz)
        self.log.info("Setting inverter time to %s", now_local.replace(microsecond=0))
        await device.set_clock(now)
        info = await device.get_info()

        snapshot = self.store.current(now)
        started = time.perf_counter()
        bounds = simulator.target_soc_bounds(self.config, snapshot, info, now)
        self.log.info(
            "Target SoC range is %s-%s (alarm %s), computed in %.3f s",
            bounds.low,
            bounds.high,
            bounds.alarm,
            time.perf_counter() - started,
        )

        current_soc = await device.get_soc()
        target = clamp_soc(current_soc, bounds.low, bounds.high)
        programs = await device.set_min_soc(target, self.config.fallback_soc, now_local)
        for i, program in enumerate(programs, start=1):
            self.log.info("Setting program %d to %s: %d", i, program.time.strftime("%H:%M"), program.soc)

        update = SocUpdate(
            time=now,
            target_soc_low=float(bounds.low),
            target_soc_high=float(bounds.high),
            alarm_soc=float(bounds.alarm),
            current_soc=float(current_soc),
            predicted_pv=simulator.predicted_pv(self.config, now),
            is_loadshedding=simulator.is_loadshedding(snapshot, now),
            next_change=simulator.next_change(snapshot, now),
        )
        await publish(monitor.soc_update, update, self.log)

    async def shutdown(self, device: Inverter) -> None:
        fallback = self.config.fallback_soc
        self.log.info("Shutting down, setting minimum SoC to %s", fallback)
        await device.set_min_soc(fallback, fallback, to_local(self.clock(), self.tz))
