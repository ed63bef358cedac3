# socit/services/coil_controller.py

from __future__ import annotations

import logging
from collections import deque
from datetime import datetime, timezone
from typing import Callable, Deque, Optional

from socit.config import CoilConfig
from socit.models.inverter import CoilInfo
from socit.models.updates import CoilUpdate
from socit.services.inverter import Inverter
from socit.services.monitoring import Monitor, publish
from socit.services.orchestrator import Controller


class CoilController(Controller):
    """
    Trickle-charge control driven by the external CT coil.

    Each cycle records the effective net export (coil power minus inverter
    power). Readings larger than ``max_power`` are treated as measurement
    glitches and stored as missing. The setpoint follows the window mean,
    but only when the window is full with no gaps, and only when it has
    moved by at least ``hysteresis`` watts.
    """

    name = "coil"

    def __init__(
        self,
        cfg: CoilConfig,
        *,
        clock: Optional[Callable[[], datetime]] = None,
        log: Optional[logging.Logger] = None,
    ):
        if cfg.window < 1:
            raise ValueError("[coil] window must be at least 1")
        self.cfg = cfg
        self.interval = cfg.interval_seconds
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.log = log or logging.getLogger("socit.coil")
        self.samples: Deque[Optional[float]] = deque(maxlen=cfg.window)
        self.setting: Optional[float] = None

    def record(self, info: CoilInfo) -> None:
        value = info.coil_power - info.inverter_power
        if abs(value) > self.cfg.max_power:
            self.log.debug("Discarding implausible coil reading %.0f W", value)
            self.samples.append(None)
        else:
            self.samples.append(value)

    def target(self) -> Optional[float]:
        """Mean of the window, or None until it is full and complete."""
        if len(self.samples) < self.samples.maxlen:
            return None
        if any(sample is None for sample in self.samples):
            return None
        return sum(self.samples) / len(self.samples)

    async def update(self, device: Inverter, monitor: Monitor) -> None:
        now = self.clock()
        info = await device.get_coil_info()
        self.record(info)
        target = self.target()

        if info.coil_active and target is not None:
            if self.setting is None or abs(target - self.setting) >= self.cfg.hysteresis:
                self.log.info("Setting trickle power to %.0f W", target)
                await device.set_trickle(target)
                self.setting = target

        update = CoilUpdate(
            time=now,
            active=info.coil_active,
            target=target,
            setting=self.setting,
        )
        await publish(monitor.coil_update, update, self.log)
