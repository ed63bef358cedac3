# socit/services/simulator.py
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Sequence

from socit.config import InverterConfig
from socit.models.inverter import BatteryInfo
from socit.models.outage import OutageEvent, OutageSnapshot
from socit.services.programs import round_soc
from socit.services.sun import array_power

log = logging.getLogger("socit.simulator")

STEP = timedelta(seconds=60)
HORIZON = timedelta(hours=24)


class SimulationMode(enum.Enum):
    """How net power is applied while the grid is available.

    DRAIN applies it as computed, giving the highest acceptable target.
    HOLD assumes the grid covers any deficit, giving the lowest acceptable target.
    CHARGE assumes the battery charges at full rate, giving the alarm level.
    """

    DRAIN = "drain"
    HOLD = "hold"
    CHARGE = "charge"


@dataclass(frozen=True)
class SocBounds:
    low: float
    high: float
    alarm: float


def _hours(delta: timedelta) -> float:
    return delta.total_seconds() / 3600.0


def charge_rate(config: InverterConfig, info: BatteryInfo) -> float:
    rate = info.max_charge_power
    if config.charge_power is not None:
        rate = min(rate, config.charge_power)
    return rate


def solar_profile(config: InverterConfig, now: datetime) -> list[float]:
    """Expected PV power (W) at the midpoint of every simulation step."""
    steps = int(HORIZON / STEP)
    return [
        array_power(config.panels, now + i * STEP + STEP / 2, config.charge_power)
        for i in range(steps)
    ]


def simulate(
    config: InverterConfig,
    snapshot: OutageSnapshot,
    info: BatteryInfo,
    now: datetime,
    mode: SimulationMode,
    solar: Optional[Sequence[float]] = None,
) -> tuple[int, datetime]:
    """Project the battery level 24 hours ahead and return (target SoC, time of worst case).

    Energy is tracked relative to the level at ``now``. Whenever a step falls
    inside an outage, the level at the end of that outage is checked using
    the pessimistic ``max_discharge_power``.
    """
    if solar is None:
        solar = solar_profile(config, now)
    events: list[OutageEvent] = snapshot.sorted_events()
    step_h = _hours(STEP)
    depth = info.capacity - config.min_soc * 0.01 * info.capacity
    forced_charge = charge_rate(config, info)

    base_wh = 0.0
    worst = 0.0
    worst_time = now
    floor = -depth

    def observe(wh: float, when: datetime) -> None:
        nonlocal worst, worst_time
        if wh < worst:
            worst = wh
            worst_time = when

    t = now
    for pv in solar:
        have_grid = True
        for event in events:
            if event.start > t:
                break
            if event.contains(t):
                have_grid = False
                end_wh = base_wh - config.max_discharge_power * _hours(event.end - t)
                observe(max(end_wh, floor), t)

        power = pv - config.min_discharge_power
        if have_grid:
            if mode is SimulationMode.HOLD:
                power = max(power, 0.0)
            elif mode is SimulationMode.CHARGE:
                power = forced_charge
        base_wh += power * step_h
        t += STEP

        floor = max(floor, base_wh - depth)
        observe(max(base_wh, floor), t)

    target = round_soc(config.min_soc - worst / info.capacity * 100.0)
    return target, worst_time


def target_soc_bounds(
    config: InverterConfig,
    snapshot: Optional[OutageSnapshot],
    info: BatteryInfo,
    now: datetime,
) -> SocBounds:
    """Run the simulator in each mode; fall back when there is no usable forecast."""
    if snapshot is None:
        log.info("No current load-shedding data; using fallback SoC %s", config.fallback_soc)
        return SocBounds(config.fallback_soc, config.fallback_soc, config.min_soc)
    if info.capacity <= 0:
        log.warning("Battery capacity reported as %s Wh; using fallback SoC", info.capacity)
        return SocBounds(config.fallback_soc, config.fallback_soc, config.min_soc)

    for event in snapshot.sorted_events():
        log.info("Load-shedding from %s to %s", event.start, event.end)

    solar = solar_profile(config, now)
    results = {}
    for mode in SimulationMode:
        target, worst_time = simulate(config, snapshot, info, now, mode, solar)
        log.debug("Simulation %s: target %d%% (worst case at %s)", mode.value, target, worst_time)
        results[mode] = target
    return SocBounds(
        low=results[SimulationMode.HOLD],
        high=results[SimulationMode.DRAIN],
        alarm=results[SimulationMode.CHARGE],
    )


def predicted_pv(config: InverterConfig, now: datetime) -> float:
    return array_power(config.panels, now, config.charge_power)


def is_loadshedding(snapshot: Optional[OutageSnapshot], now: datetime) -> bool:
    if snapshot is None:
        return False
    return any(event.contains(now) for event in snapshot.events)


def next_change(snapshot: Optional[OutageSnapshot], now: datetime) -> Optional[datetime]:
    """Earliest outage start or end strictly after ``now``."""
    if snapshot is None:
        return None
    boundaries = [
        edge
        for event in snapshot.events
        for edge in (event.start, event.end)
        if edge > now
    ]
    return min(boundaries, default=None)
