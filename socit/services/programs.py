# socit/services/programs.py
from __future__ import annotations

from datetime import datetime, timedelta

from socit.models.inverter import ProgramEntry

PROGRAM_STEP = timedelta(minutes=5)


def round_soc(soc: float) -> int:
    """Round a state of charge to an integer percentage in [0, 100]."""
    if soc < 0:
        return 0
    if soc >= 100:
        return 100
    return int(soc + 0.5)


def clamp_soc(current: float, low: float, high: float) -> float:
    """Keep ``current`` if it lies within [low, high], else the nearest bound."""
    return min(max(current, low), high)


def round_to_step(dt: datetime, step: timedelta) -> datetime:
    """Round ``dt`` to the nearest multiple of ``step`` since midnight (halves round up)."""
    midnight = dt.replace(hour=0, minute=0, second=0, microsecond=0)
    offset = dt - midnight
    steps = (offset + step / 2) // step
    return midnight + steps * step


def make_programs(
    target: float,
    fallback: float,
    now_local: datetime,
    num_programs: int,
) -> list[ProgramEntry]:
    """Build a program table that applies ``target`` around ``now_local``.

    The inverter truncates program start times to 5 minutes, so the target is
    placed in a 20 minute window around the current time and every other
    block gets ``fallback``. The table is rotated if it wraps past midnight so
    that start times stay sorted.
    """
    if num_programs < 2:
        raise ValueError(f"At least two program blocks are required (got {num_programs})")
    target_soc = round_soc(target)
    fallback_soc = round_soc(fallback)

    first = round_to_step(now_local - 2 * PROGRAM_STEP, PROGRAM_STEP)
    second = round_to_step(now_local + 2 * PROGRAM_STEP, PROGRAM_STEP)
    times = [first.time()]
    times.extend((second + k * PROGRAM_STEP).time() for k in range(num_programs - 1))

    programs = [
        ProgramEntry(time=t, soc=target_soc if i == 0 else fallback_soc)
        for i, t in enumerate(times)
    ]

    for i in range(1, num_programs):
        if programs[i].time < programs[i - 1].time:
            programs = programs[i:] + programs[:i]
            break
    return programs
