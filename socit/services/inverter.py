# socit/services/inverter.py

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, time, tzinfo
from typing import List, Optional, Sequence

from socit.models.inverter import BatteryInfo, CoilInfo, ProgramEntry
from socit.services import registers as regs
from socit.services.modbus_client import RobustModbusClient
from socit.services.programs import make_programs


def to_local(dt: datetime, tz: Optional[tzinfo] = None) -> datetime:
    """Convert an aware datetime to naive local wall-clock time."""
    return dt.astimezone(tz).replace(tzinfo=None)


class Inverter(ABC):
    """Operations the controllers need from an inverter."""

    @property
    @abstractmethod
    def num_programs(self) -> int: ...

    @abstractmethod
    async def get_info(self) -> BatteryInfo: ...

    @abstractmethod
    async def get_soc(self) -> float: ...

    @abstractmethod
    async def get_clock(self) -> Optional[datetime]: ...

    @abstractmethod
    async def set_clock(self, dt: datetime) -> None: ...

    @abstractmethod
    async def get_programs(self) -> List[ProgramEntry]: ...

    @abstractmethod
    async def set_programs(self, programs: Sequence[ProgramEntry]) -> None: ...

    @abstractmethod
    async def get_coil_info(self) -> CoilInfo: ...

    @abstractmethod
    async def set_trickle(self, watts: float) -> None: ...

    async def close(self) -> None:
        return None

    async def set_min_soc(
        self,
        target: float,
        fallback: float,
        now_local: datetime,
    ) -> List[ProgramEntry]:
        """Program ``target`` as the minimum SoC for the current time slot."""
        programs = make_programs(target, fallback, now_local, self.num_programs)
        await self.set_programs(programs)
        return programs


# ============================================================================
# Sunsynk / Deye over Modbus
# ============================================================================

class SunsynkInverter(Inverter):
    """Sunsynk-compatible hybrid inverter reached over Modbus RTU or TCP."""

    def __init__(
        self,
        client: RobustModbusClient,
        log: Optional[logging.Logger] = None,
        *,
        tz: Optional[tzinfo] = None,
    ):
        self.client = client
        self.log = log or logging.getLogger("socit.inverter")
        self.tz = tz

    @property
    def num_programs(self) -> int:
        return regs.NUM_PROGRAMS

    async def _read1(self, addr: int) -> int:
        return (await self.client.read(addr, 1))[0]

    async def get_info(self) -> BatteryInfo:
        capacity_ah = float(await self._read1(regs.REG_BATTERY_CAPACITY_AH))
        # Several voltages are available (shutdown, restart, float...); the
        # restart voltage is a reasonable nominal value.
        voltage = await self._read1(regs.REG_BATTERY_RESTART_VOLTAGE) * 0.01
        charge_current = float(await self._read1(regs.REG_GRID_CHARGE_CURRENT))
        return BatteryInfo(
            capacity=capacity_ah * voltage,
            max_charge_power=charge_current * voltage,
        )

    async def get_soc(self) -> float:
        return float(await self._read1(regs.REG_SOC))

    async def get_clock(self) -> Optional[datetime]:
        return regs.decode_clock(await self.client.read(regs.REG_CLOCK, 3))

    async def set_clock(self, dt: datetime) -> None:
        local = to_local(dt, self.tz)
        await self.client.write(regs.REG_CLOCK, regs.encode_clock(local))

    async def get_programs(self) -> List[ProgramEntry]:
        times = await self.client.read(regs.REG_PROGRAM_TIME, self.num_programs)
        socs = await self.client.read(regs.REG_PROGRAM_SOC, self.num_programs)
        programs = []
        for raw_time, soc in zip(times, socs):
            decoded = regs.decode_time(raw_time)
            if decoded is None:
                self.log.debug("Ignoring invalid program time %d", raw_time)
                decoded = time(0, 0)
            programs.append(ProgramEntry(time=decoded, soc=soc))
        return programs

    async def set_programs(self, programs: Sequence[ProgramEntry]) -> None:
        if len(programs) != self.num_programs:
            raise ValueError(f"Expected {self.num_programs} programs, got {len(programs)}")
        await self.client.write(regs.REG_PROGRAM_TIME, [regs.encode_time(p.time) for p in programs])
        await self.client.write(regs.REG_PROGRAM_SOC, [p.soc for p in programs])

    async def get_coil_info(self) -> CoilInfo:
        coil = regs.to_signed16(await self._read1(regs.REG_GRID_CT_POWER))
        inverter = regs.to_signed16(await self._read1(regs.REG_INVERTER_GRID_POWER))
        mode = await self._read1(regs.REG_SYSTEM_MODE)
        return CoilInfo(
            coil_power=float(coil),
            inverter_power=float(inverter),
            coil_active=mode == regs.MODE_ZERO_EXPORT_TO_CT,
        )

    async def set_trickle(self, watts: float) -> None:
        await self.client.write(regs.REG_ZERO_EXPORT_POWER, regs.encode_trickle(watts))

    async def close(self) -> None:
        self.client.close()


# ============================================================================
# Dry-run wrapper
# ============================================================================

class DryRunInverter(Inverter):
    """Passes reads through to ``inner`` and turns every write into a logged no-op."""

    def __init__(self, inner: Inverter, log: Optional[logging.Logger] = None):
        self.inner = inner
        self.log = log or logging.getLogger("socit.inverter")

    @property
    def num_programs(self) -> int:
        return self.inner.num_programs

    async def get_info(self) -> BatteryInfo:
        return await self.inner.get_info()

    async def get_soc(self) -> float:
        return await self.inner.get_soc()

    async def get_clock(self) -> Optional[datetime]:
        return await self.inner.get_clock()

    async def set_clock(self, dt: datetime) -> None:
        self.log.info("[dry-run] Not setting inverter clock to %s", dt)

    async def get_programs(self) -> List[ProgramEntry]:
        return await self.inner.get_programs()

    async def set_programs(self, programs: Sequence[ProgramEntry]) -> None:
        self.log.info("[dry-run] Not writing %d programs", len(programs))

    async def get_coil_info(self) -> CoilInfo:
        return await self.inner.get_coil_info()

    async def set_trickle(self, watts: float) -> None:
        self.log.info("[dry-run] Not setting trickle power to %.0f W", watts)

    async def close(self) -> None:
        await self.inner.close()
