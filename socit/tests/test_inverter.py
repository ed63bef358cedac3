# socit/tests/test_inverter.py

import asyncio
from datetime import datetime, time, timedelta, timezone

import pytest

from socit.models.inverter import ProgramEntry
from socit.services import registers as regs
from socit.services.inverter import DryRunInverter, SunsynkInverter, to_local
from socit.services.modbus_client import RobustModbusClient
from socit.tests.fake_inverter import ClientFactory, FakeModbusClient


def _inverter(registers=None, tz=timezone(timedelta(hours=2))):
    fake = FakeModbusClient(registers)
    client = RobustModbusClient("127.0.0.1:502", client_factory=ClientFactory(fake))
    asyncio.run(client.connect())
    return SunsynkInverter(client, tz=tz), fake


def test_battery_info_from_registers():
    inverter, _ = _inverter({
        regs.REG_BATTERY_CAPACITY_AH: 100,
        regs.REG_BATTERY_RESTART_VOLTAGE: 5200,
        regs.REG_GRID_CHARGE_CURRENT: 40,
        regs.REG_SOC: 63,
    })
    info = asyncio.run(inverter.get_info())
    assert info.capacity == pytest.approx(5200.0)
    assert info.max_charge_power == pytest.approx(2080.0)
    assert asyncio.run(inverter.get_soc()) == 63.0


def test_clock_is_written_in_local_time():
    inverter, fake = _inverter()
    asyncio.run(inverter.set_clock(datetime(2024, 3, 1, 22, 30, 5, tzinfo=timezone.utc)))
    assert fake.writes == [(regs.REG_CLOCK, regs.encode_clock(datetime(2024, 3, 2, 0, 30, 5)))]
    assert asyncio.run(inverter.get_clock()) == datetime(2024, 3, 2, 0, 30, 5)


def test_programs_written_and_read_back():
    inverter, fake = _inverter()
    programs = [ProgramEntry(time(h, 5 * h), 20 + h) for h in range(6)]
    asyncio.run(inverter.set_programs(programs))

    assert [addr for addr, _ in fake.writes] == [regs.REG_PROGRAM_TIME, regs.REG_PROGRAM_SOC]
    assert asyncio.run(inverter.get_programs()) == programs


def test_set_programs_rejects_wrong_length():
    inverter, _ = _inverter()
    with pytest.raises(ValueError):
        asyncio.run(inverter.set_programs([ProgramEntry(time(0, 0), 50)]))


def test_invalid_program_time_reads_as_midnight():
    inverter, _ = _inverter({regs.REG_PROGRAM_TIME: 2599, regs.REG_PROGRAM_SOC: 30})
    programs = asyncio.run(inverter.get_programs())
    assert programs[0] == ProgramEntry(time(0, 0), 30)


def test_set_min_soc_writes_current_block():
    inverter, fake = _inverter()
    programs = asyncio.run(inverter.set_min_soc(64, 40, datetime(2024, 3, 1, 14, 37, 12)))
    assert programs[0] == ProgramEntry(time(14, 25), 64)
    assert all(p.soc == 40 for p in programs[1:])
    assert fake.registers[regs.REG_PROGRAM_SOC] == 64


def test_coil_info_is_signed():
    inverter, _ = _inverter({
        regs.REG_GRID_CT_POWER: 0x10000 - 350,
        regs.REG_INVERTER_GRID_POWER: 120,
        regs.REG_SYSTEM_MODE: regs.MODE_ZERO_EXPORT_TO_CT,
    })
    info = asyncio.run(inverter.get_coil_info())
    assert info.coil_power == -350.0
    assert info.inverter_power == 120.0
    assert info.coil_active


def test_trickle_register():
    inverter, fake = _inverter()
    asyncio.run(inverter.set_trickle(347.0))
    assert fake.writes == [(regs.REG_ZERO_EXPORT_POWER, [350, 0])]


def test_dry_run_reads_but_never_writes():
    inverter, fake = _inverter({regs.REG_SOC: 55})
    dry = DryRunInverter(inverter)

    async def run():
        await dry.set_clock(datetime(2024, 1, 1, tzinfo=timezone.utc))
        await dry.set_min_soc(70, 50, datetime(2024, 1, 1, 12, 0))
        await dry.set_trickle(200.0)
        return await dry.get_soc()

    assert asyncio.run(run()) == 55.0
    assert fake.writes == []
    assert dry.num_programs == regs.NUM_PROGRAMS


def test_to_local_drops_tzinfo():
    when = datetime(2024, 6, 1, 23, 0, tzinfo=timezone.utc)
    assert to_local(when, timezone(timedelta(hours=2))) == datetime(2024, 6, 2, 1, 0)
