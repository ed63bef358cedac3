# socit/tests/test_main.py

import asyncio
import json
import logging
from datetime import datetime, time, timezone

from socit.config import (
    AppConfig,
    CoilConfig,
    EspConfig,
    Influxdb2Config,
    InverterConfig,
    LoggingConfig,
    MonitoringConfig,
    SocConfig,
)
from socit.main import build_monitor, emit_status, read_status, run_daemon
from socit.models.inverter import CoilInfo, ProgramEntry
from socit.models.outage import OutageSnapshot
from socit.services.monitoring import JsonlMonitor, NullMonitor
from socit.services.outage_state import OutageStateStore
from socit.tests.fake_inverter import FakeInverter, RecordingMonitor


LOG = logging.getLogger("socit.main-test")


def _app_cfg(**sections):
    base = dict(
        inverter=InverterConfig(
            device="127.0.0.1:502",
            min_soc=20,
            fallback_soc=50,
            min_discharge_power=0.0,
            max_discharge_power=500.0,
        ),
        soc=SocConfig(),
        coil=CoilConfig(),
        esp=EspConfig(),
        influxdb2=Influxdb2Config(),
        monitoring=MonitoringConfig(),
        logging=LoggingConfig(),
    )
    base.update(sections)
    return AppConfig(**base)


class OneShotFeed:
    enabled = True

    def __init__(self):
        self.calls = 0

    def fetch_area(self, area):
        self.calls += 1
        return OutageSnapshot(events=(), fetched_at=datetime.now(timezone.utc))


def test_build_monitor_variants(tmp_path):
    assert isinstance(build_monitor(_app_cfg(), LOG), NullMonitor)

    jsonl = _app_cfg(monitoring=MonitoringConfig(jsonl_path=str(tmp_path / "u.jsonl")))
    assert isinstance(build_monitor(jsonl, LOG), JsonlMonitor)


def test_run_daemon_without_feed_uses_fallback_and_restores_on_exit():
    device = FakeInverter(soc=35.0, coil=[CoilInfo(0.0, 0.0, False)])
    monitor = RecordingMonitor()
    cfg = _app_cfg(coil=CoilConfig(enabled=True, interval_seconds=0.01, window=2))

    async def run():
        cancel = asyncio.Event()
        task = asyncio.create_task(run_daemon(cfg, device, monitor, cancel, LOG))
        await asyncio.sleep(0.1)
        cancel.set()
        await asyncio.wait_for(task, timeout=2.0)

    asyncio.run(run())
    assert len(monitor.soc_updates) == 1
    assert len(monitor.coil_updates) >= 2
    # The first cycle and the shutdown both program the fallback level.
    assert len(device.program_writes) == 2
    assert all(p.soc == 50 for p in device.program_writes[-1])


def test_run_daemon_waits_for_feed_before_first_cycle():
    device = FakeInverter(soc=35.0)
    monitor = RecordingMonitor()
    store = OutageStateStore()
    feed = OneShotFeed()
    cfg = _app_cfg(esp=EspConfig(enabled=True, api_key="K", area="a", startup_grace_seconds=0.05))

    async def run():
        cancel = asyncio.Event()
        task = asyncio.create_task(
            run_daemon(cfg, device, monitor, cancel, LOG, store=store, esp_client=feed)
        )
        await asyncio.sleep(0.2)
        cancel.set()
        await asyncio.wait_for(task, timeout=2.0)

    asyncio.run(run())
    assert feed.calls == 1
    assert store.latest() is not None
    # With an empty forecast the range collapses to min_soc.
    assert monitor.soc_updates[0].target_soc_low == 20.0


def test_cancel_during_grace_skips_control_loop():
    device = FakeInverter()
    monitor = RecordingMonitor()
    cfg = _app_cfg(esp=EspConfig(enabled=True, api_key="K", area="a", startup_grace_seconds=30.0))

    async def run():
        cancel = asyncio.Event()
        task = asyncio.create_task(
            run_daemon(cfg, device, monitor, cancel, LOG, esp_client=OneShotFeed())
        )
        await asyncio.sleep(0.05)
        cancel.set()
        await asyncio.wait_for(task, timeout=2.0)

    asyncio.run(run())
    assert monitor.soc_updates == []
    assert device.program_writes == []


def test_status_json(capsys):
    device = FakeInverter(capacity=5120.0, charge_power=2500.0, soc=61.0, coil=[CoilInfo(-150.0, 40.0, True)])
    device.programs = [ProgramEntry(time(6, 0), 30), ProgramEntry(time(22, 0), 50)]

    status = asyncio.run(read_status(device, timezone.utc))
    emit_status(status, as_json=True)
    payload = json.loads(capsys.readouterr().out)

    assert payload["inverter_time"] is None
    assert payload["soc"] == 61.0
    assert payload["coil"] == {"coil_power_w": -150.0, "inverter_power_w": 40.0, "active": True}
    assert payload["programs"] == [{"time": "06:00", "soc": 30}, {"time": "22:00", "soc": 50}]


def test_status_text(capsys):
    device = FakeInverter(soc=61.0, coil=[CoilInfo(0.0, 0.0, False)])
    emit_status(asyncio.run(read_status(device, None)))
    out = capsys.readouterr().out
    assert "Inverter time: invalid" in out
    assert "SoC:           61%" in out
    assert "inactive" in out
