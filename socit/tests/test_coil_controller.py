# socit/tests/test_coil_controller.py

import asyncio

import pytest

from socit.config import CoilConfig
from socit.models.inverter import CoilInfo
from socit.tests.fake_inverter import FakeInverter, RecordingMonitor
from socit.services.coil_controller import CoilController


def _reading(coil, inverter=0.0, active=True):
    return CoilInfo(coil_power=coil, inverter_power=inverter, coil_active=active)


def _run_cycles(controller, device, monitor, cycles):
    async def run():
        for _ in range(cycles):
            await controller.update(device, monitor)

    asyncio.run(run())


def test_target_requires_full_window():
    controller = CoilController(CoilConfig(enabled=True, window=3))
    device = FakeInverter(coil=[_reading(300.0, 100.0), _reading(400.0, 100.0), _reading(500.0, 100.0)])
    monitor = RecordingMonitor()

    _run_cycles(controller, device, monitor, 2)
    assert controller.target() is None
    assert device.trickle_writes == []

    _run_cycles(controller, device, monitor, 1)
    assert controller.target() == pytest.approx(300.0)
    assert device.trickle_writes == [pytest.approx(300.0)]
    assert [u.target for u in monitor.coil_updates] == [None, None, pytest.approx(300.0)]


def test_glitch_voids_the_window():
    controller = CoilController(CoilConfig(enabled=True, window=3, max_power=1000.0))
    device = FakeInverter(coil=[_reading(200.0), _reading(9000.0), _reading(200.0), _reading(200.0)])
    monitor = RecordingMonitor()

    _run_cycles(controller, device, monitor, 3)
    assert controller.target() is None
    assert device.trickle_writes == []

    _run_cycles(controller, device, monitor, 1)
    assert controller.target() is None

    # Once the glitch has aged out of the window the mean is usable again.
    _run_cycles(controller, device, monitor, 1)
    assert controller.target() == pytest.approx(200.0)
    assert device.trickle_writes == [pytest.approx(200.0)]


@pytest.mark.parametrize("step,writes", [(9.0, 1), (10.0, 2)])
def test_hysteresis(step, writes):
    controller = CoilController(CoilConfig(enabled=True, window=1, hysteresis=10.0))
    device = FakeInverter(coil=[_reading(500.0), _reading(500.0 + step)])
    monitor = RecordingMonitor()

    _run_cycles(controller, device, monitor, 2)
    assert len(device.trickle_writes) == writes
    assert controller.setting == device.trickle_writes[-1]


def test_inactive_coil_never_writes_but_reports():
    controller = CoilController(CoilConfig(enabled=True, window=1))
    device = FakeInverter(coil=[_reading(500.0, active=False)])
    monitor = RecordingMonitor()

    _run_cycles(controller, device, monitor, 3)
    assert device.trickle_writes == []
    assert len(monitor.coil_updates) == 3
    assert all(not u.active for u in monitor.coil_updates)
    assert all(u.setting is None for u in monitor.coil_updates)


def test_monitor_failure_does_not_propagate():
    controller = CoilController(CoilConfig(enabled=True, window=1))
    device = FakeInverter(coil=[_reading(500.0)])

    _run_cycles(controller, device, RecordingMonitor(fail=True), 1)
    assert device.trickle_writes == [pytest.approx(500.0)]


def test_window_must_be_positive():
    with pytest.raises(ValueError):
        CoilController(CoilConfig(enabled=True, window=0))
