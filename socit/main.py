# socit/main.py

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
import signal
import sys
from datetime import timedelta, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo

from .cli import build_parser
from .config import AppConfig, Config
from .logging import ConsoleLog

from .services.coil_controller import CoilController
from .services.esp_api_client import EspApiClient
from .services.inverter import DryRunInverter, Inverter, SunsynkInverter, to_local
from .services.modbus_client import DeviceConnectError, InverterError, RobustModbusClient
from .services.monitoring import FanoutMonitor, InfluxMonitor, JsonlMonitor, Monitor, NullMonitor
from .services.orchestrator import ControllerOrchestrator, wait_cancelled
from .services.outage_poller import poll_outages
from .services.outage_state import OutageStateStore
from .services.soc_controller import SocController, utc_now


def _resolve_timezone(name: str | None) -> Optional[tzinfo]:
    return ZoneInfo(name) if name else None


def build_monitor(app_cfg: AppConfig, log) -> Monitor:
    monitors: list[Monitor] = []
    if app_cfg.influxdb2.enabled:
        influx = InfluxMonitor(app_cfg.influxdb2, log)
        influx.check_health()
        monitors.append(influx)
    if app_cfg.monitoring.jsonl_path:
        monitors.append(JsonlMonitor(app_cfg.monitoring.jsonl_path))
    if not monitors:
        return NullMonitor()
    if len(monitors) == 1:
        return monitors[0]
    return FanoutMonitor(monitors, log)


async def connect_inverter(app_cfg: AppConfig, log) -> Inverter:
    """Connect to the inverter; raises DeviceConnectError if it is unreachable."""
    inv_cfg = app_cfg.inverter
    client = RobustModbusClient(inv_cfg.device, inv_cfg.unit, timeout=inv_cfg.timeout)
    await client.connect()
    device: Inverter = SunsynkInverter(client, tz=_resolve_timezone(inv_cfg.timezone))
    if inv_cfg.dry_run:
        log.info("Dry-run mode: no changes will be written to the inverter")
        device = DryRunInverter(device)
    return device


def install_signal_handlers(cancel: asyncio.Event, log) -> None:
    loop = asyncio.get_running_loop()

    def _on_signal(signame: str) -> None:
        log.info("Received %s; shutting down", signame)
        cancel.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _on_signal, sig.name)
        except (NotImplementedError, RuntimeError):  # pragma: no cover - non-Unix platforms
            log.debug("Signal handler for %s not supported", sig.name)


async def run_daemon(
    app_cfg: AppConfig,
    device: Inverter,
    monitor: Monitor,
    cancel: asyncio.Event,
    log,
    *,
    store: Optional[OutageStateStore] = None,
    esp_client: Optional[EspApiClient] = None,
) -> None:
    store = store or OutageStateStore(timedelta(hours=app_cfg.esp.staleness_hours))
    esp_client = esp_client or EspApiClient(app_cfg.esp, log)

    poller = None
    if esp_client.enabled:
        poller = asyncio.create_task(
            poll_outages(
                esp_client,
                app_cfg.esp.area,
                timedelta(minutes=app_cfg.esp.interval_minutes),
                store,
                cancel,
                logging.getLogger("socit.esp"),
            )
        )
    else:
        log.warning("Load-shedding feed disabled; the fallback SoC will always be used.")

    controllers = [
        SocController(
            app_cfg.inverter,
            store,
            interval=app_cfg.soc.interval_seconds,
            tz=_resolve_timezone(app_cfg.inverter.timezone),
        )
    ]
    if app_cfg.coil.enabled:
        controllers.append(CoilController(app_cfg.coil))
    orchestrator = ControllerOrchestrator(device, monitor, controllers)

    try:
        # Give the poller a chance to populate the store before the first cycle.
        if poller is not None and await wait_cancelled(cancel, app_cfg.esp.startup_grace_seconds):
            log.info("Cancelled during start-up; control loop not started.")
        else:
            await orchestrator.run(cancel)
    finally:
        cancel.set()
        if poller is not None:
            await poller


async def read_status(device: Inverter, tz: Optional[tzinfo]) -> dict:
    info = await device.get_info()
    soc = await device.get_soc()
    clock = await device.get_clock()
    programs = await device.get_programs()
    coil = await device.get_coil_info()
    return {
        "system_time": to_local(utc_now(), tz).replace(microsecond=0).isoformat(),
        "inverter_time": clock.isoformat() if clock is not None else None,
        "battery_capacity_wh": info.capacity,
        "max_charge_power_w": info.max_charge_power,
        "soc": soc,
        "coil": {
            "coil_power_w": coil.coil_power,
            "inverter_power_w": coil.inverter_power,
            "active": coil.coil_active,
        },
        "programs": [{"time": p.time.strftime("%H:%M"), "soc": p.soc} for p in programs],
    }


def emit_status(status: dict, as_json: bool = False) -> None:
    if as_json:
        print(json.dumps(status, indent=2))
        return

    coil = status["coil"]
    print("\n=== INVERTER STATUS ===")
    print(f"System time:   {status['system_time']}")
    print(f"Inverter time: {status['inverter_time'] or 'invalid'}")
    print(
        f"Battery:       {status['battery_capacity_wh']:.0f} Wh, "
        f"max charge {status['max_charge_power_w']:.0f} W"
    )
    print(f"SoC:           {status['soc']:.0f}%")
    print(
        f"CT coil:       {coil['coil_power_w']:.0f} W (inverter {coil['inverter_power_w']:.0f} W, "
        f"{'active' if coil['active'] else 'inactive'})"
    )
    for i, program in enumerate(status["programs"], start=1):
        print(f"Program {i}:     {program['time']}  {program['soc']}%")


async def amain(app_cfg: AppConfig, args, log) -> int:
    try:
        device = await connect_inverter(app_cfg, log)
    except DeviceConnectError as exc:
        log.error("%s", exc)
        return 1

    try:
        if args.command == "status":
            try:
                status = await read_status(device, _resolve_timezone(app_cfg.inverter.timezone))
            except InverterError as exc:
                log.error("Failed to read inverter status: %s", exc)
                return 1
            emit_status(status, as_json=args.json)
            return 0

        cancel = asyncio.Event()
        install_signal_handlers(cancel, log)
        await run_daemon(app_cfg, device, build_monitor(app_cfg, log), cancel, log)
        return 0
    finally:
        await device.close()


def main():
    parser = build_parser()
    args = parser.parse_args()

    app_cfg = Config.load(args.config)
    console_logger = ConsoleLog(
        level=app_cfg.logging.console_level,
        quiet=args.quiet or app_cfg.logging.console_quiet,
        debug_modules=app_cfg.logging.debug_modules,
        debug=args.debug,
    )
    log = console_logger.setup()

    if args.dry_run and not app_cfg.inverter.dry_run:
        app_cfg.inverter = dataclasses.replace(app_cfg.inverter, dry_run=True)

    if args.command not in {"run", "status"}:
        raise ValueError(f"Unsupported command: {args.command}")

    sys.exit(asyncio.run(amain(app_cfg, args, log)))


if __name__ == "__main__":
    main()
