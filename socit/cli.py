# socit/cli.py
import argparse


def build_parser():
    parser = argparse.ArgumentParser(
        prog="socit",
        description="Keep a hybrid inverter's minimum SoC high enough to ride out load-shedding",
    )

    parser.add_argument(
        "--config",
        default="socit.conf",
        help="Path to configuration file"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Show debug output, including pymodbus at INFO"
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress console log output"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Read from the inverter but never write to it (overrides [inverter] dry_run)"
    )

    sub = parser.add_subparsers(dest="command", required=True)

    # Daemon: SoC controller, optional CT-coil controller and outage poller
    sub.add_parser("run", help="Run the control loop until SIGINT/SIGTERM")

    # Read-only device dump
    cmd_status = sub.add_parser(
        "status",
        help="Print battery, clock, program table and CT coil state",
    )
    cmd_status.add_argument(
        "--json",
        action="store_true",
        help="Emit JSON instead of human-readable text"
    )

    return parser
