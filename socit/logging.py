from __future__ import annotations

import logging
import sys
from typing import Iterable

APP_LOGGER = "socit"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that flood the console at DEBUG.
NOISY_LOGGERS = ("pymodbus", "urllib3")


class ConsoleLog:
    """
    Console logging for the daemon.

    Everything goes through the root logger, which accepts all levels; the
    stdout handler decides what is shown. ``debug_modules`` lists logger
    names (e.g. ``socit.coil``) forced to DEBUG regardless of the console
    level. With ``debug`` set the console shows DEBUG and the noisy
    third-party loggers are let through at INFO.
    """

    def __init__(
        self,
        level: str = "INFO",
        quiet: bool = False,
        debug_modules: Iterable[str] | None = None,
        debug: bool = False,
    ):
        self.level = "DEBUG" if debug else level.upper()
        self.quiet = quiet
        self.debug = debug
        self.debug_modules = list(debug_modules or [])

    def setup(self) -> logging.Logger:
        root = logging.getLogger()
        root.handlers.clear()
        root.setLevel(logging.DEBUG)

        if not self.quiet:
            handler = logging.StreamHandler(sys.stdout)
            handler.setLevel(getattr(logging, self.level, logging.INFO))
            handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
            root.addHandler(handler)

        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.INFO if self.debug else logging.WARNING)
        for name in self.debug_modules:
            logging.getLogger(name).setLevel(logging.DEBUG)

        return logging.getLogger(APP_LOGGER)
