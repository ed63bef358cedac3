# socit/services/orchestrator.py

from __future__ import annotations

import asyncio
import heapq
import logging
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from socit.services.inverter import Inverter
from socit.services.modbus_client import InverterError
from socit.services.monitoring import Monitor


async def wait_cancelled(cancel: asyncio.Event, timeout: float) -> bool:
    """Sleep for ``timeout`` seconds; returns True early if ``cancel`` is set."""
    if timeout <= 0:
        return cancel.is_set()
    try:
        await asyncio.wait_for(cancel.wait(), timeout)
    except asyncio.TimeoutError:
        return False
    return True


class Controller(ABC):
    """A control policy ticked at its own ``interval`` (seconds)."""

    name: str = "controller"
    interval: float = 60.0

    @abstractmethod
    async def update(self, device: Inverter, monitor: Monitor) -> None: ...

    async def shutdown(self, device: Inverter) -> None:
        return None


class ControllerOrchestrator:
    """
    Runs several controllers against one inverter from a single task.

    Next-fire times live in a min-heap; whichever controller is due runs to
    completion before the next one is considered, so bus access is strictly
    sequential. Every controller fires immediately on start. If an update
    overruns, the missed tick fires once straight away and the schedule
    continues from there rather than bursting to catch up.
    """

    def __init__(
        self,
        device: Inverter,
        monitor: Monitor,
        controllers: Iterable[Controller],
        log: Optional[logging.Logger] = None,
    ):
        self.device = device
        self.monitor = monitor
        self.controllers: List[Controller] = list(controllers)
        self.log = log or logging.getLogger("socit.orchestrator")
        for controller in self.controllers:
            if controller.interval <= 0:
                raise ValueError(f"{controller.name}: interval must be positive")

    async def _tick(self, controller: Controller) -> None:
        try:
            await controller.update(self.device, self.monitor)
        except InverterError as exc:
            self.log.warning("%s: failed to update inverter: %s", controller.name, exc)
        except Exception:
            self.log.exception("%s: unexpected error; stopping", controller.name)
            raise

    async def run(self, cancel: asyncio.Event) -> None:
        """Tick controllers until ``cancel`` is set; shutdown hooks run however the loop ends."""
        loop = asyncio.get_running_loop()
        start = loop.time()
        heap = [(start, idx) for idx in range(len(self.controllers))]
        heapq.heapify(heap)

        try:
            while heap and not cancel.is_set():
                due, idx = heap[0]
                if await wait_cancelled(cancel, due - loop.time()):
                    break
                heapq.heappop(heap)
                controller = self.controllers[idx]
                await self._tick(controller)
                heapq.heappush(heap, (max(due + controller.interval, loop.time()), idx))
        finally:
            await self.shutdown()

    async def shutdown(self) -> None:
        for controller in self.controllers:
            self.log.debug("Shutting down %s", controller.name)
            try:
                await controller.shutdown(self.device)
            except InverterError as exc:
                self.log.error("%s: shutdown failed: %s", controller.name, exc)
