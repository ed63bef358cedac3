# socit/services/outage_poller.py

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta

from socit.services.esp_api_client import EspApiClient, OutageFeedError
from socit.services.orchestrator import wait_cancelled
from socit.services.outage_state import OutageStateStore


async def poll_outages(
    client: EspApiClient,
    area: str,
    interval: timedelta,
    store: OutageStateStore,
    cancel: asyncio.Event,
    log: logging.Logger,
) -> None:
    """Refresh the outage store every ``interval`` until ``cancel`` is set.

    The first fetch happens immediately. A failed fetch leaves the previous
    snapshot in place (it will eventually go stale) and polling continues.
    """
    loop = asyncio.get_running_loop()
    period = interval.total_seconds()
    due = loop.time()
    while not cancel.is_set():
        if await wait_cancelled(cancel, due - loop.time()):
            break
        try:
            snapshot = await asyncio.to_thread(client.fetch_area, area)
        except OutageFeedError as exc:
            log.warning("Failed to update load-shedding schedule: %s", exc)
        except Exception as exc:
            log.warning("Unexpected error updating load-shedding schedule: %s", exc, exc_info=True)
        else:
            store.publish(snapshot)
            log.info(
                "Updated load-shedding schedule for %s (%d events)",
                area,
                len(snapshot.events),
            )
        due = max(due + period, loop.time())
