import asyncio
import logging

from . import config
from .errors import InvalidStateError, NotFoundError

log = logging.getLogger(__name__)


async def sweep_once(coordinator, batch: int = config.SWEEP_BATCH) -> int:
    """Expire up to `batch` overdue proposals and advance their requests."""
    now = coordinator.clock()
    due = await coordinator.attempts.list_due(now, limit=batch)

    expired = 0
    for attempt in due:
        try:
            await coordinator.on_attempt_expired(attempt.id)
            expired += 1
        except (InvalidStateError, NotFoundError) as e:
            # a response got there first
            log.info("skip expiry of attempt %s: %s", attempt.id, e)
    if expired:
        log.info("expired %d overdue proposals", expired)
    return expired


async def expiry_loop(coordinator, stop_event: asyncio.Event, interval: float = config.SWEEP_INTERVAL_SECONDS):
    while not stop_event.is_set():
        try:
            await sweep_once(coordinator)
        except Exception:
            log.exception("expiry sweep failed; retrying next tick")
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            continue
