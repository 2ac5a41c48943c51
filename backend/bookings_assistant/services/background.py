"""Background loops started from the app lifespan.

Each loop is a single asyncio task; starting one that is already running is a
no-op. ``stop_background_tasks`` sets a shared event that both loops check
while waiting, so shutdown does not have to sit out an interval.
"""
import asyncio
import logging
import os
from datetime import datetime, timezone

from ..db.database import SessionLocal
from .backfill import run_batch
from .hashing import get_hashing_service
from .osm_client import OsmAuthenticationRequired, get_osm_client
from .sync_service import SyncError, sync_all

BACKFILL_INTERVAL = int(os.getenv('BACKFILL_INTERVAL_SECONDS', '1800'))
BACKFILL_STARTUP_DELAY = int(os.getenv('BACKFILL_STARTUP_DELAY_SECONDS', '30'))
SYNC_INTERVAL = int(os.getenv('OSM_SYNC_INTERVAL_SECONDS', '1800'))  # 0: startup sync only

_stop = asyncio.Event()
_backfill_task: asyncio.Task | None = None
_sync_task: asyncio.Task | None = None
last_sync_summary = {"ts": None, "result": None, "error": None}


async def _wait(seconds: float) -> bool:
    """Sleep up to ``seconds``; True when shutdown was requested meanwhile."""
    try:
        await asyncio.wait_for(_stop.wait(), timeout=seconds)
        return True
    except asyncio.TimeoutError:
        return False


async def _backfill_loop():
    log = logging.getLogger(__name__)
    if await _wait(BACKFILL_STARTUP_DELAY):
        return
    while not _stop.is_set():
        gateway = get_osm_client()
        try:
            if gateway is not None:
                await run_batch(SessionLocal, gateway, get_hashing_service())
        except Exception:
            log.exception("backfill_batch_error")
        if await _wait(BACKFILL_INTERVAL):
            break


async def run_sync_once():
    """One full sync with its own session; failures are logged, not raised."""
    log = logging.getLogger(__name__)
    gateway = get_osm_client()
    if gateway is None:
        return None
    db = SessionLocal()
    try:
        result = await sync_all(db, gateway)
        last_sync_summary.update({"ts": datetime.now(timezone.utc).isoformat(), "result": result.as_dict(), "error": None})
        return result
    except OsmAuthenticationRequired:
        log.info("sync_skipped_auth_required")
        last_sync_summary.update({"ts": datetime.now(timezone.utc).isoformat(), "error": "auth_required"})
    except SyncError as e:
        log.warning("sync_cycle_failed", exc_info=e)
        last_sync_summary.update({"ts": datetime.now(timezone.utc).isoformat(), "error": type(e).__name__})
    finally:
        db.close()
    return None


async def _sync_loop():
    # first pass doubles as the startup sync; interval 0 stops after it
    while not _stop.is_set():
        await run_sync_once()
        if SYNC_INTERVAL <= 0 or await _wait(SYNC_INTERVAL):
            break


def start_background_tasks():
    global _backfill_task, _sync_task
    _stop.clear()
    if _backfill_task is None or _backfill_task.done():
        _backfill_task = asyncio.create_task(_backfill_loop(), name="booking-backfill")
    if _sync_task is None or _sync_task.done():
        _sync_task = asyncio.create_task(_sync_loop(), name="osm-sync")


async def stop_background_tasks():
    global _backfill_task, _sync_task
    _stop.set()
    for task in (_backfill_task, _sync_task):
        if task is None:
            continue
        try:
            await asyncio.wait_for(task, timeout=5)
        except asyncio.TimeoutError:
            task.cancel()
    _backfill_task = None
    _sync_task = None


def get_last_sync_summary():
    return last_sync_summary
