import asyncio
import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Iterable, List, Tuple

from sqlalchemy.orm import Session

from ..db.database import DEFAULT_USER_ID
from ..models.booking_model import OsmBooking, OsmComment
from ..models.link_model import ApplicationUser
from .osm_client import BookingRecord, CommentRecord, OsmAuthenticationRequired

log = logging.getLogger(__name__)

# Concatenation order decides which copy of a booking wins when it shows up
# under several statuses: the first one.
SYNC_STATUSES = ('Provisional', 'Confirmed', 'Future', 'Past', 'Cancelled')
ACTIVE_STATUSES = {'provisional', 'confirmed'}


class SyncError(Exception):
    """Sync failed for a reason other than missing OSM authentication."""


@dataclass
class SyncResult:
    added: int = 0
    updated: int = 0
    comments_added: int = 0
    comments_updated: int = 0

    @property
    def total(self) -> int:
        return self.added + self.updated

    def as_dict(self) -> dict:
        data = asdict(self)
        data['total'] = self.total
        return data


def _now():
    return datetime.now(timezone.utc)


def dedupe_bookings(bookings: Iterable[BookingRecord]) -> List[BookingRecord]:
    seen = set()
    unique: List[BookingRecord] = []
    for b in bookings:
        if b.osm_booking_id in seen:
            continue
        seen.add(b.osm_booking_id)
        unique.append(b)
    return unique


def upsert_bookings(db: Session, bookings: List[BookingRecord]) -> Tuple[int, int]:
    """Insert unseen bookings, overwrite known ones. Hash columns are left alone."""
    ids = [b.osm_booking_id for b in bookings]
    existing = {}
    if ids:
        existing = {b.osm_booking_id: b for b in db.query(OsmBooking).filter(OsmBooking.osm_booking_id.in_(ids)).all()}
    added = updated = 0
    now = _now()
    for record in bookings:
        entity = existing.get(record.osm_booking_id)
        if entity is not None:
            entity.customer_name = record.customer_name
            entity.start_date = record.start_date
            entity.end_date = record.end_date
            entity.status = record.status
            entity.last_fetched = now
            updated += 1
        else:
            db.add(OsmBooking(
                osm_booking_id=record.osm_booking_id,
                customer_name=record.customer_name,
                start_date=record.start_date,
                end_date=record.end_date,
                status=record.status,
                last_fetched=now,
            ))
            added += 1
    db.flush()
    return added, updated


def upsert_comments(db: Session, osm_booking_id: str, comments: List[CommentRecord]) -> Tuple[int, int]:
    ids = [c.osm_comment_id for c in comments]
    known = {}
    if ids:
        known = {c.osm_comment_id: c for c in db.query(OsmComment).filter(OsmComment.osm_comment_id.in_(ids)).all()}
    added = updated = 0
    now = _now()
    for c in comments:
        entity = known.get(c.osm_comment_id)
        if entity is not None:
            # is_new keeps whatever it was set to on insert
            entity.author_name = c.author_name
            entity.text_preview = c.text_preview
            entity.last_fetched = now
            updated += 1
        else:
            entity = OsmComment(
                osm_comment_id=c.osm_comment_id,
                osm_booking_id=osm_booking_id,
                author_name=c.author_name,
                text_preview=c.text_preview,
                created_date=c.created_date,
                is_new=True,
                last_fetched=now,
            )
            db.add(entity)
            known[c.osm_comment_id] = entity
            added += 1
    db.flush()
    return added, updated


async def _sync_comments(db: Session, gateway, bookings: List[BookingRecord], result: SyncResult):
    active = [b for b in bookings if (b.status or '').lower() in ACTIVE_STATUSES]
    for booking in active:
        try:
            comments = await gateway.fetch_comments(booking.osm_booking_id)
            added, updated = upsert_comments(db, booking.osm_booking_id, comments)
        except OsmAuthenticationRequired:
            raise
        except Exception as e:
            log.warning("comment_sync_failed", exc_info=e, extra={"osm_booking_id": booking.osm_booking_id})
            continue
        result.comments_added += added
        result.comments_updated += updated


async def sync_all(db: Session, gateway) -> SyncResult:
    """Pull every booking status from OSM and upsert bookings plus active-booking comments.

    Raises OsmAuthenticationRequired when no valid token exists and SyncError
    for any other failure that aborts the run.
    """
    try:
        lists = await asyncio.gather(*(gateway.fetch_bookings(s) for s in SYNC_STATUSES))
    except OsmAuthenticationRequired:
        raise
    except Exception as e:
        log.error("sync_fetch_failed", exc_info=e)
        raise SyncError("Failed to fetch bookings from OSM") from e

    bookings = dedupe_bookings(b for batch in lists for b in batch)
    result = SyncResult()
    try:
        result.added, result.updated = upsert_bookings(db, bookings)
        db.commit()
        await _sync_comments(db, gateway, bookings, result)
        user = db.get(ApplicationUser, DEFAULT_USER_ID)
        if user is not None:
            user.last_sync = _now()
        db.commit()
    except OsmAuthenticationRequired:
        db.rollback()
        log.warning("sync_comments_auth_required")
        raise
    except Exception as e:
        db.rollback()
        log.error("sync_store_failed", exc_info=e)
        raise SyncError("Failed to store synced bookings") from e

    log.info("sync_complete", extra=result.as_dict())
    return result


async def refresh_status(db: Session, gateway, status: str) -> Tuple[int, int]:
    """Fetch one status list and upsert it (used by the booking list endpoint)."""
    records = dedupe_bookings(await gateway.fetch_bookings(status))
    added, updated = upsert_bookings(db, records)
    db.commit()
    log.info("status_refreshed", extra={"booking_status": status, "added": added, "updated": updated})
    return added, updated
