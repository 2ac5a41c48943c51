import json
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models.booking_model import OsmBooking, NO_EMAIL_SENTINEL
from .hashing import HashingService

log = logging.getLogger(__name__)

BATCH_SIZE = 20
TERMINAL_STATUSES = ('past', 'cancelled')


def select_pending(db: Session, limit: int = BATCH_SIZE) -> List[OsmBooking]:
    """Bookings whose customer email has never been resolved, skipping Past/Cancelled.

    Never-attempted bookings come first, then those whose last failed fetch is
    oldest, so a run of persistently failing bookings cannot starve the rest.
    """
    return (
        db.query(OsmBooking)
        .filter(OsmBooking.customer_email_hash.is_(None))
        .filter(func.lower(OsmBooking.status).notin_(TERMINAL_STATUSES))
        .order_by(OsmBooking.backfill_attempted_at.isnot(None), OsmBooking.backfill_attempted_at, OsmBooking.id)
        .limit(limit)
        .all()
    )


def extract_email(full_details: Optional[str]) -> Optional[str]:
    """Find the customer email in an OSM booking detail payload.

    Two shapes are understood:
      {"data": {"contact": {"email": "..."}}}
      {"data": [{"label": "Contact email", "value": "..."}, ...]}
    """
    if not full_details or not full_details.strip():
        return None
    try:
        root = json.loads(full_details)
    except json.JSONDecodeError:
        return None
    data = root.get('data') if isinstance(root, dict) else None
    if isinstance(data, dict):
        contact = data.get('contact')
        if isinstance(contact, dict) and isinstance(contact.get('email'), str):
            return contact['email']
    elif isinstance(data, list):
        for item in data:
            if not isinstance(item, dict):
                continue
            label = item.get('label')
            if isinstance(label, str) and 'email' in label.lower() and isinstance(item.get('value'), str):
                return item['value']
    log.warning("backfill_no_email_field", extra={"snippet": full_details[:300]})
    return None


async def run_batch(session_factory: Callable[[], Session], gateway, hashing: HashingService, batch_size: int = BATCH_SIZE) -> int:
    """Resolve the customer email hash for one batch of pending bookings.

    Each booking ends up with either a real hash or the no-email sentinel, so
    it is never picked again. A booking whose fetch fails stays pending and
    is stamped with the attempt time, which moves it behind untried bookings.
    Returns how many bookings were resolved.
    """
    db = session_factory()
    try:
        bookings = select_pending(db, batch_size)
        if not bookings:
            log.debug("backfill_nothing_pending")
            return 0
        log.info("backfill_batch_start", extra={"count": len(bookings)})
        resolved = 0
        for booking in bookings:
            try:
                full_details, _comments = await gateway.fetch_booking_detail(booking.osm_booking_id)
                email = extract_email(full_details)
                booking.customer_email_hash = hashing.hash_value(email) if email else NO_EMAIL_SENTINEL
                if booking.customer_name_hash is None and booking.customer_name:
                    booking.customer_name_hash = hashing.hash_value(booking.customer_name)
                resolved += 1
            except Exception as e:
                booking.backfill_attempted_at = datetime.now(timezone.utc).replace(tzinfo=None)
                log.warning("backfill_booking_failed", exc_info=e, extra={"osm_booking_id": booking.osm_booking_id})
        db.commit()
        log.info("backfill_batch_done", extra={"resolved": resolved, "count": len(bookings)})
        return resolved
    finally:
        db.close()


def backfill_name_hashes(db: Session, hashing: HashingService) -> int:
    bookings = (
        db.query(OsmBooking)
        .filter(OsmBooking.customer_name_hash.is_(None), OsmBooking.customer_name != '')
        .all()
    )
    for b in bookings:
        b.customer_name_hash = hashing.hash_value(b.customer_name)
    if bookings:
        db.commit()
        log.info("name_hashes_backfilled", extra={"count": len(bookings)})
    return len(bookings)
