import logging
import re
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Set, Tuple

from sqlalchemy.orm import Session

from ..models.booking_model import OsmBooking, NO_EMAIL_SENTINEL
from ..models.link_model import ApplicationLink

log = logging.getLogger(__name__)

# #12345, Ref: 12345, REF: 12345, Reference 12345, Booking #12345, OSM #12345
BOOKING_REF_PATTERN = re.compile(
    r"(?:#|Ref:|REF:|Reference|Booking\s*#|OSM\s*#)\s*(\d{4,6})(?!\d)",
    re.IGNORECASE,
)


def extract_booking_references(text: str) -> Set[str]:
    return set(BOOKING_REF_PATTERN.findall(text or ''))


def _find_link(db: Session, email_id: int, booking_id: int) -> Optional[ApplicationLink]:
    return (
        db.query(ApplicationLink)
        .filter(ApplicationLink.email_message_id == email_id, ApplicationLink.osm_booking_id == booking_id)
        .first()
    )


def create_auto_links(db: Session, email_id: int, subject: str, body: str) -> List[ApplicationLink]:
    """Link an email to every booking referenced in its subject or body.

    Safe to repeat: pairs that are already linked are skipped. Returns the
    links created by this call.
    """
    refs = extract_booking_references(f"{subject or ''} {body or ''}")
    log.info("auto_link_refs_extracted", extra={"email_id": email_id, "refs": sorted(refs)})
    created: List[ApplicationLink] = []
    for ref in sorted(refs):
        booking = db.query(OsmBooking).filter(OsmBooking.osm_booking_id == ref).first()
        if booking is None:
            log.warning("auto_link_booking_missing", extra={"email_id": email_id, "booking_ref": ref})
            continue
        if _find_link(db, email_id, booking.id) is not None:
            log.debug("auto_link_exists", extra={"email_id": email_id, "booking_id": booking.id})
            continue
        link = ApplicationLink(
            email_message_id=email_id,
            osm_booking_id=booking.id,
            created_by_user_id=None,
            created_date=datetime.now(timezone.utc),
        )
        db.add(link)
        created.append(link)
        log.info("auto_link_created", extra={"email_id": email_id, "booking_id": booking.id, "booking_ref": ref})
    db.commit()
    return created


def create_manual_link(db: Session, email_id: int, booking_id: int, user_id: int) -> Tuple[ApplicationLink, bool]:
    """Returns (link, created). An already linked pair yields the existing link."""
    existing = _find_link(db, email_id, booking_id)
    if existing is not None:
        return existing, False
    link = ApplicationLink(
        email_message_id=email_id,
        osm_booking_id=booking_id,
        created_by_user_id=user_id,
        created_date=datetime.now(timezone.utc),
    )
    db.add(link)
    db.commit()
    db.refresh(link)
    log.info("manual_link_created", extra={"email_id": email_id, "booking_id": booking_id, "user_id": user_id})
    return link, True


def find_suggested_booking_ids(db: Session, sender_email_hash: Optional[str], candidate_name_hashes: Iterable[str]) -> List[int]:
    """Bookings matching the sender's email hash or any candidate name hash."""
    ids: List[int] = []
    if sender_email_hash and sender_email_hash != NO_EMAIL_SENTINEL:
        ids.extend(
            row.id for row in db.query(OsmBooking.id)
            .filter(OsmBooking.customer_email_hash == sender_email_hash)
            .order_by(OsmBooking.id)
        )
    name_hashes = list(candidate_name_hashes)
    if name_hashes:
        ids.extend(
            row.id for row in db.query(OsmBooking.id)
            .filter(OsmBooking.customer_name_hash.isnot(None), OsmBooking.customer_name_hash.in_(name_hashes))
            .order_by(OsmBooking.id)
        )
    return list(dict.fromkeys(ids))


def get_linked_booking_ids(db: Session, email_id: int) -> List[int]:
    rows = db.query(ApplicationLink.osm_booking_id).filter(ApplicationLink.email_message_id == email_id).all()
    return [r.osm_booking_id for r in rows]


def get_linked_email_ids(db: Session, booking_id: int) -> List[int]:
    rows = db.query(ApplicationLink.email_message_id).filter(ApplicationLink.osm_booking_id == booking_id).all()
    return [r.email_message_id for r in rows]
