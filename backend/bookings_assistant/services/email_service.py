import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from ..models.booking_model import OsmBooking
from ..models.email_model import EmailMessage
from ..schemas.email import CaptureEmailRequest
from .hashing import HashingService
from .linking_service import (
    create_auto_links,
    extract_booking_references,
    find_suggested_booking_ids,
    get_linked_booking_ids,
)

log = logging.getLogger(__name__)

RELATED_EMAIL_LIMIT = 10


@dataclass
class CaptureResult:
    email: EmailMessage
    linked_bookings: List[OsmBooking] = field(default_factory=list)
    suggested_bookings: List[OsmBooking] = field(default_factory=list)

    @property
    def auto_linked(self) -> bool:
        return bool(self.linked_bookings)


def _as_utc_naive(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def find_duplicate(db: Session, subject: str, sender_email_hash: str, received_date: datetime) -> Optional[EmailMessage]:
    return db.query(EmailMessage).filter(
        EmailMessage.subject == subject,
        EmailMessage.sender_email_hash == sender_email_hash,
        EmailMessage.received_date == received_date,
    ).first()


def bookings_by_ids(db: Session, ids: List[int]) -> List[OsmBooking]:
    if not ids:
        return []
    return db.query(OsmBooking).filter(OsmBooking.id.in_(ids)).order_by(OsmBooking.id).all()


def capture_email(db: Session, hashing: HashingService, payload: CaptureEmailRequest) -> CaptureResult:
    """Store an email captured by the browser extension and link it to bookings.

    The same message captured twice (same subject, sender and received time)
    maps onto the existing row. Suggestions are only computed when no booking
    ended up linked.
    """
    sender_hash = hashing.hash_value(payload.sender_email)
    received = _as_utc_naive(payload.received_date)

    email = find_duplicate(db, payload.subject, sender_hash, received)
    if email is None:
        refs = sorted(extract_booking_references(f"{payload.subject} {payload.body_text}"))
        email = EmailMessage(
            message_id=str(uuid.uuid4()),
            sender_email_hash=sender_hash,
            sender_name=payload.sender_name or None,
            subject=payload.subject,
            received_date=received,
            is_read=False,
            extracted_booking_ref=refs[0] if refs else None,
            last_fetched=datetime.now(timezone.utc),
        )
        db.add(email)
        db.commit()
        db.refresh(email)
        log.info("email_captured", extra={"email_id": email.id, "refs": refs})
        create_auto_links(db, email.id, payload.subject, payload.body_text)
    else:
        log.info("email_capture_duplicate", extra={"email_id": email.id})

    result = CaptureResult(email=email)
    result.linked_bookings = bookings_by_ids(db, get_linked_booking_ids(db, email.id))
    if not result.linked_bookings:
        names = {n.strip() for n in [payload.sender_name, *payload.candidate_names] if n and n.strip()}
        name_hashes = [hashing.hash_value(n) for n in sorted(names)]
        result.suggested_bookings = bookings_by_ids(db, find_suggested_booking_ids(db, sender_hash, name_hashes))
    return result


def list_emails(db: Session, limit: int = 20, offset: int = 0) -> Tuple[List[EmailMessage], int]:
    q = db.query(EmailMessage)
    total = q.count()
    items = q.order_by(EmailMessage.received_date.desc(), EmailMessage.id.desc()).offset(offset).limit(limit).all()
    return items, total


def get_email(db: Session, email_id: int) -> Optional[EmailMessage]:
    return db.query(EmailMessage).filter(EmailMessage.id == email_id).first()


def related_emails(db: Session, email: EmailMessage) -> List[EmailMessage]:
    if not email.sender_email_hash:
        return []
    return (
        db.query(EmailMessage)
        .filter(EmailMessage.sender_email_hash == email.sender_email_hash, EmailMessage.id != email.id)
        .order_by(EmailMessage.received_date.desc())
        .limit(RELATED_EMAIL_LIMIT)
        .all()
    )


def emails_by_ids(db: Session, ids: List[int]) -> List[EmailMessage]:
    if not ids:
        return []
    return db.query(EmailMessage).filter(EmailMessage.id.in_(ids)).order_by(EmailMessage.received_date.desc()).all()
