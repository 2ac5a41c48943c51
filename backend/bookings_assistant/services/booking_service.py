from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from ..models.booking_model import OsmBooking, OsmComment

COMMENT_LIMIT_MAX = 100
# statuses counted as arriving / on site
ATTENDING_STATUSES = ('confirmed', 'future')


def list_bookings(db: Session, status: Optional[str] = None) -> List[OsmBooking]:
    q = db.query(OsmBooking)
    if status:
        q = q.filter(func.lower(OsmBooking.status) == status.lower())
    return q.order_by(OsmBooking.start_date, OsmBooking.id).all()


def get_booking(db: Session, booking_id: int) -> Optional[OsmBooking]:
    return db.query(OsmBooking).filter(OsmBooking.id == booking_id).first()


def comments_for_booking(db: Session, osm_booking_id: str) -> List[OsmComment]:
    return (
        db.query(OsmComment)
        .filter(OsmComment.osm_booking_id == osm_booking_id)
        .order_by(OsmComment.created_date.desc())
        .all()
    )


def list_comments(db: Session, new_only: bool = False, since: Optional[datetime] = None, limit: int = 20) -> List[OsmComment]:
    limit = max(1, min(limit, COMMENT_LIMIT_MAX))
    q = db.query(OsmComment).options(joinedload(OsmComment.booking))
    if new_only:
        q = q.filter(OsmComment.is_new.is_(True))
    if since is not None:
        if since.tzinfo is not None:
            since = since.astimezone(timezone.utc).replace(tzinfo=None)
        q = q.filter(OsmComment.created_date >= since)
    return q.order_by(OsmComment.created_date.desc()).limit(limit).all()


def booking_stats(db: Session, today: date) -> dict:
    """Dashboard counters relative to ``today`` (UTC date)."""
    start_of_day = datetime.combine(today, time.min)
    midday = datetime.combine(today, time(12))
    week_end = start_of_day + timedelta(days=7)
    month_end = start_of_day + timedelta(days=30)
    attending = func.lower(OsmBooking.status).in_(ATTENDING_STATUSES)

    on_site = db.query(func.count(OsmBooking.id)).filter(
        attending, OsmBooking.start_date <= midday, OsmBooking.end_date >= start_of_day
    ).scalar() or 0
    this_week = db.query(func.count(OsmBooking.id)).filter(
        attending, OsmBooking.start_date > midday, OsmBooking.start_date <= week_end
    ).scalar() or 0
    next_30 = db.query(func.count(OsmBooking.id)).filter(
        attending, OsmBooking.start_date > midday, OsmBooking.start_date <= month_end
    ).scalar() or 0
    provisional = db.query(func.count(OsmBooking.id)).filter(
        func.lower(OsmBooking.status) == 'provisional'
    ).scalar() or 0
    last_synced = db.query(func.max(OsmBooking.last_fetched)).scalar()
    return {
        'on_site_now': on_site,
        'arriving_this_week': this_week,
        'arriving_next_30_days': next_30,
        'provisional': provisional,
        'last_synced': last_synced,
    }
