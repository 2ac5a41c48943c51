from datetime import datetime, timezone
from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..db.database import get_db
from ..schemas.booking import BookingOut, BookingStats, CommentOut, SyncResultOut
from ..schemas.detail import BookingDetail
from ..schemas.email import EmailOut
from ..security.auth import get_api_key
from ..services.booking_service import booking_stats, comments_for_booking, get_booking, list_bookings
from ..services.email_service import emails_by_ids
from ..services.linking_service import get_linked_email_ids
from ..services.osm_client import OsmAuthenticationRequired, OsmGatewayError, get_osm_client
from ..services.sync_service import SyncError, refresh_status, sync_all

router = APIRouter()
log = logging.getLogger(__name__)


@router.post("/sync", response_model=SyncResultOut, dependencies=[Depends(get_api_key)])
async def sync_bookings(db: Session = Depends(get_db), gateway=Depends(get_osm_client)):
    if gateway is None:
        raise HTTPException(status_code=502, detail="OSM is not configured")
    try:
        result = await sync_all(db, gateway)
    except OsmAuthenticationRequired:
        raise HTTPException(status_code=401, detail="OSM authentication required")
    except SyncError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return result.as_dict()


@router.get("/stats", response_model=BookingStats)
def stats(db: Session = Depends(get_db)):
    return booking_stats(db, datetime.now(timezone.utc).date())


@router.get("/", response_model=List[BookingOut])
async def bookings(
    status: Optional[str] = Query("Provisional"),
    refresh: bool = Query(True, description="Pull this status from OSM before answering"),
    db: Session = Depends(get_db),
    gateway=Depends(get_osm_client),
):
    if refresh and status and gateway is not None:
        try:
            await refresh_status(db, gateway, status)
        except OsmAuthenticationRequired:
            log.info("booking_refresh_skipped_auth_required", extra={"booking_status": status})
    return list_bookings(db, status)


@router.get("/{booking_id}", response_model=BookingDetail)
async def booking_detail(booking_id: int, db: Session = Depends(get_db), gateway=Depends(get_osm_client)):
    booking = get_booking(db, booking_id)
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")
    full_details = ''
    if gateway is not None:
        try:
            full_details, _comments = await gateway.fetch_booking_detail(booking.osm_booking_id)
        except (OsmAuthenticationRequired, OsmGatewayError) as e:
            log.info("booking_detail_osm_unavailable", extra={"booking_id": booking_id, "reason": type(e).__name__})
    detail = BookingDetail.model_validate(booking, from_attributes=True)
    detail.full_details = full_details or ''
    detail.comments = [CommentOut.model_validate(c) for c in comments_for_booking(db, booking.osm_booking_id)]
    detail.linked_emails = [EmailOut.model_validate(e) for e in emails_by_ids(db, get_linked_email_ids(db, booking.id))]
    return detail
