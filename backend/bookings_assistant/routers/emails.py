from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..db.database import get_db
from ..schemas.booking import BookingOut
from ..schemas.detail import EmailDetail
from ..schemas.email import CaptureEmailRequest, CaptureEmailResponse, EmailOut, EmailPage
from ..security.auth import get_api_key
from ..services.email_service import (
    bookings_by_ids,
    capture_email,
    get_email,
    list_emails as list_db_emails,
    related_emails,
)
from ..services.hashing import get_hashing_service
from ..services.linking_service import get_linked_booking_ids

router = APIRouter()


@router.get("/", response_model=EmailPage)
def list_emails(
    limit: int = Query(20, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    items, total = list_db_emails(db, limit=limit, offset=offset)
    return {"total": total, "count": len(items), "items": items, "limit": limit, "offset": offset}


@router.post("/capture", response_model=CaptureEmailResponse, dependencies=[Depends(get_api_key)])
def capture(payload: CaptureEmailRequest, db: Session = Depends(get_db)):
    result = capture_email(db, get_hashing_service(), payload)
    return CaptureEmailResponse(
        email_id=result.email.id,
        auto_linked=result.auto_linked,
        linked_bookings=[BookingOut.model_validate(b) for b in result.linked_bookings],
        suggested_bookings=[BookingOut.model_validate(b) for b in result.suggested_bookings],
    )


@router.get("/{email_id}", response_model=EmailDetail)
def email_detail(email_id: int, db: Session = Depends(get_db)):
    email = get_email(db, email_id)
    if not email:
        raise HTTPException(status_code=404, detail="Email not found")
    detail = EmailDetail.model_validate(email, from_attributes=True)
    detail.linked_bookings = [BookingOut.model_validate(b) for b in bookings_by_ids(db, get_linked_booking_ids(db, email.id))]
    detail.related_emails = [EmailOut.model_validate(e) for e in related_emails(db, email)]
    return detail
