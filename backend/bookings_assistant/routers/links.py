from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from ..db.database import get_db
from ..models.link_model import ApplicationLink
from ..schemas.email import CreateLinkRequest, LinkOut
from ..security.auth import get_api_key, get_current_user_id
from ..services.booking_service import get_booking
from ..services.email_service import get_email
from ..services.linking_service import create_manual_link

router = APIRouter()


@router.post("/", response_model=LinkOut, status_code=status.HTTP_201_CREATED, dependencies=[Depends(get_api_key)])
def create_link(
    payload: CreateLinkRequest,
    response: Response,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    if not get_email(db, payload.email_message_id):
        raise HTTPException(status_code=404, detail="Email not found")
    if not get_booking(db, payload.osm_booking_id):
        raise HTTPException(status_code=404, detail="Booking not found")
    link, created = create_manual_link(db, payload.email_message_id, payload.osm_booking_id, user_id)
    if not created:
        response.status_code = status.HTTP_200_OK
    return link


@router.get("/", response_model=List[LinkOut])
def list_links(email_id: Optional[int] = None, booking_id: Optional[int] = None, db: Session = Depends(get_db)):
    q = db.query(ApplicationLink)
    if email_id is not None:
        q = q.filter(ApplicationLink.email_message_id == email_id)
    if booking_id is not None:
        q = q.filter(ApplicationLink.osm_booking_id == booking_id)
    return q.order_by(ApplicationLink.id).all()
