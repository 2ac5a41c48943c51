from datetime import datetime
from pydantic import BaseModel, ConfigDict, EmailStr
from typing import Optional, List
from .booking import BookingOut


class EmailOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    sender_name: Optional[str] = None
    subject: str
    received_date: datetime
    is_read: bool = False
    extracted_booking_ref: Optional[str] = None


class EmailPage(BaseModel):
    total: int
    count: int
    items: List[EmailOut]
    limit: int
    offset: int


class CaptureEmailRequest(BaseModel):
    subject: str = ''
    sender_email: EmailStr
    sender_name: str = ''
    body_text: str = ''
    received_date: datetime
    # names the extension spotted in the message (signatures etc.)
    candidate_names: List[str] = []


class CaptureEmailResponse(BaseModel):
    email_id: int
    auto_linked: bool
    linked_bookings: List[BookingOut] = []
    suggested_bookings: List[BookingOut] = []


class CreateLinkRequest(BaseModel):
    email_message_id: int
    osm_booking_id: int


class LinkOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email_message_id: int
    osm_booking_id: int
    created_by_user_id: Optional[int] = None
    created_date: datetime
    is_auto_linked: bool
