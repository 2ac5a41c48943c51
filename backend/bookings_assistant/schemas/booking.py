from datetime import datetime
from pydantic import BaseModel, ConfigDict
from typing import Optional


class BookingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    osm_booking_id: str
    customer_name: str
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    status: str


class CommentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    osm_booking_id: str
    osm_comment_id: str
    author_name: str
    text_preview: Optional[str] = ''
    created_date: Optional[datetime] = None
    is_new: bool
    booking: Optional[BookingOut] = None


class BookingStats(BaseModel):
    on_site_now: int
    arriving_this_week: int
    arriving_next_30_days: int
    provisional: int
    last_synced: Optional[datetime] = None


class SyncResultOut(BaseModel):
    added: int
    updated: int
    total: int
    comments_added: int
    comments_updated: int
