from typing import List
from .booking import BookingOut, CommentOut
from .email import EmailOut


class BookingDetail(BookingOut):
    full_details: str = ''  # raw OSM JSON, empty when OSM is unreachable
    comments: List[CommentOut] = []
    linked_emails: List[EmailOut] = []


class EmailDetail(EmailOut):
    message_id: str
    linked_bookings: List[BookingOut] = []
    related_emails: List[EmailOut] = []  # same sender
