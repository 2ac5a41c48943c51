from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from ..db.database import Base
from datetime import datetime, timezone


class ApplicationUser(Base):
    __tablename__ = 'application_users'
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    last_sync = Column(DateTime, nullable=True)


class ApplicationLink(Base):
    __tablename__ = 'application_links'
    id = Column(Integer, primary_key=True, index=True)
    email_message_id = Column(Integer, ForeignKey('email_messages.id', ondelete='CASCADE'), nullable=False, index=True)
    osm_booking_id = Column(Integer, ForeignKey('osm_bookings.id', ondelete='CASCADE'), nullable=False, index=True)
    # NULL means the link was created automatically
    created_by_user_id = Column(Integer, ForeignKey('application_users.id'), nullable=True)
    created_date = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))

    email = relationship("EmailMessage", back_populates="links")
    booking = relationship("OsmBooking", back_populates="links")

    @property
    def is_auto_linked(self) -> bool:
        return self.created_by_user_id is None
