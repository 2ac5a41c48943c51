from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from ..db.database import Base

# Marks a booking whose detail was fetched and carried no email address.
NO_EMAIL_SENTINEL = 'no-email'


class OsmBooking(Base):
    __tablename__ = 'osm_bookings'
    id = Column(Integer, primary_key=True, index=True)
    # external identifier assigned by OSM; immutable once stored
    osm_booking_id = Column(String(50), unique=True, index=True, nullable=False)
    customer_name = Column(String(255), nullable=False, default='')
    customer_email_hash = Column(String(64), nullable=True, index=True)
    customer_name_hash = Column(String(64), nullable=True, index=True)
    start_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True)
    status = Column(String(50), nullable=False, default='', index=True)
    last_fetched = Column(DateTime, nullable=True)
    # time of the last failed backfill detail fetch; never-tried bookings are picked first
    backfill_attempted_at = Column(DateTime, nullable=True)

    comments = relationship("OsmComment", back_populates="booking", cascade="all, delete-orphan")
    links = relationship("ApplicationLink", back_populates="booking", cascade="all, delete-orphan")


class OsmComment(Base):
    __tablename__ = 'osm_comments'
    id = Column(Integer, primary_key=True, index=True)
    osm_comment_id = Column(String(50), unique=True, index=True, nullable=False)
    # joins on the external booking id, not the surrogate key
    osm_booking_id = Column(
        String(50),
        ForeignKey('osm_bookings.osm_booking_id', ondelete='CASCADE'),
        index=True,
        nullable=False,
    )
    author_name = Column(String(255), nullable=False, default='')
    text_preview = Column(String(200), nullable=True)
    created_date = Column(DateTime, nullable=True)
    is_new = Column(Boolean, nullable=False, default=False)
    last_fetched = Column(DateTime, nullable=True)

    booking = relationship("OsmBooking", back_populates="comments")
