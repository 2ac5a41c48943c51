from sqlalchemy import Column, Integer, String, DateTime, Boolean
from sqlalchemy.orm import relationship
from ..db.database import Base
from datetime import datetime, timezone


class EmailMessage(Base):
    __tablename__ = 'email_messages'
    id = Column(Integer, primary_key=True, index=True)
    message_id = Column(String(255), unique=True, index=True, nullable=False)
    # only the hash of the sender address is stored
    sender_email_hash = Column(String(64), nullable=True, index=True)
    sender_name = Column(String(255), nullable=True)
    subject = Column(String(500), nullable=False, default='', index=True)
    received_date = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))
    is_read = Column(Boolean, nullable=False, default=False)
    extracted_booking_ref = Column(String(50), nullable=True, index=True)
    last_fetched = Column(DateTime, nullable=True)

    links = relationship("ApplicationLink", back_populates="email", cascade="all, delete-orphan")
