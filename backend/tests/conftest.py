import os

# configure the app for an in-memory database before anything imports it
os.environ['DATABASE_URL'] = 'sqlite://'
os.environ['HASH_ITERATIONS'] = '1'
os.environ['HASH_SECRET_PATH'] = '/nonexistent-bookings-assistant/hash-secret.txt'
os.environ['BACKGROUND_TASKS'] = '0'
os.environ.pop('BOOKINGS_API_KEY', None)
os.environ.pop('OSM_CAMPSITE_ID', None)
os.environ.pop('OSM_SECTION_ID', None)

from datetime import datetime, timezone

import pytest

from backend.bookings_assistant.db.database import Base, SessionLocal, engine, init_db
from backend.bookings_assistant.main import app
from backend.bookings_assistant.models.booking_model import OsmBooking
from backend.bookings_assistant.services.osm_client import (
    OsmAuthenticationRequired,
    OsmGatewayError,
    get_osm_client,
)


class FakeOsmClient:
    """In-memory stand-in for OsmClient."""

    def __init__(self):
        self.bookings = {}   # status -> [BookingRecord]
        self.details = {}    # osm_booking_id -> (full_details, [CommentRecord])
        self.failing_details = set()
        self.failing_comments = set()
        self.comments_auth_required = False
        self.auth_required = False
        self.error = None
        self.detail_calls = []
        self.comment_calls = []

    async def fetch_bookings(self, status):
        if self.auth_required:
            raise OsmAuthenticationRequired("OSM authentication required")
        if self.error is not None:
            raise self.error
        return list(self.bookings.get(status, []))

    async def fetch_booking_detail(self, osm_booking_id):
        self.detail_calls.append(osm_booking_id)
        if self.auth_required:
            raise OsmAuthenticationRequired("OSM authentication required")
        if osm_booking_id in self.failing_details:
            raise OsmGatewayError(f"detail failed for {osm_booking_id}")
        return self.details.get(osm_booking_id, ('{}', []))

    async def fetch_comments(self, osm_booking_id):
        self.comment_calls.append(osm_booking_id)
        if self.auth_required or self.comments_auth_required:
            raise OsmAuthenticationRequired("OSM authentication required")
        if osm_booking_id in self.failing_comments:
            raise OsmGatewayError(f"comments failed for {osm_booking_id}")
        return list(self.details.get(osm_booking_id, ('{}', []))[1])


@pytest.fixture(autouse=True)
def fresh_db():
    Base.metadata.drop_all(bind=engine)
    init_db()
    yield


@pytest.fixture(autouse=True)
def osm():
    fake = FakeOsmClient()
    app.dependency_overrides[get_osm_client] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_osm_client, None)


@pytest.fixture
def db():
    session = SessionLocal()
    yield session
    session.close()


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def add_booking(db, osm_booking_id, customer_name='Test Group', status='Provisional', start=None, end=None, **extra):
    booking = OsmBooking(
        osm_booking_id=osm_booking_id,
        customer_name=customer_name,
        status=status,
        start_date=start,
        end_date=end,
        last_fetched=utcnow(),
        **extra,
    )
    db.add(booking)
    db.commit()
    db.refresh(booking)
    return booking
