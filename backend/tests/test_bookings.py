import json
from datetime import timedelta

from fastapi.testclient import TestClient

from backend.bookings_assistant.main import app
from backend.bookings_assistant.models.booking_model import OsmComment
from backend.bookings_assistant.models.email_model import EmailMessage
from backend.bookings_assistant.models.link_model import ApplicationLink
from conftest import add_booking, utcnow

client = TestClient(app)


def test_stats_counts_relative_to_today(db):
    now = utcnow()
    add_booking(db, '1', status='Confirmed', start=now - timedelta(days=1), end=now + timedelta(days=1))
    add_booking(db, '2', status='Future', start=now + timedelta(days=3), end=now + timedelta(days=5))
    add_booking(db, '3', status='Confirmed', start=now + timedelta(days=20), end=now + timedelta(days=22))
    add_booking(db, '4', status='Provisional', start=now + timedelta(days=3), end=now + timedelta(days=4))
    add_booking(db, '5', status='Cancelled', start=now - timedelta(days=1), end=now + timedelta(days=1))

    r = client.get('/api/bookings/stats')
    assert r.status_code == 200
    stats = r.json()
    assert stats['on_site_now'] == 1
    assert stats['arriving_this_week'] == 1
    assert stats['arriving_next_30_days'] == 2
    assert stats['provisional'] == 1
    assert stats['last_synced'] is not None


def test_stats_empty_store():
    stats = client.get('/api/bookings/stats').json()
    assert stats == {
        'on_site_now': 0,
        'arriving_this_week': 0,
        'arriving_next_30_days': 0,
        'provisional': 0,
        'last_synced': None,
    }


def test_detail_includes_osm_payload_comments_and_emails(db, osm):
    booking = add_booking(db, '55001', customer_name='1st Testville Scouts', status='Confirmed')
    db.add(OsmComment(osm_comment_id='c1', osm_booking_id='55001', author_name='Warden', text_preview='Gate code 1234', is_new=True))
    email = EmailMessage(message_id='m1', subject='Booking #55001', received_date=utcnow())
    db.add(email)
    db.commit()
    db.add(ApplicationLink(email_message_id=email.id, osm_booking_id=booking.id))
    db.commit()
    osm.details['55001'] = (json.dumps({"data": {"contact": {"email": "x@example.com"}}}), [])

    r = client.get(f'/api/bookings/{booking.id}')
    assert r.status_code == 200
    detail = r.json()
    assert detail['osm_booking_id'] == '55001'
    assert json.loads(detail['full_details'])['data']['contact']['email'] == 'x@example.com'
    assert [c['osm_comment_id'] for c in detail['comments']] == ['c1']
    assert [e['id'] for e in detail['linked_emails']] == [email.id]


def test_detail_survives_osm_failure(db, osm):
    booking = add_booking(db, '55002')
    osm.failing_details.add('55002')
    r = client.get(f'/api/bookings/{booking.id}')
    assert r.status_code == 200
    assert r.json()['full_details'] == ''


def test_detail_missing_booking_is_404():
    assert client.get('/api/bookings/424242').status_code == 404


def test_list_filters_status_case_insensitively(db):
    add_booking(db, '10', status='Confirmed')
    add_booking(db, '11', status='Provisional')
    r = client.get('/api/bookings/', params={'status': 'CONFIRMED', 'refresh': False})
    assert [b['osm_booking_id'] for b in r.json()] == ['10']
