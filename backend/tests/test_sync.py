import asyncio
from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from backend.bookings_assistant.main import app
from backend.bookings_assistant.models.booking_model import OsmBooking, OsmComment
from backend.bookings_assistant.models.link_model import ApplicationUser
from backend.bookings_assistant.services.osm_client import BookingRecord, CommentRecord, OsmAuthenticationRequired
from backend.bookings_assistant.services.sync_service import dedupe_bookings, sync_all, upsert_bookings
from conftest import add_booking

client = TestClient(app)


def _record(osm_id, name, status):
    return BookingRecord(osm_id, name, datetime(2026, 7, 1), datetime(2026, 7, 3), status)


def _comment(comment_id, osm_id, text='Hello'):
    return CommentRecord(comment_id, osm_id, 'Warden Smith', text, datetime(2026, 6, 1, 9, 30))


def test_dedupe_keeps_first_occurrence():
    unique = dedupe_bookings([_record('1', 'First', 'Provisional'), _record('2', 'B', 'Future'), _record('1', 'Second', 'Confirmed')])
    assert [(b.osm_booking_id, b.customer_name) for b in unique] == [('1', 'First'), ('2', 'B')]


def test_upsert_leaves_hashes_untouched(db):
    add_booking(db, '700', customer_name='Old', customer_email_hash='e' * 64, customer_name_hash='n' * 64)
    added, updated = upsert_bookings(db, [_record('700', 'New', 'Confirmed')])
    db.commit()
    assert (added, updated) == (0, 1)
    row = db.query(OsmBooking).filter_by(osm_booking_id='700').one()
    assert row.customer_name == 'New'
    assert row.customer_email_hash == 'e' * 64
    assert row.customer_name_hash == 'n' * 64


def test_sync_endpoint_adds_and_updates(db, osm):
    add_booking(db, '55002', customer_name='Old Name', status='Provisional')
    osm.bookings['Provisional'] = [_record('55002', 'Updated Name', 'Confirmed'), _record('55003', 'New Group', 'Provisional')]
    osm.bookings['Confirmed'] = [_record('55002', 'Other Name', 'Confirmed')]

    r = client.post('/api/bookings/sync')
    assert r.status_code == 200
    body = r.json()
    assert body['added'] == 1
    assert body['updated'] == 1
    assert body['total'] == 2

    db.expire_all()
    updated = db.query(OsmBooking).filter_by(osm_booking_id='55002').one()
    assert updated.customer_name == 'Updated Name'
    assert updated.status == 'Confirmed'
    assert db.query(OsmBooking).count() == 2
    assert db.get(ApplicationUser, 1).last_sync is not None


def test_sync_upserts_comments_for_active_bookings(db, osm):
    osm.bookings['Confirmed'] = [_record('55002', 'Group', 'Confirmed')]
    osm.bookings['Past'] = [_record('40000', 'Old Group', 'Past')]
    osm.details['55002'] = ('{}', [_comment('c1', '55002'), _comment('c2', '55002')])

    result = asyncio.run(sync_all(db, osm))
    assert (result.comments_added, result.comments_updated) == (2, 0)
    assert '40000' not in osm.comment_calls

    first = db.query(OsmComment).filter_by(osm_comment_id='c1').one()
    assert first.is_new is True
    first.is_new = False
    db.commit()

    osm.details['55002'] = ('{}', [_comment('c1', '55002', 'Edited'), _comment('c2', '55002')])
    result = asyncio.run(sync_all(db, osm))
    assert (result.comments_added, result.comments_updated) == (0, 2)
    db.expire_all()
    first = db.query(OsmComment).filter_by(osm_comment_id='c1').one()
    assert first.text_preview == 'Edited'
    assert first.is_new is False


def test_comment_failure_does_not_abort_sync(db, osm):
    osm.bookings['Provisional'] = [_record('1', 'A', 'Provisional'), _record('2', 'B', 'Provisional')]
    osm.failing_comments.add('1')
    osm.details['2'] = ('{}', [_comment('c9', '2')])
    result = asyncio.run(sync_all(db, osm))
    assert result.added == 2
    assert result.comments_added == 1


def test_sync_requires_osm_auth(osm):
    osm.auth_required = True
    r = client.post('/api/bookings/sync')
    assert r.status_code == 401


def test_sync_gateway_failure_is_502(osm):
    osm.error = RuntimeError('connection reset')
    r = client.post('/api/bookings/sync')
    assert r.status_code == 502


def test_sync_requires_api_key_when_configured(monkeypatch):
    monkeypatch.setenv('BOOKINGS_API_KEY', 'secret123')
    assert client.post('/api/bookings/sync').status_code == 401
    assert client.post('/api/bookings/sync', headers={'X-API-Key': 'secret123'}).status_code == 200


def test_list_reads_through_to_osm(osm):
    osm.bookings['Confirmed'] = [_record('55010', 'Fresh Group', 'Confirmed')]
    r = client.get('/api/bookings/', params={'status': 'confirmed'})
    assert r.status_code == 200
    assert [b['osm_booking_id'] for b in r.json()] == ['55010']


def test_list_falls_back_to_stored_rows_without_auth(db, osm):
    add_booking(db, '55011', status='Provisional')
    osm.auth_required = True
    r = client.get('/api/bookings/')
    assert r.status_code == 200
    assert [b['osm_booking_id'] for b in r.json()] == ['55011']


def test_comments_sync_even_when_details_fail(db, osm):
    osm.bookings['Confirmed'] = [_record('55002', 'Group', 'Confirmed')]
    osm.details['55002'] = ('{}', [_comment('c1', '55002')])
    osm.failing_details.add('55002')
    result = asyncio.run(sync_all(db, osm))
    assert result.comments_added == 1
    assert osm.detail_calls == []


def test_auth_lost_during_comment_phase_fails_sync(db, osm):
    osm.bookings['Provisional'] = [_record('1', 'A', 'Provisional'), _record('2', 'B', 'Provisional')]
    osm.comments_auth_required = True
    with pytest.raises(OsmAuthenticationRequired):
        asyncio.run(sync_all(db, osm))
    assert osm.comment_calls == ['1']
    assert db.get(ApplicationUser, 1).last_sync is None
    # bookings stored before the comment phase are kept
    assert db.query(OsmBooking).count() == 2


def test_sync_endpoint_reports_auth_lost_during_comments(osm):
    osm.bookings['Confirmed'] = [_record('55002', 'Group', 'Confirmed')]
    osm.comments_auth_required = True
    r = client.post('/api/bookings/sync')
    assert r.status_code == 401
