import json
import logging

from fastapi.testclient import TestClient

from backend.bookings_assistant.core.logging import JsonFormatter
from backend.bookings_assistant.main import app

client = TestClient(app)


def test_health_trace_header():
    r = client.get('/health')
    assert r.status_code == 200
    assert r.json()['status'] == 'ok'
    # middleware should attach trace id
    assert 'X-Trace-Id' in r.headers


def test_trace_id_is_echoed():
    r = client.get('/health', headers={'X-Trace-Id': 'abc123'})
    assert r.headers['X-Trace-Id'] == 'abc123'


def test_json_formatter_includes_extra_fields():
    record = logging.getLogger('test').makeRecord(
        'test', logging.INFO, __file__, 1, 'sync_complete', (), None, extra={'added': 2}
    )
    line = json.loads(JsonFormatter().format(record))
    assert line['msg'] == 'sync_complete'
    assert line['level'] == 'INFO'
    assert line['added'] == 2
