import os
import sys
import pytest

# Ensure the backend root (containing the `coopsync` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from coopsync import create_app, db, socketio
from coopsync.services.match import clock


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CORS_ORIGINS = ['http://localhost:5173']
    LOG_LEVEL = 'DEBUG'
    MATCH_TTL_SEC = 3 * 60 * 60
    IDEMPOTENCY_TTL_SEC = 300
    DECISION_TTL_SEC = 300
    MAX_COORDINATE = 1000
    MAX_DEPOSIT_AMOUNT = 9999
    STARTING_COINS = 200


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import coopsync.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass


class FrozenClock:
    def __init__(self, start=1_700_000_000.0):
        self.current = start

    def __call__(self):
        return self.current

    def advance(self, seconds):
        self.current += seconds


@pytest.fixture()
def frozen_clock(monkeypatch):
    fake = FrozenClock()
    monkeypatch.setattr(clock, 'now', fake)
    return fake


@pytest.fixture()
def sent(monkeypatch):
    """Record every broadcast instead of emitting it: list of (channel, message dict)."""
    records = []

    def _record(event, data, to=None, namespace=None, **kwargs):
        records.append((to, data))

    monkeypatch.setattr(socketio, 'emit', _record)
    return records


@pytest.fixture()
def api(client):
    """POST/GET helper that sends the per-session player header."""
    def _call(path, player=None, method='post', **body):
        headers = {'X-Coop-Player-Id': player} if player else {}
        if method == 'get':
            return client.get(f'/api/coop{path}', headers=headers, query_string=body)
        return client.post(f'/api/coop{path}', headers=headers, json=body)
    return _call
