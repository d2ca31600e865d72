import os
import sys
import pytest

# Ensure the backend root (containing the `bipseed` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from bipseed import create_app, shutdown_app, socketio
from bipseed.services.cycle.state_machine import CycleStateMachine
from bipseed.services.cycle.timers import ManualTimerService


ADMIN_CODE = 'letmein'


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    ADMIN_SECRET_CODE = ADMIN_CODE
    CLIENT_URL = 'http://localhost:3000'
    CYCLE_DURATION_SEC = 900
    INPUT_PHASE_DURATION_SEC = 60
    COMPLETION_GRACE_SEC = 1
    TICK_INTERVAL_SEC = 1
    REQUIRED_WORDS = 30
    CHAT_HISTORY_LIMIT = 50
    LOG_LEVEL = 'DEBUG'
    CYCLE_AUTOSTART = True


class Recorder:
    """Collects (event, payload) pairs emitted by the state machine."""

    def __init__(self):
        self.events = []

    def __call__(self, event, payload):
        self.events.append((event, payload))

    def named(self, event):
        return [p for e, p in self.events if e == event]

    def clear(self):
        self.events = []


@pytest.fixture()
def timers():
    return ManualTimerService()


@pytest.fixture()
def recorder():
    return Recorder()


@pytest.fixture()
def machine(timers, recorder):
    m = CycleStateMachine(timers, admin_code=ADMIN_CODE, emit=recorder)
    m.start()
    yield m
    m.shutdown()


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        yield application
    shutdown_app(application)


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def services(flask_app):
    return flask_app.extensions['bipseed']


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/')
    except Exception:
        pass
