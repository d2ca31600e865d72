import os


def _flag(name, default):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    # Admin relaunch code, compared exact-match
    ADMIN_SECRET_CODE = os.environ.get('ADMIN_SECRET_CODE') or 'REBOOT2024'
    PORT = int(os.environ.get('PORT', '3001'))
    # Allowed origin for the browser client (CORS + Socket.IO)
    CLIENT_URL = os.environ.get('CLIENT_URL') or 'http://localhost:3000'
    # Cycle timers (seconds)
    CYCLE_DURATION_SEC = float(os.environ.get('CYCLE_DURATION_SEC', '900'))
    INPUT_PHASE_DURATION_SEC = float(os.environ.get('INPUT_PHASE_DURATION_SEC', '60'))
    COMPLETION_GRACE_SEC = float(os.environ.get('COMPLETION_GRACE_SEC', '1'))
    TICK_INTERVAL_SEC = float(os.environ.get('TICK_INTERVAL_SEC', '1'))
    REQUIRED_WORDS = int(os.environ.get('REQUIRED_WORDS', '30'))
    CHAT_HISTORY_LIMIT = int(os.environ.get('CHAT_HISTORY_LIMIT', '50'))
    # Optional: heartbeat interval for timer worker logs (sec). 0 disables.
    TIMER_HEARTBEAT_SEC = int(os.environ.get('TIMER_HEARTBEAT_SEC', '0'))
    # Cycle state is guarded by a threading lock; keep Socket.IO on real threads
    SOCKETIO_ASYNC_MODE = 'threading'
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    # Start the first cycle as soon as the app is created
    CYCLE_AUTOSTART = _flag('CYCLE_AUTOSTART', True)
