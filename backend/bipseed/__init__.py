from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO
from config import Config

socketio = SocketIO()

NAMESPACE = '/'


def _allowed_origins(flask_app):
    origin = flask_app.config.get('CLIENT_URL')
    return [origin] if origin else []


def _build_timers(flask_app):
    from bipseed.services.cycle.timers import BackgroundTimerService, ManualTimerService

    if flask_app.config.get('TESTING') and not flask_app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
        return ManualTimerService()
    return BackgroundTimerService(
        socketio,
        logger=flask_app.logger,
        heartbeat_sec=int(flask_app.config.get('TIMER_HEARTBEAT_SEC', 0)),
    )


def _broadcast(event, payload):
    # Use socketio.emit since this may be called from a background task
    socketio.emit(event, payload, namespace=NAMESPACE)


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))

    allowed_origins = _allowed_origins(flask_app)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)
    # threading mode: timer tasks are OS threads, serialized by the cycle lock
    socketio.init_app(
        flask_app,
        cors_allowed_origins=allowed_origins,
        async_mode=flask_app.config.get('SOCKETIO_ASYNC_MODE', 'threading'),
    )

    from bipseed.services.chat.ledger import ChatLedger
    from bipseed.services.cycle.state_machine import CycleStateMachine

    timers = _build_timers(flask_app)
    cfg = flask_app.config
    machine = CycleStateMachine(
        timers,
        admin_code=cfg['ADMIN_SECRET_CODE'],
        emit=_broadcast,
        logger=flask_app.logger,
        cycle_duration=float(cfg.get('CYCLE_DURATION_SEC', 900)),
        input_phase_duration=float(cfg.get('INPUT_PHASE_DURATION_SEC', 60)),
        required_words=int(cfg.get('REQUIRED_WORDS', 30)),
        completion_grace=float(cfg.get('COMPLETION_GRACE_SEC', 1)),
        tick_interval=float(cfg.get('TICK_INTERVAL_SEC', 1)),
    )
    chat = ChatLedger(limit=int(cfg.get('CHAT_HISTORY_LIMIT', 50)), clock=timers.now)
    flask_app.extensions['bipseed'] = {'cycle': machine, 'chat': chat, 'timers': timers}

    from bipseed.main import main
    flask_app.register_blueprint(main)

    # Register Socket.IO event handlers
    from bipseed.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    if cfg.get('CYCLE_AUTOSTART', True):
        machine.start()

    return flask_app


def shutdown_app(flask_app) -> None:
    """Cancel every outstanding timer; called on SIGINT/SIGTERM."""
    services = flask_app.extensions.get('bipseed')
    if not services:
        return
    services['cycle'].shutdown()
    services['timers'].cancel_all()
