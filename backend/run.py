import signal
import sys

from bipseed import create_app, shutdown_app, socketio

app = create_app()


def _graceful_exit(signum, frame):
    app.logger.info("Shutting down gracefully...")
    shutdown_app(app)
    sys.exit(0)


if __name__ == '__main__':
    signal.signal(signal.SIGTERM, _graceful_exit)
    signal.signal(signal.SIGINT, _graceful_exit)
    app.logger.info(f"BIPSEED-39 server listening on port {app.config['PORT']}")
    socketio.run(app, host='0.0.0.0', port=app.config['PORT'], allow_unsafe_werkzeug=True)
