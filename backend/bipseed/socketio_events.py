from flask import current_app
from flask_socketio import emit
from bipseed import socketio, NAMESPACE


def _services():
    return current_app.extensions['bipseed']


def _field(data, key):
    # Malformed payloads collapse to None and are ignored downstream
    if not isinstance(data, dict):
        return None
    return data.get(key)


def handle_connect(auth=None):
    services = _services()
    snapshot = services['cycle'].connect()
    emit('systemUpdate', snapshot)
    emit('chatHistory', services['chat'].history())


def handle_disconnect(reason=None):
    _services()['cycle'].disconnect()


def handle_submit_word(data):
    """Rejections stay silent; the return value only reaches clients asking for an ack."""
    accepted = _services()['cycle'].submit_word(_field(data, 'word'))
    return {'accepted': accepted}


def handle_admin_restart(data):
    accepted = _services()['cycle'].admin_restart(_field(data, 'code'))
    return {'accepted': accepted}


def handle_send_message(data):
    message = _services()['chat'].post(_field(data, 'message'))
    if message is None:
        return {'accepted': False}
    user, text = message.display()
    if message.is_admin:
        # the marker is unauthenticated; keep the real pseudonym in the log
        user = f"{user}/{message.user}"
    current_app.logger.info(f"[chat] id={message.id} {user}: {text}")
    socketio.emit('newMessage', message.to_dict(), namespace=NAMESPACE)
    return {'accepted': True}


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on the default namespace."""
    socketio.on_event('connect', handle_connect, namespace=NAMESPACE)
    socketio.on_event('disconnect', handle_disconnect, namespace=NAMESPACE)
    socketio.on_event('submitWord', handle_submit_word, namespace=NAMESPACE)
    socketio.on_event('adminRestart', handle_admin_restart, namespace=NAMESPACE)
    socketio.on_event('sendMessage', handle_send_message, namespace=NAMESPACE)
