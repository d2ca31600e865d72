from flask import Blueprint, jsonify, current_app

main = Blueprint('main', __name__)


@main.route('/health')
def health():
    machine = current_app.extensions['bipseed']['cycle']
    snapshot = machine.snapshot()
    return jsonify({
        'status': 'OK',
        'systemState': snapshot,
        'timeRemaining': snapshot['timeRemaining'],
    })
