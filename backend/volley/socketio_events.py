from flask_socketio import join_room, leave_room, emit
from flask_login import current_user
from volley import socketio
from volley.services.registration.notifications import NAMESPACE, game_room, user_room


def handle_connect():
    # Authenticated sockets receive their own promotion/reschedule notices
    if current_user.is_authenticated:
        join_room(user_room(current_user.id))
    emit('connected', {'message': f'Connected to {NAMESPACE}'})


def _game_id(data):
    game_id = (data or {}).get('game_id')
    if game_id is None:
        emit('error', {'message': 'game_id is required'})
    return game_id


def handle_join_game(data):
    game_id = _game_id(data)
    if game_id is None:
        return
    room = game_room(game_id)
    join_room(room)
    emit('joined', {'room': room})


def handle_leave_game(data):
    game_id = _game_id(data)
    if game_id is None:
        return
    room = game_room(game_id)
    leave_room(room)
    emit('left', {'room': room})


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    namespaces = [NAMESPACE, '/'] if testing else [NAMESPACE]
    for namespace in namespaces:
        socketio.on_event('connect', handle_connect, namespace=namespace)
        socketio.on_event('join_game', handle_join_game, namespace=namespace)
        socketio.on_event('leave_game', handle_leave_game, namespace=namespace)
        socketio.on_event('ping', handle_ping, namespace=namespace)
