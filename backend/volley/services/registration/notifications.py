"""Socket.IO notification sink.

Called after commit; delivery is fire-and-forget and never fails the
request that triggered it.
"""
from flask import current_app

from volley import socketio

NAMESPACE = '/ws'


def game_room(game_id) -> str:
    return f"game:{game_id}"


def user_room(user_id) -> str:
    return f"user:{user_id}"


def format_game_date(date_time) -> str:
    """e.g. "Monday, 15 January, 19:30"."""
    return f"{date_time:%A}, {date_time.day} {date_time:%B}, {date_time:%H:%M}"


def notification_subject(guest_name=None) -> str:
    """Subject for a self registration ("you have") or a guest ("your guest NAME has")."""
    if guest_name and guest_name.strip():
        return f"your guest {guest_name.strip()} has"
    return "you have"


def promoted_message(date_time, guest_name=None, capacity_increased=False) -> str:
    reason = 'The game capacity has been increased and' if capacity_increased else 'A spot opened up and'
    subject = notification_subject(guest_name)
    return (
        f"Great news! {reason} {subject} been moved from the waiting list to the participants list "
        f"for the volleyball game on {format_game_date(date_time)}. See you there!"
    )


def _emit(event, payload, room) -> None:
    try:
        socketio.emit(event, payload, to=room, namespace=NAMESPACE)
    except Exception as exc:
        current_app.logger.warning(f"[notify-failed] event={event} room={room} error={exc}")


def broadcast_state(game_id) -> None:
    _emit('state_update', {'game_id': game_id}, game_room(game_id))


def notify_promoted(game, promoted_rows, capacity_increased=False) -> None:
    for row in promoted_rows:
        current_app.logger.info(f"[promote] game={game.id} user={row.user_id} guest={row.guest_name!r}")
        _emit(
            'registration_promoted',
            {
                'game_id': game.id,
                'user_id': row.user_id,
                'guest_name': row.guest_name,
                'message': promoted_message(game.date_time, row.guest_name, capacity_increased),
            },
            user_room(row.user_id),
        )


def notify_rescheduled(game, old_date_time, user_ids) -> None:
    message = (
        f"Game update: the game has been rescheduled from {format_game_date(old_date_time)} "
        f"to {format_game_date(game.date_time)}"
    )
    for user_id in sorted(set(user_ids)):
        _emit('game_rescheduled', {'game_id': game.id, 'message': message}, user_room(user_id))
