from dataclasses import asdict
from datetime import datetime, timedelta, timezone

from flask import Blueprint, jsonify, request, current_app
from flask_login import login_required, current_user
from sqlalchemy.exc import IntegrityError

from volley import db
from volley.models import Game, User
from volley.services import pricing
from volley.services.assignments import can_manage_game, is_assigned_to_slot
from volley.services.registration import lifecycle, notifications, time_policy
from volley.services.registration import roster as roster_engine
from volley.services.registration.errors import Err, ErrorKind
from volley.services.registration.persistence import (
    game_view,
    load_roster,
    lock_game,
    mark_fully_paid,
    sync_roster,
)


games = Blueprint('games', __name__)


def _parse_datetime(value) -> datetime:
    if not isinstance(value, str) or not value:
        raise ValueError('date_time must be an ISO 8601 string')
    parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _body() -> dict:
    return request.get_json(silent=True) or {}


def _user_id(value, field: str):
    """Coerce a user id from a JSON body; None stays None."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f'{field} must be an integer')
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f'{field} must be an integer')


def _actor(game) -> lifecycle.Actor:
    return lifecycle.Actor(
        user_id=current_user.id,
        blocked=current_user.blocked,
        is_admin=can_manage_game(current_user, game),
    )


def _error(err: Err, action: str, game_id=None):
    db.session.rollback()
    current_app.logger.info(f"[{action}-rejected] game={game_id} user={current_user.id} kind={err.kind.value}")
    return jsonify(err.to_dict()), err.status_code


def _entry_dict(entry) -> dict:
    payload = asdict(entry)
    payload['created_at'] = entry.created_at.isoformat()
    return payload


def _game_payload(game, view=None) -> dict:
    """Game with its roster split into numbered players and waitlist."""
    view = view or game_view(game)
    roster = load_roster(game)
    rows = {(r.user_id, r.guest_name): r for r in game.registrations}

    def _rows(entries):
        listed = []
        for position, entry in enumerate(entries, start=1):
            item = rows[entry.key].to_dict()
            item['position'] = position
            listed.append(item)
        return listed

    payload = game.to_dict()
    payload['players'] = _rows(roster.active_list())
    payload['waitlist'] = _rows(roster.waitlist_list(view.tier_of))
    if current_user.is_authenticated:
        is_priority = view.is_priority_player(current_user.id)
        now = time_policy.utcnow()
        payload['is_priority_player'] = is_priority
        payload['can_manage'] = can_manage_game(current_user, game)
        payload['registration_opens_at'] = time_policy.registration_opens_at(view, is_priority).isoformat()
        payload['guest_registration_opens_at'] = time_policy.guest_registration_opens_at(view).isoformat()
        payload['unregister_deadline'] = time_policy.unregister_deadline(view).isoformat()
        payload['can_join'] = time_policy.can_join(view, now, is_priority)
        payload['registration_state'] = lifecycle.state_of(roster, current_user.id).value
    return payload


def _apply(game, result, action: str, status: int = 200, capacity_increased: bool = False):
    """Persist an Ok(RosterChange), notify, and render; or render the Err."""
    if not result.ok:
        return _error(result, action, game.id)
    change = result.value
    try:
        rows = sync_roster(game, change.roster)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        if change.entry.guest_name is not None:
            return _error(Err(ErrorKind.DUPLICATE_GUEST_NAME, guest_name=change.entry.guest_name), action, game.id)
        return _error(Err(ErrorKind.ALREADY_REGISTERED), action, game.id)

    current_app.logger.info(
        f"[{action}] game={game.id} user={change.entry.user_id} guest={change.entry.guest_name!r} "
        f"removed={change.removed} waitlist={change.entry.is_waitlist} promoted={len(change.promoted)}"
    )
    promoted_rows = [rows[e.key] for e in change.promoted]
    notifications.notify_promoted(game, promoted_rows, capacity_increased)
    notifications.broadcast_state(game.id)

    payload = {
        'promoted': [r.to_dict() for r in promoted_rows],
        'game': _game_payload(game),
    }
    if change.removed:
        payload['removed'] = _entry_dict(change.entry)
    else:
        payload['registration'] = rows[change.entry.key].to_dict()
    return jsonify(payload), status


def _load_for_update(game_id):
    game = lock_game(game_id)
    if not game:
        return None, _error(Err(ErrorKind.GAME_NOT_FOUND), 'load', game_id)
    return game, None


def _game_fields(data: dict, partial: bool = False) -> dict:
    """Validate create/edit input; raises ValueError with a client-facing message."""
    fields = {}
    if not partial or 'date_time' in data:
        fields['date_time'] = _parse_datetime(data.get('date_time'))
    if not partial or 'max_players' in data:
        try:
            max_players = int(data.get('max_players'))
        except (TypeError, ValueError):
            raise ValueError('max_players must be a positive integer')
        if max_players < 1:
            raise ValueError('max_players must be a positive integer')
        fields['max_players'] = max_players
    if 'unregister_deadline_hours' in data or not partial:
        hours = data.get('unregister_deadline_hours', current_app.config.get('DEFAULT_UNREGISTER_DEADLINE_HOURS', 5))
        try:
            hours = int(hours)
        except (TypeError, ValueError):
            raise ValueError('unregister_deadline_hours must be a non-negative integer')
        if hours < 0:
            raise ValueError('unregister_deadline_hours must be a non-negative integer')
        fields['unregister_deadline_hours'] = hours
    if 'pricing_mode' in data:
        if data['pricing_mode'] not in pricing.PRICING_MODES:
            raise ValueError(f"pricing_mode must be one of {', '.join(pricing.PRICING_MODES)}")
        fields['pricing_mode'] = data['pricing_mode']
    for key in ('registration_open_days', 'regular_registration_open_days', 'payment_amount'):
        if key in data:
            value = data[key]
            if value is not None:
                try:
                    value = int(value)
                except (TypeError, ValueError):
                    raise ValueError(f'{key} must be an integer')
                if value < 0:
                    raise ValueError(f'{key} must not be negative')
            fields[key] = value
    for key in ('readonly', 'with_positions', 'with_priority_players', 'payment_requests_sent', 'fully_paid'):
        if key in data:
            fields[key] = bool(data[key])
    for key in ('title', 'location_name', 'location_link'):
        if key in data:
            fields[key] = data[key]
    return fields


@games.route('', methods=['GET'])
@login_required
def list_games():
    query = Game.query
    if request.args.get('upcoming'):
        query = query.filter(Game.date_time > time_policy.utcnow())
    return jsonify([g.to_dict() for g in query.order_by(Game.date_time.asc()).all()])


@games.route('/defaults', methods=['GET'])
@login_required
def game_defaults():
    """Suggested settings for a new game: a week after the most recently created one."""
    latest = Game.query.order_by(Game.created_at.desc(), Game.id.desc()).first()
    cfg = current_app.config
    if latest:
        return jsonify({
            'date_time': (latest.date_time + timedelta(days=7)).isoformat(),
            'max_players': latest.max_players,
            'unregister_deadline_hours': latest.unregister_deadline_hours,
            'location_name': latest.location_name,
            'location_link': latest.location_link,
            'payment_amount': latest.payment_amount,
            'pricing_mode': latest.pricing_mode,
            'with_positions': latest.with_positions,
        })
    return jsonify({
        'date_time': (time_policy.utcnow() + timedelta(days=7)).replace(second=0, microsecond=0).isoformat(),
        'max_players': int(cfg.get('DEFAULT_MAX_PLAYERS', 14)),
        'unregister_deadline_hours': int(cfg.get('DEFAULT_UNREGISTER_DEADLINE_HOURS', 5)),
        'location_name': None,
        'location_link': None,
        'payment_amount': None,
        'pricing_mode': pricing.PER_PARTICIPANT,
        'with_positions': False,
    })


@games.route('', methods=['POST'])
@login_required
def create_game():
    data = _body()
    try:
        fields = _game_fields(data)
    except ValueError as exc:
        return jsonify({'error': str(exc)}), 400

    if not current_user.is_admin and not is_assigned_to_slot(
        current_user.id, fields['date_time'], fields.get('with_positions', False)
    ):
        return jsonify({'error': 'You are not authorized to create games for this day and type'}), 403

    game = Game(created_by_id=current_user.id, **fields)
    db.session.add(game)
    db.session.commit()
    current_app.logger.info(f"[create] game={game.id} date={game.date_time.isoformat()} max={game.max_players} by={current_user.id}")
    return jsonify(_game_payload(game)), 201


@games.route('/<int:game_id>', methods=['GET'])
@login_required
def get_game(game_id):
    game = db.session.get(Game, game_id)
    if not game:
        return jsonify(Err(ErrorKind.GAME_NOT_FOUND).to_dict()), 404
    return jsonify(_game_payload(game))


@games.route('/<int:game_id>', methods=['PUT'])
@login_required
def update_game(game_id):
    """Edit a game. Growing capacity seats waitlisted players; shrinking never evicts."""
    game, failed = _load_for_update(game_id)
    if failed:
        return failed
    if not can_manage_game(current_user, game):
        return _error(Err(ErrorKind.NOT_AUTHORIZED), 'update', game.id)
    try:
        fields = _game_fields(_body(), partial=True)
    except ValueError as exc:
        db.session.rollback()
        return jsonify({'error': str(exc)}), 400

    old_date_time = game.date_time
    old_max_players = game.max_players
    for key, value in fields.items():
        setattr(game, key, value)

    promoted_rows = []
    if game.max_players > old_max_players:
        view = game_view(game)
        filled, promoted = roster_engine.fill_open_slots(load_roster(game), game.max_players, view.tier_of)
        rows = sync_roster(game, filled)
        promoted_rows = [rows[e.key] for e in promoted]
    db.session.commit()
    current_app.logger.info(
        f"[update] game={game.id} max={old_max_players}->{game.max_players} promoted={len(promoted_rows)}"
    )

    notifications.notify_promoted(game, promoted_rows, capacity_increased=True)
    if game.date_time != old_date_time and game.registrations:
        notifications.notify_rescheduled(game, old_date_time, [r.user_id for r in game.registrations])
    notifications.broadcast_state(game.id)
    return jsonify(_game_payload(game))


@games.route('/<int:game_id>', methods=['DELETE'])
@login_required
def delete_game(game_id):
    game = db.session.get(Game, game_id)
    if not game:
        return jsonify(Err(ErrorKind.GAME_NOT_FOUND).to_dict()), 404
    if not can_manage_game(current_user, game):
        return jsonify(Err(ErrorKind.NOT_AUTHORIZED).to_dict()), 403
    db.session.delete(game)
    db.session.commit()
    current_app.logger.info(f"[delete] game={game_id} by={current_user.id}")
    notifications.broadcast_state(game_id)
    return '', 204


@games.route('/<int:game_id>/register', methods=['POST'])
@login_required
def register(game_id):
    game, failed = _load_for_update(game_id)
    if failed:
        return failed
    data = _body()
    view, roster, actor, now = game_view(game), load_roster(game), _actor(game), time_policy.utcnow()
    if 'guest_name' in data and data['guest_name'] is not None:
        result = lifecycle.join_guest(view, roster, actor, data['guest_name'], now)
        return _apply(game, result, 'guest-join', status=201)
    return _apply(game, lifecycle.join(view, roster, actor, now), 'join', status=201)


@games.route('/<int:game_id>/register', methods=['DELETE'])
@login_required
def unregister(game_id):
    game, failed = _load_for_update(game_id)
    if failed:
        return failed
    data = _body()
    try:
        inviter_id = _user_id(data.get('inviter_id'), 'inviter_id')
    except ValueError as exc:
        db.session.rollback()
        return jsonify({'error': str(exc)}), 400
    result = lifecycle.leave(
        game_view(game),
        load_roster(game),
        _actor(game),
        time_policy.utcnow(),
        guest_name=data.get('guest_name'),
        inviter_id=inviter_id,
    )
    return _apply(game, result, 'leave')


@games.route('/<int:game_id>/register/ball', methods=['PUT'])
@login_required
def bring_ball(game_id):
    game, failed = _load_for_update(game_id)
    if failed:
        return failed
    data = _body()
    result = lifecycle.set_bringing_the_ball(
        load_roster(game), _actor(game), data.get('bringing_the_ball', True), data.get('guest_name')
    )
    return _apply(game, result, 'ball')


@games.route('/<int:game_id>/participants', methods=['POST'])
@login_required
def add_participant(game_id):
    game, failed = _load_for_update(game_id)
    if failed:
        return failed
    data = _body()
    try:
        user_id = _user_id(data.get('user_id'), 'user_id')
    except ValueError as exc:
        db.session.rollback()
        return jsonify({'error': str(exc)}), 400
    if user_id is None:
        db.session.rollback()
        return jsonify({'error': 'user_id is required'}), 400
    if not db.session.get(User, user_id):
        db.session.rollback()
        return jsonify({'error': 'User not found'}), 404
    result = lifecycle.admin_add(
        game_view(game), load_roster(game), _actor(game), user_id, time_policy.utcnow(), data.get('guest_name')
    )
    return _apply(game, result, 'admin-add', status=201)


@games.route('/<int:game_id>/participants/<int:user_id>', methods=['DELETE'])
@login_required
def remove_participant(game_id, user_id):
    game, failed = _load_for_update(game_id)
    if failed:
        return failed
    result = lifecycle.admin_remove(
        game_view(game), load_roster(game), _actor(game), user_id, _body().get('guest_name')
    )
    return _apply(game, result, 'admin-remove')


@games.route('/<int:game_id>/participants/<int:user_id>/waitlist', methods=['POST'])
@login_required
def move_to_waitlist(game_id, user_id):
    game, failed = _load_for_update(game_id)
    if failed:
        return failed
    result = lifecycle.admin_move_to_waitlist(
        game_view(game), load_roster(game), _actor(game), user_id, _body().get('guest_name')
    )
    return _apply(game, result, 'move-to-waitlist')


@games.route('/<int:game_id>/participants/<int:user_id>/active', methods=['POST'])
@login_required
def move_to_active(game_id, user_id):
    game, failed = _load_for_update(game_id)
    if failed:
        return failed
    result = lifecycle.admin_move_to_active(
        game_view(game), load_roster(game), _actor(game), user_id, _body().get('guest_name')
    )
    return _apply(game, result, 'move-to-active')


@games.route('/<int:game_id>/players/<int:user_id>/paid', methods=['PUT'])
@login_required
def set_paid(game_id, user_id):
    game, failed = _load_for_update(game_id)
    if failed:
        return failed
    data = _body()
    result = lifecycle.set_paid(load_roster(game), _actor(game), user_id, data.get('paid', True), data.get('guest_name'))
    if result.ok:
        sync_roster(game, result.value.roster)
        mark_fully_paid(game)
    return _apply(game, result, 'paid')
