from flask import Blueprint, jsonify, request, current_app
from flask_login import login_required, current_user
from sqlalchemy.exc import IntegrityError

from volley import db
from volley.models import GameAdministrator, PriorityPlayer, User
from volley.services.assignments import is_slot_administrator


administration = Blueprint('administration', __name__)


def _require_global_admin():
    if not current_user.is_admin:
        return jsonify({'error': 'Admin access required'}), 403
    return None


def _slot_fields(data: dict):
    try:
        day_of_week = int(data.get('day_of_week'))
    except (TypeError, ValueError):
        raise ValueError('day_of_week must be an integer between 0 and 6')
    if not 0 <= day_of_week <= 6:
        raise ValueError('day_of_week must be an integer between 0 and 6')
    return day_of_week, bool(data.get('with_positions', False))


def _user_id(value):
    """Integer user id from a JSON body, or None when missing or malformed."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@administration.route('/game-administrators', methods=['GET'])
@login_required
def list_game_administrators():
    rows = GameAdministrator.query.order_by(
        GameAdministrator.day_of_week.asc(), GameAdministrator.with_positions.asc()
    ).all()
    return jsonify([row.to_dict() for row in rows])


@administration.route('/game-administrators/me', methods=['GET'])
@login_required
def my_game_administrator_assignments():
    """Slots the current user administers; available to every authenticated user."""
    rows = GameAdministrator.query.filter_by(user_id=current_user.id).order_by(
        GameAdministrator.day_of_week.asc(), GameAdministrator.with_positions.asc()
    ).all()
    return jsonify([row.to_dict() for row in rows])


@administration.route('/game-administrators', methods=['POST'])
@login_required
def create_game_administrator():
    denied = _require_global_admin()
    if denied:
        return denied
    data = request.get_json(silent=True) or {}
    try:
        day_of_week, with_positions = _slot_fields(data)
    except ValueError as exc:
        return jsonify({'error': str(exc)}), 400
    user_id = _user_id(data.get('user_id'))
    if user_id is None or not db.session.get(User, user_id):
        return jsonify({'error': 'User not found'}), 404

    assignment = GameAdministrator(day_of_week=day_of_week, with_positions=with_positions, user_id=user_id)
    db.session.add(assignment)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({'error': 'This day and game type already has an administrator'}), 409
    current_app.logger.info(
        f"[assign] administrator={user_id} day={day_of_week} positions={with_positions} by={current_user.id}"
    )
    return jsonify(assignment.to_dict()), 201


@administration.route('/game-administrators/<int:assignment_id>', methods=['PUT'])
@login_required
def update_game_administrator(assignment_id):
    denied = _require_global_admin()
    if denied:
        return denied
    assignment = db.session.get(GameAdministrator, assignment_id)
    if not assignment:
        return jsonify({'error': 'Game administrator assignment not found'}), 404
    data = request.get_json(silent=True) or {}
    if 'user_id' in data:
        user_id = _user_id(data['user_id'])
        if user_id is None or not db.session.get(User, user_id):
            return jsonify({'error': 'User not found'}), 404
        assignment.user_id = user_id
    if 'day_of_week' in data or 'with_positions' in data:
        merged = {
            'day_of_week': data.get('day_of_week', assignment.day_of_week),
            'with_positions': data.get('with_positions', assignment.with_positions),
        }
        try:
            assignment.day_of_week, assignment.with_positions = _slot_fields(merged)
        except ValueError as exc:
            db.session.rollback()
            return jsonify({'error': str(exc)}), 400
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({'error': 'This day and game type already has an administrator'}), 409
    return jsonify(assignment.to_dict())


@administration.route('/game-administrators/<int:assignment_id>', methods=['DELETE'])
@login_required
def delete_game_administrator(assignment_id):
    denied = _require_global_admin()
    if denied:
        return denied
    assignment = db.session.get(GameAdministrator, assignment_id)
    if not assignment:
        return jsonify({'error': 'Game administrator assignment not found'}), 404
    db.session.delete(assignment)
    db.session.commit()
    current_app.logger.info(f"[unassign] assignment={assignment_id} by={current_user.id}")
    return '', 204


@administration.route('/game-administrators/<int:assignment_id>/priority-players', methods=['GET'])
@login_required
def list_priority_players(assignment_id):
    assignment = db.session.get(GameAdministrator, assignment_id)
    if not assignment:
        return jsonify({'error': 'Game administrator assignment not found'}), 404
    return jsonify([p.to_dict() for p in assignment.priority_players])


@administration.route('/game-administrators/<int:assignment_id>/priority-players', methods=['POST'])
@login_required
def add_priority_player(assignment_id):
    """Priority players of a slot are managed by global admins and that slot's administrator."""
    assignment = db.session.get(GameAdministrator, assignment_id)
    if not assignment:
        return jsonify({'error': 'Game administrator assignment not found'}), 404
    if not is_slot_administrator(current_user, assignment):
        return jsonify({'error': 'You are not authorized to manage priority players for this slot'}), 403
    user_id = _user_id((request.get_json(silent=True) or {}).get('user_id'))
    if user_id is None or not db.session.get(User, user_id):
        return jsonify({'error': 'User not found'}), 404

    player = PriorityPlayer(game_administrator_id=assignment.id, user_id=user_id)
    db.session.add(player)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({'error': 'User is already a priority player for this slot'}), 409
    current_app.logger.info(f"[priority-add] assignment={assignment.id} user={user_id} by={current_user.id}")
    return jsonify(player.to_dict()), 201


@administration.route('/game-administrators/<int:assignment_id>/priority-players/<int:user_id>', methods=['DELETE'])
@login_required
def remove_priority_player(assignment_id, user_id):
    assignment = db.session.get(GameAdministrator, assignment_id)
    if not assignment:
        return jsonify({'error': 'Game administrator assignment not found'}), 404
    if not is_slot_administrator(current_user, assignment):
        return jsonify({'error': 'You are not authorized to manage priority players for this slot'}), 403
    player = PriorityPlayer.query.filter_by(game_administrator_id=assignment.id, user_id=user_id).first()
    if not player:
        return jsonify({'error': 'Priority player not found'}), 404
    db.session.delete(player)
    db.session.commit()
    current_app.logger.info(f"[priority-remove] assignment={assignment.id} user={user_id} by={current_user.id}")
    return '', 204
