from flask import Blueprint, request, jsonify, current_app
from flask_login import login_user, logout_user, login_required, current_user
from sqlalchemy import func, or_
from volley import db
from volley.models import GameAdministrator, User
from volley.services.unpaid import unpaid_items

main = Blueprint('main', __name__)

@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the volleyball registration server!'})

@main.route('/users/add', methods=['POST'])
def add_user():
    data = request.get_json(silent=True)
    if not data or 'username' not in data or 'password' not in data:
        return jsonify({'error': 'Missing username or password'}), 400

    if User.query.filter_by(username=data['username']).first():
        return jsonify({'error': 'Username already exists'}), 400

    user = User(username=data['username'], display_name=data.get('display_name'))
    user.set_password(data['password'])
    db.session.add(user)
    db.session.commit()

    return jsonify(user.to_dict()), 201

@main.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or {}
    user = User.query.filter_by(username=data.get('username')).first()
    if user and user.check_password(data.get('password') or ''):
        login_user(user, remember=True)
        return jsonify({'message': 'Logged in successfully.', 'user': user.to_dict()})
    return jsonify({'error': 'Invalid username or password'}), 401

@main.route('/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return jsonify({'message': 'Logged out successfully.'})

@main.route('/users/me')
@login_required
def me():
    return jsonify(current_user.to_dict())

@main.route('/users/<int:user_id>/block', methods=['PUT'])
@login_required
def block_user(user_id):
    """Set or clear a block reason; blocked users cannot join games."""
    if not current_user.is_admin:
        return jsonify({'error': 'Admin access required'}), 403
    user = db.session.get(User, user_id)
    if not user:
        return jsonify({'error': 'User not found'}), 404
    data = request.get_json(silent=True) or {}
    reason = data.get('reason')
    user.block_reason = reason.strip() if isinstance(reason, str) and reason.strip() else None
    db.session.commit()
    current_app.logger.info(f"[block] user={user.id} blocked={user.blocked} by={current_user.id}")
    return jsonify(user.to_dict())

@main.route('/users/search')
@login_required
def search_users():
    """Find users by username or display name; used when adding participants."""
    if not current_user.is_admin and not GameAdministrator.query.filter_by(user_id=current_user.id).first():
        return jsonify({'error': 'Admin access required'}), 403
    query = (request.args.get('q') or '').strip()
    if not query:
        return jsonify({'error': 'Search query must be at least 1 character long'}), 400
    term = f"%{query.lower()}%"
    users = User.query.filter(
        or_(func.lower(User.username).like(term), func.lower(User.display_name).like(term))
    ).order_by(User.username.asc()).limit(20).all()
    return jsonify([user.to_dict() for user in users])

@main.route('/users/<int:user_id>/unpaid-games')
@login_required
def user_unpaid_games(user_id):
    if not current_user.is_admin and current_user.id != user_id:
        return jsonify({'error': 'Admin access required'}), 403
    if not db.session.get(User, user_id):
        return jsonify({'error': 'User not found'}), 404
    return jsonify(unpaid_items(user_id))
