"""Game-administrator and priority-player lookups for a game's weekday slot."""
from volley import db
from volley.models import GameAdministrator, PriorityPlayer
from volley.services.registration.priority import slot_of


def is_assigned_to_slot(user_id: int, date_time, with_positions: bool) -> bool:
    day, positions = slot_of(date_time, with_positions)
    return GameAdministrator.query.filter_by(
        user_id=user_id, day_of_week=day, with_positions=positions
    ).first() is not None


def can_manage_game(user, game) -> bool:
    """Global admins manage everything; assigned administrators manage their slot."""
    if user is None or not getattr(user, 'is_authenticated', False):
        return False
    if user.is_admin:
        return True
    return is_assigned_to_slot(user.id, game.date_time, game.with_positions)


def is_slot_administrator(user, assignment: GameAdministrator) -> bool:
    return user.is_admin or (
        GameAdministrator.query.filter_by(
            user_id=user.id,
            day_of_week=assignment.day_of_week,
            with_positions=assignment.with_positions,
        ).first() is not None
    )


def priority_user_ids(game) -> frozenset:
    if not game.with_priority_players:
        return frozenset()
    day, positions = slot_of(game.date_time, game.with_positions)
    rows = (
        db.session.query(PriorityPlayer.user_id)
        .join(GameAdministrator, PriorityPlayer.game_administrator_id == GameAdministrator.id)
        .filter(GameAdministrator.day_of_week == day, GameAdministrator.with_positions == positions)
        .all()
    )
    return frozenset(row.user_id for row in rows)
