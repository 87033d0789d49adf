"""Outstanding payments per user, grouped by game."""
from volley import db
from volley.models import Game, Registration
from volley.services import pricing


def unpaid_items(user_id: int) -> list:
    """Games with payment requests out where the user still owes for active registrations.

    Guest registrations are owed by their inviter. Oldest game first.
    """
    rows = (
        db.session.query(Registration)
        .join(Game, Registration.game_id == Game.id)
        .filter(
            Registration.user_id == user_id,
            Registration.paid.is_(False),
            Registration.is_waitlist.is_(False),
            Game.payment_requests_sent.is_(True),
        )
        .order_by(Game.date_time.asc(), Registration.created_at.asc())
        .all()
    )

    items = {}
    for row in rows:
        game = row.game
        item = items.get(game.id)
        if item is None:
            active_count = sum(1 for r in game.registrations if not r.is_waitlist)
            item = items[game.id] = {
                'game_id': game.id,
                'date_time': game.date_time.isoformat(),
                'location_name': game.location_name,
                'unit_amount': pricing.per_participant_cost(
                    game.payment_amount, game.pricing_mode, game.max_players, active_count or None
                ),
                'registrations': 0,
                'guest_names': [],
            }
        item['registrations'] += 1
        if row.guest_name is not None:
            item['guest_names'].append(row.guest_name)

    result = []
    for item in items.values():
        unit = item.pop('unit_amount')
        item['total_amount'] = unit * item['registrations'] if unit is not None else None
        result.append(item)
    return result
