"""Bridge between the ORM rows and roster snapshots.

One mutating request = one transaction: lock the game row, rebuild the
snapshot, run the pure operation, then ``sync_roster`` writes the
difference through the ``Game.registrations`` collection before commit.
"""
from typing import Dict, Optional, Tuple

from flask import current_app

from volley import db
from volley.models import Game, Registration
from volley.services.assignments import priority_user_ids
from .lifecycle import GameView
from .roster import Entry, Roster
from .time_policy import Windows


def lock_game(game_id: int) -> Optional[Game]:
    """Load a game with a row lock so concurrent joins serialize on it."""
    return db.session.query(Game).filter_by(id=game_id).with_for_update().first()


def game_view(game: Game, config=None) -> GameView:
    config = config if config is not None else current_app.config
    return GameView(
        id=game.id,
        date_time=game.date_time,
        max_players=game.max_players,
        unregister_deadline_hours=game.unregister_deadline_hours,
        readonly=game.readonly,
        with_positions=game.with_positions,
        with_priority_players=game.with_priority_players,
        roster_mutable=not game.payment_requests_sent,
        windows=Windows.from_config(config, game),
        priority_user_ids=priority_user_ids(game),
    )


def entry_from_row(row: Registration) -> Entry:
    return Entry(
        id=row.id,
        user_id=row.user_id,
        guest_name=row.guest_name,
        is_waitlist=row.is_waitlist,
        paid=row.paid,
        bringing_the_ball=row.bringing_the_ball,
        created_at=row.created_at,
    )


def load_roster(game: Game) -> Roster:
    return Roster(game_id=game.id, entries=tuple(entry_from_row(r) for r in game.registrations))


def sync_roster(game: Game, roster: Roster) -> Dict[Tuple[int, Optional[str]], Registration]:
    """Apply a snapshot to the game's rows; returns the surviving rows by entry key."""
    rows = {(r.user_id, r.guest_name): r for r in game.registrations}
    wanted = {entry.key for entry in roster.entries}

    for key, row in list(rows.items()):
        if key not in wanted:
            game.registrations.remove(row)
            del rows[key]

    for entry in roster.entries:
        row = rows.get(entry.key)
        if row is None:
            row = Registration(user_id=entry.user_id, guest_name=entry.guest_name, created_at=entry.created_at)
            game.registrations.append(row)
            rows[entry.key] = row
        row.is_waitlist = entry.is_waitlist
        row.paid = entry.paid
        row.bringing_the_ball = entry.bringing_the_ball

    db.session.add(game)
    db.session.flush()
    return rows


def mark_fully_paid(game: Game) -> bool:
    """A game is fully paid once every active registration is paid."""
    active = [r for r in game.registrations if not r.is_waitlist]
    game.fully_paid = bool(active) and all(r.paid for r in active)
    return game.fully_paid
