"""Registration time windows.

All instants are naive UTC datetimes. Functions only read ``date_time``,
``unregister_deadline_hours``, ``with_priority_players`` and ``windows``
from the game they are given.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone


@dataclass(frozen=True)
class Windows:
    registration_open_days: int = 10
    # Non-priority players in priority-player games
    regular_open_days: int = 3
    guest_open_days: int = 3

    @classmethod
    def from_config(cls, config, game=None) -> 'Windows':
        open_days = getattr(game, 'registration_open_days', None)
        regular_days = getattr(game, 'regular_registration_open_days', None)
        return cls(
            registration_open_days=open_days if open_days is not None else int(config.get('REGISTRATION_OPEN_DAYS', 10)),
            regular_open_days=regular_days if regular_days is not None else int(config.get('REGULAR_PLAYER_OPEN_DAYS', 3)),
            guest_open_days=int(config.get('GUEST_REGISTRATION_OPEN_DAYS', 3)),
        )


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def is_upcoming(game, now: datetime) -> bool:
    return now < game.date_time


def is_past(game, now: datetime) -> bool:
    return now >= game.date_time


def registration_opens_at(game, is_priority_player: bool = False) -> datetime:
    """Regular players of a priority-player game wait for the shorter window."""
    if game.with_priority_players and not is_priority_player:
        days = game.windows.regular_open_days
    else:
        days = game.windows.registration_open_days
    return game.date_time - timedelta(days=days)


def guest_registration_opens_at(game) -> datetime:
    return game.date_time - timedelta(days=game.windows.guest_open_days)


def can_join(game, now: datetime, is_priority_player: bool = False) -> bool:
    return now >= registration_opens_at(game, is_priority_player)


def can_register_guest(game, now: datetime) -> bool:
    return now >= guest_registration_opens_at(game)


def unregister_deadline(game) -> datetime:
    return game.date_time - timedelta(hours=game.unregister_deadline_hours)


def can_leave(game, entry, now: datetime) -> bool:
    # Waitlisted entries may always leave
    return entry.is_waitlist or now <= unregister_deadline(game)
