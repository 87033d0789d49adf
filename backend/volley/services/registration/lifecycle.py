"""Registration lifecycle per (game, participant-or-guest) pair.

    UNREGISTERED -> ACTIVE | WAITLISTED      join / guest join / admin add
    ACTIVE <-> WAITLISTED                     promotion, admin moves
    ACTIVE | WAITLISTED -> UNREGISTERED       leave / guest leave / admin remove

Self-service transitions are gated by the time policy; admin transitions
bypass it but respect ``can_mutate_roster``. Every operation returns
``Ok(RosterChange)`` or ``Err``; nothing here touches the database.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import FrozenSet, Optional

from . import roster as engine
from . import time_policy
from .errors import Err, ErrorKind, Ok
from .priority import tier_resolver
from .roster import Entry, Roster, RosterChange
from .time_policy import Windows


class RegistrationState(str, Enum):
    UNREGISTERED = 'unregistered'
    ACTIVE = 'active'
    WAITLISTED = 'waitlisted'


@dataclass(frozen=True)
class GameView:
    id: Optional[int]
    date_time: datetime
    max_players: int
    unregister_deadline_hours: int = 5
    readonly: bool = False
    with_positions: bool = False
    with_priority_players: bool = False
    # False once payment requests have gone out
    roster_mutable: bool = True
    windows: Windows = field(default_factory=Windows)
    priority_user_ids: FrozenSet[int] = frozenset()

    def is_priority_player(self, user_id: int) -> bool:
        return self.with_priority_players and user_id in self.priority_user_ids

    @property
    def tier_of(self):
        return tier_resolver(self.priority_user_ids, enabled=self.with_priority_players)


@dataclass(frozen=True)
class Actor:
    user_id: int
    blocked: bool = False
    # Global admin or the assigned administrator of this game's slot
    is_admin: bool = False


def state_of(roster: Roster, user_id: int, guest_name: Optional[str] = None) -> RegistrationState:
    entry = roster.find(user_id, guest_name)
    if entry is None:
        return RegistrationState.UNREGISTERED
    return RegistrationState.WAITLISTED if entry.is_waitlist else RegistrationState.ACTIVE


def can_mutate_roster(game: GameView) -> bool:
    return game.roster_mutable


def normalize_guest_name(guest_name) -> Optional[str]:
    if guest_name is None:
        return None
    return str(guest_name).strip()


def join(game: GameView, roster: Roster, actor: Actor, now: datetime):
    if game.readonly:
        return Err(ErrorKind.READONLY_GAME)
    if actor.blocked:
        return Err(ErrorKind.USER_BLOCKED)
    is_priority = game.is_priority_player(actor.user_id)
    if not time_policy.can_join(game, now, is_priority):
        return Err(
            ErrorKind.REGISTRATION_NOT_YET_OPEN,
            registration_opens_at=time_policy.registration_opens_at(game, is_priority),
        )
    if roster.find(actor.user_id) is not None:
        return Err(ErrorKind.ALREADY_REGISTERED)
    return Ok(engine.admit(roster, Entry(user_id=actor.user_id, created_at=now), game.max_players))


def join_guest(game: GameView, roster: Roster, actor: Actor, guest_name, now: datetime):
    name = normalize_guest_name(guest_name)
    if not name:
        return Err(ErrorKind.INVALID_GUEST_NAME)
    if game.readonly:
        return Err(ErrorKind.READONLY_GAME)
    if actor.blocked:
        return Err(ErrorKind.USER_BLOCKED)
    if not time_policy.can_register_guest(game, now):
        return Err(
            ErrorKind.REGISTRATION_NOT_YET_OPEN,
            registration_opens_at=time_policy.guest_registration_opens_at(game),
        )
    if roster.find(actor.user_id, name) is not None:
        return Err(ErrorKind.DUPLICATE_GUEST_NAME, guest_name=name)
    entry = Entry(user_id=actor.user_id, guest_name=name, created_at=now)
    return Ok(engine.admit(roster, entry, game.max_players))


def leave(game: GameView, roster: Roster, actor: Actor, now: datetime, guest_name=None, inviter_id: Optional[int] = None):
    """Self-service removal; a guest may be removed by its inviter or an admin.

    Admins acting on someone else's guest still go through the time policy
    here; use ``admin_remove`` to bypass it.
    """
    name = normalize_guest_name(guest_name) or None
    owner_id = actor.user_id if inviter_id is None else inviter_id
    if owner_id != actor.user_id and not (name and actor.is_admin):
        return Err(ErrorKind.NOT_AUTHORIZED)
    if game.readonly:
        return Err(ErrorKind.READONLY_GAME)
    entry = roster.find(owner_id, name)
    if entry is None:
        return Err(ErrorKind.NOT_REGISTERED, guest_name=name) if name else Err(ErrorKind.NOT_REGISTERED)
    if not time_policy.can_leave(game, entry, now):
        return Err(ErrorKind.UNREGISTER_DEADLINE_PASSED, deadline=time_policy.unregister_deadline(game))
    return Ok(engine.release(roster, entry, game.max_players, game.tier_of))


def set_bringing_the_ball(roster: Roster, actor: Actor, bringing: bool, guest_name=None):
    entry = roster.find(actor.user_id, normalize_guest_name(guest_name) or None)
    if entry is None:
        return Err(ErrorKind.NOT_REGISTERED)
    updated = replace(entry, bringing_the_ball=bool(bringing))
    return Ok(RosterChange(roster=roster.updated(updated), entry=updated))


def _admin_guard(game: GameView, actor: Actor):
    if not actor.is_admin:
        return Err(ErrorKind.NOT_AUTHORIZED)
    if not can_mutate_roster(game):
        return Err(ErrorKind.ROSTER_LOCKED)
    return None


def _find_target(roster: Roster, target_user_id: int, guest_name):
    entry = roster.find(target_user_id, normalize_guest_name(guest_name) or None)
    if entry is None:
        return None, Err(ErrorKind.REGISTRATION_NOT_FOUND, user_id=target_user_id)
    return entry, None


def admin_add(game: GameView, roster: Roster, actor: Actor, target_user_id: int, now: datetime, guest_name=None):
    """Add anyone at any time; follows the same admit-or-waitlist rule as a self join."""
    rejected = _admin_guard(game, actor)
    if rejected:
        return rejected
    name = normalize_guest_name(guest_name)
    if name == '':
        return Err(ErrorKind.INVALID_GUEST_NAME)
    if roster.find(target_user_id, name) is not None:
        if name:
            return Err(ErrorKind.DUPLICATE_GUEST_NAME, guest_name=name)
        return Err(ErrorKind.ALREADY_REGISTERED)
    entry = Entry(user_id=target_user_id, guest_name=name, created_at=now)
    return Ok(engine.admit(roster, entry, game.max_players))


def admin_remove(game: GameView, roster: Roster, actor: Actor, target_user_id: int, guest_name=None):
    rejected = _admin_guard(game, actor)
    if rejected:
        return rejected
    entry, missing = _find_target(roster, target_user_id, guest_name)
    if missing:
        return missing
    return Ok(engine.release(roster, entry, game.max_players, game.tier_of))


def admin_move_to_waitlist(game: GameView, roster: Roster, actor: Actor, target_user_id: int, guest_name=None):
    rejected = _admin_guard(game, actor)
    if rejected:
        return rejected
    entry, missing = _find_target(roster, target_user_id, guest_name)
    if missing:
        return missing
    return Ok(engine.move_to_waitlist(roster, entry, game.max_players, game.tier_of))


def admin_move_to_active(game: GameView, roster: Roster, actor: Actor, target_user_id: int, guest_name=None):
    rejected = _admin_guard(game, actor)
    if rejected:
        return rejected
    entry, missing = _find_target(roster, target_user_id, guest_name)
    if missing:
        return missing
    result = engine.move_to_active(roster, entry, game.max_players)
    if isinstance(result, Err):
        return result
    return Ok(result)


def set_paid(roster: Roster, actor: Actor, target_user_id: int, paid: bool, guest_name=None):
    """Flip the paid flag; never changes the partition."""
    if not actor.is_admin:
        return Err(ErrorKind.NOT_AUTHORIZED)
    entry, missing = _find_target(roster, target_user_id, guest_name)
    if missing:
        return missing
    updated = replace(entry, paid=bool(paid))
    return Ok(RosterChange(roster=roster.updated(updated), entry=updated))
