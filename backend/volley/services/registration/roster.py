"""Roster invariant engine.

A roster is an immutable snapshot of one game's registrations. Every
operation returns a ``RosterChange`` holding the new snapshot, the entry
that was touched and any entries promoted from the waitlist as a result.
The number of active entries never grows past ``max_players``; a roster
that is already over capacity (after the game was shrunk) only drains.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from .errors import Err, ErrorKind
from .priority import order_key, seat


@dataclass(frozen=True)
class Entry:
    user_id: int
    created_at: datetime
    guest_name: Optional[str] = None
    is_waitlist: bool = False
    paid: bool = False
    bringing_the_ball: bool = False
    id: Optional[int] = None

    @property
    def key(self) -> Tuple[int, Optional[str]]:
        return self.user_id, self.guest_name

    @property
    def is_guest(self) -> bool:
        return self.guest_name is not None


@dataclass(frozen=True)
class Roster:
    game_id: Optional[int] = None
    entries: Tuple[Entry, ...] = field(default_factory=tuple)

    def find(self, user_id: int, guest_name: Optional[str] = None) -> Optional[Entry]:
        for entry in self.entries:
            if entry.key == (user_id, guest_name):
                return entry
        return None

    def active_count(self) -> int:
        return sum(1 for e in self.entries if not e.is_waitlist)

    def active_list(self) -> List[Entry]:
        return sorted((e for e in self.entries if not e.is_waitlist), key=order_key())

    def waitlist_list(self, tier_of: Optional[Callable] = None) -> List[Entry]:
        return sorted((e for e in self.entries if e.is_waitlist), key=order_key(tier_of))

    def position_of(self, entry: Entry, tier_of: Optional[Callable] = None) -> int:
        """1-based position within the entry's own partition."""
        ordered = self.waitlist_list(tier_of) if entry.is_waitlist else self.active_list()
        for index, candidate in enumerate(ordered, start=1):
            if candidate.key == entry.key:
                return index
        raise KeyError(entry.key)

    def with_entry(self, entry: Entry) -> 'Roster':
        if self.find(*entry.key) is not None:
            raise ValueError(f"duplicate roster entry {entry.key!r}")
        return replace(self, entries=self.entries + (entry,))

    def without(self, entry: Entry) -> 'Roster':
        return replace(self, entries=tuple(e for e in self.entries if e.key != entry.key))

    def updated(self, entry: Entry) -> 'Roster':
        return replace(self, entries=tuple(entry if e.key == entry.key else e for e in self.entries))


@dataclass(frozen=True)
class RosterChange:
    roster: Roster
    entry: Entry
    removed: bool = False
    promoted: Tuple[Entry, ...] = ()


def active_count(roster: Roster) -> int:
    return roster.active_count()


def admit(roster: Roster, entry: Entry, max_players: int) -> RosterChange:
    """Insert a new entry into the active list if a slot is free, else the waitlist."""
    admitted = replace(entry, is_waitlist=roster.active_count() >= max_players)
    return RosterChange(roster=roster.with_entry(admitted), entry=admitted)


def _promote_next(roster: Roster, max_players: int, tier_of=None, exclude=None) -> Tuple[Roster, Tuple[Entry, ...]]:
    if roster.active_count() >= max_players:
        return roster, ()
    candidates = [e for e in roster.waitlist_list(tier_of) if exclude is None or e.key != exclude]
    seated, _ = seat(candidates, 1, tier_of)
    if not seated:
        return roster, ()
    promoted = replace(seated[0], is_waitlist=False)
    return roster.updated(promoted), (promoted,)


def release(roster: Roster, entry: Entry, max_players: int, tier_of=None) -> RosterChange:
    """Remove an entry; removing an active entry promotes the next waitlisted one."""
    current = roster.find(*entry.key)
    if current is None:
        raise KeyError(entry.key)
    remaining = roster.without(current)
    promoted = ()
    if not current.is_waitlist:
        remaining, promoted = _promote_next(remaining, max_players, tier_of)
    return RosterChange(roster=remaining, entry=current, removed=True, promoted=promoted)


def move_to_waitlist(roster: Roster, entry: Entry, max_players: int, tier_of=None) -> RosterChange:
    """Force an entry onto the waitlist and hand the freed slot to the next in line."""
    current = roster.find(*entry.key)
    if current is None:
        raise KeyError(entry.key)
    if current.is_waitlist:
        return RosterChange(roster=roster, entry=current)
    demoted = replace(current, is_waitlist=True)
    updated, promoted = _promote_next(roster.updated(demoted), max_players, tier_of, exclude=demoted.key)
    return RosterChange(roster=updated, entry=demoted, promoted=promoted)


def move_to_active(roster: Roster, entry: Entry, max_players: int):
    """Seat a waitlisted entry; rejected outright when the active list is full."""
    current = roster.find(*entry.key)
    if current is None:
        raise KeyError(entry.key)
    if not current.is_waitlist:
        return RosterChange(roster=roster, entry=current)
    count = roster.active_count()
    if count >= max_players:
        return Err(ErrorKind.CAPACITY_EXCEEDED, max_players=max_players, active_count=count)
    activated = replace(current, is_waitlist=False)
    return RosterChange(roster=roster.updated(activated), entry=activated)


def fill_open_slots(roster: Roster, max_players: int, tier_of=None) -> Tuple[Roster, Tuple[Entry, ...]]:
    """Promote waitlisted entries until the active list is full (used when capacity grows)."""
    free = max_players - roster.active_count()
    if free <= 0:
        return roster, ()
    seated, _ = seat(roster.waitlist_list(tier_of), free, tier_of)
    promoted = tuple(replace(e, is_waitlist=False) for e in seated)
    for entry in promoted:
        roster = roster.updated(entry)
    return roster, promoted
