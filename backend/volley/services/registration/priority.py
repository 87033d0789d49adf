"""Priority-player admission ordering.

Priority eligibility is a property of the assignment table, not of the
registration row, so tiers are computed on demand from the set of user ids
holding a priority assignment for the game's weekday/with_positions slot.
"""
from enum import IntEnum
from typing import Callable, Iterable, List, Optional, Tuple


class Tier(IntEnum):
    PRIORITY = 0
    REGULAR = 1


def slot_of(date_time, with_positions: bool) -> Tuple[int, bool]:
    """Recurring slot of a game: (day_of_week with Monday=0, with_positions)."""
    return date_time.weekday(), bool(with_positions)


def tier_resolver(priority_user_ids: Iterable[int], enabled: bool = True) -> Optional[Callable]:
    """Build a ``tier_of(entry)`` callable, or None when priority ordering is off.

    Guests are never priority tier, even when their inviter is.
    """
    if not enabled:
        return None
    ids = frozenset(priority_user_ids)

    def tier_of(entry) -> Tier:
        if entry.guest_name is None and entry.user_id in ids:
            return Tier.PRIORITY
        return Tier.REGULAR

    return tier_of


def order_key(tier_of: Optional[Callable] = None):
    if tier_of is None:
        return lambda entry: entry.created_at
    return lambda entry: (tier_of(entry), entry.created_at)


def seat(entries, slots: int, tier_of: Optional[Callable] = None) -> Tuple[List, List]:
    """Split entries into (seated, overflow) by (tier, created_at).

    Ties keep the incoming order, so callers pass entries in insertion order.
    """
    ordered = sorted(entries, key=order_key(tier_of))
    slots = max(0, slots)
    return ordered[:slots], ordered[slots:]
