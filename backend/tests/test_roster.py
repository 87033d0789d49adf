import random
from datetime import datetime, timedelta

import pytest

from volley.services.registration import roster as engine
from volley.services.registration.errors import Err, ErrorKind
from volley.services.registration.priority import tier_resolver
from volley.services.registration.roster import Entry, Roster


T0 = datetime(2030, 1, 1, 9, 0)


def _entry(user_id, minutes, **kwargs):
    return Entry(user_id=user_id, created_at=T0 + timedelta(minutes=minutes), **kwargs)


def _admit_all(user_ids, max_players):
    roster = Roster(game_id=1)
    for minutes, user_id in enumerate(user_ids):
        roster = engine.admit(roster, _entry(user_id, minutes), max_players).roster
    return roster


def test_admit_fills_active_then_waitlist():
    roster = _admit_all([1, 2, 3, 4], max_players=2)
    assert [e.user_id for e in roster.active_list()] == [1, 2]
    assert [e.user_id for e in roster.waitlist_list()] == [3, 4]
    assert engine.active_count(roster) == 2


def test_admit_rejects_duplicate_key():
    roster = _admit_all([1], max_players=2)
    with pytest.raises(ValueError):
        engine.admit(roster, _entry(1, 5), 2)


def test_guest_and_inviter_are_distinct_entries():
    roster = _admit_all([1], max_players=3)
    change = engine.admit(roster, _entry(1, 1, guest_name='Max'), 3)
    assert change.roster.find(1) is not None
    assert change.roster.find(1, 'Max') is not None
    assert change.roster.active_count() == 2


def test_release_active_promotes_earliest_waitlisted():
    roster = _admit_all([1, 2, 3, 4], max_players=2)
    change = engine.release(roster, roster.find(1), 2)
    assert change.removed
    assert [e.user_id for e in change.promoted] == [3]
    assert [e.user_id for e in change.roster.active_list()] == [2, 3]
    assert [e.user_id for e in change.roster.waitlist_list()] == [4]


def test_release_waitlisted_never_promotes():
    roster = _admit_all([1, 2, 3, 4], max_players=2)
    change = engine.release(roster, roster.find(3), 2)
    assert change.promoted == ()
    assert change.roster.active_count() == 2
    assert [e.user_id for e in change.roster.waitlist_list()] == [4]


def test_release_with_empty_waitlist():
    roster = _admit_all([1, 2], max_players=2)
    change = engine.release(roster, roster.find(2), 2)
    assert change.promoted == ()
    assert change.roster.active_count() == 1


def test_release_missing_entry_raises():
    with pytest.raises(KeyError):
        engine.release(Roster(), _entry(9, 0), 2)


def test_promotion_respects_priority_tier():
    roster = _admit_all([1, 2, 3, 4], max_players=2)
    change = engine.release(roster, roster.find(1), 2, tier_resolver({4}))
    assert [e.user_id for e in change.promoted] == [4]


def test_over_capacity_roster_drains_without_promotion():
    roster = _admit_all([1, 2, 3, 4, 5], max_players=4)
    # game shrunk from 4 to 2 players; nobody is evicted
    change = engine.release(roster, roster.find(1), 2)
    assert change.promoted == ()
    assert change.roster.active_count() == 3
    change = engine.release(change.roster, change.roster.find(2), 2)
    change = engine.release(change.roster, change.roster.find(3), 2)
    assert [e.user_id for e in change.promoted] == [5]
    assert change.roster.active_count() == 2


def test_move_to_waitlist_hands_slot_to_next():
    roster = _admit_all([1, 2, 3], max_players=2)
    change = engine.move_to_waitlist(roster, roster.find(1), 2)
    assert change.entry.is_waitlist
    assert [e.user_id for e in change.promoted] == [3]
    assert [e.user_id for e in change.roster.waitlist_list()] == [1]


def test_move_to_waitlist_without_waiting_players():
    roster = _admit_all([1, 2], max_players=2)
    change = engine.move_to_waitlist(roster, roster.find(1), 2)
    assert change.promoted == ()
    assert change.roster.active_count() == 1


def test_move_to_active_rejected_when_full():
    roster = _admit_all([1, 2, 3], max_players=2)
    result = engine.move_to_active(roster, roster.find(3), 2)
    assert isinstance(result, Err)
    assert result.kind == ErrorKind.CAPACITY_EXCEEDED
    assert result.context == {'max_players': 2, 'active_count': 2}


def test_move_to_active_when_room():
    roster = _admit_all([1, 2, 3], max_players=2)
    roster = engine.release(roster, roster.find(2), 3).roster
    # 3 was promoted already; drop it back and re-seat it
    roster = engine.move_to_waitlist(roster, roster.find(3), 2).roster
    change = engine.move_to_active(roster, roster.find(3), 2)
    assert not change.entry.is_waitlist
    assert change.roster.active_count() == 2


def test_fill_open_slots_after_capacity_increase():
    roster = _admit_all([1, 2, 3, 4, 5], max_players=2)
    filled, promoted = engine.fill_open_slots(roster, 4)
    assert [e.user_id for e in promoted] == [3, 4]
    assert filled.active_count() == 4
    assert [e.user_id for e in filled.waitlist_list()] == [5]


def test_position_of_is_one_based_per_partition():
    roster = _admit_all([1, 2, 3, 4], max_players=2)
    assert roster.position_of(roster.find(2)) == 2
    assert roster.position_of(roster.find(4)) == 2


def test_capacity_holds_across_mixed_operations():
    rng = random.Random(7)
    max_players = 3
    roster = Roster(game_id=1)
    next_user = 1
    for step in range(300):
        op = rng.choice(['admit', 'admit', 'release', 'to_waitlist', 'to_active'])
        if op == 'admit' or not roster.entries:
            roster = engine.admit(roster, _entry(next_user, step), max_players).roster
            next_user += 1
        elif op == 'release':
            roster = engine.release(roster, rng.choice(roster.entries), max_players).roster
        elif op == 'to_waitlist':
            roster = engine.move_to_waitlist(roster, rng.choice(roster.entries), max_players).roster
        else:
            result = engine.move_to_active(roster, rng.choice(roster.entries), max_players)
            if not isinstance(result, Err):
                roster = result.roster
        assert engine.active_count(roster) <= max_players
