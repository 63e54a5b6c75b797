import random

import pytest

from observe_sequence.differ import (
    ChangePolicy,
    apply_events,
    diff,
    diff_events,
    longest_increasing_subsequence,
)
from observe_sequence.events import AddedAt, Changed, MovedTo, Removed
from observe_sequence.state import RenderedState


def pairs(*keys: str) -> list[tuple[str, dict[str, str]]]:
    return [(key, {"_id": key}) for key in keys]


def moves(events):
    return [e for e in events if isinstance(e, MovedTo)]


# =================
# Longest increasing subsequence
# =================
def test_lis_empty():
    assert longest_increasing_subsequence([]) == []


def test_lis_sorted():
    assert longest_increasing_subsequence([0, 1, 2, 3]) == [0, 1, 2, 3]


def test_lis_reversed_keeps_first():
    assert longest_increasing_subsequence([3, 2, 1, 0]) == [0]


def test_lis_prefers_earliest_elements():
    # Both [0, 2] and [1, 2] are valid, the earliest one wins
    assert longest_increasing_subsequence([1, 0, 2]) == [0, 2]


def test_lis_mixed():
    seq = [2, 5, 3, 7, 11, 8, 10, 13, 6]
    result = longest_increasing_subsequence(seq)
    values = [seq[i] for i in result]
    assert len(result) == 6
    assert values == sorted(values)
    assert result == sorted(result)


# =================
# Diff passes
# =================
def test_diff_from_empty():
    assert diff([], pairs("a", "b")) == [
        AddedAt("a", {"_id": "a"}, 0, None),
        AddedAt("b", {"_id": "b"}, 1, None),
    ]


def test_diff_to_empty():
    assert diff(pairs("a", "b"), []) == [
        Removed("a", {"_id": "a"}),
        Removed("b", {"_id": "b"}),
    ]


def test_diff_replaces_one_key():
    assert diff(pairs("13", "37"), pairs("13", "38")) == [
        Removed("37", {"_id": "37"}),
        AddedAt("38", {"_id": "38"}, 1, None),
        Changed("13", {"_id": "13"}, {"_id": "13"}),
    ]


def test_diff_inserts_before_following_key():
    events = diff(pairs("a", "c"), pairs("a", "b", "c"))
    assert events[0] == AddedAt("b", {"_id": "b"}, 1, "c")


def test_diff_inserts_at_head():
    events = diff(pairs("b"), pairs("a", "b"))
    assert events[0] == AddedAt("a", {"_id": "a"}, 0, "b")


def test_single_swap_is_one_move():
    events = diff(pairs("13", "37", "42"), pairs("37", "13", "42"))
    assert moves(events) == [MovedTo("37", {"_id": "37"}, 1, 0, "13")]


def test_move_to_tail():
    events = diff(pairs("a", "b", "c"), pairs("b", "c", "a"))
    assert moves(events) == [MovedTo("a", {"_id": "a"}, 0, 2, None)]


def test_move_from_tail_to_head():
    events = diff(pairs("a", "b", "c", "d"), pairs("d", "a", "b", "c"))
    assert moves(events) == [MovedTo("d", {"_id": "d"}, 3, 0, "a")]


def test_reversal_moves_all_but_one():
    old = pairs("a", "b", "c", "d")
    new = pairs("d", "c", "b", "a")
    events = diff(old, new)
    assert len(moves(events)) == 3
    state = RenderedState(old)
    apply_events(state, events)
    assert state.keys() == ["d", "c", "b", "a"]


def test_additions_are_never_moved():
    old = pairs("a", "b", "c")
    new = pairs("c", "x", "b", "y", "a")
    events = diff(old, new)
    moved = {e.key for e in moves(events)}
    assert moved.isdisjoint({"x", "y"})
    assert len(moved) == 2


def test_changes_use_new_items_in_new_order():
    old = [("a", 1), ("b", 2)]
    new = [("b", 20), ("a", 10)]
    events = diff(old, new)
    assert [e for e in events if isinstance(e, Changed)] == [
        Changed("b", 20, 2),
        Changed("a", 10, 1),
    ]


def test_if_different_policy_skips_equal_items():
    old = [("a", 1), ("b", 2)]
    new = [("a", 1), ("b", 3)]
    assert diff(old, new, ChangePolicy.IF_DIFFERENT) == [Changed("b", 3, 2)]
    assert diff(old, old, ChangePolicy.IF_DIFFERENT) == []


def test_event_order_is_remove_add_change_move():
    old = pairs("a", "b", "c")
    new = pairs("c", "n", "b")
    kinds = [type(e) for e in diff(old, new)]
    assert kinds == [Removed, AddedAt, Changed, Changed, MovedTo]


def test_indices_refer_to_state_before_each_event():
    state = RenderedState(pairs("a", "b", "c", "d"))
    new = pairs("d", "b", "e", "a")
    for event in diff_events(state, new):
        match event:
            case Removed(key, _):
                assert key in state
            case AddedAt(key, _, at_index, before_key):
                assert key not in state
                assert state.key_at(at_index) == before_key
            case MovedTo(key, _, from_index, to_index, before_key):
                assert state.index_of(key) == from_index
                remaining = [k for k in state.keys() if k != key]
                assert (remaining[to_index] if to_index < len(remaining) else None) == before_key
        state.apply(event)
    assert state.keys() == ["d", "b", "e", "a"]


def test_diff_does_not_mutate_state():
    state = RenderedState(pairs("a", "b"))
    events = list(diff_events(state, pairs("a", "b")))
    assert state.keys() == ["a", "b"]
    assert events == [
        Changed("a", {"_id": "a"}, {"_id": "a"}),
        Changed("b", {"_id": "b"}, {"_id": "b"}),
    ]


@pytest.mark.parametrize("seed", range(25))
def test_replaying_events_reaches_new_snapshot(seed):
    rng = random.Random(seed)
    universe = [str(i) for i in range(12)]
    old_keys = rng.sample(universe, rng.randint(0, 10))
    new_keys = rng.sample(universe, rng.randint(0, 10))
    old = [(k, {"_id": k, "gen": 0}) for k in old_keys]
    new = [(k, {"_id": k, "gen": 1}) for k in new_keys]

    state = RenderedState(old)
    events = apply_events(state, diff_events(state, new))

    assert state.pairs() == new
    common = [k for k in old_keys if k in set(new_keys)]
    positions = [new_keys.index(k) for k in common]
    expected_moves = len(common) - len(longest_increasing_subsequence(positions))
    assert len(moves(events)) == expected_moves
