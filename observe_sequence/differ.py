"""Keyed snapshot diffing.

Turns the rendered state into a new ordered snapshot with four passes, each of
which only ever looks at the rendered state as it stands after the previous
event was applied:

    1. removed  - keys that are gone, in rendered order
    2. added_at - new keys, in snapshot order
    3. changed  - keys present on both sides, in snapshot order
    4. moved_to - keys outside a longest already-ordered subsequence

`diff_events` is a generator that reads the state but never writes it: whoever
consumes it must apply each event before pulling the next one.
"""

from collections.abc import Iterable, Iterator
from enum import Enum
from typing import Any

from observe_sequence.events import (
    AddedAt,
    Changed,
    Key,
    MovedTo,
    Removed,
    SequenceEvent,
)
from observe_sequence.state import RenderedState


class ChangePolicy(Enum):
    # Report every key present in both snapshots
    ALWAYS = "always"
    # Report only keys whose item compares unequal
    IF_DIFFERENT = "if_different"


def diff_events(
    state: RenderedState,
    snapshot: list[tuple[Key, Any]],
    policy: ChangePolicy = ChangePolicy.ALWAYS,
) -> Iterator[SequenceEvent]:
    new_keys = [key for key, _ in snapshot]
    new_items = dict(snapshot)
    new_index = {key: i for i, key in enumerate(new_keys)}

    for key in state.keys():
        if key not in new_index:
            yield Removed(key, state.item(key))

    # Keys that keep their place. Everything else common to both sides moves
    # exactly once in the last pass.
    common = state.keys()
    in_order = longest_increasing_subsequence([new_index[key] for key in common])
    settled: set[Key] = {common[i] for i in in_order}

    added: set[Key] = set()
    prev_settled: Key | None = None
    for key in new_keys:
        if key in settled:
            prev_settled = key
            continue
        if key in state:
            continue
        at_index = 0 if prev_settled is None else state.index_of(prev_settled) + 1
        yield AddedAt(key, new_items[key], at_index, state.key_at(at_index))
        added.add(key)
        settled.add(key)
        prev_settled = key

    for key in new_keys:
        if key in added:
            continue
        old_item = state.item(key)
        new_item = new_items[key]
        if policy is ChangePolicy.ALWAYS or old_item != new_item:
            yield Changed(key, new_item, old_item)

    # Right to left, so the successor of every moved key is already in place.
    for i in range(len(new_keys) - 1, -1, -1):
        key = new_keys[i]
        if key in settled:
            continue
        settled.add(key)
        from_index = state.index_of(key)
        before_key = new_keys[i + 1] if i + 1 < len(new_keys) else None
        if before_key is None:
            to_index = len(state) - 1
        else:
            to_index = state.index_of(before_key)
            if from_index < to_index:
                to_index -= 1
        if to_index == from_index:
            continue
        yield MovedTo(key, state.item(key), from_index, to_index, before_key)


def apply_events(
    state: RenderedState, events: Iterable[SequenceEvent]
) -> list[SequenceEvent]:
    """Apply each event to `state` as soon as it is produced, returning them all."""
    applied: list[SequenceEvent] = []
    for event in events:
        state.apply(event)
        applied.append(event)
    return applied


def diff(
    old: list[tuple[Key, Any]],
    new: list[tuple[Key, Any]],
    policy: ChangePolicy = ChangePolicy.ALWAYS,
) -> list[SequenceEvent]:
    """Events turning the keyed snapshot `old` into `new`."""
    state = RenderedState(old)
    return apply_events(state, diff_events(state, new, policy))


# Longest increasing subsequence algorithm
def longest_increasing_subsequence(seq: list[int]) -> list[int]:
    """Indices into `seq` of a longest strictly increasing subsequence.

    When several exist, returns the one whose indices are lexicographically
    smallest, i.e. the one keeping the earliest elements.
    """
    if not seq:
        return []
    # run[i]: length of the longest increasing run starting at seq[i]. Computed
    # right to left, patience sorting style on negated values: neg_heads[l] is
    # minus the largest value that starts a run of length l + 1.
    run = [0] * len(seq)
    neg_heads: list[int] = []
    for i in range(len(seq) - 1, -1, -1):
        v = -seq[i]
        lo, hi = 0, len(neg_heads)
        while lo < hi:
            mid = (lo + hi) // 2
            if neg_heads[mid] < v:
                lo = mid + 1
            else:
                hi = mid
        run[i] = lo + 1
        if lo == len(neg_heads):
            neg_heads.append(v)
        else:
            neg_heads[lo] = v

    # Greedy left-to-right pick: any element that can still start a run of the
    # remaining length is a valid next step.
    indices: list[int] = []
    need = len(neg_heads)
    last: int | None = None
    for i, value in enumerate(seq):
        if need == 0:
            break
        if run[i] == need and (last is None or value > last):
            indices.append(i)
            last = value
            need -= 1
    return indices
