"""Canonical sequence events and the callback set they are dispatched to.

Every change to a rendered sequence is described by one of four events. Positions
are computed against the rendered state as it stands immediately before the
event: `from_index` is where the item was, `at_index`/`to_index` is where it is
once the event is applied, and `before_key` names the key that then follows it
(None when the item ends up at the tail).
"""

from dataclasses import dataclass
from collections.abc import Hashable
from typing import Any, Callable, Optional, Union

Key = Hashable


@dataclass(frozen=True, slots=True)
class AddedAt:
    key: Key
    item: Any
    at_index: int
    before_key: Optional[Key]


@dataclass(frozen=True, slots=True)
class Changed:
    key: Key
    new_item: Any
    old_item: Any


@dataclass(frozen=True, slots=True)
class Removed:
    key: Key
    item: Any


@dataclass(frozen=True, slots=True)
class MovedTo:
    key: Key
    item: Any
    from_index: int
    to_index: int
    before_key: Optional[Key]


SequenceEvent = Union[AddedAt, Changed, Removed, MovedTo]


AddedAtCallback = Callable[[Key, Any, int, Optional[Key]], None]
ChangedCallback = Callable[[Key, Any, Any], None]
RemovedCallback = Callable[[Key, Any], None]
MovedToCallback = Callable[[Key, Any, int, int, Optional[Key]], None]


@dataclass(slots=True)
class SequenceCallbacks:
    """The four operations a consumer of a sequence registers.

    Live sources notify through the same shape. Any callback may be left out.
    """

    added_at: Optional[AddedAtCallback] = None
    changed: Optional[ChangedCallback] = None
    removed: Optional[RemovedCallback] = None
    moved_to: Optional[MovedToCallback] = None

    def dispatch(self, event: SequenceEvent) -> None:
        match event:
            case AddedAt(key, item, at_index, before_key):
                if self.added_at:
                    self.added_at(key, item, at_index, before_key)
            case Changed(key, new_item, old_item):
                if self.changed:
                    self.changed(key, new_item, old_item)
            case Removed(key, item):
                if self.removed:
                    self.removed(key, item)
            case MovedTo(key, item, from_index, to_index, before_key):
                if self.moved_to:
                    self.moved_to(key, item, from_index, to_index, before_key)


def record_into(events: list[SequenceEvent]) -> SequenceCallbacks:
    """Callbacks that append every event they receive to `events`."""
    return SequenceCallbacks(
        added_at=lambda key, item, at_index, before_key: events.append(
            AddedAt(key, item, at_index, before_key)
        ),
        changed=lambda key, new_item, old_item: events.append(
            Changed(key, new_item, old_item)
        ),
        removed=lambda key, item: events.append(Removed(key, item)),
        moved_to=lambda key, item, from_index, to_index, before_key: events.append(
            MovedTo(key, item, from_index, to_index, before_key)
        ),
    )
