from collections.abc import Iterator
from typing import Any, Optional

from observe_sequence.events import (
    AddedAt,
    Changed,
    Key,
    MovedTo,
    Removed,
    SequenceEvent,
)


class RenderedState:
    """Ordered record of what has been communicated to a consumer.

    Holds the key order and the item last reported for each key. It is only
    mutated through `apply()`, one event at a time, so it always matches the
    sequence the consumer has been told about.
    """

    __slots__ = ("_order", "_items")

    def __init__(self, pairs: Optional[list[tuple[Key, Any]]] = None) -> None:
        self._order: list[Key] = []
        self._items: dict[Key, Any] = {}
        for key, item in pairs or []:
            self._order.append(key)
            self._items[key] = item

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, key: Key) -> bool:
        return key in self._items

    def __iter__(self) -> Iterator[Key]:
        return iter(self._order.copy())

    def keys(self) -> list[Key]:
        return self._order.copy()

    def pairs(self) -> list[tuple[Key, Any]]:
        return [(key, self._items[key]) for key in self._order]

    def item(self, key: Key) -> Any:
        return self._items[key]

    def index_of(self, key: Key) -> int:
        return self._order.index(key)

    def key_at(self, index: int) -> Optional[Key]:
        """Key at `index`, or None past the tail."""
        if 0 <= index < len(self._order):
            return self._order[index]
        return None

    def clear(self) -> None:
        self._order.clear()
        self._items.clear()

    def apply(self, event: SequenceEvent) -> None:
        match event:
            case AddedAt(key, item, at_index, _):
                if key in self._items:
                    raise KeyError(f"Key {key!r} is already rendered")
                self._order.insert(at_index, key)
                self._items[key] = item
            case Changed(key, new_item, _):
                if key not in self._items:
                    raise KeyError(key)
                self._items[key] = new_item
            case Removed(key, _):
                del self._items[key]
                self._order.remove(key)
            case MovedTo(key, _, from_index, to_index, _):
                if self._order[from_index] != key:
                    raise KeyError(f"Key {key!r} is not at index {from_index}")
                del self._order[from_index]
                self._order.insert(to_index, key)

    def __repr__(self) -> str:
        return f"RenderedState({self.pairs()!r})"
