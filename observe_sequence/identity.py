import itertools
import logging
from collections.abc import Hashable, Iterable, Mapping
from typing import Any

from observe_sequence.config import get_config
from observe_sequence.errors import SequenceTypeError
from observe_sequence.events import Key

logger = logging.getLogger(__name__)

ID_FIELD = "_id"

_unkeyed_counter = itertools.count(1)


class UnkeyedKey:
    """Opaque key given to an item without identity.

    Each instance is only equal to itself, so an unkeyed item never matches
    anything from another generation.
    """

    __slots__ = ("serial",)

    def __init__(self) -> None:
        self.serial = next(_unkeyed_counter)

    def __repr__(self) -> str:
        return f"UnkeyedKey({self.serial})"


def mint_key() -> UnkeyedKey:
    return UnkeyedKey()


def item_key(item: Any) -> Key | None:
    """Return the identity of `item`, or None when it has none.

    Mappings carry it under the "_id" entry, other objects as an `_id`
    attribute. Scalars never have one.
    """
    if isinstance(item, (str, bytes, int, float, bool)) or item is None:
        return None
    if isinstance(item, Mapping):
        return item.get(ID_FIELD)
    return getattr(item, ID_FIELD, None)


def is_keyed(item: Any) -> bool:
    return item_key(item) is not None


def to_snapshot(items: Iterable[Any]) -> list[tuple[Key, Any]]:
    """Extract one generation's ordered (key, item) pairs.

    Keys are unique in the result: an item without identity, or whose identity
    was already seen in this generation, gets a fresh UnkeyedKey. An `_id`
    that cannot be hashed raises SequenceTypeError.
    """
    snapshot: list[tuple[Key, Any]] = []
    seen: set[Key] = set()
    for item in items:
        key = item_key(item)
        if key is None:
            key = mint_key()
        elif not isinstance(key, Hashable):
            raise SequenceTypeError(
                item,
                f"Item _id must be hashable, got {type(key).__name__} in {item!r:.80}",
            )
        elif key in seen:
            if get_config().warn_on_duplicate_ids:
                logger.warning(
                    "Duplicate _id %r in sequence, treating the repeated item as unkeyed",
                    key,
                )
            key = mint_key()
        seen.add(key)
        snapshot.append((key, item))
    return snapshot
