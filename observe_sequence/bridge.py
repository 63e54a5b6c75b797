import logging
from typing import Any, Callable, Optional

from observe_sequence.events import (
    AddedAt,
    Changed,
    Key,
    MovedTo,
    Removed,
    SequenceCallbacks,
    SequenceEvent,
)
from observe_sequence.source import LiveSource, Subscription
from observe_sequence.state import RenderedState

logger = logging.getLogger(__name__)


class LiveSourceBridge:
    """Forwards the native notifications of a live source as canonical events.

    Positions are resolved against the rendered state rather than taken from
    the source, so the reported indices always agree with what the consumer
    has seen. Notifications that do not fit the rendered state (unknown key,
    key added twice) are dropped.

    The bridge never writes to the state itself: every event goes through
    `commit`, which applies and dispatches it.
    """

    def __init__(
        self,
        source: LiveSource,
        state: RenderedState,
        commit: Callable[[SequenceEvent], None],
    ) -> None:
        self.source = source
        self._state = state
        self._commit = commit
        self._subscription: Optional[Subscription] = None
        self._live = False

    @property
    def attached(self) -> bool:
        return self._live

    def attach(self) -> None:
        if self._live:
            return
        self._live = True
        self._subscription = self.source.observe(
            SequenceCallbacks(
                added_at=self._added_at,
                changed=self._changed,
                removed=self._removed,
                moved_to=self._moved_to,
            )
        )

    def detach(self) -> None:
        if not self._live:
            return
        self._live = False
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            subscription.stop()

    def _ignore(self, kind: str, key: Key) -> None:
        logger.debug(
            "Ignoring %s notification for %r from %r: inconsistent with rendered state",
            kind,
            key,
            self.source,
        )

    def _added_at(
        self, key: Key, item: Any, at_index: int, before_key: Optional[Key]
    ) -> None:
        if not self._live:
            return
        state = self._state
        if key in state:
            self._ignore("added_at", key)
            return
        if before_key is None:
            index = len(state)
        elif before_key in state:
            index = state.index_of(before_key)
        else:
            index = min(max(at_index, 0), len(state))
        self._commit(AddedAt(key, item, index, state.key_at(index)))

    def _changed(self, key: Key, new_item: Any, old_item: Any) -> None:
        if not self._live:
            return
        if key not in self._state:
            self._ignore("changed", key)
            return
        self._commit(Changed(key, new_item, self._state.item(key)))

    def _removed(self, key: Key, item: Any) -> None:
        if not self._live:
            return
        if key not in self._state:
            self._ignore("removed", key)
            return
        self._commit(Removed(key, self._state.item(key)))

    def _moved_to(
        self,
        key: Key,
        item: Any,
        from_index: int,
        to_index: int,
        before_key: Optional[Key],
    ) -> None:
        if not self._live:
            return
        state = self._state
        if key not in state or before_key == key:
            self._ignore("moved_to", key)
            return
        current = state.index_of(key)
        if before_key is None:
            target = len(state) - 1
        elif before_key in state:
            target = state.index_of(before_key)
            if current < target:
                target -= 1
        else:
            target = min(max(to_index, 0), len(state) - 1)
            remaining = [k for k in state.keys() if k != key]
            before_key = remaining[target] if target < len(remaining) else None
        if target == current:
            return
        self._commit(MovedTo(key, state.item(key), current, target, before_key))
