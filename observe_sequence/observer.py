import copy
import logging
from enum import Enum
from typing import Any, Callable, Optional

from observe_sequence.bridge import LiveSourceBridge
from observe_sequence.differ import ChangePolicy, diff_events
from observe_sequence.events import (
    AddedAtCallback,
    ChangedCallback,
    Key,
    MovedToCallback,
    RemovedCallback,
    SequenceCallbacks,
    SequenceEvent,
)
from observe_sequence.identity import to_snapshot
from observe_sequence.reactive import Effect, untrack
from observe_sequence.source import (
    LiveSource,
    NullOutput,
    ProviderOutput,
    SnapshotOutput,
    SourceOutput,
    classify,
)
from observe_sequence.state import RenderedState

logger = logging.getLogger(__name__)

SequenceProvider = Callable[[], Any]


class ObserverStatus(Enum):
    IDLE = "idle"
    ACTIVE = "active"
    STOPPED = "stopped"


class SequenceObserver:
    """Keeps a consumer in sync with whatever a sequence provider returns.

    The provider runs inside a reactive effect. Each run is classified as
    null, snapshot or live source, diffed once against the rendered state,
    and, for a live source, followed by a bridge that forwards the source's
    own notifications until the next run.
    """

    def __init__(
        self,
        provider: SequenceProvider,
        callbacks: SequenceCallbacks,
        name: Optional[str] = None,
    ) -> None:
        self.provider = provider
        self.callbacks = callbacks
        self.name = name or getattr(provider, "__name__", None) or "sequence"
        self.status = ObserverStatus.IDLE
        self.mode: Optional[str] = None
        self.recomputations = 0
        self._state = RenderedState()
        self._bridge: Optional[LiveSourceBridge] = None
        self._effect: Optional[Effect] = None

    def start(self) -> None:
        if self.status is not ObserverStatus.IDLE:
            return
        self.status = ObserverStatus.ACTIVE
        # Disposing the effect (directly, or because an enclosing effect
        # reran) stops the observation
        self._effect = Effect(
            self._recompute,
            name=f"observe_sequence:{self.name}",
            lazy=True,
            on_dispose=self.stop,
        )
        try:
            self._effect.run()
        except BaseException:
            self.stop()
            raise

    def stop(self) -> None:
        if self.status is ObserverStatus.STOPPED:
            return
        self.status = ObserverStatus.STOPPED
        if self._bridge is not None:
            self._bridge.detach()
            self._bridge = None
        if self._effect is not None:
            self._effect.dispose()
            self._effect = None
        self._state.clear()
        logger.debug("Stopped observing %s", self.name)

    @property
    def stopped(self) -> bool:
        return self.status is ObserverStatus.STOPPED

    def pairs(self) -> list[tuple[Key, Any]]:
        return self._state.pairs()

    def _recompute(self) -> None:
        if self.stopped:
            return
        output = classify(self.provider())
        with untrack():
            self._transition(output)

    def _transition(self, output: ProviderOutput) -> None:
        source: Optional[LiveSource] = None
        match output:
            case NullOutput():
                mode, snapshot = "null", []
            case SnapshotOutput(items):
                mode, snapshot = "snapshot", to_snapshot(items)
            case SourceOutput(live):
                source = live
                mode, snapshot = "source", to_snapshot(live.fetch())

        # The previous source's items stay rendered: they are the old side of
        # the transition diff below.
        policy = ChangePolicy.ALWAYS
        if self._bridge is not None:
            if self._bridge.source is source:
                policy = ChangePolicy.IF_DIFFERENT
            self._bridge.detach()
            self._bridge = None

        self.recomputations += 1
        logger.debug(
            "Recomputed %s (#%d): %s -> %s, %d rendered, %d incoming",
            self.name,
            self.recomputations,
            self.mode,
            mode,
            len(self._state),
            len(snapshot),
        )
        self.mode = mode

        for event in diff_events(self._state, snapshot, policy):
            self._commit(event)
            if self.stopped:
                return

        if source is not None:
            self._bridge = LiveSourceBridge(source, self._state, self._commit)
            self._bridge.attach()

    def _commit(self, event: SequenceEvent) -> None:
        if self.stopped:
            return
        self._state.apply(event)
        self.callbacks.dispatch(event)


class ObserveHandle:
    """Returned by `observe()`. Stops the observation, also as a context manager."""

    __slots__ = ("_observer",)

    def __init__(self, observer: SequenceObserver) -> None:
        self._observer = observer

    @property
    def status(self) -> ObserverStatus:
        return self._observer.status

    @property
    def mode(self) -> Optional[str]:
        return self._observer.mode

    def stop(self) -> None:
        self._observer.stop()

    def keys(self) -> list[Key]:
        return [key for key, _ in self._observer.pairs()]

    def items(self) -> list[Any]:
        return [copy.deepcopy(item) for _, item in self._observer.pairs()]

    def __enter__(self) -> "ObserveHandle":
        return self

    def __exit__(self, exc_type, exc_value, exc_traceback) -> None:
        self.stop()


def observe(
    provider: SequenceProvider,
    callbacks: Optional[SequenceCallbacks] = None,
    *,
    added_at: Optional[AddedAtCallback] = None,
    changed: Optional[ChangedCallback] = None,
    removed: Optional[RemovedCallback] = None,
    moved_to: Optional[MovedToCallback] = None,
    name: Optional[str] = None,
) -> ObserveHandle:
    """Observe the sequence returned by `provider`.

    The provider is called right away (its initial items are reported before
    this returns) and again after every flush following an invalidation of
    something it read. Callbacks can be given as a `SequenceCallbacks` or as
    keyword arguments, not both.

    Example::

        items = Signal([{"_id": "a"}])
        handle = observe(items, added_at=print, removed=print)
        items.write([{"_id": "b"}])
        flush()
        handle.stop()
    """
    inline = (added_at, changed, removed, moved_to)
    if callbacks is None:
        callbacks = SequenceCallbacks(*inline)
    elif any(cb is not None for cb in inline):
        raise ValueError("Pass either a SequenceCallbacks or keyword callbacks, not both")

    observer = SequenceObserver(provider, callbacks, name=name)
    observer.start()
    return ObserveHandle(observer)
