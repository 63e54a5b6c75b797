import asyncio
import logging
from contextvars import ContextVar
from typing import (
    Callable,
    Generic,
    TypeVar,
    Optional,
)

from observe_sequence.config import get_config
from observe_sequence.errors import ReactiveCycleError

T = TypeVar("T")

logger = logging.getLogger(__name__)

# NOTE: globals at the bottom of the file


# Used to track dependencies and effects created within a certain function or
# context.
class Scope:
    def __init__(self):
        # Use lists to preserve insertion order
        self.deps: list["Signal | Computed | Dependency"] = []
        self.effects: list[Effect] = []

    def register_effect(self, effect: "Effect"):
        if effect not in self.effects:
            self.effects.append(effect)

    def register_dep(self, value: "Signal | Computed | Dependency"):
        if value not in self.deps:
            self.deps.append(value)

    def __enter__(self):
        self._prev = SCOPE.get()
        SCOPE.set(self)
        return self

    def __exit__(self, exc_type, exc_value, exc_traceback):
        SCOPE.set(self._prev)
        self._prev = None


class EmptyScope(Scope): ...


class Dependency:
    """A valueless invalidation point.

    `depend()` registers the current scope on it, `changed()` invalidates every
    observer unconditionally. Signals are the value-carrying variant that
    skips invalidation when the written value is equal to the current one.
    """

    def __init__(self, name: Optional[str] = None):
        self.name = name
        self.obs: list[Computed | Effect] = []
        self.last_change = -1

    def depend(self):
        if scope := SCOPE.get():
            scope.register_dep(self)

    def changed(self):
        increment_epoch()
        self.last_change = epoch()
        # Observers may unsubscribe while being notified
        for obs in self.obs.copy():
            obs._push_change()

    def has_observers(self) -> bool:
        return len(self.obs) > 0


class Signal(Generic[T]):
    def __init__(self, value: T, name: Optional[str] = None):
        self.value = value
        self.name = name
        self.obs: list[Computed | Effect] = []
        self.last_change = -1

    def read(self) -> T:
        if scope := SCOPE.get():
            scope.register_dep(self)
        return self.value

    def __call__(self) -> T:
        return self.read()

    def write(self, value: T):
        if value == self.value:
            return
        increment_epoch()
        self.value = value
        self.last_change = epoch()
        for obs in self.obs.copy():
            obs._push_change()


class Computed(Generic[T]):
    def __init__(self, fn: Callable[..., T], name: Optional[str] = None):
        self.fn = fn
        self.value: T = None  # type: ignore
        self.name = name
        self.dirty = False
        self.on_stack = False
        self.last_change: int = -1
        self.deps: list[Signal | Computed | Dependency] = []
        self.obs: list[Computed | Effect] = []

    def read(self) -> T:
        if self.on_stack:
            raise ReactiveCycleError(f"Circular dependency detected in {self.name}")

        if scope := SCOPE.get():
            scope.register_dep(self)

        self._recompute_if_necessary()
        return self.value

    def __call__(self) -> T:
        return self.read()

    def _push_change(self):
        if self.dirty:
            return

        self.dirty = True
        for obs in self.obs.copy():
            obs._push_change()

    def _recompute(self):
        prev_value = self.value
        prev_deps = set(self.deps)
        with Scope() as scope:
            if self.on_stack:
                raise ReactiveCycleError(f"Circular dependency detected in {self.name}")
            self.on_stack = True
            try:
                execution_epoch = epoch()
                self.value = self.fn()
            finally:
                self.on_stack = False
            if epoch() != execution_epoch:
                raise RuntimeError(
                    f"Detected write to a signal in computed {self.name}. Computeds should be read-only."
                )
            self.dirty = False
            if prev_value != self.value:
                self.last_change = execution_epoch

            if len(scope.effects) > 0:
                raise RuntimeError(
                    "An effect was created within a computed variable's function. "
                    "This behavior is not allowed, computed variables should be pure calculations."
                )

        self.deps = scope.deps
        _sync_observers(self, prev_deps, set(self.deps))

    def _recompute_if_necessary(self):
        if self.last_change < 0:
            self._recompute()
            return
        if not self.dirty:
            return

        for dep in self.deps:
            if isinstance(dep, Computed):
                dep._recompute_if_necessary()
            if dep.last_change > self.last_change:
                self._recompute()
                return

        self.dirty = False


EffectFn = Callable[[], None]


class Effect:
    """A tracked computation that reruns when something it read is invalidated.

    Reruns are queued on the current batch and executed when it flushes. The
    dependencies read during a run replace the previous ones, also when the
    function raises, so an effect that failed once still reruns on the next
    change of what it managed to read.

    Effects created during a run are children of that run: they are disposed
    before the next run and when the parent is disposed. `on_dispose` is
    called once, when the effect itself is disposed.
    """

    def __init__(
        self,
        fn: EffectFn,
        name: Optional[str] = None,
        immediate=False,
        lazy=False,
        on_dispose: Optional[Callable[[], None]] = None,
    ):
        self.fn: EffectFn = fn
        self.name: Optional[str] = name
        self.on_dispose = on_dispose
        self.deps: list[Signal | Computed | Dependency] = []
        self.children: list[Effect] = []
        self.parent: Optional[Effect] = None
        # Used to detect the first run, but useful for testing/optimization
        self.runs: int = 0
        self.last_run: int = -1
        self.batch: Optional[Batch] = None
        self.disposed = False

        if immediate and lazy:
            raise ValueError("An effect cannot be both immediate and lazy")

        if scope := SCOPE.get():
            scope.register_effect(self)

        # Will either run the effect now or add it to the current batch
        if immediate:
            self.run()
        elif not lazy:
            self.schedule()

    def _dispose_children(self):
        # Children unregister themselves, so iterate over a copy
        for child in self.children.copy():
            child.dispose()
        self.children = []

    def dispose(self):
        if self.disposed:
            return
        self.disposed = True
        # Don't track what happens in the teardown
        with untrack():
            self._dispose_children()
            if self.on_dispose:
                self.on_dispose()
        for dep in self.deps:
            if self in dep.obs:
                dep.obs.remove(self)
        self.deps = []
        if self.parent:
            if self in self.parent.children:
                self.parent.children.remove(self)
            self.parent = None
        if self.batch and self in self.batch.effects:
            self.batch.effects.remove(self)
        self.batch = None

    def schedule(self):
        if self.disposed:
            return
        batch = BATCH.get()
        batch.register_effect(self)
        self.batch = batch

    def _push_change(self):
        self.schedule()

    def _should_run(self):
        return self.runs == 0 or self._deps_changed_since_last_run()

    def _deps_changed_since_last_run(self):
        for dep in self.deps:
            if dep.last_change > self.last_run:
                return True
            if isinstance(dep, Computed):
                dep._recompute_if_necessary()
                if dep.last_change > self.last_run:
                    return True
        return False

    def __call__(self):
        self.run()

    def run(self):
        if self.disposed:
            return

        # Nested effects only live for one run of their parent
        with untrack():
            self._dispose_children()

        prev_deps = set(self.deps)
        execution_epoch = epoch()
        try:
            with Scope() as scope:
                # Clear batch *before* running as we may update a signal that
                # causes this effect to be rescheduled.
                self.batch = None
                self.runs += 1
                self.last_run = execution_epoch
                self.fn()
        finally:
            self.children = [e for e in scope.effects if not e.disposed]
            for child in self.children:
                child.parent = self
            # The effect may have been disposed from within its own run
            if self.disposed:
                self._dispose_children()
            else:
                self.deps = scope.deps
                _sync_observers(self, prev_deps, set(self.deps))

        if not self.disposed and self._deps_changed_since_last_run():
            self.schedule()


def _sync_observers(
    observer: "Computed | Effect",
    prev_deps: "set[Signal | Computed | Dependency]",
    new_deps: "set[Signal | Computed | Dependency]",
):
    for dep in new_deps - prev_deps:
        dep.obs.append(observer)
    for dep in prev_deps - new_deps:
        if observer in dep.obs:
            dep.obs.remove(observer)


class Batch:
    def __init__(self) -> None:
        self.effects: list[Effect] = []

    def register_effect(self, effect: Effect):
        if effect not in self.effects:
            self.effects.append(effect)

    def flush(self):
        global_batch = BATCH.get()
        token = None
        if global_batch is not self:
            token = BATCH.set(self)

        max_iters = get_config().max_flush_iterations
        iters = 0

        try:
            while len(self.effects) > 0:
                if iters > max_iters:
                    names = [e.name for e in self.effects]
                    self.effects = []
                    raise ReactiveCycleError(
                        f"The reactive system registered more than {max_iters} flush iterations "
                        f"(still pending: {names}). There is likely an update cycle: an effect "
                        "writes to something it also reads."
                    )

                current_effects = self.effects
                self.effects = []

                for i, effect in enumerate(current_effects):
                    try:
                        if effect._should_run():
                            effect.run()
                    except BaseException:
                        # Requeue what did not get a chance to run
                        for pending in current_effects[i + 1 :]:
                            self.register_effect(pending)
                        raise

                iters += 1
        finally:
            if token:
                BATCH.reset(token)

    def __enter__(self):
        self._token = BATCH.set(self)
        return self

    def __exit__(self, exc_type, exc_value, exc_traceback):
        try:
            if exc_type is None:
                self.flush()
        finally:
            # Reset AFTER flushing, as the batch needs to capture any signals
            # or effects triggered while flushing.
            BATCH.reset(self._token)


class GlobalBatch(Batch):
    def __init__(self) -> None:
        self.is_scheduled = False
        super().__init__()

    def register_effect(self, effect: Effect):
        if not self.is_scheduled:
            try:
                loop = asyncio.get_running_loop()
                loop.call_soon_threadsafe(self.flush)
                self.is_scheduled = True
            except RuntimeError:
                pass
        return super().register_effect(effect)

    def flush(self):
        try:
            super().flush()
        finally:
            self.is_scheduled = False


def enter(fn: EffectFn, name: Optional[str] = None) -> Effect:
    """Run `fn` now, recording what it reads, and rerun it on invalidation."""
    return Effect(fn, name=name, immediate=True)


def flush():
    """Run every pending rerun of the current batch before returning."""
    BATCH.get().flush()


flush_effects = flush


def batch():
    return Batch()


def untrack():
    return EmptyScope()


# --- Globals ---
class Epoch:
    current: int = 0


EPOCH = ContextVar("observe_sequence_epoch", default=Epoch())
SCOPE: ContextVar[Optional[Scope]] = ContextVar("observe_sequence_scope", default=None)
BATCH: ContextVar[Batch] = ContextVar("observe_sequence_batch", default=GlobalBatch())


def epoch():
    return EPOCH.get().current


def increment_epoch():
    EPOCH.get().current += 1
