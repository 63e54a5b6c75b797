from .collection import Collection, Cursor, LiveQueryHandle
from .config import (
    ObserveSequenceConfig,
    configure_logging,
    get_config,
    reset_config,
    set_config,
)
from .differ import ChangePolicy, apply_events, diff, diff_events
from .errors import (
    CollectionError,
    DuplicateIdError,
    ObserveSequenceError,
    ReactiveCycleError,
    SequenceTypeError,
)
from .events import (
    AddedAt,
    Changed,
    MovedTo,
    Removed,
    SequenceCallbacks,
    SequenceEvent,
    record_into,
)
from .identity import UnkeyedKey, item_key, to_snapshot
from .observer import ObserveHandle, ObserverStatus, SequenceObserver, observe
from .reactive import (
    Batch,
    Computed,
    Dependency,
    Effect,
    Signal,
    batch,
    enter,
    flush,
    flush_effects,
    untrack,
)
from .source import LiveSource, classify
from .state import RenderedState

__version__ = "0.1.0"
