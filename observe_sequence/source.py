"""What a sequence provider may return, and how each return value is classified."""

from abc import ABC, abstractmethod
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol, Union

from observe_sequence.errors import SequenceTypeError
from observe_sequence.events import SequenceCallbacks


class Subscription(Protocol):
    def stop(self) -> None: ...


class LiveSource(ABC):
    """An ordered, keyed sequence that reports its own changes.

    Items must carry an `_id`. `observe()` only reports changes made after the
    subscription starts; `fetch()` returns the full current contents.
    """

    @abstractmethod
    def observe(self, callbacks: SequenceCallbacks) -> Subscription: ...

    @abstractmethod
    def fetch(self) -> list[Any]: ...


@dataclass(frozen=True, slots=True)
class NullOutput:
    pass


@dataclass(frozen=True, slots=True)
class SnapshotOutput:
    items: Sequence[Any]


@dataclass(frozen=True, slots=True)
class SourceOutput:
    source: LiveSource


ProviderOutput = Union[NullOutput, SnapshotOutput, SourceOutput]


def classify(value: Any) -> ProviderOutput:
    if value is None:
        return NullOutput()
    if isinstance(value, LiveSource):
        return SourceOutput(value)
    if isinstance(value, (str, bytes, bytearray, Mapping)):
        raise SequenceTypeError(value)
    if isinstance(value, Sequence):
        return SnapshotOutput(value)
    # Generators and other one-shot iterators are materialized once. Sets and
    # other unordered collections have no meaningful order and are rejected.
    if isinstance(value, Iterator):
        return SnapshotOutput(list(value))
    raise SequenceTypeError(value)
