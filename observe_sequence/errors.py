"""Error hierarchy.

Every error raised by the package inherits from ObserveSequenceError, so
callers can catch them all at once while still matching the built-in category
(TypeError, RuntimeError, ...) the error belongs to.
"""


class ObserveSequenceError(Exception):
    """Base error for all observe_sequence operations."""


class SequenceTypeError(ObserveSequenceError, TypeError):
    """A provider returned something that is not None, a sequence or a live
    source, or a sequence item whose _id cannot be used as a key."""

    def __init__(self, value: object, message: str | None = None) -> None:
        self.value = value
        super().__init__(
            message
            or f"Expected a sequence provider to return None, an ordered collection "
            f"or a live source, got {type(value).__name__}: {value!r:.80}"
        )


class ReactiveCycleError(ObserveSequenceError, RuntimeError):
    """A computed depends on itself, or a flush never settles."""


class CollectionError(ObserveSequenceError):
    """Invalid operation on an in-memory collection."""


class DuplicateIdError(CollectionError, KeyError):
    """A document with the same _id is already stored in the collection."""

    def __init__(self, doc_id: object, collection: str | None = None) -> None:
        self.doc_id = doc_id
        self.collection = collection
        where = f" in collection {collection!r}" if collection else ""
        super().__init__(f"Duplicate _id {doc_id!r}{where}")

    def __str__(self) -> str:
        # KeyError would repr() the message otherwise
        return str(self.args[0])
