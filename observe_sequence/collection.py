"""In-memory document collection with live cursors.

A `Collection` stores dict documents keyed by `_id`. `find()` returns a
`Cursor`, which is a `LiveSource`: it can be fetched (reactively, when called
inside a tracked scope) and observed for ordered changes.

    todos = Collection("todos")
    todos.insert({"_id": "a", "rank": 2})
    cursor = todos.find(sort={"rank": 1})
    cursor.fetch()  # [{"_id": "a", "rank": 2}]

Notifications are delivered synchronously, from inside the mutating call.
"""

import copy
import functools
import itertools
import uuid
from collections.abc import Mapping
from typing import Any, Callable, Optional, Union

from observe_sequence.errors import CollectionError, DuplicateIdError
from observe_sequence.events import Key, SequenceCallbacks
from observe_sequence.identity import ID_FIELD
from observe_sequence.reactive import Dependency
from observe_sequence.source import LiveSource

Document = dict[str, Any]
Selector = Union[None, Key, Mapping[str, Any], Callable[[Document], bool]]
SortSpec = Union[None, Mapping[str, int], list[tuple[str, int]]]


def _compare_values(a: Any, b: Any) -> int:
    if a == b:
        return 0
    # Missing fields sort first
    if a is None:
        return -1
    if b is None:
        return 1
    try:
        return -1 if a < b else 1
    except TypeError:
        return -1 if type(a).__name__ < type(b).__name__ else 1


def _matcher(selector: Selector) -> Callable[[Document], bool]:
    if selector is None:
        return lambda doc: True
    if callable(selector):
        return selector
    if isinstance(selector, Mapping):
        fields = dict(selector)
        return lambda doc: all(doc.get(k) == v for k, v in fields.items())
    return lambda doc: doc[ID_FIELD] == selector


def _sort_fields(sort: SortSpec) -> list[tuple[str, int]]:
    if sort is None:
        return []
    pairs = list(sort.items()) if isinstance(sort, Mapping) else list(sort)
    for field, direction in pairs:
        if direction not in (1, -1):
            raise CollectionError(
                f"Sort direction for {field!r} must be 1 or -1, got {direction!r}"
            )
    return pairs


def _apply_modifier(doc: Document, modifier: Mapping[str, Any]) -> Document:
    operators = [k for k in modifier if k.startswith("$")]
    if not operators:
        if ID_FIELD in modifier and modifier[ID_FIELD] != doc[ID_FIELD]:
            raise CollectionError("A replacement document cannot change _id")
        replaced = copy.deepcopy(dict(modifier))
        replaced[ID_FIELD] = doc[ID_FIELD]
        return replaced
    if len(operators) != len(modifier):
        raise CollectionError("Cannot mix update operators and plain fields")

    updated = copy.deepcopy(doc)
    for op, fields in modifier.items():
        if ID_FIELD in fields:
            raise CollectionError("Update operators cannot modify _id")
        if op == "$set":
            updated.update(copy.deepcopy(dict(fields)))
        elif op == "$unset":
            for field in fields:
                updated.pop(field, None)
        else:
            raise CollectionError(f"Unsupported update operator {op!r}")
    return updated


class Collection:
    def __init__(self, name: Optional[str] = None) -> None:
        self.name = name
        self._docs: dict[Key, Document] = {}
        # Insertion sequence numbers, the natural order and last sort tie-break
        self._seq: dict[Key, int] = {}
        self._counter = itertools.count()
        self._live: list[_LiveQuery] = []
        self._dep = Dependency(name=f"collection:{name}" if name else "collection")

    def __repr__(self) -> str:
        return f"Collection({self.name!r}, {len(self._docs)} documents)"

    def __len__(self) -> int:
        return len(self._docs)

    def insert(self, doc: Mapping[str, Any]) -> Key:
        stored = copy.deepcopy(dict(doc))
        doc_id = stored.get(ID_FIELD)
        if doc_id is None:
            doc_id = stored[ID_FIELD] = uuid.uuid4().hex
        if doc_id in self._docs:
            raise DuplicateIdError(doc_id, self.name)
        self._docs[doc_id] = stored
        self._seq[doc_id] = next(self._counter)
        for query in self._live.copy():
            query._on_insert(doc_id, stored)
        self._dep.changed()
        return doc_id

    def update(self, selector: Selector, modifier: Mapping[str, Any]) -> int:
        matches = _matcher(selector)
        # Every document is rewritten or none is
        updates = [
            (doc_id, doc, _apply_modifier(doc, modifier))
            for doc_id, doc in self._docs.items()
            if matches(doc)
        ]
        for doc_id, old, new in updates:
            self._docs[doc_id] = new
        if updates:
            self._dep.changed()
        for doc_id, old, new in updates:
            for query in self._live.copy():
                query._on_update(doc_id, old, new)
        return len(updates)

    def remove(self, selector: Selector) -> int:
        matches = _matcher(selector)
        targets = [doc_id for doc_id, doc in self._docs.items() if matches(doc)]
        for doc_id in targets:
            old = self._docs.pop(doc_id)
            del self._seq[doc_id]
            for query in self._live.copy():
                query._on_remove(doc_id, old)
        if targets:
            self._dep.changed()
        return len(targets)

    def find(self, selector: Selector = None, sort: SortSpec = None) -> "Cursor":
        return Cursor(self, selector, sort)

    def find_one(self, selector: Selector = None, sort: SortSpec = None) -> Optional[Document]:
        docs = self.find(selector, sort).fetch()
        return docs[0] if docs else None


class Cursor(LiveSource):
    """A query over a collection. Reusable: each fetch/observe reads current data."""

    def __init__(self, collection: Collection, selector: Selector, sort: SortSpec) -> None:
        self.collection = collection
        self.selector = selector
        self.matches = _matcher(selector)
        self.sort = _sort_fields(sort)

    def __repr__(self) -> str:
        return f"Cursor({self.collection.name!r}, sort={self.sort!r})"

    def compare(self, a: Document, b: Document) -> int:
        for field, direction in self.sort:
            result = _compare_values(a.get(field), b.get(field))
            if result:
                return result * direction
        seq = self.collection._seq
        return _compare_values(seq[a[ID_FIELD]], seq[b[ID_FIELD]])

    def _ordered(self) -> list[Document]:
        docs = [doc for doc in self.collection._docs.values() if self.matches(doc)]
        docs.sort(key=functools.cmp_to_key(self.compare))
        return docs

    def fetch(self) -> list[Document]:
        self.collection._dep.depend()
        return [copy.deepcopy(doc) for doc in self._ordered()]

    def count(self) -> int:
        self.collection._dep.depend()
        return len(self._ordered())

    def observe(self, callbacks: SequenceCallbacks) -> "LiveQueryHandle":
        query = _LiveQuery(self, callbacks)
        self.collection._live.append(query)
        return LiveQueryHandle(query)


class _LiveQuery:
    """Result set of one observed cursor, kept in order as the collection changes."""

    def __init__(self, cursor: Cursor, callbacks: SequenceCallbacks) -> None:
        self.cursor = cursor
        self.callbacks = callbacks
        self.results: list[Document] = cursor._ordered()
        self.active = True

    def _index_of(self, doc_id: Key) -> int:
        for i, doc in enumerate(self.results):
            if doc[ID_FIELD] == doc_id:
                return i
        return -1

    def _insertion_index(self, doc: Document) -> int:
        for i, other in enumerate(self.results):
            if self.cursor.compare(doc, other) < 0:
                return i
        return len(self.results)

    def _before(self, index: int) -> Optional[Key]:
        return self.results[index][ID_FIELD] if index < len(self.results) else None

    def _on_insert(self, doc_id: Key, doc: Document) -> None:
        if not self.active or not self.cursor.matches(doc):
            return
        index = self._insertion_index(doc)
        before = self._before(index)
        self.results.insert(index, doc)
        if self.callbacks.added_at:
            self.callbacks.added_at(doc_id, copy.deepcopy(doc), index, before)

    def _on_remove(self, doc_id: Key, old: Document) -> None:
        index = self._index_of(doc_id)
        if not self.active or index < 0:
            return
        self.results.pop(index)
        if self.callbacks.removed:
            self.callbacks.removed(doc_id, copy.deepcopy(old))

    def _on_update(self, doc_id: Key, old: Document, new: Document) -> None:
        if not self.active:
            return
        old_index = self._index_of(doc_id)
        matched = old_index >= 0
        if matched and not self.cursor.matches(new):
            self._on_remove(doc_id, old)
            return
        if not matched:
            self._on_insert(doc_id, new)
            return

        self.results.pop(old_index)
        new_index = self._insertion_index(new)
        before = self._before(new_index)
        self.results.insert(new_index, new)
        if new != old and self.callbacks.changed:
            self.callbacks.changed(doc_id, copy.deepcopy(new), copy.deepcopy(old))
        if new_index != old_index and self.callbacks.moved_to:
            self.callbacks.moved_to(doc_id, copy.deepcopy(new), old_index, new_index, before)


class LiveQueryHandle:
    def __init__(self, query: _LiveQuery) -> None:
        self._query: Optional[_LiveQuery] = query

    @property
    def stopped(self) -> bool:
        return self._query is None

    def stop(self) -> None:
        query, self._query = self._query, None
        if query is None:
            return
        query.active = False
        live = query.cursor.collection._live
        if query in live:
            live.remove(query)
