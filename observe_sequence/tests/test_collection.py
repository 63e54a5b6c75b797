import pytest

from observe_sequence.collection import Collection
from observe_sequence.errors import CollectionError, DuplicateIdError
from observe_sequence.events import (
    AddedAt,
    Changed,
    MovedTo,
    Removed,
    SequenceEvent,
    record_into,
)
from observe_sequence.reactive import Effect, flush


def test_insert_and_fetch_in_natural_order():
    coll = Collection("c")
    coll.insert({"_id": "b"})
    coll.insert({"_id": "a"})
    assert [d["_id"] for d in coll.find().fetch()] == ["b", "a"]
    assert len(coll) == 2


def test_insert_mints_missing_id():
    coll = Collection()
    doc_id = coll.insert({"title": "x"})
    assert isinstance(doc_id, str)
    assert coll.find_one(doc_id) == {"_id": doc_id, "title": "x"}


def test_insert_rejects_duplicate_id():
    coll = Collection("users")
    coll.insert({"_id": "1"})
    with pytest.raises(DuplicateIdError, match="Duplicate _id '1' in collection 'users'"):
        coll.insert({"_id": "1"})


def test_documents_are_copied():
    coll = Collection()
    original = {"_id": "1", "tags": ["a"]}
    coll.insert(original)
    original["tags"].append("b")
    fetched = coll.find_one("1")
    assert fetched == {"_id": "1", "tags": ["a"]}
    assert fetched is not None
    fetched["tags"].append("c")
    assert coll.find_one("1") == {"_id": "1", "tags": ["a"]}


def test_sort_directions_and_missing_fields():
    coll = Collection()
    coll.insert({"_id": "a", "rank": 2})
    coll.insert({"_id": "b"})
    coll.insert({"_id": "c", "rank": 1})
    assert [d["_id"] for d in coll.find(sort={"rank": 1}).fetch()] == ["b", "c", "a"]
    assert [d["_id"] for d in coll.find(sort=[("rank", -1)]).fetch()] == ["a", "c", "b"]


def test_invalid_sort_direction():
    with pytest.raises(CollectionError):
        Collection().find(sort={"rank": 0})


def test_selectors():
    coll = Collection()
    coll.insert({"_id": "1", "kind": "x", "n": 1})
    coll.insert({"_id": "2", "kind": "y", "n": 2})
    coll.insert({"_id": "3", "kind": "x", "n": 3})
    assert coll.find({"kind": "x"}).count() == 2
    assert coll.find(lambda d: d["n"] > 1).count() == 2
    assert coll.find("2").count() == 1


def test_update_operators():
    coll = Collection()
    coll.insert({"_id": "1", "a": 1, "b": 2})
    assert coll.update("1", {"$set": {"a": 10}, "$unset": {"b": True}}) == 1
    assert coll.find_one("1") == {"_id": "1", "a": 10}
    assert coll.update("missing", {"$set": {"a": 1}}) == 0


def test_update_replacement_keeps_id():
    coll = Collection()
    coll.insert({"_id": "1", "a": 1})
    coll.update("1", {"b": 2})
    assert coll.find_one("1") == {"_id": "1", "b": 2}
    with pytest.raises(CollectionError):
        coll.update("1", {"_id": "2"})


def test_invalid_modifiers():
    coll = Collection()
    coll.insert({"_id": "1"})
    with pytest.raises(CollectionError):
        coll.update("1", {"$inc": {"n": 1}})
    with pytest.raises(CollectionError):
        coll.update("1", {"$set": {"n": 1}, "plain": 2})
    with pytest.raises(CollectionError):
        coll.update("1", {"$set": {"_id": "2"}})


def test_remove_returns_count():
    coll = Collection()
    coll.insert({"_id": "1", "kind": "x"})
    coll.insert({"_id": "2", "kind": "x"})
    assert coll.remove({"kind": "x"}) == 2
    assert coll.remove({"kind": "x"}) == 0
    assert coll.find().fetch() == []


def test_observe_reports_ordered_changes():
    coll = Collection()
    coll.insert({"_id": "a", "rank": 1})
    events: list[SequenceEvent] = []
    handle = coll.find(sort={"rank": 1}).observe(record_into(events))

    coll.insert({"_id": "b", "rank": 0})
    coll.update("a", {"$set": {"rank": -1}})
    coll.remove("b")

    assert events == [
        AddedAt("b", {"_id": "b", "rank": 0}, 0, "a"),
        Changed("a", {"_id": "a", "rank": -1}, {"_id": "a", "rank": 1}),
        MovedTo("a", {"_id": "a", "rank": -1}, 1, 0, "b"),
        Removed("b", {"_id": "b", "rank": 0}),
    ]
    handle.stop()
    assert handle.stopped


def test_observe_follows_selector_membership():
    coll = Collection()
    coll.insert({"_id": "1", "done": False})
    events: list[SequenceEvent] = []
    coll.find({"done": False}).observe(record_into(events))

    coll.update("1", {"$set": {"done": True}})
    coll.update("1", {"$set": {"done": False}})
    coll.insert({"_id": "2", "done": True})

    assert events == [
        Removed("1", {"_id": "1", "done": False}),
        AddedAt("1", {"_id": "1", "done": False}, 0, None),
    ]


def test_unchanged_update_is_silent():
    coll = Collection()
    coll.insert({"_id": "1", "a": 1})
    events: list[SequenceEvent] = []
    coll.find().observe(record_into(events))
    coll.update("1", {"$set": {"a": 1}})
    assert events == []


def test_stopped_observer_gets_nothing():
    coll = Collection()
    events: list[SequenceEvent] = []
    handle = coll.find().observe(record_into(events))
    handle.stop()
    handle.stop()
    coll.insert({"_id": "1"})
    assert events == []


def test_fetch_is_reactive():
    coll = Collection()
    counts: list[int] = []
    effect = Effect(lambda: counts.append(coll.find().count()), immediate=True)
    assert counts == [0]

    coll.insert({"_id": "1"})
    assert counts == [0]
    flush()
    assert counts == [0, 1]

    # No-op mutations do not invalidate
    coll.remove("missing")
    flush()
    assert counts == [0, 1]
    effect.dispose()


def test_failed_update_changes_nothing():
    coll = Collection()
    coll.insert({"_id": "1", "k": 1})
    coll.insert({"_id": "2", "k": 1})
    events: list[SequenceEvent] = []
    coll.find().observe(record_into(events))

    # The replacement is valid for "1" only
    with pytest.raises(CollectionError):
        coll.update({"k": 1}, {"_id": "1", "k": 2})

    assert events == []
    assert coll.find().fetch() == [{"_id": "1", "k": 1}, {"_id": "2", "k": 1}]


def test_update_invalidates_reactive_readers():
    coll = Collection()
    coll.insert({"_id": "1", "k": 1})
    seen: list[list[int]] = []
    effect = Effect(
        lambda: seen.append([d["k"] for d in coll.find().fetch()]), immediate=True
    )
    coll.update("1", {"$set": {"k": 2}})
    flush()
    assert seen == [[1], [2]]
    effect.dispose()
