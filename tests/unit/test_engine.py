"""
Unit tests for the mutation engine.

Tests cover:
- Insert with uniqueness violations
- Batch insert
- Delete outcomes
- Optimistic update and stale detection
"""

import logging

import pytest

from couchview.engine import MutationEngine
from couchview.errors import (
    StaleEntryError,
    StoreConnectionError,
    StoreError,
    UnknownFieldError,
    ValidationError,
)
from couchview.schema.types import EntityDef, field
from couchview.store import InMemoryStoreClient


@pytest.fixture
def engine(store):
    """Engine over the in-memory store."""
    return MutationEngine(store)


class TestInsert:
    """Tests for insert."""

    def test_insert_returns_requested_fields(self, engine, db, post):
        """A successful insert decodes the requested fields."""
        result = engine.insert(db, post, {"_id": "FOO", "title": "t1"}, returning=["_id", "_rev", "title"])

        assert result.ok is True
        assert result.doc_id == "FOO"
        assert result.rev.startswith("1-")
        assert result.returned == {"_id": "FOO", "_rev": result.rev, "title": "t1"}
        assert result.errors == []

    def test_duplicate_id_is_uniqueness_violation(self, engine, db, post, caplog):
        """A taken id reports the database's id index."""
        engine.insert(db, post, {"_id": "FOO", "title": "t1"})

        with caplog.at_level(logging.WARNING, logger="couchview.engine"):
            result = engine.insert(db, post, {"_id": "FOO", "title": "t2"})

        assert result.ok is False
        assert result.constraint == "posts_id_index"
        assert result.errors == [("unique", "posts_id_index")]
        assert "identifier already taken" in caplog.text

    def test_null_id_lets_store_assign(self, engine, store, db, post):
        """A None _id is left for the store to fill."""
        result = engine.insert(db, post, {"_id": None, "_rev": None, "title": "t1"}, returning=["_id"])

        assert result.ok is True
        assert result.returned["_id"]
        assert store.fetch(db, result.doc_id)["title"] == "t1"

    def test_null_fields_are_stored(self, engine, store, db, post):
        """Other None fields are written explicitly."""
        engine.insert(db, post, {"_id": "FOO", "title": None})

        stored = store.fetch(db, "FOO")
        assert "title" in stored
        assert stored["title"] is None

    def test_embedded_records(self, engine, store, db, post, stats_type):
        """Embedded records are encoded and loaded back."""
        record = {
            "_id": "FOO",
            "grants": [{"user": "ann", "access": "read"}],
            "stats": stats_type(visits=1, time=10),
        }

        result = engine.insert(db, post, record, returning=["grants", "stats"])

        assert store.fetch(db, "FOO")["stats"] == {"visits": 1, "time": 10}
        assert result.returned == {
            "grants": [{"user": "ann", "access": "read"}],
            "stats": stats_type(visits=1, time=10),
        }

    def test_unknown_field_never_reaches_store(self, engine, store, db, post):
        """Invalid records fail before any request."""
        with pytest.raises(UnknownFieldError, match="titel"):
            engine.insert(db, post, {"_id": "FOO", "titel": "t1"})

        assert store.document_count("posts") == 0

    def test_store_failure_propagates(self, engine, store, db, post):
        """Transport errors are not turned into outcomes."""
        store.inject_failure()

        with pytest.raises(StoreConnectionError):
            engine.insert(db, post, {"_id": "FOO"})

    def test_missing_field_takes_default(self, engine, store, db):
        """A field left out of the record is stored with its default."""
        note = EntityDef("Note", "posts", fields=(field("status", "string", required=True, default="draft"),))

        result = engine.insert(db, note, {"_id": "n1"}, returning=["status"])

        assert result.ok is True
        assert result.returned == {"status": "draft"}
        assert store.fetch(db, "n1")["status"] == "draft"

    def test_given_value_overrides_default(self, engine, store, db):
        """An explicit value, even None, wins over the default."""
        note = EntityDef("Note", "posts", fields=(field("status", "string", default="draft"),))

        engine.insert_all(db, note, [{"_id": "n1", "status": "published"}, {"_id": "n2", "status": None}])

        assert store.fetch(db, "n1")["status"] == "published"
        assert store.fetch(db, "n2")["status"] is None

    def test_mutable_default_is_copied(self, engine, store, db):
        """Documents never share a default container."""
        note = EntityDef("Note", "posts", fields=(field("tags", "list", default=[]),))

        engine.insert_all(db, note, [{"_id": "n1"}, {"_id": "n2"}])

        assert store.fetch(db, "n1")["tags"] == []
        assert store.fetch(db, "n2")["tags"] == []


class TestInsertAll:
    """Tests for insert_all."""

    def test_count_only(self, engine, db, post):
        """Without returning fields only the count is reported."""
        result = engine.insert_all(db, post, [{"_id": f"id{i}"} for i in range(3)])

        assert result.count == 3
        assert result.rows is None
        assert result.failures == []

    def test_rows_in_input_order(self, engine, db, post):
        """Requested fields come back per record, in input order."""
        records = [{"_id": "b", "title": "B"}, {"_id": "a", "title": "A"}]

        result = engine.insert_all(db, post, records, returning=["_id", "title"])

        assert result.rows == [{"_id": "b", "title": "B"}, {"_id": "a", "title": "A"}]

    def test_partial_failure(self, engine, store, db, post):
        """A conflicting document fails alone."""
        store.save(db, {"_id": "id2"})

        result = engine.insert_all(db, post, [{"_id": "id1"}, {"_id": "id2"}, {"_id": "id3"}], returning=["_id"])

        assert result.count == 2
        assert result.rows == [{"_id": "id1"}, None, {"_id": "id3"}]
        assert [index for index, _ in result.failures] == [1]
        assert result.failures[0][1].error == "conflict"
        assert store.document_count("posts") == 3

    def test_empty_batch(self, engine, store, db, post):
        """An empty batch makes no request."""
        store.inject_failure()

        result = engine.insert_all(db, post, [], returning=["_id"])

        assert result.count == 0
        assert result.rows == []

    def test_invalid_record_rejects_whole_batch(self, engine, store, db, post):
        """Validation runs before the batch is sent."""
        with pytest.raises(UnknownFieldError):
            engine.insert_all(db, post, [{"_id": "id1"}, {"bogus": 1}])

        assert store.document_count("posts") == 0


class TestDelete:
    """Tests for delete."""

    def test_delete(self, engine, store, db, post):
        """Delete at the current revision succeeds with a new revision."""
        rev = engine.insert(db, post, {"_id": "FOO"}).rev

        result = engine.delete(db, post, "FOO", rev)

        assert result.ok is True
        assert result.rev.startswith("2-")
        assert result.already_deleted is False
        assert store.document_count("posts") == 0

    def test_delete_missing_is_success(self, engine, db, post):
        """Deleting an unknown id is treated as done."""
        result = engine.delete(db, post, "nope", "1-abc")

        assert result.ok is True
        assert result.already_deleted is True
        assert result.rev is None

    def test_delete_stale_rev(self, engine, db, post):
        """A stale revision is a failed check, not an exception."""
        first = engine.insert(db, post, {"_id": "FOO", "title": "t1"}).rev
        engine.update(db, post, "FOO", first, {"title": "t2"})

        result = engine.delete(db, post, "FOO", first)

        assert result.ok is False
        assert result.reason == "Document update conflict."

    def test_delete_transport_failure(self, engine, store, db, post):
        """Transport errors propagate."""
        store.inject_failure()

        with pytest.raises(StoreConnectionError):
            engine.delete(db, post, "FOO", "1-abc")


class TestUpdate:
    """Tests for update."""

    @pytest.fixture
    def saved_rev(self, engine, db, post):
        """Revision of a freshly inserted post."""
        return engine.insert(db, post, {"_id": "FOO", "title": "t1", "body": "b1"}).rev

    def test_update(self, engine, store, db, post, saved_rev):
        """Changes are merged and a new revision returned."""
        result = engine.update(db, post, "FOO", saved_rev, {"title": "t2"}, returning=["title"])

        assert result.rev.startswith("2-")
        assert result.rev != saved_rev
        assert result.returned == {"title": "t2", "_rev": result.rev}
        stored = store.fetch(db, "FOO")
        assert stored["title"] == "t2"
        assert stored["body"] == "b1"

    def test_rev_always_returned(self, engine, db, post, saved_rev):
        """The new revision is returned even when not requested."""
        result = engine.update(db, post, "FOO", saved_rev, {"title": "t2"})

        assert result.returned == {"_rev": result.rev}

    def test_stale_rev(self, engine, db, post, saved_rev):
        """An outdated revision raises StaleEntryError."""
        engine.update(db, post, "FOO", saved_rev, {"title": "t2"})

        with pytest.raises(StaleEntryError) as exc_info:
            engine.update(db, post, "FOO", saved_rev, {"title": "t3"})

        assert exc_info.value.expected_rev == saved_rev
        assert exc_info.value.actual_rev.startswith("2-")

    def test_stale_then_retry(self, engine, store, db, post, saved_rev):
        """Re-reading the revision lets the update through."""
        engine.update(db, post, "FOO", saved_rev, {"title": "t2"})
        with pytest.raises(StaleEntryError):
            engine.update(db, post, "FOO", saved_rev, {"title": "t3"})

        current = store.fetch(db, "FOO")["_rev"]
        result = engine.update(db, post, "FOO", current, {"title": "t3"})

        assert result.rev.startswith("3-")

    def test_missing_document(self, engine, db, post):
        """Updating an unknown id is stale."""
        with pytest.raises(StaleEntryError, match="does not exist"):
            engine.update(db, post, "nope", "1-abc", {"title": "t"})

    def test_concurrent_writer(self, db, post):
        """A write between read and save is reported as stale."""

        class RacingStore(InMemoryStoreClient):
            def fetch(self, db, doc_id):
                current = super().fetch(db, doc_id)
                self.save(db, dict(current, title="sneaky"))
                return current

        store = RacingStore()
        store.create_database("posts")
        engine = MutationEngine(store)
        rev = engine.insert(db, post, {"_id": "FOO", "title": "t1"}).rev

        with pytest.raises(StaleEntryError, match="changed during update"):
            engine.update(db, post, "FOO", rev, {"title": "t2"})

    def test_reserved_fields_cannot_change(self, engine, db, post, saved_rev):
        """_id and _rev are not updatable."""
        with pytest.raises(ValidationError, match="_id"):
            engine.update(db, post, "FOO", saved_rev, {"_id": "BAR"})

    def test_unknown_field(self, engine, db, post, saved_rev):
        """Unknown fields fail before the fetch."""
        with pytest.raises(UnknownFieldError):
            engine.update(db, post, "FOO", saved_rev, {"titel": "t2"})

    def test_embedded_change(self, engine, db, post, saved_rev, stats_type):
        """Embedded records are encoded in changes and loaded in results."""
        result = engine.update(db, post, "FOO", saved_rev, {"stats": stats_type(visits=2, time=5)}, returning=["stats"])

        assert result.returned["stats"] == stats_type(visits=2, time=5)

    def test_errors_share_base(self):
        """Store and stale errors are both CouchViewErrors with codes."""
        assert StaleEntryError("x", doc_id="a").code == "STALE_ENTRY"
        assert StoreError("x").code == "STORE_ERROR"
