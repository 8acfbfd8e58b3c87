"""
Unit tests for the in-memory store client.

Tests cover:
- Revision assignment and conflicts
- Delete and tombstones
- View rows, ordering and options
- Batch saves and injected failures
"""

import pytest

from couchview.store import (
    InMemoryStoreClient,
    StoreClient,
    StoreConflictError,
    StoreConnectionError,
    StoreNotFoundError,
    collation_key,
)


class TestDocuments:
    """Tests for document operations."""

    def test_implements_protocol(self, store):
        """The in-memory client satisfies StoreClient."""
        assert isinstance(store, StoreClient)

    def test_open_missing_database(self, store):
        """Opening an unknown database fails."""
        with pytest.raises(StoreNotFoundError):
            store.open("comments")

    def test_save_assigns_revision(self, store, db):
        """A new document gets generation 1."""
        saved = store.save(db, {"_id": "id1", "title": "t1"})

        assert saved["_id"] == "id1"
        assert saved["_rev"].startswith("1-")

    def test_save_generates_id(self, store, db):
        """Documents without _id get one."""
        saved = store.save(db, {"title": "t1"})

        assert saved["_id"]
        assert store.fetch(db, saved["_id"])["title"] == "t1"

    def test_save_existing_without_rev_conflicts(self, store, db):
        """Re-creating an existing id is a conflict."""
        store.save(db, {"_id": "id1"})

        with pytest.raises(StoreConflictError) as exc_info:
            store.save(db, {"_id": "id1"})

        assert exc_info.value.status_code == 409

    def test_save_with_current_rev(self, store, db):
        """Saving at the current revision bumps the generation."""
        first = store.save(db, {"_id": "id1", "title": "t1"})

        second = store.save(db, dict(first, title="t2"))

        assert second["_rev"].startswith("2-")
        assert store.fetch(db, "id1")["title"] == "t2"

    def test_save_with_old_rev_conflicts(self, store, db):
        """Saving at an old revision is a conflict."""
        first = store.save(db, {"_id": "id1"})
        store.save(db, dict(first))

        with pytest.raises(StoreConflictError):
            store.save(db, dict(first))

    def test_fetch_returns_copy(self, store, db):
        """Mutating a fetched document does not change the store."""
        store.save(db, {"_id": "id1", "tags": ["a"]})

        store.fetch(db, "id1")["tags"].append("b")

        assert store.fetch(db, "id1")["tags"] == ["a"]

    def test_fetch_missing(self, store, db):
        """Fetching an unknown id fails."""
        with pytest.raises(StoreNotFoundError):
            store.fetch(db, "nope")

    def test_delete(self, store, db):
        """Delete at the current revision removes the document."""
        saved = store.save(db, {"_id": "id1"})

        rev = store.delete(db, "id1", saved["_rev"])

        assert rev.startswith("2-")
        with pytest.raises(StoreNotFoundError):
            store.fetch(db, "id1")

    def test_delete_stale_rev(self, store, db):
        """Delete at an old revision is a conflict."""
        first = store.save(db, {"_id": "id1"})
        store.save(db, dict(first))

        with pytest.raises(StoreConflictError):
            store.delete(db, "id1", first["_rev"])

    def test_delete_missing(self, store, db):
        """Deleting an unknown id is not found."""
        with pytest.raises(StoreNotFoundError):
            store.delete(db, "nope", "1-abc")

    def test_recreate_after_delete(self, store, db):
        """A deleted id can be created again, continuing its revisions."""
        saved = store.save(db, {"_id": "id1"})
        store.delete(db, "id1", saved["_rev"])

        again = store.save(db, {"_id": "id1"})

        assert again["_rev"].startswith("3-")


class TestBatch:
    """Tests for save_batch."""

    def test_batch_reports_per_document(self, store, db):
        """Conflicts are reported per item without stopping the batch."""
        store.save(db, {"_id": "id2"})

        items = store.save_batch(db, [{"_id": "id1"}, {"_id": "id2"}, {"_id": "id3"}])

        assert [item.ok for item in items] == [True, False, True]
        assert items[1].error == "conflict"
        assert items[0].rev.startswith("1-")
        assert store.document_count("posts") == 3


class TestViews:
    """Tests for fetch_view."""

    @pytest.fixture
    def seeded(self, store, db):
        """Three posts saved out of key order."""
        store.save(db, {"_id": "id3", "title": "c"})
        store.save(db, {"_id": "id1", "title": "a"})
        store.save(db, {"_id": "id2", "title": "b", "other": "x"})
        store.save(db, {"_id": "_design/Post", "views": {}})
        return db

    def test_rows_sorted_by_key(self, store, seeded):
        """Rows come back in key order, design documents excluded."""
        rows = store.fetch_view(seeded, "Post", "all", {})

        assert [row["key"] for row in rows] == ["id1", "id2", "id3"]
        assert "doc" not in rows[0]

    def test_include_docs(self, store, seeded):
        """include_docs attaches the document."""
        rows = store.fetch_view(seeded, "Post", "all", {"include_docs": True})

        assert rows[0]["doc"]["title"] == "a"
        assert rows[0]["doc"]["_rev"].startswith("1-")

    def test_key(self, store, seeded):
        """key selects one key."""
        rows = store.fetch_view(seeded, "Post", "by_title", {"key": "b"})

        assert [row["id"] for row in rows] == ["id2"]

    def test_keys_in_request_order(self, store, seeded):
        """keys returns rows in the order of the requested keys."""
        rows = store.fetch_view(seeded, "Post", "all", {"keys": ["id3", "id1", "missing"]})

        assert [row["id"] for row in rows] == ["id3", "id1"]

    def test_range(self, store, seeded):
        """startkey and endkey bound the range inclusively."""
        rows = store.fetch_view(seeded, "Post", "all", {"startkey": "id2", "endkey": "id2"})

        assert [row["id"] for row in rows] == ["id2"]

    def test_field_view_skips_documents_without_field(self, store, seeded):
        """Documents lacking the keyed field are not emitted."""
        rows = store.fetch_view(seeded, "secondary", "by_other", {})

        assert [row["id"] for row in rows] == ["id2"]

    def test_missing_view(self, store, seeded):
        """Undefined views are not found."""
        with pytest.raises(StoreNotFoundError):
            store.fetch_view(seeded, "Post", "by_author", {})


class TestFailures:
    """Tests for failure injection and lifecycle."""

    def test_inject_failure(self, store, db):
        """The next operation raises the injected failure, then recovers."""
        store.inject_failure()

        with pytest.raises(StoreConnectionError):
            store.save(db, {"_id": "id1"})

        assert store.save(db, {"_id": "id1"})["_rev"].startswith("1-")

    def test_close_clears_data(self):
        """close() drops every database."""
        store = InMemoryStoreClient()
        store.create_database("posts")

        store.close()

        with pytest.raises(StoreNotFoundError):
            store.open("posts")


class TestCollation:
    """Tests for collation_key."""

    def test_type_order(self):
        """null < false < true < numbers < strings < arrays < objects."""
        values = [{"a": 1}, ["a"], "a", 1, True, False, None]

        assert sorted(values, key=collation_key) == [None, False, True, 1, "a", ["a"], {"a": 1}]

    def test_numbers_compare_numerically(self):
        """Numbers sort by value, not by text."""
        assert sorted([10, 9, 1.5], key=collation_key) == [1.5, 9, 10]
