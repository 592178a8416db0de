"""
Unit tests for design document synchronization.

Tests cover:
- Building the candidate document
- Local short-circuit on repeated calls
- Push / adopt decisions against the stored document
- Timestamp guard against stale sources
- Error propagation
- Cache invalidation when the bucket changes
- Thread safety of the cached state
"""

import logging
import threading
from unittest import mock

import pytest

from docmodel.connection import set_default_bucket
from docmodel.design import (
    DesignDocument,
    DesignDocumentSynchronizer,
    MappingRoot,
    SyncOutcome,
    ViewSourceProvider,
    compute_signature,
    configure_design_documents,
    get_synchronizer,
)
from docmodel.errors import ConfigurationMissingError
from docmodel.schema import EntitySchema, SyncState
from docmodel.store import InMemoryBucket

MAP = "function (doc) { emit(doc.author, null); }"


@pytest.fixture
def store():
    return InMemoryBucket()


@pytest.fixture
def schema(store):
    """Post schema with one view, bound to store."""
    s = EntitySchema("Post")
    s.declare_view("by_author")
    s.bind(store)
    return s


def spy(store):
    """Wrap the design document calls of store with mocks."""
    return (
        mock.patch.object(store, "get_design_doc", wraps=store.get_design_doc),
        mock.patch.object(store, "save_design_doc", wraps=store.save_design_doc),
    )


class TestBuild:
    """Tests for DesignDocumentSynchronizer.build."""

    def test_candidate_document(self, schema, synchronizer):
        """The candidate holds the sources, signature and newest mtime."""
        doc = synchronizer.build(schema)

        assert doc.name == "post"
        assert doc.views == {"by_author": {"map": MAP}}
        assert doc.signature == compute_signature([MAP])
        assert doc.timestamp == 1000

    def test_map_and_reduce_in_order(self, schema, views_dir, write_view):
        """Map then reduce of each view, in declaration order, feed the signature."""
        write_view(views_dir, "post", "total", "map", "emit(1)", 1500)
        write_view(views_dir, "post", "total", "reduce", "_count", 2000)
        schema.declare_view("total")

        doc = DesignDocumentSynchronizer(ViewSourceProvider.from_paths([views_dir])).build(schema)

        assert doc.signature == compute_signature([MAP, "emit(1)", "_count"])
        assert doc.timestamp == 2000
        assert doc.views["total"] == {"map": "emit(1)", "reduce": "_count"}

    def test_view_order_changes_signature(self, store):
        """Declaring the same views in another order changes the signature."""
        sources = {"post": {"a": {"map": "map-a"}, "b": {"map": "map-b"}}}
        sync = DesignDocumentSynchronizer(ViewSourceProvider([MappingRoot(sources)]))
        ab, ba = EntitySchema("Post"), EntitySchema("Post")
        ab.declare_view("a")
        ab.declare_view("b")
        ba.declare_view("b")
        ba.declare_view("a")

        assert sync.build(ab).signature != sync.build(ba).signature

    def test_missing_map_logged(self, schema, synchronizer, caplog):
        """A declared view without sources yields an empty entry and a warning."""
        schema.declare_view("unknown")

        with caplog.at_level(logging.WARNING, logger="docmodel.design.sync"):
            doc = synchronizer.build(schema)

        assert doc.views["unknown"] == {}
        assert "No map function found for view" in caplog.text

    def test_build_does_not_touch_store(self, schema, synchronizer, store):
        """build() makes no store calls."""
        get_spy, save_spy = spy(store)
        with get_spy as get_doc, save_spy as save_doc:
            synchronizer.build(schema)

        get_doc.assert_not_called()
        save_doc.assert_not_called()


class TestEnsureCurrent:
    """Tests for DesignDocumentSynchronizer.ensure_current."""

    def test_first_push_then_short_circuit(self, schema, synchronizer, store):
        """First call reads once and pushes once, second call makes no store calls."""
        get_spy, save_spy = spy(store)
        with get_spy as get_doc, save_spy as save_doc:
            first = synchronizer.ensure_current(schema)
            assert get_doc.call_count == 1
            assert save_doc.call_count == 1

            second = synchronizer.ensure_current(schema)
            assert get_doc.call_count == 1
            assert save_doc.call_count == 1

        assert first is SyncOutcome.PUSHED
        assert second is SyncOutcome.UNCHANGED
        assert store.get_design_doc("post")["signature"] == compute_signature([MAP])
        assert schema.sync_state == SyncState(compute_signature([MAP]), 1000)

    def test_stale_sources_do_not_overwrite(self, schema, synchronizer, store):
        """A stored document with a different signature and newer timestamp is kept."""
        newer = DesignDocument("post", {"by_author": {"map": "newer"}}, "sig-newer", 5000)
        store.save_design_doc(newer.to_dict())

        with mock.patch.object(store, "save_design_doc") as save_doc:
            outcome = synchronizer.ensure_current(schema)

        save_doc.assert_not_called()
        assert outcome is SyncOutcome.ADOPTED
        assert schema.sync_state == SyncState("sig-newer", 5000)

    def test_equal_timestamp_does_not_overwrite(self, schema, synchronizer, store):
        """An equal timestamp is not strictly newer, so nothing is pushed."""
        store.save_design_doc(DesignDocument("post", {}, "other", 1000).to_dict())

        with mock.patch.object(store, "save_design_doc") as save_doc:
            outcome = synchronizer.ensure_current(schema)

        save_doc.assert_not_called()
        assert outcome is SyncOutcome.ADOPTED

    def test_older_stored_document_replaced(self, schema, synchronizer, store):
        """A stored document with another signature and older timestamp is replaced."""
        store.save_design_doc(DesignDocument("post", {}, "old", 10).to_dict())

        outcome = synchronizer.ensure_current(schema)

        assert outcome is SyncOutcome.PUSHED
        stored = store.get_design_doc("post")
        assert stored["signature"] == compute_signature([MAP])
        assert stored["timestamp"] == 1000

    def test_identical_stored_document_adopted(self, schema, synchronizer, store):
        """Another process already pushed the same content: no push."""
        store.save_design_doc(synchronizer.build(schema).to_dict())

        with mock.patch.object(store, "save_design_doc") as save_doc:
            outcome = synchronizer.ensure_current(schema)

        save_doc.assert_not_called()
        assert outcome is SyncOutcome.ADOPTED
        assert schema.sync_state.signature == compute_signature([MAP])

    def test_changed_source_pushed(self, schema, synchronizer, store, views_dir, write_view):
        """Editing a view source after a sync pushes again."""
        synchronizer.ensure_current(schema)
        write_view(views_dir, "post", "by_author", "map", "function (doc) { emit(doc.tag); }", 2000)

        outcome = synchronizer.ensure_current(schema)

        assert outcome is SyncOutcome.PUSHED
        assert store.get_design_doc("post")["timestamp"] == 2000

    def test_touched_source_adopts_with_newer_timestamp(
        self, schema, synchronizer, store, views_dir, write_view
    ):
        """Touching a file without changing it re-checks once, then short-circuits."""
        synchronizer.ensure_current(schema)
        write_view(views_dir, "post", "by_author", "map", MAP, 3000)

        with mock.patch.object(store, "save_design_doc") as save_doc:
            assert synchronizer.ensure_current(schema) is SyncOutcome.ADOPTED
            assert synchronizer.ensure_current(schema) is SyncOutcome.UNCHANGED

        save_doc.assert_not_called()
        assert schema.sync_state == SyncState(compute_signature([MAP]), 3000)

    def test_rebinding_pushes_to_new_bucket(self, schema, synchronizer, store):
        """Binding to another bucket forgets what was known about the first."""
        assert synchronizer.ensure_current(schema) is SyncOutcome.PUSHED

        other = InMemoryBucket()
        schema.bind(other)

        assert schema.sync_state == SyncState()
        assert synchronizer.ensure_current(schema) is SyncOutcome.PUSHED
        assert other.get_design_doc("post")["signature"] == compute_signature([MAP])
        assert synchronizer.ensure_current(schema) is SyncOutcome.UNCHANGED

    def test_changed_default_bucket_pushes(self, synchronizer):
        """An unbound schema syncs again when the process default bucket changes."""
        unbound = EntitySchema("Post")
        unbound.declare_view("by_author")
        first, second = InMemoryBucket(), InMemoryBucket()

        set_default_bucket(first)
        assert synchronizer.ensure_current(unbound) is SyncOutcome.PUSHED

        set_default_bucket(second)
        assert synchronizer.ensure_current(unbound) is SyncOutcome.PUSHED
        assert second.get_design_doc("post") is not None

    def test_no_roots(self, schema, store):
        """Without roots nothing is read or written."""
        sync = DesignDocumentSynchronizer(ViewSourceProvider())

        with mock.patch.object(store, "get_design_doc") as get_doc:
            with pytest.raises(ConfigurationMissingError):
                sync.ensure_current(schema)

        get_doc.assert_not_called()

    def test_store_errors_propagate(self, schema, synchronizer, store):
        """Store failures reach the caller unchanged and leave the cache alone."""
        with mock.patch.object(store, "get_design_doc", side_effect=OSError("down")):
            with pytest.raises(OSError, match="down"):
                synchronizer.ensure_current(schema)

        assert schema.sync_state == SyncState()

    def test_concurrent_callers_push_once(self, schema, synchronizer, store):
        """Threads sharing a schema push the document exactly once."""
        outcomes = []
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            outcomes.append(synchronizer.ensure_current(schema))

        with mock.patch.object(store, "save_design_doc", wraps=store.save_design_doc) as save_doc:
            threads = [threading.Thread(target=worker) for _ in range(8)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

        assert save_doc.call_count == 1
        assert outcomes.count(SyncOutcome.PUSHED) == 1
        assert outcomes.count(SyncOutcome.UNCHANGED) == 7


class TestGlobalSynchronizer:
    """Tests for the process-wide synchronizer."""

    def test_built_from_environment(self, monkeypatch, views_dir):
        """Roots come from DOCMODEL_DESIGN_DOCUMENTS_PATH."""
        monkeypatch.setenv("DOCMODEL_DESIGN_DOCUMENTS_PATH", str(views_dir))

        sync = get_synchronizer()

        assert sync is get_synchronizer()
        assert sync.provider.resolve("post", "by_author", "map").text == MAP

    def test_configure_design_documents(self, views_dir):
        """configure_design_documents() replaces the shared synchronizer."""
        sync = configure_design_documents(views_dir)

        assert get_synchronizer() is sync
