"""
Integration tests for a complete model over the SQLite bucket.

Tests cover:
- The Post walk-through: declare, create, find
- Views pushed from files and queried back as instances
- A second bucket on the same file seeing the same documents
"""

import pytest

from docmodel import Model, SqliteBucket, SyncOutcome, attribute, configure_design_documents, view
from docmodel.errors import AlreadyExistsError, NotFoundError


def by_author(doc, meta):
    if doc.get("type") == "post" and not doc.get("draft"):
        yield doc["author"], None


def count_by_author(doc, meta):
    if doc.get("type") == "post":
        yield doc["author"], 1


class TestPostLifecycle:
    """End-to-end tests for a Post model."""

    @pytest.fixture
    def db_path(self, tmp_path):
        return tmp_path / "blog.db"

    @pytest.fixture
    def views(self, tmp_path, write_view):
        root = tmp_path / "views"
        write_view(root, "post", "by_author", "map", "function (doc) { if (!doc.draft) emit(doc.author); }", 100)
        write_view(root, "post", "count_by_author", "map", "function (doc) { emit(doc.author, 1); }", 100)
        write_view(root, "post", "count_by_author", "reduce", "_count", 100)
        return root

    @pytest.fixture
    def Post(self, db_path, views):
        class Post(Model):
            title = attribute()
            author = attribute()
            draft = attribute(default=False)
            by_author = view()
            count_by_author = view()

        store = SqliteBucket(db_path)
        store.views.register("post", "by_author", by_author)
        store.views.register("post", "count_by_author", count_by_author, "_count")
        Post.bind(store)
        configure_design_documents(views)
        return Post

    def test_walkthrough(self, Post):
        """Defaults apply before create and survive a round trip."""
        post = Post.new(title="Hello")
        assert post.draft is False

        post.create()
        found = Post.find(post.id)

        assert found.title == "Hello"
        assert found.draft is False
        assert found.id == post.id

    def test_create_collision_keeps_original(self, Post):
        """A colliding create leaves the stored document untouched."""
        Post.new(id="hello", title="original").create()

        with pytest.raises(AlreadyExistsError):
            Post.new(id="hello", title="copy").create()

        assert Post.find("hello").title == "original"

    def test_delete_then_lookup(self, Post):
        """Deleted documents are gone for quiet and strict lookups."""
        post = Post.new(title="t").create()
        old_id = post.id

        post.delete()

        assert post.id is None
        assert Post.find_by_id(old_id) is None
        with pytest.raises(NotFoundError):
            Post.find(old_id)

    def test_views(self, Post):
        """Synchronized views return wrapped instances."""
        assert Post.ensure_design_document() is SyncOutcome.PUSHED
        Post.new(title="a1", author="alice").create()
        Post.new(title="b1", author="bob").create()
        Post.new(title="a2", author="alice", draft=True).create()

        titles = sorted(p.title for p in Post.by_author(key="alice"))
        counts = {row.raw_key: row.raw_value for row in Post.count_by_author(group=True)}

        assert titles == ["a1"]
        assert counts == {"alice": 2, "bob": 1}

    def test_second_bucket_on_same_file(self, Post, db_path):
        """Documents written through one bucket are visible through another."""
        post = Post.new(title="shared").create()

        other = SqliteBucket(db_path)

        assert other.get(post.id).value["title"] == "shared"
        assert other.get(post.id).value["type"] == "post"
