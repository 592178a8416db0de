"""
Unit tests for the view query facade.

Tests cover:
- Query descriptors built from model views
- Row wrapping into instances
- Lazy execution
- fetch() and first()
"""

from unittest import mock

import pytest

from docmodel import Model, View, attribute, view
from docmodel.design import DesignDocumentSynchronizer, MappingRoot, ViewSourceProvider
from docmodel.errors import NotFoundError


def by_author(doc, meta):
    if doc.get("type") == "post":
        yield doc["author"], None


@pytest.fixture
def Post(bucket):
    class Post(Model):
        title = attribute()
        author = attribute()
        by_author = view()

    sources = {"post": {"by_author": {"map": "function (doc) { emit(doc.author, null); }"}}}
    Post.ensure_design_document(DesignDocumentSynchronizer(ViewSourceProvider([MappingRoot(sources)])))
    bucket.views.register("post", "by_author", by_author)
    return Post


@pytest.fixture
def posts(Post):
    return [
        Post.new(id="p1", title="First", author="alice").create(),
        Post.new(id="p2", title="Second", author="bob").create(),
        Post.new(id="p3", title="Third", author="alice").create(),
    ]


class TestViewDescriptor:
    """Tests for building View objects."""

    def test_model_view(self, Post, bucket):
        """A declared view returns a wrapped View including documents."""
        query = Post.by_author(key="alice")

        assert isinstance(query, View)
        assert query.bucket is bucket
        assert query.path == "_design/post/_view/by_author"
        assert query.wrapper is Post
        assert query.params == {"key": "alice", "include_docs": True}

    def test_include_docs_can_be_disabled(self, Post):
        """Callers may turn document inclusion off."""
        assert Post.by_author(include_docs=False).params["include_docs"] is False

    def test_lazy(self, Post, bucket):
        """Nothing is queried until iteration."""
        with mock.patch.object(bucket, "query_view") as query_view:
            Post.by_author()

        query_view.assert_not_called()


class TestViewResults:
    """Tests for iterating views."""

    def test_rows_wrapped(self, Post, posts):
        """Rows come back as model instances with meta and raw fields."""
        result = list(Post.by_author(key="alice"))

        assert [p.id for p in result] == ["p1", "p3"]
        assert [p.title for p in result] == ["First", "Third"]
        assert all(isinstance(p, Post) for p in result)
        assert result[0].raw_key == "alice"
        assert result[0].meta.cas == posts[0].meta.cas

    def test_raw_rows_without_wrapper(self, Post, posts, bucket):
        """Without a wrapper rows stay dicts."""
        rows = list(View(bucket, "post", "by_author", include_docs=False))

        assert rows[0] == {"id": "p1", "key": "alice", "value": None}

    def test_fetch_merges_params(self, Post, posts):
        """fetch() adds parameters for one run."""
        query = Post.by_author()

        assert [p.id for p in query.fetch(key="bob")] == ["p2"]
        assert len(query.fetch()) == 3

    def test_first(self, Post, posts):
        """first() returns one result or None."""
        assert Post.by_author(descending=True).first().id == "p2"
        assert Post.by_author(key="carol").first() is None

    def test_reiterable(self, Post, posts):
        """A View can be iterated more than once."""
        query = Post.by_author(key="bob")

        assert [p.id for p in query] == [p.id for p in query]

    def test_missing_design_document(self, bucket):
        """Querying before the design document is pushed raises NotFoundError."""

        class Draft(Model):
            everything = view()

        with pytest.raises(NotFoundError):
            list(Draft.everything())
