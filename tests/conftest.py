"""
Shared fixtures for docmodel tests.

Every test starts with an empty model registry, a fresh identifier
generator, an in-memory default bucket and no process-wide synchronizer.
"""

import os

import pytest

from docmodel.connection import reset_default_bucket, set_default_bucket
from docmodel.design import DesignDocumentSynchronizer, ViewSourceProvider, set_synchronizer
from docmodel.ids import reset_generator
from docmodel.schema import reset_registry
from docmodel.store import InMemoryBucket


@pytest.fixture(autouse=True)
def isolated_state():
    """Reset process-wide state around each test."""
    reset_registry()
    reset_generator()
    reset_default_bucket()
    set_synchronizer(None)
    yield
    reset_registry()
    reset_generator()
    reset_default_bucket()
    set_synchronizer(None)


@pytest.fixture
def bucket():
    """In-memory bucket installed as the process default."""
    b = InMemoryBucket()
    set_default_bucket(b)
    return b


def _write_view(root, design, view, kind, text, mtime=None):
    path = root / design / view / f"{kind}.js"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


@pytest.fixture
def write_view():
    """Write one view function file and optionally pin its mtime."""
    return _write_view


@pytest.fixture
def views_dir(tmp_path):
    """Directory root holding post/by_author/map.js at mtime 1000."""
    root = tmp_path / "views"
    _write_view(root, "post", "by_author", "map", "function (doc) { emit(doc.author, null); }", 1000)
    return root


@pytest.fixture
def synchronizer(views_dir):
    """Synchronizer over views_dir."""
    return DesignDocumentSynchronizer(ViewSourceProvider.from_paths([views_dir]))
