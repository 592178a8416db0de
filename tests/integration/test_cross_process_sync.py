"""
Integration tests for design document synchronization between processes.

Each "process" is modelled by its own schema (own sync cache) and its own
SqliteBucket instance, all sharing one database file. One test also runs
real processes through the command line.

Tests cover:
- Convergence on the newest view sources
- Stale processes never overwriting newer documents
- Restarted processes adopting what is stored
- Separate real processes
"""

import os
import subprocess
import sys
import textwrap
from pathlib import Path

import pytest

from docmodel.design import DesignDocumentSynchronizer, SyncOutcome, ViewSourceProvider, compute_signature
from docmodel.schema import EntitySchema
from docmodel.store import SqliteBucket

OLD_MAP = "function (doc) { emit(doc.author); }"
NEW_MAP = "function (doc) { emit([doc.author, doc.created_at]); }"


class TestCrossProcessSync:
    """Tests for several processes sharing one store."""

    @pytest.fixture
    def db_path(self, tmp_path):
        return tmp_path / "shared.db"

    @pytest.fixture
    def old_views(self, tmp_path, write_view):
        root = tmp_path / "old"
        write_view(root, "post", "by_author", "map", OLD_MAP, 1000)
        return root

    @pytest.fixture
    def new_views(self, tmp_path, write_view):
        root = tmp_path / "new"
        write_view(root, "post", "by_author", "map", NEW_MAP, 2000)
        return root

    def process(self, db_path, views_root):
        """A fresh process: its own schema, bucket and synchronizer."""
        schema = EntitySchema("Post")
        schema.declare_view("by_author")
        schema.bind(SqliteBucket(db_path))
        return schema, DesignDocumentSynchronizer(ViewSourceProvider.from_paths([views_root]))

    def stored(self, db_path):
        return SqliteBucket(db_path).get_design_doc("post")

    def test_newer_process_wins(self, db_path, old_views, new_views):
        """A deploy with newer sources replaces the document of an older one."""
        old_schema, old_sync = self.process(db_path, old_views)
        new_schema, new_sync = self.process(db_path, new_views)

        assert old_sync.ensure_current(old_schema) is SyncOutcome.PUSHED
        assert new_sync.ensure_current(new_schema) is SyncOutcome.PUSHED

        assert self.stored(db_path)["signature"] == compute_signature([NEW_MAP])
        assert self.stored(db_path)["timestamp"] == 2000

    def test_stale_process_does_not_clobber(self, db_path, old_views, new_views):
        """A process started with older sources keeps the newer stored document."""
        new_schema, new_sync = self.process(db_path, new_views)
        new_sync.ensure_current(new_schema)

        old_schema, old_sync = self.process(db_path, old_views)

        assert old_sync.ensure_current(old_schema) is SyncOutcome.ADOPTED
        assert old_sync.ensure_current(old_schema) is SyncOutcome.UNCHANGED
        assert self.stored(db_path)["signature"] == compute_signature([NEW_MAP])
        assert old_schema.sync_state.timestamp == 2000

    def test_identical_processes_push_once(self, db_path, old_views):
        """A second process with the same sources adopts instead of pushing."""
        first, first_sync = self.process(db_path, old_views)
        second, second_sync = self.process(db_path, old_views)

        assert first_sync.ensure_current(first) is SyncOutcome.PUSHED
        assert second_sync.ensure_current(second) is SyncOutcome.ADOPTED
        assert first.sync_state == second.sync_state

    def test_separate_processes(self, tmp_path, db_path, old_views, new_views):
        """Real processes run one after another converge on the newest sources."""
        (tmp_path / "blog_models.py").write_text(textwrap.dedent("""
            from docmodel import Model, view

            class Post(Model):
                by_author = view()
        """))
        repo_root = Path(__file__).resolve().parents[2]
        env = dict(os.environ)
        env["PYTHONPATH"] = os.pathsep.join([str(tmp_path), str(repo_root), env.get("PYTHONPATH", "")])
        env.pop("DOCMODEL_DESIGN_DOCUMENTS_PATH", None)

        def sync(views_root):
            cmd = [
                sys.executable, "-m", "docmodel.tools.cli", "sync", "blog_models",
                "--paths", str(views_root),
                "--store", "sqlite", "--sqlite-path", str(db_path),
            ]
            result = subprocess.run(cmd, env=env, capture_output=True, text=True, timeout=60)
            assert result.returncode == 0, result.stderr
            return result.stdout.strip()

        assert sync(old_views) == "post: pushed"
        assert sync(new_views) == "post: pushed"
        assert sync(old_views) == "post: adopted"
        assert sync(new_views) == "post: adopted"
        assert self.stored(db_path)["signature"] == compute_signature([NEW_MAP])
