"""
docmodel Test Suite.

This package contains:
- unit/: Unit tests (in-memory bucket, no files unless tmp_path)
- integration/: Integration tests (SQLite bucket, command line)
"""
