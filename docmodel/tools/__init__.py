"""
Command-line tools for docmodel.

This module provides the docmodel command:
- sync: Push design documents of declared models when their views changed
- show: Print the design documents that sync would push

Invariants:
    - show never contacts the store
    - sync is safe to run from several machines at once
"""

from .cli import ModelCLI

__all__ = ["ModelCLI"]
