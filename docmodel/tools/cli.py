"""
Command-line interface for docmodel.

Usage:
    docmodel sync blog.models --paths app/views --store sqlite --sqlite-path blog.db
    docmodel show blog.models --paths app/views --model Post

Both commands import the given modules so that their model classes register
themselves, then work on every registered model that declares views (or on
the single model named with --model).

Invariants:
    - Exit status is 0 on success and 1 on a docmodel error
    - show output is deterministic (sorted JSON)
    - View source roots default to DOCMODEL_DESIGN_DOCUMENTS_PATH

How to change safely:
    - Add new commands, don't modify existing ones
    - Keep output format stable for scripts parsing it
"""

from __future__ import annotations

import argparse
import importlib
import json
import logging
import sys
from typing import Any, Optional, Sequence

from ..config import Settings, setup_logging
from ..connection import connect
from ..design import DesignDocumentSynchronizer, SyncOutcome, ViewSourceProvider
from ..errors import DocModelError
from ..model import Model
from ..schema import ModelRegistry, get_registry

logger = logging.getLogger(__name__)


class ModelCLI:
    """Operations behind the docmodel command.

    Example:
        >>> cli = ModelCLI(DesignDocumentSynchronizer(ViewSourceProvider.from_paths(["views"])))
        >>> cli.sync([Post])
        [('post', <SyncOutcome.PUSHED: 'pushed'>)]
    """

    def __init__(self, synchronizer: DesignDocumentSynchronizer) -> None:
        self.synchronizer = synchronizer

    def sync(self, models: Sequence[type[Model]]) -> list[tuple[str, SyncOutcome]]:
        """Synchronize the design document of every model.

        Returns:
            (design document name, outcome) per model
        """
        results = []
        for model in models:
            outcome = self.synchronizer.ensure_current(model.__schema__)
            results.append((model.design_document(), outcome))
        return results

    def show(self, models: Sequence[type[Model]]) -> str:
        """Render candidate design documents as JSON without touching the store."""
        documents: dict[str, Any] = {}
        for model in models:
            document = self.synchronizer.build(model.__schema__)
            documents[document.name] = document.to_dict()
        return json.dumps(documents, indent=2, sort_keys=True)


def select_models(registry: ModelRegistry, name: Optional[str] = None) -> list[type[Model]]:
    """Pick the models a command works on.

    Raises:
        DocModelError: If name is given and no model matches
    """
    if name:
        model = registry.get(name)
        if model is None:
            raise DocModelError(f"Unknown model: {name}", code="UNKNOWN_MODEL")
        return [model]
    return [model for model in registry.models() if model.views()]


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="docmodel", description="docmodel design document tool")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # sync command
    sync_parser = subparsers.add_parser("sync", help="Push design documents that changed")
    sync_parser.add_argument("modules", nargs="+", help="Python modules declaring models")
    sync_parser.add_argument("--paths", nargs="+", help="View source roots, in search order")
    sync_parser.add_argument("--model", help="Only this model (class or design document name)")
    sync_parser.add_argument("--store", choices=["memory", "sqlite"], help="Store backend")
    sync_parser.add_argument("--sqlite-path", help="SQLite bucket file")

    # show command
    show_parser = subparsers.add_parser("show", help="Print design documents built from view sources")
    show_parser.add_argument("modules", nargs="+", help="Python modules declaring models")
    show_parser.add_argument("--paths", nargs="+", help="View source roots, in search order")
    show_parser.add_argument("--model", help="Only this model (class or design document name)")

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """CLI entry point."""
    args = _build_parser().parse_args(argv)

    overrides: dict[str, Any] = {}
    if getattr(args, "store", None):
        overrides["store_backend"] = args.store
    if getattr(args, "sqlite_path", None):
        overrides["sqlite_path"] = args.sqlite_path
    settings = Settings(**overrides)
    setup_logging(settings)

    paths = args.paths or settings.design_documents_paths
    cli = ModelCLI(DesignDocumentSynchronizer(ViewSourceProvider.from_paths(paths)))

    try:
        for module in args.modules:
            importlib.import_module(module)
        models = select_models(get_registry(), args.model)

        if args.command == "show":
            print(cli.show(models))
            return 0

        settings.log_config()
        connect(settings)
        for design, outcome in cli.sync(models):
            print(f"{design}: {outcome.value}")
        return 0
    except DocModelError as e:
        logger.error("docmodel command failed", extra={"code": e.code, "details": e.details})
        print(f"error: {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
