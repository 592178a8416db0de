"""
View source resolution.

View functions live outside the code, one file per function. A directory
root is laid out as:

    [root]
    `- post                      design document name
       |- by_author
       |  `- map.js
       `- total
          |- map.js
          `- reduce.js

The provider searches its roots in configured order and takes the first
match for each (view, kind) pair. Matches are never merged across roots:
a map found in the first root and a reduce found in the second are both
used, but two maps are never combined.

Example:
    >>> provider = ViewSourceProvider.from_paths(["app/views", "lib/views"])
    >>> provider.resolve("post", "by_author", "map").text
    'function (doc, meta) { ... }'
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Protocol, Sequence

from ..errors import ConfigurationMissingError

logger = logging.getLogger(__name__)

KINDS = ("map", "reduce")


@dataclass(frozen=True)
class ViewSource:
    """Text of one view function.

    Attributes:
        text: Function source
        mtime: Last modification time (Unix seconds)
    """

    text: str
    mtime: int


class ViewSourceRoot(Protocol):
    """One candidate location for view sources."""

    def read(self, design: str, view: str, kind: str) -> Optional[ViewSource]:
        """Return the source for (design, view, kind), or None if absent here."""
        ...


class DirectoryRoot:
    """Reads <path>/<design>/<view>/<kind>.js from the filesystem."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def read(self, design: str, view: str, kind: str) -> Optional[ViewSource]:
        file = self.path / design / view / f"{kind}.js"
        if not file.is_file():
            return None
        try:
            text = file.read_text(encoding="utf-8")
            mtime = int(file.stat().st_mtime)
        except FileNotFoundError:
            return None
        return ViewSource(text=text, mtime=mtime)

    def __repr__(self) -> str:
        return f"DirectoryRoot({str(self.path)!r})"


class MappingRoot:
    """Serves bundled sources from {design: {view: {kind: text}}}.

    All sources share one modification time, typically the release time
    of the bundle.
    """

    def __init__(self, sources: Mapping[str, Mapping[str, Mapping[str, str]]], mtime: int = 0) -> None:
        self.sources = sources
        self.mtime = mtime

    def read(self, design: str, view: str, kind: str) -> Optional[ViewSource]:
        text = self.sources.get(design, {}).get(view, {}).get(kind)
        if text is None:
            return None
        return ViewSource(text=text, mtime=self.mtime)

    def __repr__(self) -> str:
        return f"MappingRoot(designs={sorted(self.sources)}, mtime={self.mtime})"


class ViewSourceProvider:
    """Ordered list of view source roots, first match wins."""

    def __init__(self, roots: Sequence[ViewSourceRoot] = ()) -> None:
        self._roots = list(roots)

    @classmethod
    def from_paths(cls, paths: Sequence[str | Path]) -> ViewSourceProvider:
        """Build a provider over directory roots, searched in the given order."""
        return cls([DirectoryRoot(p) for p in paths])

    @property
    def roots(self) -> list[ViewSourceRoot]:
        return list(self._roots)

    def require_roots(self) -> None:
        """Fail unless at least one root is configured.

        Raises:
            ConfigurationMissingError: If no roots are configured
        """
        if not self._roots:
            raise ConfigurationMissingError(
                "No design document paths configured",
                setting="design_documents_path",
            )

    def resolve(self, design: str, view: str, kind: str) -> Optional[ViewSource]:
        """Find the source of one view function.

        Args:
            design: Design document name
            view: View name
            kind: "map" or "reduce"

        Returns:
            First match across roots, or None

        Raises:
            ConfigurationMissingError: If no roots are configured
            ValueError: If kind is not "map" or "reduce"
        """
        self.require_roots()
        if kind not in KINDS:
            raise ValueError(f"Invalid view function kind: {kind}")

        for root in self._roots:
            source = root.read(design, view, kind)
            if source is not None:
                return source

        logger.debug(
            "View source not found",
            extra={"design": design, "view": view, "kind": kind},
        )
        return None
