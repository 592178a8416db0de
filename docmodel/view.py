"""
View query facade.

A View is a lazy, reusable query descriptor for one stored view. Nothing
is sent to the store until it is iterated. Rows come back as plain dicts
unless a wrapper is given, in which case each row is turned into a model
instance through wrapper.wrap().

Example:
    >>> for post in Post.by_author(key="alice", limit=10):
    ...     print(post.title, post.raw_key)
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any, Dict, List, Optional

from .store.base import DESIGN_PREFIX, Bucket


class View:
    """Query descriptor for a stored view.

    Attributes:
        bucket: Bucket the query runs against
        design: Design document name
        name: View name
        wrapper: Class with a wrap(row) classmethod, or None for raw rows
        params: Query parameters passed to Bucket.query_view
    """

    def __init__(
        self,
        bucket: Bucket,
        design: str,
        name: str,
        wrapper: Optional[Any] = None,
        **params: Any,
    ) -> None:
        self.bucket = bucket
        self.design = design
        self.name = name
        self.wrapper = wrapper
        self.params: Dict[str, Any] = params

    @property
    def path(self) -> str:
        return f"{DESIGN_PREFIX}{self.design}/_view/{self.name}"

    def __iter__(self) -> Iterator[Any]:
        return self._rows(self.params)

    def _rows(self, params: Dict[str, Any]) -> Iterator[Any]:
        for row in self.bucket.query_view(self.design, self.name, **params):
            yield self.wrapper.wrap(row) if self.wrapper is not None else row

    def fetch(self, **params: Any) -> List[Any]:
        """Run the query with extra parameters and collect all results."""
        return list(self._rows({**self.params, **params}))

    def first(self, **params: Any) -> Optional[Any]:
        """First result, or None."""
        return next(self._rows({**self.params, **params, "limit": 1}), None)

    def __repr__(self) -> str:
        return f"View({self.path!r}, params={self.params!r})"
