"""
In-process view execution for the bundled buckets.

A stored design document holds view source text for the server's query
engine. The in-process buckets cannot run that text, so each view is paired
with its compiled Python form: a map function yielding (key, value) pairs
and an optional reduce function.

Example:
    >>> def by_author(doc, meta):
    ...     if doc.get("type") == "post":
    ...         yield doc["author"], None
    >>> bucket.views.register("post", "by_author", by_author, "_count")

Ordering follows view collation:
    null < false < true < numbers < strings < arrays < objects
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from itertools import groupby
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from .base import META_PREFIX, StoredValue

MapFunction = Callable[[Any, Dict[str, Any]], Iterable[Tuple[Any, Any]]]
ReduceFunction = Callable[[List[Any], List[Any], bool], Any]


def _count(keys: List[Any], values: List[Any], rereduce: bool) -> Any:
    return sum(values) if rereduce else len(values)


def _sum(keys: List[Any], values: List[Any], rereduce: bool) -> Any:
    return sum(values)


BUILTIN_REDUCERS: Dict[str, ReduceFunction] = {
    "_count": _count,
    "_sum": _sum,
}


def collation_key(value: Any) -> tuple:
    """Sort key implementing view collation order."""
    if value is None:
        return (0,)
    if isinstance(value, bool):
        return (1, value)
    if isinstance(value, (int, float)):
        return (2, value)
    if isinstance(value, str):
        return (3, value)
    if isinstance(value, (list, tuple)):
        return (4, tuple(collation_key(v) for v in value))
    if isinstance(value, dict):
        return (5, tuple((k, collation_key(v)) for k, v in value.items()))
    return (6, repr(value))


@dataclass(frozen=True)
class CompiledView:
    """Executable form of one view."""

    map_fn: MapFunction
    reduce_fn: Optional[ReduceFunction] = None


class ViewEngine:
    """Registry and executor of compiled views, keyed by (design, view)."""

    def __init__(self) -> None:
        self._views: Dict[Tuple[str, str], CompiledView] = {}
        self._lock = threading.Lock()

    def register(
        self,
        design: str,
        view: str,
        map_fn: MapFunction,
        reduce_fn: Union[ReduceFunction, str, None] = None,
    ) -> None:
        """Register the compiled form of a view.

        Args:
            design: Design document name
            view: View name
            map_fn: Callable (doc, meta) -> iterable of (key, value)
            reduce_fn: Callable (keys, values, rereduce) or "_count"/"_sum"
        """
        if isinstance(reduce_fn, str):
            if reduce_fn not in BUILTIN_REDUCERS:
                raise ValueError(f"Unknown builtin reducer: {reduce_fn}")
            reduce_fn = BUILTIN_REDUCERS[reduce_fn]
        with self._lock:
            self._views[(design, view)] = CompiledView(map_fn, reduce_fn)

    def get(self, design: str, view: str) -> Optional[CompiledView]:
        return self._views.get((design, view))

    def execute(
        self,
        compiled: CompiledView,
        documents: Iterable[Tuple[str, StoredValue]],
        params: Dict[str, Any],
    ) -> List[Dict[str, Any]]:
        """Run a view over a snapshot of documents.

        Args:
            compiled: View to run
            documents: (key, stored value) pairs
            params: Query parameters

        Returns:
            Result rows in collation order
        """
        stored_by_id: Dict[str, StoredValue] = {}
        rows: List[Dict[str, Any]] = []
        for doc_id, stored in documents:
            meta = {"id": doc_id, "cas": stored.cas, "flags": stored.flags}
            for key, value in compiled.map_fn(stored.value, meta) or ():
                rows.append({"id": doc_id, "key": key, "value": value})
                stored_by_id[doc_id] = stored

        descending = bool(params.get("descending", False))
        rows.sort(key=lambda r: (collation_key(r["key"]), r["id"]), reverse=descending)
        rows = self._filter(rows, params, descending)

        if compiled.reduce_fn is not None and params.get("reduce", True):
            rows = self._reduce(compiled.reduce_fn, rows, bool(params.get("group", False)))
        elif params.get("include_docs"):
            for row in rows:
                row["doc"] = _included_doc(stored_by_id[row["id"]])

        skip = int(params.get("skip", 0))
        limit = params.get("limit")
        rows = rows[skip:]
        if limit is not None:
            rows = rows[: int(limit)]
        return rows

    def _filter(
        self,
        rows: List[Dict[str, Any]],
        params: Dict[str, Any],
        descending: bool,
    ) -> List[Dict[str, Any]]:
        if "key" in params:
            wanted = collation_key(params["key"])
            return [r for r in rows if collation_key(r["key"]) == wanted]

        if "keys" in params:
            result = []
            for key in params["keys"]:
                wanted = collation_key(key)
                result.extend(r for r in rows if collation_key(r["key"]) == wanted)
            return result

        inclusive_end = params.get("inclusive_end", True)
        if "startkey" in params:
            start = collation_key(params["startkey"])
            if descending:
                rows = [r for r in rows if collation_key(r["key"]) <= start]
            else:
                rows = [r for r in rows if collation_key(r["key"]) >= start]
        if "endkey" in params:
            end = collation_key(params["endkey"])
            if descending:
                rows = [
                    r for r in rows
                    if collation_key(r["key"]) > end
                    or (inclusive_end and collation_key(r["key"]) == end)
                ]
            else:
                rows = [
                    r for r in rows
                    if collation_key(r["key"]) < end
                    or (inclusive_end and collation_key(r["key"]) == end)
                ]
        return rows

    def _reduce(
        self,
        reduce_fn: ReduceFunction,
        rows: List[Dict[str, Any]],
        group: bool,
    ) -> List[Dict[str, Any]]:
        if not rows:
            return []
        if not group:
            keys = [[r["key"], r["id"]] for r in rows]
            return [{"key": None, "value": reduce_fn(keys, [r["value"] for r in rows], False)}]

        reduced = []
        for _, grouped in groupby(rows, key=lambda r: collation_key(r["key"])):
            group_rows = list(grouped)
            keys = [[r["key"], r["id"]] for r in group_rows]
            reduced.append({
                "key": group_rows[0]["key"],
                "value": reduce_fn(keys, [r["value"] for r in group_rows], False),
            })
        return reduced


def _included_doc(stored: StoredValue) -> Dict[str, Any]:
    """Document body plus $-prefixed store metadata."""
    if isinstance(stored.value, dict):
        doc = dict(stored.value)
    else:
        doc = {"value": stored.value}
    doc[f"{META_PREFIX}cas"] = stored.cas
    doc[f"{META_PREFIX}flags"] = stored.flags
    return doc
