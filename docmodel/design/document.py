"""
Design document representation and signature computation.

Persisted layout:
    {
        "_id": "_design/<name>",
        "views": {"<view>": {"map": "<text>", "reduce": "<text>"}},
        "signature": "<md5 hex>",
        "timestamp": <unix seconds>
    }

Invariants:
    - signature depends only on the view source texts and their order
    - Two processes with identical sources compute identical signatures
    - timestamp is the newest modification time among the sources
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional

from ..store.base import DESIGN_PREFIX, design_doc_name


def compute_signature(texts: Iterable[str]) -> str:
    """MD5 hex digest over the concatenation of texts, in order."""
    digest = hashlib.md5(usedforsecurity=False)
    for text in texts:
        digest.update(text.encode("utf-8"))
    return digest.hexdigest()


@dataclass
class DesignDocument:
    """A bundle of view definitions for one model.

    Attributes:
        name: Design document name (without _design/)
        views: View name -> {"map": text, "reduce": text}
        signature: Content fingerprint, None for documents written by hand
        timestamp: Newest source modification time (Unix seconds)
    """

    name: str
    views: Dict[str, Dict[str, str]] = field(default_factory=dict)
    signature: Optional[str] = None
    timestamp: int = 0

    @property
    def id(self) -> str:
        return f"{DESIGN_PREFIX}{self.name}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the persisted layout."""
        return {
            "_id": self.id,
            "views": {name: dict(functions) for name, functions in self.views.items()},
            "signature": self.signature,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> DesignDocument:
        """Create from the persisted layout."""
        return cls(
            name=design_doc_name(data["_id"]),
            views={name: dict(functions) for name, functions in data.get("views", {}).items()},
            signature=data.get("signature"),
            timestamp=int(data.get("timestamp") or 0),
        )
