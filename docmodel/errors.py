"""
Error types for docmodel.

This module defines all exception types raised by the mapper:
- DocModelError: Base exception
- NotFoundError: Strict lookup miss
- AlreadyExistsError: Create-only write collision
- MissingIdentifierError: Operation needs an id the instance does not have
- UnknownAlgorithmError: Unrecognized identifier strategy
- ConfigurationMissingError: No view source roots configured
- ConflictError: Conditional write lost against a newer version token

Invariants:
    - All errors inherit from DocModelError
    - Errors include context for debugging
    - Transport errors from the store are never wrapped here
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class DocModelError(Exception):
    """Base exception for all docmodel errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "DOCMODEL_ERROR"
        self.details = details or {}


class NotFoundError(DocModelError):
    """Resource not found.

    Raised when:
    - A strict get misses
    - Deleting a key that does not exist
    - Querying a design document or view that is not stored
    """

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        resource_type: str = "document",
    ) -> None:
        super().__init__(
            message,
            code="NOT_FOUND",
            details={"key": key, "resource_type": resource_type},
        )
        self.key = key
        self.resource_type = resource_type


class AlreadyExistsError(DocModelError):
    """A create-only write hit an existing key."""

    def __init__(self, message: str, key: str) -> None:
        super().__init__(message, code="ALREADY_EXISTS", details={"key": key})
        self.key = key


class MissingIdentifierError(DocModelError):
    """The instance has no id but the operation needs one.

    Raised by delete() and reload() on transient instances.
    """

    def __init__(self, message: str = "missing id attribute") -> None:
        super().__init__(message, code="MISSING_ID")


class UnknownAlgorithmError(DocModelError):
    """Identifier algorithm tag is not registered.

    Attributes:
        algorithm: The rejected tag
        available: Registered tags
    """

    def __init__(self, algorithm: str, available: Optional[List[str]] = None) -> None:
        available = sorted(available or [])
        msg = f"Unknown identifier algorithm '{algorithm}'"
        if available:
            msg += f". Available: {', '.join(available)}"
        super().__init__(
            msg,
            code="UNKNOWN_ALGORITHM",
            details={"algorithm": algorithm, "available": available},
        )
        self.algorithm = algorithm
        self.available = available


class ConfigurationMissingError(DocModelError):
    """Required configuration is absent.

    Raised when:
    - Design documents are synchronized with no view source roots
    """

    def __init__(self, message: str, setting: Optional[str] = None) -> None:
        super().__init__(message, code="CONFIGURATION_MISSING", details={"setting": setting})
        self.setting = setting


class ConflictError(DocModelError):
    """Conditional write rejected because the stored version moved on.

    Attributes:
        key: Document key
        expected_cas: Version token the caller wrote against
        actual_cas: Version token currently stored
    """

    def __init__(
        self,
        message: str,
        key: str,
        expected_cas: Optional[int] = None,
        actual_cas: Optional[int] = None,
    ) -> None:
        super().__init__(
            message,
            code="CONFLICT",
            details={
                "key": key,
                "expected_cas": expected_cas,
                "actual_cas": actual_cas,
            },
        )
        self.key = key
        self.expected_cas = expected_cas
        self.actual_cas = actual_cas
