"""
Unit tests for the error hierarchy.

Tests cover:
- Common base class
- Error codes and details
"""

import pytest

from docmodel.errors import (
    AlreadyExistsError,
    ConfigurationMissingError,
    ConflictError,
    DocModelError,
    MissingIdentifierError,
    NotFoundError,
    UnknownAlgorithmError,
)


class TestErrors:
    """Tests for docmodel errors."""

    @pytest.mark.parametrize(
        "error",
        [
            NotFoundError("missing", key="k"),
            AlreadyExistsError("taken", key="k"),
            MissingIdentifierError(),
            UnknownAlgorithmError("x"),
            ConfigurationMissingError("none"),
            ConflictError("moved", key="k"),
        ],
    )
    def test_inherit_from_base(self, error):
        """Every error is a DocModelError."""
        assert isinstance(error, DocModelError)

    def test_base_defaults(self):
        """Base error carries a generic code and empty details."""
        error = DocModelError("boom")

        assert str(error) == "boom"
        assert error.code == "DOCMODEL_ERROR"
        assert error.details == {}

    def test_not_found_details(self):
        """NotFoundError records key and resource type."""
        error = NotFoundError("gone", key="post-1", resource_type="view")

        assert error.code == "NOT_FOUND"
        assert error.details == {"key": "post-1", "resource_type": "view"}

    def test_missing_identifier_message(self):
        """MissingIdentifierError has a default message."""
        error = MissingIdentifierError()

        assert error.message == "missing id attribute"
        assert error.code == "MISSING_ID"

    def test_unknown_algorithm_lists_available(self):
        """UnknownAlgorithmError names the known algorithms in order."""
        error = UnknownAlgorithmError("nope", ["random", "sequential"])

        assert "nope" in str(error)
        assert "random, sequential" in str(error)

    def test_conflict_records_tokens(self):
        """ConflictError records both version tokens."""
        error = ConflictError("moved", key="k", expected_cas=1, actual_cas=2)

        assert error.expected_cas == 1
        assert error.actual_cas == 2
        assert error.details["key"] == "k"

    def test_configuration_missing_setting(self):
        """ConfigurationMissingError names the missing setting."""
        error = ConfigurationMissingError("no roots", setting="design_documents_path")

        assert error.setting == "design_documents_path"
        assert error.code == "CONFIGURATION_MISSING"
