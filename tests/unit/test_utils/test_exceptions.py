"""Unit tests for custom exceptions in exceptions.py."""

import pytest

from lore.utils.exceptions import (
    AlreadyExistsError,
    BusyError,
    ConfigError,
    DatabaseClosedError,
    InvalidDepthError,
    InvalidNameError,
    InvalidRelationshipTypeError,
    LLMError,
    LoreError,
    NotFoundError,
    ProtectedDefaultError,
    ValidationError,
)


class TestHierarchy:
    """Every application error can be caught as LoreError."""

    @pytest.mark.parametrize(
        "error",
        [
            InvalidRelationshipTypeError("friend", ["ally"]),
            InvalidDepthError(9),
            InvalidNameError("Bad Name"),
            NotFoundError("relationship", "r1"),
            AlreadyExistsError("entity type", "faction"),
            ProtectedDefaultError("character"),
            BusyError("database is locked"),
            DatabaseClosedError("closed"),
            LLMError("offline"),
            ConfigError("bad settings"),
        ],
    )
    def test_is_lore_error(self, error: LoreError) -> None:
        """Test each error derives from LoreError."""
        assert isinstance(error, LoreError)

    def test_validation_errors_grouped(self) -> None:
        """Test input validation errors share the ValidationError base."""
        for error in (
            InvalidRelationshipTypeError("friend", ["ally"]),
            InvalidDepthError(0),
            InvalidNameError("x y"),
        ):
            assert isinstance(error, ValidationError)
        assert not isinstance(NotFoundError("fact", "f1"), ValidationError)


class TestMessages:
    """Tests for error messages and attributes."""

    def test_invalid_relationship_type(self) -> None:
        """Test the message lists the accepted vocabulary."""
        error = InvalidRelationshipTypeError("friend", ["ally", "enemy"])
        assert str(error) == "invalid relationship type: friend (valid: ally, enemy)"
        assert error.relation_type == "friend"
        assert error.valid_types == ["ally", "enemy"]

    def test_invalid_depth(self) -> None:
        """Test InvalidDepthError stores the rejected depth."""
        error = InvalidDepthError(7)
        assert str(error) == "depth must be between 1 and 5"
        assert (error.depth, error.min_depth, error.max_depth) == (7, 1, 5)

    def test_not_found(self) -> None:
        """Test NotFoundError formats kind and key."""
        error = NotFoundError("entity type", "faction")
        assert str(error) == "entity type not found: faction"
        assert (error.kind, error.key) == ("entity type", "faction")

    def test_already_exists(self) -> None:
        """Test AlreadyExistsError formats kind and key."""
        assert str(AlreadyExistsError("entity type", "rule")) == "entity type already exists: rule"

    def test_protected_default(self) -> None:
        """Test ProtectedDefaultError names the type."""
        error = ProtectedDefaultError("location")
        assert str(error) == "cannot remove default type: location"
        assert error.name == "location"

    def test_invalid_name(self) -> None:
        """Test InvalidNameError quotes the rejected name."""
        error = InvalidNameError("Magic Item")
        assert "'Magic Item'" in str(error)
        assert error.name == "Magic Item"
