"""
Unit tests for path algebra.

Tests cover:
- Splitting and normalization
- Illegal segments
- Key/parent/ancestor helpers
"""

import pytest

from engine.firemock_engine.errors import InvalidPathError
from engine.firemock_engine.paths import (
    ROOT,
    is_ancestor,
    join,
    key_of,
    normalize,
    parent_of,
    split,
)


class TestSplit:
    """Tests for split() and normalize()."""

    def test_split_simple_path(self):
        """Segments are returned in order."""
        assert split("users/42/name") == ("users", "42", "name")

    def test_root_is_empty(self):
        """None and empty string both mean the root."""
        assert split(None) == ()
        assert split("") == ()
        assert split("/") == ()

    def test_extra_slashes_are_dropped(self):
        """Leading, trailing and repeated slashes are ignored."""
        assert split("/users//42/") == ("users", "42")
        assert normalize("/users//42/") == "users/42"

    @pytest.mark.parametrize("path", ["a.b", "a#b", "a/$b", "a/[0]", "bad\x01key"])
    def test_illegal_segment_raises(self, path):
        """Segments with reserved characters are rejected."""
        with pytest.raises(InvalidPathError):
            split(path)

    def test_invalid_path_is_value_error(self):
        """InvalidPathError can be caught as ValueError."""
        with pytest.raises(ValueError):
            normalize("a.b")

    def test_non_string_raises(self):
        """Paths must be strings."""
        with pytest.raises(InvalidPathError, match="must be a string"):
            split(42)


class TestHelpers:
    """Tests for join, key_of, parent_of, is_ancestor."""

    def test_join(self):
        """Child paths are appended and normalized."""
        assert join("users", "42/name") == "users/42/name"
        assert join(ROOT, "/users/") == "users"
        assert join("users", "") == "users"

    def test_key_of(self):
        """Key is the last segment, None at the root."""
        assert key_of("users/42") == "42"
        assert key_of(ROOT) is None

    def test_parent_of(self):
        """Parent drops the last segment; root has no parent."""
        assert parent_of("users/42") == "users"
        assert parent_of("users") == ROOT
        assert parent_of(ROOT) is None

    def test_is_ancestor(self):
        """A path is an ancestor of itself and its descendants only."""
        assert is_ancestor("users", "users/42")
        assert is_ancestor("users/42", "users/42")
        assert is_ancestor(ROOT, "anything")
        assert not is_ancestor("users/42", "users")
        assert not is_ancestor("user", "users/42")
