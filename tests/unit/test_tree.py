"""
Unit tests for the immutable data tree.

Tests cover:
- Value normalization and validation
- Copy-on-write updates with pruning
- Conversion back to caller values
"""

import math

import pytest

from engine.firemock_engine.errors import InvalidValueError
from engine.firemock_engine.rules.tree import (
    children,
    get_in,
    is_leaf,
    normalize_value,
    priority_of,
    set_in,
    to_export,
    to_python,
)


class TestNormalizeValue:
    """Tests for normalize_value()."""

    def test_scalars_are_kept(self):
        """Strings, numbers and booleans are stored as is."""
        assert normalize_value("Ann") == "Ann"
        assert normalize_value(42) == 42
        assert normalize_value(1.5) == 1.5
        assert normalize_value(False) is False

    def test_none_and_empty_are_pruned(self):
        """None children and empty mappings hold no data."""
        assert normalize_value(None) is None
        assert normalize_value({}) is None
        assert normalize_value({"a": 1, "b": None, "c": {}}) == {"a": 1}

    def test_lists_become_indexed_mappings(self):
        """Lists are stored keyed by index."""
        assert normalize_value(["a", "b"]) == {"0": "a", "1": "b"}

    def test_integer_keys_become_strings(self):
        """Integer keys are accepted and stringified."""
        assert normalize_value({1: "x"}) == {"1": "x"}

    def test_leaf_priority_is_wrapped(self):
        """A leaf with priority is stored as .value/.priority."""
        assert normalize_value(5, priority=1) == {".value": 5, ".priority": 1}

    def test_mapping_priority(self):
        """A mapping with priority carries a .priority key."""
        assert normalize_value({"a": 1}, priority="p") == {"a": 1, ".priority": "p"}

    def test_export_format_is_accepted(self):
        """Values exported with priorities can be written back."""
        exported = {"a": {".value": 1, ".priority": 2}, ".priority": 3}
        assert normalize_value(exported) == exported

    @pytest.mark.parametrize("value", [math.nan, math.inf, object(), {1.5: "x"}, {True: 1}])
    def test_unstorable_values_raise(self, value):
        """Non-JSON values are rejected."""
        with pytest.raises(InvalidValueError):
            normalize_value(value)

    @pytest.mark.parametrize("key", ["a.b", "a/b", "$a", "a[0]", ""])
    def test_illegal_keys_raise(self, key):
        """Keys with reserved characters are rejected."""
        with pytest.raises(InvalidValueError):
            normalize_value({key: 1})

    def test_invalid_priority_raises(self):
        """Priorities must be strings, numbers or None."""
        with pytest.raises(InvalidValueError, match="Priority"):
            normalize_value(1, priority=True)

    def test_error_reports_nested_path(self):
        """Errors name the offending location."""
        with pytest.raises(InvalidValueError) as exc:
            normalize_value({"a": {"b": math.nan}}, path="root")
        assert exc.value.path == "root/a/b"


class TestSetIn:
    """Tests for copy-on-write updates."""

    def test_input_is_not_modified(self):
        """Writing returns a new tree and keeps the old one."""
        old = {"users": {"42": {"name": "Ann"}}}
        new = set_in(old, ("users", "42", "age"), 30)

        assert old == {"users": {"42": {"name": "Ann"}}}
        assert new == {"users": {"42": {"name": "Ann", "age": 30}}}

    def test_untouched_subtrees_are_shared(self):
        """Siblings of the written path are reused."""
        old = {"a": {"x": 1}, "b": {"y": 2}}
        new = set_in(old, ("a", "x"), 5)
        assert new["b"] is old["b"]

    def test_removal_prunes_empty_parents(self):
        """Deleting the last child removes the parent."""
        assert set_in({"a": {"b": 1}}, ("a", "b"), None) is None
        assert set_in({"a": {"b": 1}, "c": 2}, ("a", "b"), None) == {"c": 2}

    def test_write_below_leaf_replaces_leaf(self):
        """A leaf becomes a mapping when written below."""
        assert set_in({"a": 1}, ("a", "b"), 2) == {"a": {"b": 2}}

    def test_write_at_root(self):
        """Empty segments replace the whole tree."""
        assert set_in({"a": 1}, (), {"b": 2}) == {"b": 2}


class TestReading:
    """Tests for get_in, children and conversions."""

    def test_get_in(self):
        """Nodes are found by segments; absent ones are None."""
        tree = {"a": {"b": 1}}
        assert get_in(tree, ("a", "b")) == 1
        assert get_in(tree, ("a", "c")) is None
        assert get_in(tree, ("a", "b", "c")) is None
        assert get_in(None, ("a",)) is None

    def test_children_skip_metadata(self):
        """Priority keys are not children."""
        node = {"b": 1, "a": 2, ".priority": 3}
        assert list(children(node)) == [("b", 1), ("a", 2)]
        assert list(children(5)) == []
        assert list(children(None)) == []

    def test_is_leaf(self):
        """Scalars and wrapped scalars are leaves."""
        assert is_leaf(1)
        assert is_leaf({".value": 1, ".priority": 2})
        assert not is_leaf({"a": 1})

    def test_to_python_drops_priorities(self):
        """Caller values never contain metadata keys."""
        node = {"a": {".value": 1, ".priority": 2}, ".priority": 3}
        assert to_python(node) == {"a": 1}
        assert priority_of(node) == 3
        assert priority_of(node["a"]) == 2

    def test_to_python_restores_lists(self):
        """Dense index mappings come back as lists."""
        assert to_python({"0": "a", "1": "b"}) == ["a", "b"]
        assert to_python({"0": "a", "2": "b"}) == {"0": "a", "2": "b"}
        assert to_python({"01": "a"}) == {"01": "a"}

    def test_to_python_returns_copies(self):
        """Mutating a converted value leaves the stored node intact."""
        node = {"a": {"b": 1}}
        value = to_python(node)
        value["a"]["b"] = 99
        assert node == {"a": {"b": 1}}

    def test_to_export_keeps_priorities(self):
        """Export values keep .priority and .value entries."""
        node = {"a": {".value": 1, ".priority": 2}}
        exported = to_export(node)
        assert exported == node
        assert exported is not node
