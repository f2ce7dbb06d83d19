"""
Unit tests for the data engine.

Tests cover:
- Reads and writes against the live snapshot
- Denials leaving state untouched
- Auth rebinding from the identity store
- Reset and close
- Rule expressions that negate
"""

import pytest

from engine.firemock_engine.data_engine import DataEngine
from engine.firemock_engine.errors import InvalidPatchError, InvalidValueError
from engine.firemock_engine.identity import IdentityStore
from engine.firemock_engine.rules.adapter import RuleEngineAdapter
from engine.firemock_engine.rules.tree import to_python

OWNER_RULES = {
    "rules": {
        "users": {
            "$uid": {
                ".read": "true",
                ".write": "auth != null && auth.uid === $uid",
            }
        }
    }
}


class TestDataEngine:
    """Tests for DataEngine without identity."""

    @pytest.fixture
    def engine(self):
        """Create engine with open rules."""
        return DataEngine()

    def test_write_then_read(self, engine):
        """A permitted write is visible to the next read."""
        result = engine.set("users/42", {"name": "Ann"})

        assert result.succeeded
        assert engine.read("users/42").value == {"name": "Ann"}
        assert engine.read("users/42/name").value == "Ann"

    def test_reads_are_idempotent(self, engine):
        """Reading does not change the live snapshot."""
        engine.set("a", 1)
        before = engine.snapshot

        first = engine.read("a")
        second = engine.read("a")

        assert first.value == second.value == 1
        assert engine.snapshot is before

    def test_seed_data(self):
        """Seed data is readable immediately."""
        engine = DataEngine(data={"a": {"b": 1}})
        assert engine.read("a").value == {"b": 1}

    def test_set_with_priority(self, engine):
        """Priorities are kept on the stored node."""
        engine.set_with_priority("a", {"b": 1}, 5)
        assert engine.read("a").value == {"b": 1, ".priority": 5}
        assert to_python(engine.read("a").value) == {"b": 1}

    def test_remove(self, engine):
        """Removing deletes the value and empty parents."""
        engine.set("a/b", 1)

        assert engine.remove("a/b").succeeded
        assert engine.read("a").value is None
        assert engine.snapshot.root is None

    def test_update(self, engine):
        """Updates write several locations at once."""
        engine.set("a", {"x": 1, "y": 2})

        engine.update("a", {"x": 10, "z/w": 3})

        assert engine.read("a").value == {"x": 10, "y": 2, "z": {"w": 3}}

    def test_versions_increase(self, engine):
        """Every successful write produces a new version."""
        start = engine.snapshot.version
        engine.set("a", 1)
        engine.set("a", 2)
        assert engine.snapshot.version == start + 2

    def test_invalid_value_raises_without_change(self, engine):
        """Unstorable values raise before touching state."""
        before = engine.snapshot
        with pytest.raises(InvalidValueError):
            engine.set("a", {"bad.key": 1})
        assert engine.snapshot is before

    def test_invalid_patch_raises_without_change(self, engine):
        """Overlapping patches raise before touching state."""
        before = engine.snapshot
        with pytest.raises(InvalidPatchError):
            engine.update("", {"a": 1, "a/b": 2})
        assert engine.snapshot is before

    def test_reset(self, engine):
        """Reset replaces rules and data."""
        engine.set("a", 1)

        engine.reset({"rules": {".read": "false"}}, {"b": 2})

        assert not engine.read("b").permitted
        assert engine.snapshot.root == {"b": 2}

    def test_injected_adapter(self):
        """A custom adapter (clock) is used for evaluation."""
        adapter = RuleEngineAdapter(clock=lambda: 10.0)
        engine = DataEngine(rules={"rules": {".read": "now === 10000"}}, adapter=adapter)
        assert engine.adapter is adapter
        assert engine.read("x").permitted


class TestDenials:
    """Tests for denied operations."""

    @pytest.fixture
    def engine(self):
        """Create engine where nobody may write."""
        return DataEngine(rules={"rules": {".read": "true", ".write": "false"}}, data={"x": 1})

    def test_denied_write_leaves_state(self, engine):
        """A denied write does not replace the snapshot."""
        before = engine.snapshot

        result = engine.set("x", 2)

        assert not result.succeeded
        assert not result.permitted
        assert engine.snapshot is before
        assert engine.read("x").value == 1

    def test_denied_update_is_atomic(self):
        """An update with one denied key writes nothing."""
        engine = DataEngine(rules={"rules": {".read": "true", "a": {".write": "true"}}})
        before = engine.snapshot

        result = engine.update("", {"a": 1, "b": 2})

        assert not result.succeeded
        assert engine.snapshot is before
        assert engine.read("a").value is None

    def test_failed_validation_leaves_state(self):
        """A permitted but invalid write is discarded."""
        engine = DataEngine(
            rules={"rules": {".read": "true", ".write": "true", "n": {".validate": "newData.isNumber()"}}}
        )
        result = engine.set("n", "text")

        assert result.permitted
        assert not result.validated
        assert engine.read("n").value is None


class TestAuthRebinding:
    """Tests for following the identity store."""

    @pytest.fixture
    def identity(self):
        """Create identity store signing in tokens as uids."""
        return IdentityStore(custom_token_sign_in_handler=lambda token: {"uid": token})

    @pytest.fixture
    def engine(self, identity):
        """Create engine with per-user write rules."""
        return DataEngine(identity, rules=OWNER_RULES)

    def test_sign_in_rebinds(self, identity, engine):
        """Writes are judged with the signed-in user."""
        assert not engine.set("users/42", {"name": "Ann"}).succeeded

        identity.sign_in_with_custom_token("42")

        assert engine.snapshot.auth["uid"] == "42"
        assert engine.set("users/42", {"name": "Ann"}).succeeded
        assert not engine.set("users/7", {"name": "Bob"}).succeeded

    def test_sign_out_rebinds(self, identity, engine):
        """Signing out removes write access again."""
        identity.sign_in_with_custom_token("42")
        identity.sign_out()

        assert engine.snapshot.auth is None
        assert not engine.set("users/42", {"name": "Ann"}).succeeded

    def test_existing_user_is_bound(self, identity):
        """An engine created after sign-in starts with that user."""
        identity.sign_in_with_custom_token("42")
        engine = DataEngine(identity, rules=OWNER_RULES)
        assert engine.snapshot.auth["uid"] == "42"

    def test_engine_is_notified_first(self, identity, engine):
        """Observers registered later already see the rebound engine."""
        seen = []
        identity.on_auth_state_changed(lambda user: seen.append(engine.snapshot.auth["uid"]))

        identity.sign_in_with_custom_token("42")

        assert seen == ["42"]

    def test_reset_keeps_auth(self, identity, engine):
        """Reset keeps the current auth binding."""
        identity.sign_in_with_custom_token("42")

        engine.reset(OWNER_RULES)

        assert engine.snapshot.auth["uid"] == "42"
        assert engine.set("users/42", {"name": "Ann"}).succeeded

    def test_close_stops_following(self, identity, engine):
        """A closed engine ignores later identity changes."""
        engine.close()
        engine.close()

        identity.sign_in_with_custom_token("42")

        assert engine.snapshot.auth is None
        assert identity.binding_count == 0

    def test_rebind_failure_propagates(self, identity):
        """An adapter that cannot rebind makes the sign-in fail."""

        class FailingAdapter(RuleEngineAdapter):
            def rebind_auth(self, snapshot, user):
                raise RuntimeError("cannot rebind")

        engine = DataEngine(identity, rules=OWNER_RULES, adapter=FailingAdapter())

        with pytest.raises(RuntimeError, match="cannot rebind"):
            identity.sign_in_with_custom_token("42")

        assert engine.snapshot.auth is None


class TestNegatedRules:
    """Tests for rules that start with a negation."""

    def test_create_only_rule(self):
        """!data.exists() allows the first write and denies overwrites."""
        engine = DataEngine(rules={"rules": {".read": "true", "$k": {".write": "!data.exists()"}}})

        assert engine.set("a", 1).succeeded
        second = engine.set("a", 2)

        assert not second.succeeded
        assert not second.permitted
        assert engine.read("a").value == 1
        assert engine.set("b", 2).succeeded
