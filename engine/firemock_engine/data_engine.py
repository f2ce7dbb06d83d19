"""
Data engine: owner of one database's live snapshot.

The engine holds exactly one live Snapshot and runs every operation through
the RuleEngineAdapter. Successful operations swap in the adapter's next
snapshot; denied ones leave the live snapshot as it was.

Invariants:
    - The live snapshot is only replaced through _commit()
    - A denied write or update has no observable effect
    - Auth is rebound synchronously on every identity change, before any
      later operation is evaluated
    - Operations are serialized by the caller; the engine is not safe for
      concurrent mutation from several threads

How to change safely:
    - Never hand out the live snapshot's tree directly; callers get stored
      nodes through OperationResult and convert them with rules.tree helpers
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, Optional

from .identity import IdentityStore, User
from .rules.adapter import OperationResult, RuleEngineAdapter, Snapshot
from .rules.ruleset import Ruleset

logger = logging.getLogger(__name__)


class DataEngine:
    """Rule-checked in-memory database.

    Example:
        >>> engine = DataEngine()
        >>> engine.set("users/42", {"name": "Ann"}).succeeded
        True
        >>> engine.read("users/42/name").value
        'Ann'
    """

    def __init__(
        self,
        identity: Optional[IdentityStore] = None,
        rules: Ruleset | Mapping[str, Any] | None = None,
        data: Any = None,
        adapter: Optional[RuleEngineAdapter] = None,
    ) -> None:
        """Initialize the engine.

        Args:
            identity: Identity store to follow; auth stays None without one
            rules: Ruleset or rules document (fully open when None)
            data: Seed data
            adapter: Rule engine adapter (a default one is created if None)

        Raises:
            RulesSyntaxError: If the rules document is malformed
            InvalidValueError: If the seed data is not storable
        """
        self._adapter = adapter or RuleEngineAdapter()
        self._identity = identity
        self._snapshot = self._adapter.initial_snapshot(rules, data)
        self._unsubscribe: Optional[Callable[[], None]] = None

        if identity is not None:
            if identity.current_user is not None:
                self._on_identity_changed(identity.current_user)
            self._unsubscribe = identity.bind(self._on_identity_changed)

    @property
    def snapshot(self) -> Snapshot:
        """The live snapshot (immutable)."""
        return self._snapshot

    @property
    def adapter(self) -> RuleEngineAdapter:
        return self._adapter

    def _commit(self, next_snapshot: Snapshot) -> None:
        self._snapshot = next_snapshot

    def _on_identity_changed(self, user: Optional[User]) -> None:
        self._commit(self._adapter.rebind_auth(self._snapshot, user))
        logger.debug(f"Rebound auth to {user.uid if user else None} (v{self._snapshot.version})")

    def read(self, path: str) -> OperationResult:
        """Evaluate a read at ``path``.

        The returned result carries the stored node at ``path`` in ``value``
        when the read is permitted.
        """
        result = self._adapter.evaluate_read(self._snapshot, path)
        self._commit(result.next_snapshot)
        return result

    def write(self, path: str, value: Any, priority: Any = None) -> OperationResult:
        """Replace the value at ``path``.

        Raises:
            InvalidValueError: If the value or priority is not storable
        """
        return self._apply(self._adapter.evaluate_write(self._snapshot, path, value, priority))

    def update(self, path: str, patch: Mapping[str, Any]) -> OperationResult:
        """Apply a multi-location patch atomically.

        Raises:
            InvalidPatchError: If the patch keys are malformed or overlap
            InvalidValueError: If a value is not storable
        """
        return self._apply(self._adapter.evaluate_update(self._snapshot, path, patch))

    def set(self, path: str, value: Any) -> OperationResult:
        """Write without a priority."""
        return self.write(path, value, None)

    def set_with_priority(self, path: str, value: Any, priority: Any) -> OperationResult:
        """Write with an ordering priority."""
        return self.write(path, value, priority)

    def remove(self, path: str) -> OperationResult:
        """Delete the value at ``path``."""
        return self.write(path, None)

    def _apply(self, result: OperationResult) -> OperationResult:
        if result.succeeded:
            self._commit(result.next_snapshot)
        else:
            logger.debug(
                f"{result.operation} /{result.path} denied "
                f"(permitted={result.permitted}, validated={result.validated}): {result.denied_by}"
            )
        return result

    def reset(self, rules: Ruleset | Mapping[str, Any] | None = None, data: Any = None) -> None:
        """Replace rules and data with a fresh initial snapshot.

        The current auth binding is kept.
        """
        fresh = self._adapter.initial_snapshot(rules, data)
        user = self._identity.current_user if self._identity is not None else None
        self._commit(self._adapter.rebind_auth(fresh, user))
        logger.debug("Engine reset")

    def close(self) -> None:
        """Stop following the identity store."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
