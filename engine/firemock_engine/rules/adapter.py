"""
Rule engine adapter: immutable snapshots and rule-checked operations.

The adapter is the only component that understands both the data tree and
the ruleset. Every call is pure: it takes a Snapshot and returns a verdict
plus the next Snapshot, never modifying its arguments.

    ┌──────────────┐  evaluate_*(snapshot, ...)   ┌──────────────────┐
    │  DataEngine  │ ───────────────────────────▶ │ RuleEngineAdapter│
    │ (live cell)  │ ◀─────────────────────────── │  (pure functions)│
    └──────────────┘   OperationResult            └──────────────────┘
                       (verdicts + next_snapshot)

Invariants:
    - Snapshots are never mutated; every change yields a new version
    - Reads return the same snapshot they were given
    - Writes return the staged next snapshot even when denied; deciding
      whether to adopt it is the caller's job
    - An update is evaluated as one unit against the fully patched tree
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Callable, Mapping, Optional, Protocol

from ..errors import InvalidPatchError, PermissionDeniedError
from ..paths import is_ancestor, join, normalize, split
from .ruleset import OPEN_RULES, Ruleset, Verdict
from .tree import get_in, normalize_value, set_in

logger = logging.getLogger(__name__)


class AuthSubject(Protocol):
    """Anything that can be turned into the rules ``auth`` variable."""

    def to_auth_context(self) -> Mapping[str, Any]: ...


@dataclass(frozen=True)
class Snapshot:
    """Immutable state of one database: rules, data tree and auth context.

    Attributes:
        ruleset: Compiled rules
        root: Stored data tree (None when empty)
        auth: Rules ``auth`` variable (None when signed out)
        version: Incremented on every change
    """

    ruleset: Ruleset
    root: Any = None
    auth: Optional[Mapping[str, Any]] = None
    version: int = 0


@dataclass(frozen=True)
class OperationResult:
    """Outcome of one evaluated operation.

    Attributes:
        operation: "read", "write" or "update"
        path: Normalized target path
        auth: Auth context the rules saw
        permitted: .read/.write verdict
        validated: .validate verdict (always True for reads)
        next_snapshot: Snapshot to adopt if the operation succeeded
        value: Stored node at ``path`` (reads only)
        denied_by: Description of the failing rule, if any
    """

    operation: str
    path: str
    auth: Optional[Mapping[str, Any]]
    permitted: bool
    validated: bool
    next_snapshot: Snapshot
    value: Any = None
    denied_by: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        """Whether both verdicts passed."""
        return self.permitted and self.validated

    def raise_for_denial(self) -> None:
        """Raise PermissionDeniedError unless the operation succeeded."""
        if not self.succeeded:
            raise PermissionDeniedError(
                path=self.path,
                operation=self.operation,
                permitted=self.permitted,
                validated=self.validated,
                denied_by=self.denied_by,
            )


def _first_denial(*verdicts: Verdict) -> Optional[str]:
    for verdict in verdicts:
        if not verdict.ok:
            return verdict.denied_by
    return None


class RuleEngineAdapter:
    """Evaluates operations against a snapshot's rules and auth context.

    Thread safety:
        Stateless apart from the injected clock; safe to share.

    Example:
        >>> adapter = RuleEngineAdapter()
        >>> snap = adapter.initial_snapshot()
        >>> result = adapter.evaluate_write(snap, "users/42", {"name": "Ann"})
        >>> result.succeeded
        True
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        """Initialize the adapter.

        Args:
            clock: Returns the current time in seconds; exposed to rules as
                ``now`` in milliseconds
        """
        self._clock = clock

    def now(self) -> int:
        """Current time in milliseconds, as seen by rules."""
        return int(self._clock() * 1000)

    def initial_snapshot(
        self,
        rules: Ruleset | Mapping[str, Any] | None = None,
        seed_data: Any = None,
    ) -> Snapshot:
        """Build the first snapshot of a database.

        Args:
            rules: Ruleset or rules document (fully open when None)
            seed_data: Initial data tree

        Raises:
            RulesSyntaxError: If the rules document is malformed
            InvalidValueError: If the seed data is not storable
        """
        ruleset = rules if isinstance(rules, Ruleset) else Ruleset.from_document(rules or OPEN_RULES)
        return Snapshot(ruleset=ruleset, root=normalize_value(seed_data))

    def rebind_auth(self, snapshot: Snapshot, identity: AuthSubject | Mapping[str, Any] | None) -> Snapshot:
        """Return a snapshot with the same data and a new auth context."""
        if identity is None:
            auth = None
        elif isinstance(identity, Mapping):
            auth = dict(identity)
        else:
            auth = identity.to_auth_context()
        return replace(snapshot, auth=auth, version=snapshot.version + 1)

    def evaluate_read(self, snapshot: Snapshot, path: str) -> OperationResult:
        """Evaluate a read at ``path``."""
        segments = split(path)
        verdict = snapshot.ruleset.can_read(snapshot.root, snapshot.auth, segments, self.now())
        result = OperationResult(
            operation="read",
            path="/".join(segments),
            auth=snapshot.auth,
            permitted=verdict.ok,
            validated=True,
            next_snapshot=snapshot,
            value=get_in(snapshot.root, segments) if verdict.ok else None,
            denied_by=verdict.denied_by,
        )
        logger.debug(f"read /{result.path} v{snapshot.version}: permitted={result.permitted}")
        return result

    def evaluate_write(
        self,
        snapshot: Snapshot,
        path: str,
        value: Any,
        priority: Any = None,
    ) -> OperationResult:
        """Evaluate replacing the value at ``path``.

        Raises:
            InvalidValueError: If the value or priority is not storable
        """
        segments = split(path)
        normalized_path = "/".join(segments)
        node = normalize_value(value, priority, normalized_path)
        new_root = set_in(snapshot.root, segments, node)

        now = self.now()
        ruleset = snapshot.ruleset
        permitted = ruleset.can_write(snapshot.root, new_root, snapshot.auth, segments, now)
        validated = ruleset.validate(snapshot.root, new_root, snapshot.auth, segments, now)

        result = OperationResult(
            operation="write",
            path=normalized_path,
            auth=snapshot.auth,
            permitted=permitted.ok,
            validated=validated.ok,
            next_snapshot=replace(snapshot, root=new_root, version=snapshot.version + 1),
            denied_by=_first_denial(permitted, validated),
        )
        logger.debug(
            f"write /{normalized_path} v{snapshot.version}: "
            f"permitted={result.permitted} validated={result.validated}"
        )
        return result

    def evaluate_update(
        self,
        snapshot: Snapshot,
        path: str,
        patch: Mapping[str, Any],
    ) -> OperationResult:
        """Evaluate a multi-location update as a single operation.

        Args:
            snapshot: Current snapshot
            path: Base path the patch keys are relative to
            patch: Mapping of relative sub-path -> new value

        Raises:
            InvalidPatchError: If the patch is not a mapping, a key is empty,
                or one key is an ancestor of another
            InvalidValueError: If a value is not storable
        """
        if not isinstance(patch, Mapping):
            raise InvalidPatchError(f"Update expects a mapping, got {type(patch).__name__}")

        base = normalize(path)
        targets: list[tuple[str, Any]] = []
        for key, value in patch.items():
            if not isinstance(key, str) or not normalize(key):
                raise InvalidPatchError(f"Invalid update key {key!r}", keys=[str(key)])
            targets.append((join(base, key), value))

        for i, (a, _) in enumerate(targets):
            for b, _ in targets[i + 1:]:
                if is_ancestor(a, b) or is_ancestor(b, a):
                    raise InvalidPatchError(
                        f"Update keys overlap: /{a} and /{b}", keys=[a, b]
                    )

        new_root = snapshot.root
        for target, value in targets:
            new_root = set_in(new_root, split(target), normalize_value(value, path=target))

        now = self.now()
        ruleset = snapshot.ruleset
        permitted = [ruleset.can_write(snapshot.root, new_root, snapshot.auth, split(t), now) for t, _ in targets]
        validated = [ruleset.validate(snapshot.root, new_root, snapshot.auth, split(t), now) for t, _ in targets]

        changed = bool(targets)
        result = OperationResult(
            operation="update",
            path=base,
            auth=snapshot.auth,
            permitted=all(v.ok for v in permitted),
            validated=all(v.ok for v in validated),
            next_snapshot=(
                replace(snapshot, root=new_root, version=snapshot.version + 1) if changed else snapshot
            ),
            denied_by=_first_denial(*permitted, *validated),
        )
        logger.debug(
            f"update /{base} ({len(targets)} keys) v{snapshot.version}: "
            f"permitted={result.permitted} validated={result.validated}"
        )
        return result
