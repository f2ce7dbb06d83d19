"""
Rules document parsing and evaluation.

A rules document mirrors the shape of the data tree:

    {
      "rules": {
        "users": {
          "$uid": {
            ".read": "auth != null",
            ".write": "auth != null && auth.uid === $uid",
            ".validate": "newData.hasChildren(['name'])"
          }
        }
      }
    }

Invariants:
    - .read and .write cascade: access granted anywhere on the chain from
      the root to the target location is access to the whole subtree
    - .validate never cascades: every rule on a location whose new data
      exists must pass, for the chain to the target and the whole written
      subtree; deleted locations are not validated
    - Exact keys take precedence over a $wildcard sibling
    - An expression that errors at runtime is a failing rule

How to change safely:
    - Keep evaluation pure; the adapter relies on it to build verdicts
    - New rule keys must be listed in _RULE_KEYS or parsing rejects them
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterator, Mapping, NamedTuple, Sequence

from ..errors import RuleEvaluationError, RulesSyntaxError
from .expressions import (
    BUILTIN_VARIABLES,
    RuleDataSnapshot,
    RuleExpression,
    compile_expression,
    wildcard_variable,
)
from .tree import children, get_in

logger = logging.getLogger(__name__)

OPEN_RULES: dict[str, Any] = {"rules": {".read": "true", ".write": "true"}}

_RULE_KEYS = {".read", ".write", ".validate"}
_IGNORED_KEYS = {".indexOn"}


class Verdict(NamedTuple):
    """Outcome of one rule family for one operation."""

    ok: bool
    denied_by: str | None = None


@dataclass(frozen=True)
class RuleNode:
    """Compiled rules for one location of the rules tree.

    Attributes:
        read: Compiled .read rule, if any
        write: Compiled .write rule, if any
        validate: Compiled .validate rule, if any
        children: Rules for exact child keys
        wildcard: (capture name, rules) for a $wildcard child, if any
    """

    read: RuleExpression | None = None
    write: RuleExpression | None = None
    validate: RuleExpression | None = None
    children: Mapping[str, RuleNode] = field(default_factory=dict)
    wildcard: tuple[str, RuleNode] | None = None

    def child(self, key: str) -> tuple[RuleNode, str | None] | None:
        """Rules for ``key`` and the wildcard variable it binds, if any."""
        if key in self.children:
            return self.children[key], None
        if self.wildcard is not None:
            return self.wildcard[1], self.wildcard[0]
        return None


def _compile_rule(value: Any, rule_path: str, variables: frozenset[str]) -> RuleExpression:
    if isinstance(value, bool):
        value = "true" if value else "false"
    if not isinstance(value, str):
        raise RulesSyntaxError(
            f"Rule at {rule_path} must be a string or boolean, got {type(value).__name__}",
            rule_path=rule_path,
        )
    try:
        return compile_expression(value, variables)
    except RulesSyntaxError as e:
        e.rule_path = rule_path
        e.details["rule_path"] = rule_path
        raise


def _parse_node(doc: Any, rule_path: str, variables: frozenset[str]) -> RuleNode:
    if not isinstance(doc, Mapping):
        raise RulesSyntaxError(f"Rules at {rule_path} must be an object", rule_path=rule_path)

    compiled: dict[str, RuleExpression] = {}
    exact: dict[str, RuleNode] = {}
    wildcard: tuple[str, RuleNode] | None = None

    for key, value in doc.items():
        if not isinstance(key, str) or not key:
            raise RulesSyntaxError(f"Invalid key {key!r} at {rule_path}", rule_path=rule_path)
        child_path = f"{rule_path.rstrip('/')}/{key}"

        if key.startswith("."):
            if key in _IGNORED_KEYS:
                continue
            if key not in _RULE_KEYS:
                raise RulesSyntaxError(f"Unknown rule type '{key}' at {rule_path}", rule_path=rule_path)
            compiled[key] = _compile_rule(value, child_path, variables)
        elif key.startswith("$"):
            if wildcard is not None:
                raise RulesSyntaxError(
                    f"Location {rule_path} has more than one wildcard ({wildcard[0]}, {key})",
                    rule_path=rule_path,
                )
            name = wildcard_variable(key)
            if name in variables:
                raise RulesSyntaxError(f"Wildcard {key} is already bound above {rule_path}", rule_path=rule_path)
            wildcard = (name, _parse_node(value, child_path, variables | {name}))
        else:
            exact[key] = _parse_node(value, child_path, variables)

    return RuleNode(
        read=compiled.get(".read"),
        write=compiled.get(".write"),
        validate=compiled.get(".validate"),
        children=exact,
        wildcard=wildcard,
    )


def _check(expr: RuleExpression, scope: Mapping[str, Any], location: Sequence[str]) -> bool:
    try:
        return expr.evaluate(scope)
    except RuleEvaluationError as e:
        logger.debug(f"Rule {expr.source!r} at /{'/'.join(location)} errored, treating as false: {e}")
        return False


def _describe(kind: str, expr: RuleExpression, location: Sequence[str]) -> str:
    return f"{kind} rule at /{'/'.join(location)}: {expr.source}"


class Ruleset:
    """Parsed, compiled rules document.

    Example:
        >>> rules = Ruleset.from_document({"rules": {".read": "auth != null"}})
        >>> rules.can_read(root=None, auth=None, segments=("a",), now=0).ok
        False
    """

    def __init__(self, document: Mapping[str, Any], root: RuleNode) -> None:
        self.document = document
        self.root = root

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> Ruleset:
        """Parse a rules document.

        Raises:
            RulesSyntaxError: If the document is malformed
        """
        if not isinstance(document, Mapping) or "rules" not in document:
            raise RulesSyntaxError("Rules document must be an object with a top-level 'rules' key")
        extra = set(document) - {"rules"}
        if extra:
            raise RulesSyntaxError(f"Unexpected top-level keys in rules document: {sorted(extra)}")
        return cls(document, _parse_node(document["rules"], "/", BUILTIN_VARIABLES))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Ruleset):
            return NotImplemented
        return self.document == other.document

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"Ruleset({self.document!r})"

    def _chain(self, segments: Sequence[str]) -> Iterator[tuple[RuleNode, tuple[str, ...], dict[str, str]]]:
        """Yield (rules, location, wildcard bindings) from the root to ``segments``."""
        node: RuleNode | None = self.root
        bindings: dict[str, str] = {}
        for depth in range(len(segments) + 1):
            location = tuple(segments[:depth])
            yield node, location, dict(bindings)
            if depth == len(segments):
                return
            found = node.child(segments[depth])
            if found is None:
                return
            node, var = found
            if var is not None:
                bindings[var] = segments[depth]

    @staticmethod
    def _scope(
        old_root: Any,
        new_root: Any,
        auth: Any,
        location: Sequence[str],
        bindings: Mapping[str, str],
        now: int,
    ) -> dict[str, Any]:
        return {
            "auth": auth,
            "now": now,
            "root": RuleDataSnapshot(old_root),
            "data": RuleDataSnapshot(old_root, location),
            "newData": RuleDataSnapshot(new_root, location),
            **bindings,
        }

    def can_read(self, root: Any, auth: Any, segments: Sequence[str], now: int) -> Verdict:
        """Evaluate the cascading .read rules for a read at ``segments``."""
        last = None
        for node, location, bindings in self._chain(segments):
            if node.read is None:
                continue
            last = _describe(".read", node.read, location)
            if _check(node.read, self._scope(root, root, auth, location, bindings, now), location):
                return Verdict(True)
        return Verdict(False, last or "no .read rule grants access")

    def can_write(
        self,
        old_root: Any,
        new_root: Any,
        auth: Any,
        segments: Sequence[str],
        now: int,
    ) -> Verdict:
        """Evaluate the cascading .write rules for a write at ``segments``."""
        last = None
        for node, location, bindings in self._chain(segments):
            if node.write is None:
                continue
            last = _describe(".write", node.write, location)
            if _check(node.write, self._scope(old_root, new_root, auth, location, bindings, now), location):
                return Verdict(True)
        return Verdict(False, last or "no .write rule grants access")

    def validate(
        self,
        old_root: Any,
        new_root: Any,
        auth: Any,
        segments: Sequence[str],
        now: int,
    ) -> Verdict:
        """Evaluate every .validate rule touched by a write at ``segments``."""
        target: tuple[RuleNode, dict[str, str]] | None = None
        for node, location, bindings in self._chain(segments):
            verdict = self._validate_at(node, old_root, new_root, auth, location, bindings, now)
            if not verdict.ok:
                return verdict
            if len(location) == len(segments):
                target = (node, bindings)

        if target is None:
            return Verdict(True)
        return self._validate_subtree(target[0], old_root, new_root, auth, tuple(segments), target[1], now)

    def _validate_at(
        self,
        node: RuleNode,
        old_root: Any,
        new_root: Any,
        auth: Any,
        location: tuple[str, ...],
        bindings: Mapping[str, str],
        now: int,
    ) -> Verdict:
        if node.validate is None or get_in(new_root, location) is None:
            return Verdict(True)
        scope = self._scope(old_root, new_root, auth, location, bindings, now)
        if _check(node.validate, scope, location):
            return Verdict(True)
        return Verdict(False, _describe(".validate", node.validate, location))

    def _validate_subtree(
        self,
        node: RuleNode,
        old_root: Any,
        new_root: Any,
        auth: Any,
        location: tuple[str, ...],
        bindings: dict[str, str],
        now: int,
    ) -> Verdict:
        for key, _ in children(get_in(new_root, location)):
            found = node.child(key)
            if found is None:
                continue
            child_node, var = found
            child_bindings = {**bindings, var: key} if var is not None else bindings
            child_location = location + (key,)

            verdict = self._validate_at(child_node, old_root, new_root, auth, child_location, child_bindings, now)
            if not verdict.ok:
                return verdict
            verdict = self._validate_subtree(child_node, old_root, new_root, auth, child_location, child_bindings, now)
            if not verdict.ok:
                return verdict
        return Verdict(True)
