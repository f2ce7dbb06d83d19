"""
Rule engine adapter for the in-memory database.

This package evaluates operations against a declarative rules document:
- tree: immutable data tree helpers and value validation
- expressions: safe compiler/evaluator for rule expressions
- ruleset: rules document parsing and cascading rule semantics
- adapter: Snapshot, OperationResult and the RuleEngineAdapter contract
- loader: JSON/YAML rules and seed documents

Invariants:
    - Everything here is pure; nothing holds mutable state
    - Snapshots are replaced, never modified
"""

from .adapter import OperationResult, RuleEngineAdapter, Snapshot
from .expressions import RuleDataSnapshot, RuleExpression, compile_expression
from .loader import load_document, load_rules
from .ruleset import OPEN_RULES, RuleNode, Ruleset, Verdict

__all__ = [
    # Adapter
    "RuleEngineAdapter",
    "Snapshot",
    "OperationResult",
    # Rules
    "Ruleset",
    "RuleNode",
    "Verdict",
    "OPEN_RULES",
    # Expressions
    "RuleExpression",
    "RuleDataSnapshot",
    "compile_expression",
    # Documents
    "load_document",
    "load_rules",
]
