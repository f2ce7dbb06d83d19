"""
firemock engine - rules-checked in-memory realtime database core.

This package implements the core of a test double for a hierarchical,
rules-governed realtime database:
- RuleEngineAdapter: evaluates reads/writes/updates against a rules document
- IdentityStore: current signed-in user and auth state observers
- DataEngine: owns the live immutable snapshot and rebinds auth on sign-in

Architecture:
    ┌──────────────┐  on_auth_state_changed  ┌──────────────┐
    │IdentityStore │ ──────────────────────▶ │  DataEngine  │
    └──────────────┘    (rebind auth)        │ live Snapshot│
                                             └──────┬───────┘
                                                    │ evaluate_*
                                                    ▼
                                          ┌───────────────────┐
                                          │ RuleEngineAdapter │
                                          │ Ruleset + tree    │
                                          └───────────────────┘

Invariants:
    - Snapshots are immutable; each successful change yields a new one
    - Denied operations leave the live snapshot untouched
    - No state outlives the process

Version: 1.0.0
"""

__version__ = "1.0.0"

from .config import Settings, configure_logging, get_settings
from .data_engine import DataEngine
from .errors import (
    AppNotFoundError,
    ConfigurationError,
    DuplicateAppError,
    FiremockError,
    InvalidIdentityError,
    InvalidPatchError,
    InvalidPathError,
    InvalidValueError,
    NotACollectionError,
    PermissionDeniedError,
    RuleEvaluationError,
    RulesSyntaxError,
    UnsupportedOperationError,
)
from .identity import IdentityStore, Observer, User
from .rules import OperationResult, RuleEngineAdapter, Ruleset, Snapshot

__all__ = [
    # Version
    "__version__",
    # Core
    "DataEngine",
    "IdentityStore",
    "Observer",
    "User",
    # Rules
    "RuleEngineAdapter",
    "Ruleset",
    "Snapshot",
    "OperationResult",
    # Config
    "Settings",
    "get_settings",
    "configure_logging",
    # Errors
    "FiremockError",
    "ConfigurationError",
    "InvalidIdentityError",
    "PermissionDeniedError",
    "UnsupportedOperationError",
    "NotACollectionError",
    "InvalidPathError",
    "InvalidValueError",
    "InvalidPatchError",
    "RulesSyntaxError",
    "RuleEvaluationError",
    "AppNotFoundError",
    "DuplicateAppError",
]
