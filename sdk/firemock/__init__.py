"""
firemock - client-SDK-shaped test double for a rules-governed realtime database.

This package provides the surface application code talks to:
- App / AppRegistry for creating isolated apps
- Auth with pluggable sign-in handlers
- Database, Reference and DataSnapshot for rule-checked reads and writes
- firebase namespace mirroring the client SDK globals

Example:
    >>> from sdk.firemock import AppRegistry
    >>>
    >>> rules = {"rules": {"users": {"$uid": {
    ...     ".read": "auth != null && auth.uid == $uid",
    ...     ".write": "auth != null && auth.uid == $uid",
    ... }}}}
    >>> app = AppRegistry().initialize_app(rules=rules)
    >>> app.auth().custom_token_sign_in_handler = lambda token: {"uid": token}
    >>>
    >>> await app.auth().sign_in_with_custom_token("42")
    >>> await app.database().ref("users/42").set({"name": "Ann"})
    >>> (await app.database().ref("users/42/name").once("value")).val()
    'Ann'

Invariants:
    - Apps never share auth state or data
    - Operations run when called; denied ones change nothing and raise
      PermissionDeniedError when awaited
    - Nothing touches the network or the filesystem (except explicit config files)

Version: 1.0.0
"""

__version__ = "1.0.0"

from engine.firemock_engine.errors import (
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
    RulesSyntaxError,
    UnsupportedOperationError,
)
from engine.firemock_engine.identity import Observer, User

from ._completed import Completed
from .app import (
    App,
    AppRegistry,
    FirebaseNamespace,
    FirebaseOptions,
    firebase,
    get_registry,
    reset_registry,
)
from .auth import (
    Auth,
    AuthCredential,
    EmailAuthProvider,
    FacebookAuthProvider,
    GithubAuthProvider,
    GoogleAuthProvider,
    TwitterAuthProvider,
)
from .database import (
    Database,
    DataSnapshot,
    PushIdGenerator,
    Reference,
    ThenableReference,
)

__all__ = [
    # Version
    "__version__",
    # Apps
    "App",
    "AppRegistry",
    "FirebaseNamespace",
    "FirebaseOptions",
    "firebase",
    "get_registry",
    "reset_registry",
    # Auth
    "Auth",
    "AuthCredential",
    "EmailAuthProvider",
    "FacebookAuthProvider",
    "GithubAuthProvider",
    "GoogleAuthProvider",
    "TwitterAuthProvider",
    "Observer",
    "User",
    # Database
    "Database",
    "DataSnapshot",
    "PushIdGenerator",
    "Reference",
    "ThenableReference",
    "Completed",
    # Errors
    "FiremockError",
    "AppNotFoundError",
    "ConfigurationError",
    "DuplicateAppError",
    "InvalidIdentityError",
    "InvalidPatchError",
    "InvalidPathError",
    "InvalidValueError",
    "NotACollectionError",
    "PermissionDeniedError",
    "RulesSyntaxError",
    "UnsupportedOperationError",
]
