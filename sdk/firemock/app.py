"""
Apps and the app registry.

An App bundles one IdentityStore, one DataEngine bound to it, and the Auth
and Database facades over them. Apps live in an explicit AppRegistry that
the caller owns; the module-level ``firebase`` namespace is a thin shim over
a default registry for code written against the client SDK's globals.

Example:
    >>> registry = AppRegistry()
    >>> app = registry.initialize_app({"databaseURL": "https://demo.firebaseio.com"})
    >>> app.name
    '[DEFAULT]'
    >>> registry.database() is app.database()
    True

Invariants:
    - App names are unique within a registry
    - The default app is the first one registered
    - Deleting an app unregisters it and detaches its engine from auth
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from engine.firemock_engine.config import Settings, get_settings
from engine.firemock_engine.data_engine import DataEngine
from engine.firemock_engine.errors import AppNotFoundError, DuplicateAppError
from engine.firemock_engine.identity import IdentityStore
from engine.firemock_engine.rules.ruleset import Ruleset

from ._completed import Completed
from .auth import Auth
from .database import Database

logger = logging.getLogger(__name__)


class FirebaseOptions(BaseModel):
    """Options passed to initialize_app (all optional, none used for I/O)."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    api_key: Optional[str] = Field(default=None, alias="apiKey")
    auth_domain: Optional[str] = Field(default=None, alias="authDomain")
    database_url: Optional[str] = Field(default=None, alias="databaseURL")
    storage_bucket: Optional[str] = Field(default=None, alias="storageBucket")
    messaging_sender_id: Optional[str] = Field(default=None, alias="messagingSenderId")


class App:
    """One initialized app.

    Attributes:
        name: Unique app name
        options: Options the app was created with
    """

    def __init__(
        self,
        options: FirebaseOptions | Mapping[str, Any] | None = None,
        name: str = "[DEFAULT]",
        rules: Ruleset | Mapping[str, Any] | None = None,
        data: Any = None,
    ) -> None:
        """Create an app with its own auth state and database.

        Args:
            options: FirebaseOptions or a mapping of option names
            name: App name
            rules: Rules for the database (fully open when None)
            data: Seed data for the database
        """
        if isinstance(options, FirebaseOptions):
            self._options = options
        else:
            self._options = FirebaseOptions.model_validate(dict(options or {}))
        self._name = name
        self._registry: Optional[AppRegistry] = None

        self._identity = IdentityStore()
        self._engine = DataEngine(self._identity, rules, data)
        self._auth = Auth(self._identity, self)
        self._database = Database(self._engine, self)

    @property
    def name(self) -> str:
        return self._name

    @property
    def options(self) -> FirebaseOptions:
        return self._options

    def auth(self) -> Auth:
        return self._auth

    def database(self) -> Database:
        return self._database

    def delete(self) -> Completed[None]:
        """Unregister the app and stop its engine following auth changes.

        Takes effect during the call; the result may be awaited.
        """
        if self._registry is not None:
            self._registry.remove(self)
            self._registry = None
        self._engine.close()
        logger.debug(f"Deleted app {self._name}")
        return Completed()

    def __repr__(self) -> str:
        return f"App(name={self._name!r})"


class AppRegistry:
    """Caller-owned set of apps, looked up by name.

    Thread safety:
        Registration and removal are guarded by a lock.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        """Initialize an empty registry.

        Args:
            settings: Source of default app name, rules and seed data
        """
        self._settings = settings or get_settings()
        self._apps: dict[str, App] = {}
        self._lock = threading.Lock()

    @property
    def apps(self) -> tuple[App, ...]:
        """Registered apps in registration order."""
        return tuple(self._apps.values())

    def initialize_app(
        self,
        options: FirebaseOptions | Mapping[str, Any] | None = None,
        name: Optional[str] = None,
        *,
        rules: Ruleset | Mapping[str, Any] | None = None,
        data: Any = None,
    ) -> App:
        """Create and register an app.

        Rules and data default to the documents named in settings, then to
        fully open rules and an empty tree.

        Raises:
            DuplicateAppError: If an app with this name exists
        """
        name = name or self._settings.default_app_name
        with self._lock:
            if name in self._apps:
                raise DuplicateAppError(name)
            if rules is None:
                rules = self._settings.default_rules()
            if data is None:
                data = self._settings.default_data()
            app = App(options, name, rules=rules, data=data)
            app._registry = self
            self._apps[name] = app
        logger.info(f"Initialized app {name}")
        return app

    initializeApp = initialize_app

    def get_app(self, name: Optional[str] = None) -> App:
        """Look up an app by name (the default app name when None).

        Raises:
            AppNotFoundError: If no such app is registered
        """
        name = name or self._settings.default_app_name
        app = self._apps.get(name)
        if app is None:
            raise AppNotFoundError(f"No Firebase App '{name}' has been created", name=name)
        return app

    @property
    def default_app(self) -> App:
        """First registered app.

        Raises:
            AppNotFoundError: If no app has been initialized
        """
        if not self._apps:
            raise AppNotFoundError("Firebase not initialized")
        return next(iter(self._apps.values()))

    def remove(self, app: App) -> bool:
        """Unregister ``app``; returns False if it was not registered."""
        with self._lock:
            if self._apps.get(app.name) is not app:
                return False
            del self._apps[app.name]
            return True

    def auth(self) -> Auth:
        """Auth of the default app."""
        return self.default_app.auth()

    def database(self) -> Database:
        """Database of the default app."""
        return self.default_app.database()

    def __len__(self) -> int:
        return len(self._apps)

    def __contains__(self, name: object) -> bool:
        return name in self._apps


# Default registry behind the ``firebase`` namespace
_default_registry: Optional[AppRegistry] = None
_registry_lock = threading.Lock()


def get_registry() -> AppRegistry:
    """Get the default app registry."""
    global _default_registry
    with _registry_lock:
        if _default_registry is None:
            _default_registry = AppRegistry()
        return _default_registry


def reset_registry() -> None:
    """Drop the default registry and all its apps (for test isolation)."""
    global _default_registry
    with _registry_lock:
        registry, _default_registry = _default_registry, None
    if registry is not None:
        for app in registry.apps:
            app._engine.close()


class FirebaseNamespace:
    """Client-SDK-style globals over the default registry.

    Example:
        >>> from sdk.firemock import firebase
        >>> firebase.initializeApp({"databaseURL": "https://demo.firebaseio.com"})
        >>> firebase.database().ref("x")
    """

    @property
    def apps(self) -> tuple[App, ...]:
        return get_registry().apps

    def initialize_app(
        self,
        options: FirebaseOptions | Mapping[str, Any] | None = None,
        name: Optional[str] = None,
        *,
        rules: Ruleset | Mapping[str, Any] | None = None,
        data: Any = None,
    ) -> App:
        return get_registry().initialize_app(options, name, rules=rules, data=data)

    initializeApp = initialize_app

    def app(self, name: Optional[str] = None) -> App:
        return get_registry().get_app(name)

    def auth(self) -> Auth:
        return get_registry().auth()

    def database(self) -> Database:
        return get_registry().database()


firebase = FirebaseNamespace()
