"""
Auth client surface and credential value objects.

Auth is a thin facade over an IdentityStore. What a credential or a
custom token signs in as is decided by handler functions the test installs:

    >>> auth = app.auth()
    >>> auth.custom_token_sign_in_handler = lambda token: {"uid": token}
    >>> user = await auth.sign_in_with_custom_token("42")
    >>> auth.current_user.uid
    '42'

Invariants:
    - Sign-in without a handler fails with ConfigurationError and changes nothing
    - Handler exceptions are raised unchanged when the result is awaited
    - sign_out() fails only when a bound data engine cannot rebind
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Mapping, Optional

from engine.firemock_engine.identity import IdentityStore, SignInHandler, User

from ._completed import Completed

if TYPE_CHECKING:
    from .app import App

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthCredential:
    """Opaque credential handed to the credential sign-in handler.

    Attributes:
        provider_id: Provider that issued the credential ("password", "google.com"...)
        sign_in_method: How the credential is used
        data: Provider-specific fields (email, id_token, access_token...)
    """

    provider_id: str
    sign_in_method: str
    data: Mapping[str, Any] = field(default_factory=dict)

    @property
    def providerId(self) -> str:
        return self.provider_id


class EmailAuthProvider:
    PROVIDER_ID = "password"

    @staticmethod
    def credential(email: str, password: str) -> AuthCredential:
        return AuthCredential("password", "password", {"email": email, "password": password})


class GoogleAuthProvider:
    PROVIDER_ID = "google.com"

    @staticmethod
    def credential(id_token: Optional[str] = None, access_token: Optional[str] = None) -> AuthCredential:
        return AuthCredential("google.com", "google.com", {"id_token": id_token, "access_token": access_token})


class FacebookAuthProvider:
    PROVIDER_ID = "facebook.com"

    @staticmethod
    def credential(access_token: str) -> AuthCredential:
        return AuthCredential("facebook.com", "facebook.com", {"access_token": access_token})


class GithubAuthProvider:
    PROVIDER_ID = "github.com"

    @staticmethod
    def credential(token: str) -> AuthCredential:
        return AuthCredential("github.com", "github.com", {"access_token": token})


class TwitterAuthProvider:
    PROVIDER_ID = "twitter.com"

    @staticmethod
    def credential(token: str, secret: str) -> AuthCredential:
        return AuthCredential("twitter.com", "twitter.com", {"access_token": token, "secret": secret})


class Auth:
    """Auth service of one app.

    Attributes:
        app: Owning App (None for a standalone Auth)
    """

    def __init__(self, identity: Optional[IdentityStore] = None, app: Optional[App] = None) -> None:
        self._identity = identity or IdentityStore()
        self._app = app

    @property
    def app(self) -> Optional[App]:
        return self._app

    @property
    def identity(self) -> IdentityStore:
        return self._identity

    @property
    def current_user(self) -> Optional[User]:
        return self._identity.current_user

    @property
    def credential_sign_in_handler(self) -> Optional[SignInHandler]:
        return self._identity.credential_sign_in_handler

    @credential_sign_in_handler.setter
    def credential_sign_in_handler(self, handler: Optional[SignInHandler]) -> None:
        self._identity.credential_sign_in_handler = handler

    @property
    def custom_token_sign_in_handler(self) -> Optional[SignInHandler]:
        return self._identity.custom_token_sign_in_handler

    @custom_token_sign_in_handler.setter
    def custom_token_sign_in_handler(self, handler: Optional[SignInHandler]) -> None:
        self._identity.custom_token_sign_in_handler = handler

    def _settle(self, action: Callable[[], Any]) -> Completed[Any]:
        try:
            return Completed(action())
        except Exception as e:
            logger.debug(f"Auth operation failed: {e}")
            return Completed(error=e)

    # Sign-in and sign-out take effect during the call. Awaiting the result
    # gives the user, or raises what the handler or a rebind raised.

    def sign_in_with_credential(self, credential: Any) -> Completed[User]:
        """Sign in with a credential via ``credential_sign_in_handler``."""
        return self._settle(lambda: self._identity.sign_in_with_credential(credential))

    def sign_in_with_custom_token(self, token: str) -> Completed[User]:
        """Sign in with a custom token via ``custom_token_sign_in_handler``."""
        return self._settle(lambda: self._identity.sign_in_with_custom_token(token))

    def sign_out(self) -> Completed[None]:
        return self._settle(self._identity.sign_out)

    def on_auth_state_changed(
        self,
        next_or_observer: Any,
        error: Optional[Callable[[BaseException], Any]] = None,
        completed: Optional[Callable[[], Any]] = None,
    ) -> Callable[[], None]:
        """Observe sign-in state; returns an unsubscribe function."""
        return self._identity.on_auth_state_changed(next_or_observer, error, completed)

    # client SDK spellings
    signInWithCredential = sign_in_with_credential
    signInWithCustomToken = sign_in_with_custom_token
    signOut = sign_out
    onAuthStateChanged = on_auth_state_changed

    @property
    def currentUser(self) -> Optional[User]:
        return self.current_user

    @property
    def credentialSignInHandler(self) -> Optional[SignInHandler]:
        return self.credential_sign_in_handler

    @credentialSignInHandler.setter
    def credentialSignInHandler(self, handler: Optional[SignInHandler]) -> None:
        self.credential_sign_in_handler = handler

    @property
    def customTokenSignInHandler(self) -> Optional[SignInHandler]:
        return self.custom_token_sign_in_handler

    @customTokenSignInHandler.setter
    def customTokenSignInHandler(self, handler: Optional[SignInHandler]) -> None:
        self.custom_token_sign_in_handler = handler


__all__ = [
    "Auth",
    "AuthCredential",
    "EmailAuthProvider",
    "FacebookAuthProvider",
    "GithubAuthProvider",
    "GoogleAuthProvider",
    "TwitterAuthProvider",
]
