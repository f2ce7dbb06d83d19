"""
Identity store: the current signed-in user and its observers.

The store holds at most one current identity. Sign-in goes through
externally supplied handler functions so tests decide what a credential or
custom token resolves to; sign-out always succeeds. Every transition is
broadcast to observers in registration order.

Invariants:
    - Failed sign-ins leave the current identity unchanged
    - Observers are notified in insertion order
    - An unsubscribe handle removes exactly its own registration, once
    - Registration does not trigger a notification

How to change safely:
    - Data engines attach through bind(), not as observers. Bindings run
      before every observer and are not guarded: a failing rebind
      propagates out of the sign-in or sign-out that caused it
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigurationError, InvalidIdentityError

logger = logging.getLogger(__name__)


class User(BaseModel):
    """A signed-in identity.

    Accepts both snake_case and the client SDK's camelCase field names, so
    a sign-in handler may return ``{"uid": "42", "displayName": "Ann"}``.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    uid: str = Field(..., min_length=1)
    display_name: Optional[str] = Field(default=None, alias="displayName")
    email: Optional[str] = None
    email_verified: bool = Field(default=False, alias="emailVerified")
    photo_url: Optional[str] = Field(default=None, alias="photoURL")
    provider_id: str = Field(default="custom", alias="providerId")
    is_anonymous: bool = Field(default=False, alias="isAnonymous")

    def to_auth_context(self) -> dict[str, Any]:
        """Build the ``auth`` variable that security rules see."""
        return {
            "uid": self.uid,
            "provider": self.provider_id,
            "token": {
                "sub": self.uid,
                "email": self.email,
                "email_verified": self.email_verified,
                "name": self.display_name,
                "picture": self.photo_url,
                "firebase": {"sign_in_provider": self.provider_id},
            },
        }

    # camelCase accessors matching the client SDK's User
    @property
    def displayName(self) -> Optional[str]:
        return self.display_name

    @property
    def emailVerified(self) -> bool:
        return self.email_verified

    @property
    def photoURL(self) -> Optional[str]:
        return self.photo_url

    @property
    def providerId(self) -> str:
        return self.provider_id

    @property
    def isAnonymous(self) -> bool:
        return self.is_anonymous


def _noop(*args: Any) -> None:
    pass


@dataclass
class Observer:
    """Auth state observer.

    Attributes:
        next: Called with the new User (or None) on every change
        error: Called with the exception if ``next`` raises
        complete: Never called by the store; kept for API shape
    """

    next: Callable[[Optional[User]], Any] = _noop
    error: Callable[[BaseException], Any] = _noop
    complete: Callable[[], Any] = _noop

    @classmethod
    def resolve(
        cls,
        next_or_observer: Union[Observer, Callable[[Optional[User]], Any], Any],
        error: Optional[Callable[[BaseException], Any]] = None,
        complete: Optional[Callable[[], Any]] = None,
    ) -> Observer:
        """Turn a callback or an observer-like value into an Observer.

        Accepts an Observer, a mapping or object exposing ``next``/``error``/
        ``complete``, or a bare callable used as ``next``.

        Raises:
            TypeError: If no ``next`` callable can be found
        """
        if isinstance(next_or_observer, Observer):
            return next_or_observer
        if isinstance(next_or_observer, dict):
            parts = next_or_observer
        elif callable(next_or_observer):
            return cls(next=next_or_observer, error=error or _noop, complete=complete or _noop)
        else:
            parts = {
                name: getattr(next_or_observer, name)
                for name in ("next", "error", "complete")
                if hasattr(next_or_observer, name)
            }
        if not callable(parts.get("next")):
            raise TypeError("Observer must be a callable or provide a callable 'next'")
        return cls(
            next=parts["next"],
            error=parts.get("error") or _noop,
            complete=parts.get("complete") or _noop,
        )


SignInHandler = Callable[[Any], Union[User, dict[str, Any]]]


class IdentityStore:
    """Tracks the current identity and broadcasts changes.

    Example:
        >>> store = IdentityStore(custom_token_sign_in_handler=lambda t: {"uid": t})
        >>> store.sign_in_with_custom_token("42").uid
        '42'
        >>> store.sign_out()
        >>> store.current_user is None
        True
    """

    def __init__(
        self,
        credential_sign_in_handler: Optional[SignInHandler] = None,
        custom_token_sign_in_handler: Optional[SignInHandler] = None,
    ) -> None:
        """Initialize an empty store.

        Args:
            credential_sign_in_handler: Maps a credential to a user
            custom_token_sign_in_handler: Maps a custom token to a user
        """
        self.credential_sign_in_handler = credential_sign_in_handler
        self.custom_token_sign_in_handler = custom_token_sign_in_handler
        self._current: Optional[User] = None
        self._observers: list[Observer] = []
        self._bindings: list[Observer] = []

    @property
    def current_user(self) -> Optional[User]:
        """Current identity, or None when signed out."""
        return self._current

    @property
    def observer_count(self) -> int:
        """Number of registered observers."""
        return len(self._observers)

    @property
    def binding_count(self) -> int:
        """Number of bound listeners (data engines)."""
        return len(self._bindings)

    def sign_in_with_credential(self, credential: Any) -> User:
        """Sign in through the credential handler.

        Raises:
            ConfigurationError: If no credential handler is configured
            InvalidIdentityError: If the handler result is not a valid user
            Exception: Whatever the handler raises, unchanged
        """
        return self._sign_in(self.credential_sign_in_handler, "credentialSignInHandler", credential)

    def sign_in_with_custom_token(self, token: str) -> User:
        """Sign in through the custom token handler.

        Raises:
            ConfigurationError: If no custom token handler is configured
            InvalidIdentityError: If the handler result is not a valid user
            Exception: Whatever the handler raises, unchanged
        """
        return self._sign_in(self.custom_token_sign_in_handler, "customTokenSignInHandler", token)

    def _sign_in(self, handler: Optional[SignInHandler], handler_name: str, argument: Any) -> User:
        if handler is None:
            raise ConfigurationError(
                f"Cannot sign in: no handler defined ({handler_name} is not set)",
                handler_name=handler_name,
            )

        result = handler(argument)

        if isinstance(result, User):
            user = result
        else:
            try:
                user = User.model_validate(result)
            except ValidationError as e:
                errors = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
                raise InvalidIdentityError(
                    f"{handler_name} returned an invalid user: {'; '.join(errors)}", errors=errors
                ) from e

        self._current = user
        logger.info(f"Signed in as {user.uid} ({user.provider_id})")
        self._notify(user)
        return user

    def sign_out(self) -> None:
        """Clear the current identity and notify observers."""
        previous = self._current
        self._current = None
        if previous is not None:
            logger.info(f"Signed out {previous.uid}")
        self._notify(None)

    def on_auth_state_changed(
        self,
        next_or_observer: Union[Observer, Callable[[Optional[User]], Any], Any],
        error: Optional[Callable[[BaseException], Any]] = None,
        complete: Optional[Callable[[], Any]] = None,
    ) -> Callable[[], None]:
        """Register an observer.

        Returns:
            Unsubscribe function; calling it more than once is a no-op
        """
        observer = replace(Observer.resolve(next_or_observer, error, complete))
        return self._register(self._observers, observer)

    def bind(self, listener: Callable[[Optional[User]], Any]) -> Callable[[], None]:
        """Attach a listener that runs before every observer.

        Exceptions raised by a bound listener are not caught. They propagate
        to the caller of the sign-in or sign-out, and observers are not
        notified of that change.

        Returns:
            Unbind function; calling it more than once is a no-op
        """
        return self._register(self._bindings, Observer(next=listener))

    @staticmethod
    def _register(registry: list[Observer], observer: Observer) -> Callable[[], None]:
        registry.append(observer)

        def unsubscribe() -> None:
            for i, registered in enumerate(registry):
                if registered is observer:
                    del registry[i]
                    return

        return unsubscribe

    def _notify(self, user: Optional[User]) -> None:
        for binding in list(self._bindings):
            binding.next(user)
        for observer in list(self._observers):
            try:
                observer.next(user)
            except Exception as e:
                logger.warning(f"Auth state observer failed: {e}")
                observer.error(e)
