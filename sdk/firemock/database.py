"""
Database client surface: references, snapshots and the Database object.

A Reference is nothing but (engine, path). Navigation is pure; every read or
write is delegated to the DataEngine and its result shaped into a
DataSnapshot or a raised error.

Example:
    >>> db = app.database()
    >>> await db.ref("users/42").set({"name": "Ann"})
    >>> snap = await db.ref("users/42").once("value")
    >>> snap.key, snap.val()
    ('42', {'name': 'Ann'})

Invariants:
    - References hold no data and never cache reads
    - Reads and writes run when called; the returned Completed re-raises
      a denial (PermissionDeniedError) on await, after on_complete(error)
    - Unsupported APIs raise UnsupportedOperationError at call time
"""

from __future__ import annotations

import logging
import random
import threading
import time
from typing import TYPE_CHECKING, Any, Callable, Generator, Mapping, Optional

from engine.firemock_engine.data_engine import DataEngine
from engine.firemock_engine.errors import (
    FiremockError,
    NotACollectionError,
    UnsupportedOperationError,
)
from engine.firemock_engine.paths import join, key_of, normalize, parent_of, split
from engine.firemock_engine.rules.adapter import OperationResult
from engine.firemock_engine.rules.tree import (
    children,
    get_in,
    is_leaf,
    priority_of,
    to_export,
    to_python,
)

from ._completed import Completed

if TYPE_CHECKING:
    from .app import App

logger = logging.getLogger(__name__)

SUPPORTED_EVENTS = frozenset({"value", "child_added"})
UNSUPPORTED_EVENTS = frozenset({"child_removed", "child_changed", "child_moved"})

CompletionCallback = Callable[[Optional[BaseException]], Any]

PUSH_CHARS = "-0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ_abcdefghijklmnopqrstuvwxyz"


class PushIdGenerator:
    """Generates 20-character keys that sort in creation order.

    The first 8 characters encode the millisecond timestamp, the last 12 are
    random. Keys generated within the same millisecond increment the random
    part so they still sort after each other.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._clock = clock
        self._rng = rng or random.Random()
        self._last_time = -1
        self._last_random = [0] * 12
        self._lock = threading.Lock()

    def next_id(self) -> str:
        with self._lock:
            now = int(self._clock() * 1000)
            if now == self._last_time:
                i = 11
                while i >= 0 and self._last_random[i] == 63:
                    self._last_random[i] = 0
                    i -= 1
                if i >= 0:
                    self._last_random[i] += 1
            else:
                self._last_random = [self._rng.randrange(64) for _ in range(12)]
            self._last_time = now

            stamp = []
            for _ in range(8):
                stamp.append(PUSH_CHARS[now % 64])
                now //= 64
            return "".join(reversed(stamp)) + "".join(PUSH_CHARS[i] for i in self._last_random)


_push_ids = PushIdGenerator()


class DataSnapshot:
    """Immutable result of a read at one location.

    Attributes:
        ref: Reference the data was read from
    """

    def __init__(self, ref: Reference, node: Any) -> None:
        self._ref = ref
        self._node = node

    @property
    def key(self) -> Optional[str]:
        """Last path segment, None for the root."""
        return self._ref.key

    @property
    def ref(self) -> Reference:
        return self._ref

    def val(self) -> Any:
        """Value at this location as plain Python data (priorities dropped)."""
        return to_python(self._node)

    def export_val(self) -> Any:
        """Value including ``.priority`` / ``.value`` entries."""
        return to_export(self._node)

    def exists(self) -> bool:
        return self._node is not None

    def child(self, path: str) -> DataSnapshot:
        """Snapshot of a descendant location (empty if absent)."""
        return DataSnapshot(self._ref.child(path), get_in(self._node, split(path)))

    def has_child(self, path: str) -> bool:
        return self.child(path).exists()

    def has_children(self) -> bool:
        return any(True for _ in children(self._node))

    def num_children(self) -> int:
        return sum(1 for _ in children(self._node))

    def for_each(self, action: Callable[[DataSnapshot], Any]) -> bool:
        """Call ``action`` for each child in order.

        Returns:
            True if iteration was cancelled by ``action`` returning True
        """
        for key, node in children(self._node):
            if action(DataSnapshot(self._ref.child(key), node)) is True:
                return True
        return False

    def get_priority(self) -> Any:
        return priority_of(self._node)

    # client SDK spellings
    exportVal = export_val
    hasChild = has_child
    hasChildren = has_children
    numChildren = num_children
    forEach = for_each
    getPriority = get_priority

    def __repr__(self) -> str:
        return f"DataSnapshot(key={self.key!r}, value={self.val()!r})"


class Reference:
    """Path-addressed handle over a DataEngine.

    Example:
        >>> users = db.ref("users")
        >>> users.child("42/name").path
        'users/42/name'
    """

    __slots__ = ("_engine", "_path")

    def __init__(self, engine: DataEngine, path: Optional[str] = None) -> None:
        self._engine = engine
        self._path = normalize(path)

    @property
    def path(self) -> str:
        return self._path

    @property
    def key(self) -> Optional[str]:
        return key_of(self._path)

    @property
    def parent(self) -> Optional[Reference]:
        parent_path = parent_of(self._path)
        if parent_path is None:
            return None
        return Reference(self._engine, parent_path)

    @property
    def root(self) -> Reference:
        return Reference(self._engine)

    def child(self, path: str) -> Reference:
        """Reference to a location relative to this one."""
        return Reference(self._engine, join(self._path, path))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Reference):
            return NotImplemented
        return self._engine is other._engine and self._path == other._path

    def __hash__(self) -> int:
        return hash((id(self._engine), self._path))

    def __repr__(self) -> str:
        return f"Reference(/{self._path})"

    # --- Queries ---

    def once(
        self,
        event_type: str,
        success_callback: Optional[Callable[[DataSnapshot], Any]] = None,
        failure_callback_or_context: Any = None,
        context: Any = None,
    ) -> Completed[DataSnapshot]:
        """Read the location once.

        The read happens during the call, and the matching callback runs
        before it returns.

        Args:
            event_type: "value" or "child_added"
            success_callback: Called with the snapshot on success
            failure_callback_or_context: Called with the error on failure
                (ignored when not callable)
            context: Accepted for signature compatibility; unused

        Returns:
            Completed awaitable resolving to a DataSnapshot, or raising the
            read's error

        Raises:
            UnsupportedOperationError: For child_removed/changed/moved
            ValueError: For an unknown event type
        """
        if event_type in UNSUPPORTED_EVENTS:
            raise UnsupportedOperationError(f"once('{event_type}')")
        if event_type not in SUPPORTED_EVENTS:
            raise ValueError(f"Unknown event type {event_type!r}")

        failure_callback = failure_callback_or_context if callable(failure_callback_or_context) else None
        try:
            result = self._engine.read(self._path)
            result.raise_for_denial()
            if event_type == "value":
                snapshot = DataSnapshot(self, result.value)
            else:
                snapshot = self._first_child(result)
        except FiremockError as e:
            if failure_callback is not None:
                failure_callback(e)
            return Completed(error=e)

        if success_callback is not None:
            success_callback(snapshot)
        return Completed(snapshot)

    def _first_child(self, result: OperationResult) -> DataSnapshot:
        if result.value is None:
            raise NotACollectionError(self._path, "no data at this location")
        if is_leaf(result.value):
            raise NotACollectionError(self._path, "value is not a collection")
        key, node = next(children(result.value))
        return DataSnapshot(self.child(key), node)

    def on(self, event_type: str, callback: Callable[..., Any], *args: Any) -> Any:
        raise UnsupportedOperationError("on()")

    def off(self, event_type: Optional[str] = None, callback: Optional[Callable[..., Any]] = None, *args: Any) -> Any:
        raise UnsupportedOperationError("off()")

    def transaction(self, transaction_update: Callable[[Any], Any], *args: Any) -> Any:
        raise UnsupportedOperationError("transaction()")

    # --- Writes ---

    def _run(
        self, operation: Callable[[], OperationResult], on_complete: Optional[CompletionCallback]
    ) -> Completed[None]:
        try:
            operation().raise_for_denial()
        except FiremockError as e:
            logger.debug(f"Write to /{self._path} failed: {e}")
            if on_complete is not None:
                on_complete(e)
            return Completed(error=e)
        if on_complete is not None:
            on_complete(None)
        return Completed()

    # Writes apply during the call. on_complete runs before returning, and
    # awaiting the result raises the write's error, if any.

    def set(self, value: Any, on_complete: Optional[CompletionCallback] = None) -> Completed[None]:
        """Replace the data at this location (removing any priority)."""
        return self._run(lambda: self._engine.set(self._path, value), on_complete)

    def set_with_priority(
        self,
        value: Any,
        new_priority: Any,
        on_complete: Optional[CompletionCallback] = None,
    ) -> Completed[None]:
        """Replace the data at this location and attach a priority."""
        return self._run(lambda: self._engine.set_with_priority(self._path, value, new_priority), on_complete)

    def update(self, values: Mapping[str, Any], on_complete: Optional[CompletionCallback] = None) -> Completed[None]:
        """Write several relative locations atomically."""
        return self._run(lambda: self._engine.update(self._path, values), on_complete)

    def remove(self, on_complete: Optional[CompletionCallback] = None) -> Completed[None]:
        """Delete the data at this location."""
        return self._run(lambda: self._engine.remove(self._path), on_complete)

    def push(self, value: Any = None, on_complete: Optional[CompletionCallback] = None) -> ThenableReference:
        """Create a child with a generated, chronologically ordered key.

        The write (if ``value`` is given) happens immediately; awaiting the
        returned ThenableReference yields the child Reference or raises the
        write's error.
        """
        ref = self.child(_push_ids.next_id())
        if value is None:
            return ThenableReference(ref)
        completion = ref._run(lambda: self._engine.set(ref.path, value), on_complete)
        return ThenableReference(ref, completion.exception())

    setWithPriority = set_with_priority


class ThenableReference:
    """A new child Reference paired with the completion of its write.

    Example:
        >>> pending = db.ref("messages").push({"text": "hi"})
        >>> pending.key  # available immediately
        >>> ref = await pending  # raises if the write was denied
    """

    __slots__ = ("_ref", "_completion")

    def __init__(self, ref: Reference, error: Optional[BaseException] = None) -> None:
        self._ref = ref
        self._completion: Completed[Reference] = Completed(ref, error)

    @property
    def ref(self) -> Reference:
        return self._ref

    @property
    def key(self) -> Optional[str]:
        return self._ref.key

    @property
    def path(self) -> str:
        return self._ref.path

    def exception(self) -> Optional[BaseException]:
        """The write's error, or None."""
        return self._completion.exception()

    def __await__(self) -> Generator[Any, None, Optional[Reference]]:
        return self._completion.__await__()

    def __repr__(self) -> str:
        state = "failed" if self.exception() is not None else "ok"
        return f"ThenableReference(/{self._ref.path}, {state})"


class Database:
    """Entry point for references into one app's data.

    Attributes:
        app: Owning App (None for a standalone database)
        engine: Underlying DataEngine
    """

    def __init__(self, engine: DataEngine, app: Optional[App] = None) -> None:
        self._engine = engine
        self._app = app

    @property
    def app(self) -> Optional[App]:
        return self._app

    @property
    def engine(self) -> DataEngine:
        return self._engine

    def ref(self, path: Optional[str] = None) -> Reference:
        """Reference to ``path`` (the root when None)."""
        return Reference(self._engine, path)

    def reset(self, rules: Any = None, data: Any = None) -> None:
        """Reseed rules and data, keeping the signed-in user."""
        self._engine.reset(rules, data)

    def go_offline(self) -> None:
        raise UnsupportedOperationError("goOffline()")

    def go_online(self) -> None:
        raise UnsupportedOperationError("goOnline()")

    def ref_from_url(self, url: str) -> Reference:
        raise UnsupportedOperationError("refFromURL()")

    goOffline = go_offline
    goOnline = go_online
    refFromURL = ref_from_url
