"""
Settled awaitables for eager client operations.

Every client operation runs to completion when it is called. What it hands
back is a Completed: awaiting it yields the operation's result or raises
its error, so callers may await it like the networked client's promise or
ignore it and read the data straight away.
"""

from __future__ import annotations

from typing import Any, Generator, Generic, Optional, TypeVar

T = TypeVar("T")


class Completed(Generic[T]):
    """Outcome of an operation that has already finished.

    Example:
        >>> done = db.ref("a").set(1)  # already written
        >>> await done  # None, or raises the denial
    """

    __slots__ = ("_value", "_error")

    def __init__(self, value: Optional[T] = None, error: Optional[BaseException] = None) -> None:
        self._value = value
        self._error = error

    def done(self) -> bool:
        return True

    def result(self) -> Optional[T]:
        """Return the value, or raise the operation's error."""
        if self._error is not None:
            raise self._error
        return self._value

    def exception(self) -> Optional[BaseException]:
        return self._error

    async def _resolve(self) -> Optional[T]:
        return self.result()

    def __await__(self) -> Generator[Any, None, Optional[T]]:
        return self._resolve().__await__()

    def __repr__(self) -> str:
        if self._error is not None:
            return f"Completed(error={self._error!r})"
        return f"Completed({self._value!r})"


__all__ = ["Completed"]
