"""An owning wrapper around a resource value with a close action."""

from __future__ import annotations

import functools
from typing import Any, Callable, Optional

_UNSET = object()


@functools.total_ordering
class Handle:
    """Owns a value and releases it with ``closer`` when closed.

    A handle whose value equals ``invalid`` owns nothing and is false.
    """

    def __init__(
        self,
        value: Any = _UNSET,
        *,
        closer: Optional[Callable[[Any], None]] = None,
        invalid: Any = None,
    ) -> None:
        self._invalid = invalid
        self._closer = closer
        self._value = invalid if value is _UNSET else value

    def __bool__(self) -> bool:
        return self._value != self._invalid

    def close(self) -> None:
        """Release the value if one is held."""
        if self:
            value, self._value = self._value, self._invalid
            if self._closer is not None:
                self._closer(value)

    def get(self) -> Any:
        """Return the held value without giving up ownership."""
        return self._value

    def attach(self, value: Any) -> None:
        """Release the current value and take ownership of a new one."""
        self.close()
        self._value = value

    def detach(self) -> Any:
        """Give up ownership and return the value."""
        value, self._value = self._value, self._invalid
        return value

    def swap(self, other: Handle) -> None:
        """Exchange the held values of two handles."""
        self._value, other._value = other._value, self._value

    def __enter__(self) -> Handle:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Handle):
            return NotImplemented
        return self._value == other._value

    def __lt__(self, other: Handle) -> bool:
        if not isinstance(other, Handle):
            return NotImplemented
        return self._value < other._value

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._value!r})"