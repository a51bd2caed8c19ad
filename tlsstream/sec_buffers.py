"""Security buffer descriptors: a fixed set of typed data buffers."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterator, Optional, Union

SECBUFFER_VERSION = 0

BufferData = Union[bytes, bytearray, memoryview]


class BufferType(enum.IntEnum):
    """Kinds of security buffer."""

    EMPTY = 0
    DATA = 1
    TOKEN = 2
    PKG_PARAMS = 3
    MISSING = 4
    EXTRA = 5
    STREAM_TRAILER = 6
    STREAM_HEADER = 7
    NEGOTIATION_INFO = 8
    PADDING = 9
    STREAM = 10
    MECHLIST = 11
    MECHLIST_SIGNATURE = 12
    TARGET = 13
    CHANNEL_BINDINGS = 14
    CHANGE_PASS_RESPONSE = 15
    TARGET_HOST = 16
    ALERT = 17
    APPLICATION_PROTOCOLS = 18


@dataclass
class SecBuffer:
    """One typed buffer; ``size`` may differ from ``len(data)``."""

    buffer_type: int = BufferType.EMPTY
    data: Optional[BufferData] = None
    size: int = 0

    def _reset(self) -> None:
        self.buffer_type = BufferType.EMPTY
        self.data = None
        self.size = 0


class SecBufferDescriptor:
    """A fixed number of buffers; buffers are referenced, never copied."""

    def __init__(self, count: int = 1) -> None:
        if count < 0:
            raise ValueError("buffer count must not be negative")
        self.version = SECBUFFER_VERSION
        self._buffers = [SecBuffer() for _ in range(count)]

    def _check(self, index: int) -> None:
        if not 0 <= index < len(self._buffers):
            raise IndexError("Buffer index out of range")

    def set_buffer(self, index: int, buffer_type: int, data: Optional[BufferData]) -> None:
        """Point the buffer at index to data, with the given type."""
        self._check(index)
        buffer = self._buffers[index]
        buffer.buffer_type = buffer_type
        buffer.data = data
        buffer.size = 0 if data is None else len(data)

    def clear(self) -> None:
        """Reset every buffer to empty."""
        for buffer in self._buffers:
            buffer._reset()

    def buffer(self, index: int) -> SecBuffer:
        """Return the buffer at index."""
        self._check(index)
        return self._buffers[index]

    def buffer_by_type(self, buffer_type: int) -> Optional[SecBuffer]:
        """Return the first buffer of the given type, or None."""
        return next((b for b in self._buffers if b.buffer_type == buffer_type), None)

    def is_empty(self) -> bool:
        """True when every buffer is of type EMPTY."""
        return all(b.buffer_type == BufferType.EMPTY for b in self._buffers)

    def __len__(self) -> int:
        return len(self._buffers)

    def __iter__(self) -> Iterator[SecBuffer]:
        return iter(self._buffers)

    def __getitem__(self, index: int) -> SecBuffer:
        return self.buffer(index)