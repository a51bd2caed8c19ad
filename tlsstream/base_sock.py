"""A TCP stream with whole-message send and receive timers."""

from __future__ import annotations

import abc
import errno
import selectors
import socket
import threading
import time
from typing import Optional

from .utilities import debug_msg

MAX_TIMEOUT_SECONDS = 2**31 - 1
INFINITE = -1
DEFAULT_TIMEOUT_SECONDS = 1
_POLL_SECONDS = 0.05


class SocketStream(abc.ABC):
    """A byte stream that can be sent to and received from with timeouts."""

    @abc.abstractmethod
    def recv(self, size: int, min_len: int = 1) -> bytes:
        """Receive at most size bytes, waiting for at least min_len."""

    @abc.abstractmethod
    def send(self, data: bytes) -> int:
        """Send all of data and return the number of bytes sent."""

    @abc.abstractmethod
    def disconnect(self, close_underlying_connection: bool = True) -> None:
        """End the stream."""

    @abc.abstractmethod
    def set_recv_timeout_seconds(self, seconds: Optional[int], automatic: bool = True) -> None:
        """Set the time allowed for a whole receive."""

    @abc.abstractmethod
    def set_send_timeout_seconds(self, seconds: Optional[int], automatic: bool = True) -> None:
        """Set the time allowed for a whole send."""

    @abc.abstractmethod
    def start_recv_timer(self) -> None:
        """Start the receive timer now and stop starting it automatically."""

    @abc.abstractmethod
    def start_send_timer(self) -> None:
        """Start the send timer now and stop starting it automatically."""

    @abc.abstractmethod
    def tls_version(self) -> int:
        """Return the negotiated TLS version as two digits, or 0."""

    @property
    @abc.abstractmethod
    def recv_timeout_seconds(self) -> int:
        """Seconds allowed for a whole receive."""

    @property
    @abc.abstractmethod
    def send_timeout_seconds(self) -> int:
        """Seconds allowed for a whole send."""


def _normalize_timeout(seconds: Optional[int]) -> int:
    if seconds is None or seconds == INFINITE:
        return MAX_TIMEOUT_SECONDS
    return int(seconds)


class BaseSock(SocketStream):
    """A plain TCP connection.

    Timers cover whole messages rather than the fragments the network
    delivers: a receive or send must finish before its timer runs out.
    By default ``recv`` and ``send`` start their timer on every call;
    calling ``start_recv_timer`` or ``start_send_timer`` switches to manual
    timing, and setting a timeout switches back unless told otherwise.

    Setting ``stop_event`` aborts any wait with ``InterruptedError``.
    """

    def __init__(
        self,
        sock: Optional[socket.socket] = None,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        self._sock: Optional[socket.socket] = None
        self._stop_event = stop_event
        self._last_error: Optional[OSError] = None
        self._recv_end = 0.0
        self._send_end = 0.0
        self._recv_automatic = True
        self._send_automatic = True
        self._recv_timeout = DEFAULT_TIMEOUT_SECONDS
        self._send_timeout = DEFAULT_TIMEOUT_SECONDS
        if sock is not None:
            self._sock = sock
            self._setup()

    def _setup(self) -> None:
        assert self._sock is not None
        try:
            self._sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        except OSError:
            pass
        self._sock.setblocking(False)
        debug_msg("BaseSock - socket initialized")

    # Properties and context management

    @property
    def last_error(self) -> Optional[OSError]:
        """The error from the most recent failed operation, or None."""
        return self._last_error

    @property
    def connected(self) -> bool:
        """True while an underlying socket is held."""
        return self._sock is not None

    @property
    def recv_timeout_seconds(self) -> int:
        return self._recv_timeout

    @property
    def send_timeout_seconds(self) -> int:
        return self._send_timeout

    def __enter__(self) -> BaseSock:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.disconnect()

    def tls_version(self) -> int:
        return 0

    # Connection

    def connect(self, host_name: str, port: int) -> None:
        """Connect to host_name:port within the send timeout."""
        self.disconnect()
        try:
            sock = socket.create_connection((host_name, port), timeout=self._send_timeout)
        except OSError as exc:
            self._last_error = exc
            debug_msg(f"**** Error {exc} connecting to \"{host_name}\" ({port})")
            raise
        self._sock = sock
        self._last_error = None
        self._setup()

    def disconnect(self, close_underlying_connection: bool = True) -> None:
        self._last_error = None
        if self._sock is None or not close_underlying_connection:
            return
        sock, self._sock = self._sock, None
        try:
            sock.close()
            debug_msg("Disconnect succeeded")
        except OSError as exc:
            self._last_error = exc
            debug_msg(f"Disconnect failed: {exc}")
            raise

    # Timers

    def _start_recv_timer_internal(self) -> None:
        self._recv_end = time.monotonic() + self._recv_timeout

    def _start_send_timer_internal(self) -> None:
        self._send_end = time.monotonic() + self._send_timeout

    def start_recv_timer(self) -> None:
        self._recv_automatic = False
        self._start_recv_timer_internal()

    def start_send_timer(self) -> None:
        self._send_automatic = False
        self._start_send_timer_internal()

    def set_recv_timeout_seconds(self, seconds: Optional[int], automatic: bool = True) -> None:
        seconds = _normalize_timeout(seconds)
        if seconds > 0:
            # The running timer is untouched: a receive may be in progress.
            self._recv_timeout = seconds
        self._recv_automatic = automatic

    def set_send_timeout_seconds(self, seconds: Optional[int], automatic: bool = True) -> None:
        seconds = _normalize_timeout(seconds)
        if seconds > 0:
            self._send_timeout = seconds
        self._send_automatic = automatic

    # I/O

    def _require(self) -> socket.socket:
        if self._sock is None:
            exc = OSError(errno.ENOTCONN, "socket is not connected")
            self._last_error = exc
            raise exc
        return self._sock

    @staticmethod
    def _check_deadline(end: float) -> float:
        remaining = end - time.monotonic()
        if remaining <= 0:
            raise TimeoutError(errno.ETIMEDOUT, "operation timed out")
        return remaining

    def _wait(self, sock: socket.socket, event: int, end: float) -> None:
        with selectors.DefaultSelector() as selector:
            selector.register(sock, event)
            while True:
                remaining = self._check_deadline(end)
                if self._stop_event is not None and self._stop_event.is_set():
                    raise InterruptedError(errno.EINTR, "stop requested")
                if selector.select(min(remaining, _POLL_SECONDS)):
                    return

    def recv_partial(self, size: int) -> bytes:
        """Receive up to size bytes; b'' means the peer closed the connection."""
        sock = self._require()
        try:
            self._check_deadline(self._recv_end)
            while True:
                try:
                    data = sock.recv(size)
                    break
                except BlockingIOError:
                    self._wait(sock, selectors.EVENT_READ, self._recv_end)
        except OSError as exc:
            self._last_error = exc
            raise
        self._last_error = None
        return data

    def recv(self, size: int, min_len: int = 1) -> bytes:
        """Receive at most size bytes, continuing until at least min_len arrive.

        Returns fewer than min_len bytes only if the peer closes the connection.
        """
        if min_len > size:
            raise ValueError("min_len must not exceed size")
        if self._recv_automatic:
            self._start_recv_timer_internal()
        received = bytearray()
        while len(received) < min_len:
            chunk = self.recv_partial(size - len(received))
            if not chunk:
                break
            received += chunk
        return bytes(received)

    def send_partial(self, data: bytes) -> int:
        """Send some of data and return how many bytes went."""
        debug_msg(f"BaseSock.send_partial, Len = {len(data)}")
        sock = self._require()
        try:
            self._check_deadline(self._send_end)
            while True:
                try:
                    sent = sock.send(data)
                    break
                except BlockingIOError:
                    self._wait(sock, selectors.EVENT_WRITE, self._send_end)
        except OSError as exc:
            self._last_error = exc
            raise
        self._last_error = None
        return sent

    def send(self, data: bytes) -> int:
        """Send all of data before the send timer runs out."""
        if self._send_automatic:
            self._start_send_timer_internal()
        view = memoryview(bytes(data))
        total = 0
        while total < len(view):
            sent = self.send_partial(view[total:])
            if sent == 0:
                if total == 0:
                    exc = ConnectionError(errno.EPIPE, "connection closed")
                    self._last_error = exc
                    raise exc
                break
            total += sent
        return total