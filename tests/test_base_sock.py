import errno
import socket
import threading
import time

import pytest

from tlsstream.base_sock import (
    DEFAULT_TIMEOUT_SECONDS,
    INFINITE,
    MAX_TIMEOUT_SECONDS,
    BaseSock,
    SocketStream,
)


@pytest.fixture
def pair():
    left, right = socket.socketpair()
    stream = BaseSock(left)
    yield stream, right
    stream.disconnect()
    right.close()


def test_socket_stream_is_abstract():
    with pytest.raises(TypeError):
        SocketStream()


def test_default_timeouts():
    stream = BaseSock()
    assert stream.recv_timeout_seconds == DEFAULT_TIMEOUT_SECONDS
    assert stream.send_timeout_seconds == DEFAULT_TIMEOUT_SECONDS
    assert stream.tls_version() == 0
    assert not stream.connected


def test_set_timeouts_and_ignore_non_positive():
    stream = BaseSock()
    stream.set_recv_timeout_seconds(5)
    stream.set_send_timeout_seconds(7)
    assert stream.recv_timeout_seconds == 5
    assert stream.send_timeout_seconds == 7
    stream.set_recv_timeout_seconds(0)
    stream.set_send_timeout_seconds(-3)
    assert stream.recv_timeout_seconds == 5
    assert stream.send_timeout_seconds == 7


def test_infinite_timeout_becomes_max():
    stream = BaseSock()
    stream.set_recv_timeout_seconds(INFINITE)
    stream.set_send_timeout_seconds(None)
    assert stream.recv_timeout_seconds == MAX_TIMEOUT_SECONDS
    assert stream.send_timeout_seconds == MAX_TIMEOUT_SECONDS


def test_send_and_recv_round_trip(pair):
    stream, peer = pair
    assert stream.send(b"hello world") == 11
    assert peer.recv(100) == b"hello world"
    peer.sendall(b"reply")
    assert stream.recv(100) == b"reply"


def test_recv_waits_for_min_len(pair):
    stream, peer = pair
    stream.set_recv_timeout_seconds(5)

    def writer():
        peer.sendall(b"abc")
        time.sleep(0.1)
        peer.sendall(b"defg")

    thread = threading.Thread(target=writer)
    thread.start()
    data = stream.recv(100, 7)
    thread.join()
    assert data == b"abcdefg"


def test_recv_respects_size(pair):
    stream, peer = pair
    peer.sendall(b"0123456789")
    assert stream.recv(4) == b"0123"
    assert stream.recv(100) == b"456789"


def test_recv_returns_short_when_peer_closes(pair):
    stream, peer = pair
    peer.sendall(b"xy")
    peer.shutdown(socket.SHUT_WR)
    assert stream.recv(10, 5) == b"xy"


def test_min_len_above_size_rejected(pair):
    stream, _ = pair
    with pytest.raises(ValueError):
        stream.recv(2, 3)


def test_recv_times_out(pair):
    stream, _ = pair
    start = time.monotonic()
    with pytest.raises(TimeoutError):
        stream.recv(10)
    assert time.monotonic() - start < 5
    assert isinstance(stream.last_error, TimeoutError)


def test_manual_timer_not_started_times_out(pair):
    stream, peer = pair
    peer.sendall(b"data")
    stream.set_recv_timeout_seconds(5, automatic=False)
    with pytest.raises(TimeoutError):
        stream.recv(10)
    stream.start_recv_timer()
    assert stream.recv(10) == b"data"


def test_recv_partial_after_start_timer(pair):
    stream, peer = pair
    stream.set_recv_timeout_seconds(5)
    stream.start_recv_timer()
    peer.sendall(b"part")
    assert stream.recv_partial(10) == b"part"


def test_send_partial_after_start_timer(pair):
    stream, peer = pair
    stream.set_send_timeout_seconds(5)
    stream.start_send_timer()
    sent = stream.send_partial(b"abc")
    assert peer.recv(10) == b"abc"[:sent]


def test_stop_event_interrupts_wait():
    left, right = socket.socketpair()
    stop = threading.Event()
    stop.set()
    stream = BaseSock(left, stop)
    try:
        stream.set_recv_timeout_seconds(5)
        with pytest.raises(InterruptedError):
            stream.recv(10)
        right.sendall(b"ready")
        assert stream.recv(10) == b"ready"
    finally:
        stream.disconnect()
        right.close()


def test_disconnect_then_io_fails(pair):
    stream, _ = pair
    stream.disconnect()
    assert not stream.connected
    with pytest.raises(OSError) as info:
        stream.send(b"x")
    assert info.value.errno == errno.ENOTCONN


def test_disconnect_without_closing_keeps_socket(pair):
    stream, _ = pair
    stream.disconnect(close_underlying_connection=False)
    assert stream.connected


def test_context_manager_closes():
    left, right = socket.socketpair()
    try:
        with BaseSock(left) as stream:
            assert stream.connected
        assert not stream.connected
        assert left.fileno() == -1
    finally:
        right.close()


def test_send_empty_returns_zero(pair):
    stream, _ = pair
    assert stream.send(b"") == 0


def test_connect_to_listener():
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.bind(("127.0.0.1", 0))
    server.listen(1)
    port = server.getsockname()[1]
    stream = BaseSock()
    try:
        stream.set_send_timeout_seconds(5)
        stream.connect("127.0.0.1", port)
        conn, _ = server.accept()
        with conn:
            assert stream.connected
            assert stream.send(b"ping") == 4
            assert conn.recv(10) == b"ping"
            conn.sendall(b"pong")
            stream.set_recv_timeout_seconds(5)
            assert stream.recv(10) == b"pong"
    finally:
        stream.disconnect()
        server.close()


def test_connect_refused_raises():
    probe = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    probe.bind(("127.0.0.1", 0))
    port = probe.getsockname()[1]
    probe.close()
    stream = BaseSock()
    stream.set_send_timeout_seconds(2)
    with pytest.raises(OSError):
        stream.connect("127.0.0.1", port)
    assert not stream.connected
    assert isinstance(stream.last_error, OSError)