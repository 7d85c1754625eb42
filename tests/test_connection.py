import os
import socket
import struct
from unittest.mock import AsyncMock, patch

import pytest

from hivecho.reactor.acceptor import Acceptor
from hivecho.reactor.connection import Connection, ConnectionState
from hivecho.reactor.errors import AddressError, ConnectionIOError, ErrorKind


@pytest.mark.parametrize("payload", [b"hello", bytes(range(17)), os.urandom(256 * 1024)])
def test_echo_returns_identical_bytes(hive, pump, listener, client, exchange, recorder, payload):
    rec = recorder()
    acceptor, conn = listener(rec)
    sock = client(acceptor.address)

    pump(hive, lambda: conn.state is ConnectionState.OPEN)
    reply = exchange(hive, sock, payload)

    assert reply == payload
    assert bytes(rec.received) == payload
    assert b"".join(rec.sent) == payload


def test_recv_while_pending_is_ignored(hive, pump, listener, client, recorder):
    rec = recorder(echo=False)
    acceptor, conn = listener(rec)
    sock = client(acceptor.address)

    pump(hive, lambda: "accept" in rec.events)
    assert conn.receive_pending
    assert conn.recv() is False

    sock.sendall(b"abc")
    pump(hive, lambda: "recv" in rec.events)
    for _ in range(5):
        hive.poll(0.01)

    assert rec.events.count("recv") == 1
    assert bytes(rec.received) == b"abc"
    assert conn.receive_pending is False


def test_sends_complete_in_submission_order(hive, pump, listener, client, recorder):
    rec = recorder(echo=False)
    acceptor, conn = listener(rec)
    sock = client(acceptor.address)
    pump(hive, lambda: conn.state is ConnectionState.OPEN)

    assert conn.send(b"one")
    assert conn.send(b"two")
    assert conn.send(bytearray(b"three"))
    pump(hive, lambda: len(rec.sent) == 3)

    assert rec.sent == [b"one", b"two", b"three"]

    got = b""
    while len(got) < 11:
        got += sock.recv(64)
    assert got == b"onetwothree"


def test_send_copies_the_buffer(hive, pump, listener, client, recorder):
    rec = recorder(echo=False)
    acceptor, conn = listener(rec)
    sock = client(acceptor.address)
    pump(hive, lambda: conn.state is ConnectionState.OPEN)

    buffer = bytearray(b"data")
    conn.send(buffer)
    buffer[:] = b"XXXX"
    pump(hive, lambda: rec.sent)

    assert sock.recv(16) == b"data"


def test_peer_reset_reports_error_and_closes(hive, pump, listener, client, recorder):
    rec = recorder()
    acceptor, conn = listener(rec)
    sock = client(acceptor.address)
    pump(hive, lambda: "accept" in rec.events)

    # linger 0 makes close() send RST
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_LINGER, struct.pack("ii", 1, 0))
    sock.close()

    pump(hive, lambda: conn.closed)

    assert rec.events[-1] in ("error", "recv")
    if rec.errors:
        assert isinstance(rec.errors[0], ConnectionIOError)
        assert rec.errors[0].kind in (ErrorKind.CONNECTION_RESET, ErrorKind.CLOSED)

    assert conn.recv() is False
    assert conn.send(b"late") is False

    seen = list(rec.events)
    for _ in range(5):
        hive.poll(0.01)
    assert rec.events == seen


def test_peer_half_close_delivers_empty_buffer(hive, pump, listener, client, recorder):
    rec = recorder()
    acceptor, conn = listener(rec)
    sock = client(acceptor.address)
    pump(hive, lambda: "accept" in rec.events)

    sock.shutdown(socket.SHUT_WR)
    pump(hive, lambda: conn.closed)

    assert rec.events == ["accept", "recv"]
    assert rec.received == bytearray()
    assert rec.errors == []
    assert sock.recv(16) == b""


def test_outbound_connect_talks_to_acceptor(hive, pump, listener, recorder):
    server_rec = recorder()
    acceptor, server_conn = listener(server_rec)

    client_rec = recorder(echo=False)
    dialer = Connection(hive, client_rec, timer_interval=None)
    assert dialer.connect("127.0.0.1", acceptor.address.port)
    assert dialer.state is ConnectionState.CONNECTING

    pump(hive, lambda: "connect" in client_rec.events)
    assert dialer.peer.port == acceptor.address.port

    dialer.send(b"ping")
    pump(hive, lambda: bytes(client_rec.received) == b"ping")

    assert bytes(server_rec.received) == b"ping"
    assert server_conn.peer.port == dialer.socket.getsockname()[1]


def test_connect_refused_reports_error(hive, pump, recorder):
    probe = socket.socket()
    probe.bind(("127.0.0.1", 0))
    port = probe.getsockname()[1]
    probe.close()

    rec = recorder()
    dialer = Connection(hive, rec, timer_interval=None)
    dialer.connect("127.0.0.1", port)
    pump(hive, lambda: dialer.closed)

    assert rec.events == ["error"]
    assert rec.errors[0].kind is ErrorKind.CONNECTION_REFUSED


def test_disconnect_flushes_queued_sends(hive, pump, listener, client, recorder):
    rec = recorder(echo=False)
    acceptor, conn = listener(rec)
    sock = client(acceptor.address)
    pump(hive, lambda: conn.state is ConnectionState.OPEN)

    conn.send(b"bye")
    conn.disconnect()
    assert conn.state is ConnectionState.CLOSING
    assert conn.send(b"more") is False

    pump(hive, lambda: conn.closed)

    assert rec.sent == [b"bye"]
    assert sock.recv(16) == b"bye"
    assert sock.recv(16) == b""


def test_operations_before_open_are_ignored(hive, recorder):
    conn = Connection(hive, recorder(), timer_interval=None)

    assert conn.recv() is False
    assert conn.send(b"x") is False
    assert conn.state is ConnectionState.UNCONNECTED


def test_close_releases_handle(hive):
    conn = Connection(hive, timer_interval=None)
    assert conn.handle in hive.registry

    conn.close()
    conn.close()

    assert conn.closed
    assert conn.handle not in hive.registry


def test_offered_connection_cannot_dial(hive):
    acceptor = Acceptor(hive, timer_interval=None)
    conn = Connection(hive, timer_interval=None)
    conn.connect("127.0.0.1", 9)

    assert acceptor.accept(conn) is False


def test_connect_rejects_overlong_host_label(hive, recorder):
    rec = recorder()
    dialer = Connection(hive, rec, timer_interval=None)

    with pytest.raises(AddressError):
        dialer.connect("a" * 64 + ".example", 4444)

    assert dialer.state is ConnectionState.UNCONNECTED
    assert rec.events == []


def test_resolver_unicode_failure_reaches_error_callback(hive, pump, recorder):
    rec = recorder()
    dialer = Connection(hive, rec, timer_interval=None)

    with patch.object(hive.loop, "getaddrinfo", AsyncMock(side_effect=UnicodeError("label empty or too long"))):
        dialer.connect("example.invalid", 4444)
        pump(hive, lambda: dialer.closed)

    assert rec.events == ["error"]
    assert rec.errors[0].kind is ErrorKind.UNKNOWN
    assert isinstance(rec.errors[0].__cause__, UnicodeError)
