import io
import socket
import time

import pytest
from rich.console import Console

from hivecho.reactor.acceptor import Acceptor
from hivecho.reactor.connection import Connection
from hivecho.reactor.handlers import ConnectionHandler
from hivecho.reactor.hive import Hive
from hivecho.utils.console import EventConsole


class Recorder(ConnectionHandler):
    """Remembers every callback, arms a receive on open and optionally echoes"""
    def __init__(self, echo: bool = True):
        self.echo = echo
        self.events = []
        self.received = bytearray()
        self.sent = []
        self.errors = []
        self.ticks = []

    def on_accept(self, connection, host, port):
        self.events.append("accept")
        connection.recv()

    def on_connect(self, connection, host, port):
        self.events.append("connect")
        connection.recv()

    def on_recv(self, connection, buffer):
        self.events.append("recv")
        self.received += buffer
        if buffer and self.echo:
            connection.recv()
            connection.send(buffer)

    def on_send(self, connection, buffer, written):
        self.events.append("send")
        self.sent.append(bytes(buffer))

    def on_timer(self, connection, delta):
        self.events.append("timer")
        self.ticks.append(delta)

    def on_error(self, connection, error):
        self.events.append("error")
        self.errors.append(error)


@pytest.fixture
def recorder():
    return Recorder


@pytest.fixture
def hive():
    h = Hive()
    yield h
    h.stop()


@pytest.fixture
def pump():
    def _pump(hive, until, timeout=5.0):
        deadline = time.monotonic() + timeout
        while not until():
            if time.monotonic() > deadline:
                raise AssertionError("hive never reached the expected state")
            hive.poll(0.01)
    return _pump


@pytest.fixture
def listener(hive):
    """Acceptor on an ephemeral loopback port with one offered connection"""
    def _listen(conn_handler=None, acceptor_handler=None, timer_interval=None):
        acceptor = Acceptor(hive, acceptor_handler, timer_interval=timer_interval)
        acceptor.listen("127.0.0.1", 0)
        connection = Connection(hive, conn_handler, timer_interval=timer_interval)
        acceptor.accept(connection)
        return acceptor, connection
    return _listen


@pytest.fixture
def client():
    opened = []

    def _connect(address, timeout=5.0):
        sock = socket.create_connection((address.host, address.port), timeout=timeout)
        opened.append(sock)
        return sock

    yield _connect

    for sock in opened:
        sock.close()


@pytest.fixture
def exchange():
    """Push payload through a client socket while pumping the hive, collect the reply"""
    def _exchange(hive, sock, payload, timeout=10.0):
        sock.setblocking(False)
        view = memoryview(payload)
        sent = 0
        got = bytearray()
        deadline = time.monotonic() + timeout

        while len(got) < len(payload):
            if time.monotonic() > deadline:
                raise AssertionError(f"echo stalled at {len(got)} of {len(payload)} bytes")

            if sent < len(payload):
                try:
                    sent += sock.send(view[sent:sent + 65536])
                except BlockingIOError:
                    pass

            try:
                chunk = sock.recv(65536)
                if not chunk:
                    break
                got += chunk
            except BlockingIOError:
                pass

            hive.poll(0.001)

        return bytes(got)
    return _exchange


@pytest.fixture
def output():
    return io.StringIO()


@pytest.fixture
def event_console(output):
    return EventConsole(Console(file=output, width=200, color_system=None))
