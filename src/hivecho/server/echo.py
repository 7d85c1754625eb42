from datetime import timedelta
from typing import Callable, Optional

from ..reactor.connection import Connection, ConnectionState
from ..reactor.errors import ReactorError
from ..reactor.handlers import AcceptorHandler, ConnectionHandler
from ..utils.console import EventConsole, format_duration
from ..utils.logger import get_logger

logger = get_logger("Echo")

class EchoConnectionHandler(ConnectionHandler):
    """Sends every received byte straight back to the peer"""
    def __init__(self, console: EventConsole):
        self.console = console

    def on_accept(self, connection: Connection, host: str, port: int):
        self.console.event("OnAccept", f"{host}:{port}")
        connection.recv()

    def on_connect(self, connection: Connection, host: str, port: int):
        self.console.event("OnConnect", f"{host}:{port}")
        connection.recv()

    def on_send(self, connection: Connection, buffer: bytes, written: int):
        self.console.traffic("OnSend", buffer, written)

    def on_recv(self, connection: Connection, buffer: bytearray):
        self.console.traffic("OnRecv", buffer)
        if not buffer:
            return

        # next read goes in before the echo so a slow write never starves it
        connection.recv()
        connection.send(buffer)

    def on_timer(self, connection: Connection, delta: timedelta):
        self.console.event("OnTimer", format_duration(delta))

    def on_error(self, connection: Connection, error: ReactorError):
        self.console.event("OnError", error)

class EchoAcceptorHandler(AcceptorHandler):
    """Logs acceptor events, caps live connections and optionally keeps accepting"""
    def __init__(
        self,
        console: EventConsole,
        connection_factory: Optional[Callable[[], Connection]] = None,
        accept_continuously: bool = False,
        max_connections: Optional[int] = None,
    ):
        self.console = console
        self.connection_factory = connection_factory
        self.accept_continuously = accept_continuously
        self.max_connections = max_connections

    def on_accept(self, acceptor, connection: Connection, host: str, port: int) -> bool:
        self.console.event("OnAccept", f"{host}:{port}")

        if self.accept_continuously and self.connection_factory is not None:
            acceptor.accept(self.connection_factory())

        if self.max_connections is not None:
            live = sum(
                1 for c in acceptor.hive.registry.connections()
                if c.state in (ConnectionState.OPEN, ConnectionState.CLOSING)
            )
            if live >= self.max_connections:
                logger.warning(f"Too many connections ({live}), rejecting {host}:{port}")
                return False

        return True

    def on_timer(self, acceptor, delta: timedelta):
        self.console.event("OnTimer", format_duration(delta))

    def on_error(self, acceptor, error: ReactorError):
        self.console.event("OnError", error)
