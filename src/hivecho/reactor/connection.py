import socket
from collections import deque
from enum import Enum
from typing import Deque, Optional

from .address import Address
from .errors import ConnectionIOError, ReactorError
from .handlers import ConnectionHandler
from .hive import Completion, EventKind, Hive
from ..utils.logger import get_logger

logger = get_logger("Connection")

class ConnectionState(Enum):
    UNCONNECTED = "unconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"

class Connection:
    """
    One accepted or dialed socket driven by a Hive

    recv() and send() only arm operations, results arrive later through the handler.
    At most one receive is in flight, sends complete in submission order.
    """
    def __init__(
        self,
        hive: Hive,
        handler: Optional[ConnectionHandler] = None,
        receive_buffer_size: int = 4096,
        timer_interval: Optional[float] = 1.0,
    ):
        self.hive = hive
        self.handler = handler or ConnectionHandler()
        self.receive_buffer_size = receive_buffer_size
        self.timer_interval = timer_interval

        self.state = ConnectionState.UNCONNECTED
        self.peer: Optional[Address] = None
        self.socket: Optional[socket.socket] = None
        self.receive_pending = False
        self.send_queue: Deque[bytes] = deque()
        self._sends_in_flight = 0

        self._recv_task = None
        self._send_task = None
        self._connect_task = None
        self._timer_task = None

        self.handle = hive.registry.add(self)

    def __repr__(self):
        return f"<Connection #{self.handle} {self.state.value} {self.peer or '-'}>"

    @property
    def closed(self) -> bool:
        return self.state is ConnectionState.CLOSED

    def attach(self, sock: socket.socket):
        """Adopt a freshly accepted socket, the accept completion opens it"""
        sock.setblocking(False)
        self.socket = sock
        self.state = ConnectionState.CONNECTING

    def connect(self, host: str, port: int) -> bool:
        """Dial out, on_connect fires once the connection is established"""
        if self.state is not ConnectionState.UNCONNECTED:
            logger.warning(f"connect() on {self!r} ignored")
            return False

        address = Address.parse(host, port)
        self.state = ConnectionState.CONNECTING
        self._connect_task = self.hive.spawn(self._connect_op(address), name=f"conn-{self.handle}-connect")
        return True

    async def _connect_op(self, address: Address):
        loop = self.hive.loop
        try:
            infos = await loop.getaddrinfo(address.host, address.port, type=socket.SOCK_STREAM)
            family, sock_type, proto, _, sockaddr = infos[0]

            self.socket = socket.socket(family, sock_type, proto)
            self.socket.setblocking(False)
            await loop.sock_connect(self.socket, sockaddr)
            peer = Address.from_sockaddr(self.socket.getpeername())

        except (OSError, UnicodeError) as e:
            self.hive.post(self, EventKind.ERROR, e)

        else:
            self.hive.post(self, EventKind.CONNECT, peer)

    def recv(self) -> bool:
        """
        Arm exactly one read

        Returns:
            False when the connection is not open or a receive is already pending,
            in which case nothing is armed and the pending receive is untouched
        """
        if self.state is not ConnectionState.OPEN:
            logger.warning(f"recv() on {self!r} ignored")
            return False

        if self.receive_pending:
            logger.warning(f"recv() on {self!r} ignored, a receive is already pending")
            return False

        self.receive_pending = True
        self._recv_task = self.hive.spawn(self._recv_op(), name=f"conn-{self.handle}-recv")
        return True

    async def _recv_op(self):
        try:
            data = await self.hive.loop.sock_recv(self.socket, self.receive_buffer_size)

        except OSError as e:
            self.hive.post(self, EventKind.ERROR, e)

        else:
            self.hive.post(self, EventKind.RECV, data)

    def send(self, buffer) -> bool:
        """Queue a copy of buffer for writing, False when the connection is not open"""
        if self.state is not ConnectionState.OPEN:
            logger.warning(f"send() on {self!r} ignored")
            return False

        self.send_queue.append(bytes(buffer))
        self._sends_in_flight += 1
        if self._send_task is None:
            self._send_task = self.hive.spawn(self._send_op(), name=f"conn-{self.handle}-send")
        return True

    async def _send_op(self):
        loop = self.hive.loop
        try:
            while self.send_queue:
                data = self.send_queue.popleft()
                try:
                    await loop.sock_sendall(self.socket, data)

                except OSError as e:
                    self.hive.post(self, EventKind.ERROR, e)
                    return

                self.hive.post(self, EventKind.SEND, (data, len(data)))
        finally:
            self._send_task = None

    def complete(self, completion: Completion):
        kind = completion.kind

        if kind is EventKind.ACCEPT:
            self._open(completion.payload)
            self.handler.on_accept(self, self.peer.host, self.peer.port)

        elif kind is EventKind.CONNECT:
            self._connect_task = None
            self._open(completion.payload)
            self.handler.on_connect(self, self.peer.host, self.peer.port)

        elif kind is EventKind.RECV:
            self._recv_task = None
            self.receive_pending = False
            buffer = bytearray(completion.payload)

            if buffer:
                self.handler.on_recv(self, buffer)
                return

            logger.info(f"{self!r} closed by peer")
            self.state = ConnectionState.CLOSING
            try:
                self.handler.on_recv(self, buffer)
            finally:
                self._close_when_drained()

        elif kind is EventKind.SEND:
            data, written = completion.payload
            self._sends_in_flight -= 1
            if written != len(data):
                logger.warning(f"Short write on {self!r}: {written} of {len(data)} bytes")

            try:
                self.handler.on_send(self, data, written)
            finally:
                if self.state is ConnectionState.CLOSING:
                    self._close_when_drained()

        elif kind is EventKind.TIMER:
            self.handler.on_timer(self, completion.payload)

        elif kind is EventKind.ERROR:
            self.fail(completion.payload)

    def _open(self, peer: Address):
        self.peer = peer
        self.state = ConnectionState.OPEN

        if self.timer_interval:
            self._timer_task = self.hive.spawn(
                self.hive.ticker(self, self.timer_interval),
                name=f"conn-{self.handle}-timer"
            )

        logger.info(f"{self!r} open")

    def fail(self, exc: BaseException):
        """Report a terminal failure to the handler and close"""
        if self.closed:
            return

        error = exc if isinstance(exc, ReactorError) else ConnectionIOError.from_exception(exc)
        self.state = ConnectionState.CLOSING
        logger.warning(f"{self!r}: {error}")
        try:
            self.handler.on_error(self, error)
        except Exception:
            logger.exception(f"on_error of {self!r} raised")
        finally:
            self.close()

    def _close_when_drained(self):
        if self._sends_in_flight <= 0:
            self.close()

    def disconnect(self):
        """Close once every queued send has completed"""
        if self.state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
            return

        if self.state is not ConnectionState.OPEN:
            self.close()
            return

        self.state = ConnectionState.CLOSING
        self.hive.cancel(self._recv_task)
        self._recv_task = None
        self.receive_pending = False
        self._close_when_drained()

    def close(self):
        """Close immediately, queued sends are dropped and no callback fires afterwards"""
        if self.closed:
            return

        self.state = ConnectionState.CLOSED
        self.receive_pending = False
        self.hive.cancel(self._recv_task, self._send_task, self._connect_task, self._timer_task)
        self._recv_task = None
        self._send_task = None
        self._connect_task = None
        self._timer_task = None

        self.send_queue.clear()
        self._sends_in_flight = 0

        if self.socket is not None:
            self.socket.close()

        self.hive.registry.remove(self.handle)
        logger.info(f"Connection #{self.handle} closed")
