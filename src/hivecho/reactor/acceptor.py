import socket
from collections import deque
from enum import Enum
from typing import Deque, Optional

from .address import Address
from .connection import Connection, ConnectionState
from .errors import AcceptError, AddressError, BindError, HivechoError, ReactorError, classify
from .handlers import AcceptorHandler
from .hive import Completion, EventKind, Hive
from ..utils.logger import get_logger

logger = get_logger("Acceptor")

class AcceptorState(Enum):
    IDLE = "idle"
    LISTENING = "listening"
    ACCEPTING = "accepting"
    CLOSED = "closed"

class Acceptor:
    """Listening socket that fills application-supplied Connections, one per inbound connect"""
    def __init__(self, hive: Hive, handler: Optional[AcceptorHandler] = None, timer_interval: Optional[float] = 1.0):
        self.hive = hive
        self.handler = handler or AcceptorHandler()
        self.timer_interval = timer_interval

        self.state = AcceptorState.IDLE
        self.address: Optional[Address] = None
        self.socket: Optional[socket.socket] = None
        self.offers: Deque[Connection] = deque()

        self._accept_task = None
        self._timer_task = None

        self.handle = hive.registry.add(self)

    def __repr__(self):
        return f"<Acceptor #{self.handle} {self.state.value} {self.address or '-'}>"

    @property
    def closed(self) -> bool:
        return self.state is AcceptorState.CLOSED

    def listen(self, host: str, port: int, backlog: int = 5):
        """
        Bind and start listening

        Raises:
            AddressError: host or port is malformed or cannot be resolved
            BindError: address is in use or unavailable
        """
        if self.state is not AcceptorState.IDLE:
            raise HivechoError(f"{self!r} cannot listen again")

        address = Address.parse(host, port)
        try:
            infos = socket.getaddrinfo(
                address.host, address.port,
                type=socket.SOCK_STREAM, flags=socket.AI_PASSIVE
            )
        except (socket.gaierror, UnicodeError) as e:
            raise AddressError(f"Cannot resolve {address}: {e}") from e

        family, sock_type, proto, _, sockaddr = infos[0]
        sock = socket.socket(family, sock_type, proto)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind(sockaddr)
            sock.listen(backlog)

        except OSError as e:
            sock.close()
            raise BindError(f"Cannot bind {address}: {e}", classify(e)) from e

        sock.setblocking(False)
        self.socket = sock
        self.address = Address.from_sockaddr(sock.getsockname())
        self.state = AcceptorState.LISTENING

        if self.timer_interval:
            self._timer_task = self.hive.spawn(
                self.hive.ticker(self, self.timer_interval),
                name=f"acceptor-{self.handle}-timer"
            )

        logger.info(f"Listening on {self.address}")
        self._arm()

    def accept(self, connection: Connection) -> bool:
        """Offer an unconnected Connection as the target of the next inbound connect"""
        if self.closed:
            logger.warning(f"{self!r} is closed, offer of connection #{connection.handle} ignored")
            return False

        if connection.hive is not self.hive:
            raise HivechoError("Connection belongs to a different Hive")

        if connection.state is not ConnectionState.UNCONNECTED or connection in self.offers:
            logger.warning(f"Connection #{connection.handle} is {connection.state.value}, cannot be offered")
            return False

        self.offers.append(connection)
        logger.debug(f"Connection #{connection.handle} offered ({len(self.offers)} waiting)")
        self._arm()
        return True

    def _arm(self):
        while self.offers and self.offers[0].closed:
            self.offers.popleft()

        if self.state is not AcceptorState.LISTENING or not self.offers:
            return

        self.state = AcceptorState.ACCEPTING
        self._accept_task = self.hive.spawn(self._accept_op(), name=f"acceptor-{self.handle}-accept")

    async def _accept_op(self):
        try:
            sock, peer = await self.hive.loop.sock_accept(self.socket)

        except OSError as e:
            self.hive.post(self, EventKind.ERROR, e)

        else:
            self.hive.post(self, EventKind.ACCEPT, (sock, peer))

    def complete(self, completion: Completion):
        if completion.kind is EventKind.ACCEPT:
            self._accepted(*completion.payload)

        elif completion.kind is EventKind.TIMER:
            self.handler.on_timer(self, completion.payload)

        elif completion.kind is EventKind.ERROR:
            self._accept_task = None
            self.state = AcceptorState.LISTENING
            try:
                self.fail(completion.payload)
            finally:
                self._arm()

    def _accepted(self, sock: socket.socket, sockaddr):
        self._accept_task = None
        self.state = AcceptorState.LISTENING

        peer = Address.from_sockaddr(sockaddr)
        while self.offers and self.offers[0].closed:
            self.offers.popleft()

        connection = self.offers.popleft() if self.offers else None
        if connection is None:
            logger.warning(f"Offer for {peer} was withdrawn, dropping it")
            sock.close()
            self._arm()
            return

        keep = False
        try:
            keep = self.handler.on_accept(self, connection, peer.host, peer.port)
        finally:
            if not keep:
                sock.close()
                connection.close()
            self._arm()

        if not keep:
            logger.info(f"Rejected {peer} on {self.address}")
            return

        logger.info(f"Accepted {peer} into connection #{connection.handle}")
        connection.attach(sock)
        self.hive.deliver(Completion(connection, EventKind.ACCEPT, peer))

    def fail(self, exc: BaseException):
        error = exc if isinstance(exc, ReactorError) else AcceptError.from_exception(exc)
        logger.warning(f"{self!r}: {error}")
        try:
            self.handler.on_error(self, error)
        except Exception:
            logger.exception(f"on_error of {self!r} raised")

    def close(self):
        """Stop listening, connections already accepted stay open"""
        if self.closed:
            return

        self.state = AcceptorState.CLOSED
        self.hive.cancel(self._accept_task, self._timer_task)
        self._accept_task = None
        self._timer_task = None

        if self.socket is not None:
            self.socket.close()

        self.offers.clear()
        self.hive.registry.remove(self.handle)
        logger.info(f"Acceptor #{self.handle} closed")
