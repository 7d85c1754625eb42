from datetime import timedelta

from .errors import ReactorError

class ConnectionHandler:
    """
    Application side of a Connection, one method per reactor event

    Every method borrows the connection for the duration of the call only.
    The defaults do nothing, so subclasses override what they care about.
    """
    def on_accept(self, connection, host: str, port: int) -> None:
        pass

    def on_connect(self, connection, host: str, port: int) -> None:
        pass

    def on_send(self, connection, buffer: bytes, written: int) -> None:
        pass

    def on_recv(self, connection, buffer: bytearray) -> None:
        pass

    def on_timer(self, connection, delta: timedelta) -> None:
        pass

    def on_error(self, connection, error: ReactorError) -> None:
        pass

class AcceptorHandler:
    """Application side of an Acceptor"""
    def on_accept(self, acceptor, connection, host: str, port: int) -> bool:
        """Gate for a freshly accepted connection, False closes it unseen"""
        return True

    def on_timer(self, acceptor, delta: timedelta) -> None:
        pass

    def on_error(self, acceptor, error: ReactorError) -> None:
        pass
