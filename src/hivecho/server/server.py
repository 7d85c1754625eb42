import sys
from typing import Optional

from ..reactor.acceptor import Acceptor
from ..reactor.connection import Connection
from ..reactor.errors import AddressError, BindError
from ..reactor.hive import Hive
from ..utils.config import HivechoSettings
from ..utils.console import EventConsole
from ..utils.logger import get_logger, set_level
from ..utils.terminal import KeyWatcher
from .echo import EchoAcceptorHandler, EchoConnectionHandler

logger = get_logger("EchoServer")

class EchoServer:
    """Keypress-terminated TCP echo service driven by a Hive"""
    def __init__(self, config: HivechoSettings, console: Optional[EventConsole] = None, hive: Optional[Hive] = None):
        self.config = config
        self.host = self.config.get("host")
        self.port = self.config.get("port")
        self.backlog = int(self.config.get("backlog", 5))
        self.poll_interval = float(self.config.get("poll_interval", 1.0))
        self.timer_interval = self.config.get("timer_interval")
        self.receive_buffer_size = int(self.config.get("receive_buffer_size", 4096))

        self.console = console or EventConsole()
        self.hive = hive or Hive()
        self.connection_handler = EchoConnectionHandler(self.console)
        self.acceptor = Acceptor(
            self.hive,
            EchoAcceptorHandler(
                self.console,
                connection_factory=self.new_connection,
                accept_continuously=bool(self.config.get("accept_continuously", False)),
                max_connections=self.config.get("max_connections"),
            ),
            timer_interval=self.timer_interval,
        )

    def new_connection(self) -> Connection:
        return Connection(
            self.hive,
            self.connection_handler,
            receive_buffer_size=self.receive_buffer_size,
            timer_interval=self.timer_interval,
        )

    def start(self):
        """Bind and offer the first connection, BindError/AddressError propagate"""
        self.acceptor.listen(self.host, self.port, backlog=self.backlog)
        self.acceptor.accept(self.new_connection())

        logger.info(f"Server listening on {self.acceptor.address}")
        self.console.event("*", f"Server listening on {self.acceptor.address}")

    def serve(self, watcher: KeyWatcher):
        """Poll the hive until a key is pressed or the hive is stopped"""
        self.console.event("*", "Server ready! Press any key to stop")
        while not self.hive.stopped and not watcher.key_pressed():
            self.hive.poll(self.poll_interval)

    def stop(self):
        """Cleanup on shutdown"""
        if self.hive.stopped:
            return

        self.console.event("*", "Shutting down...")
        self.hive.stop()
        self.console.event("✓", "Shutdown complete")


def main():
    config = HivechoSettings()
    set_level(config.get("log_level", "INFO"))
    server = EchoServer(config)

    try:
        server.start()
    except (AddressError, BindError) as e:
        logger.error(f"Startup failed: {e}")
        server.console.event("!", f"Cannot start: {e}")
        server.stop()
        sys.exit(1)

    try:
        with KeyWatcher() as watcher:
            server.serve(watcher)
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        server.stop()

    sys.exit(0)
