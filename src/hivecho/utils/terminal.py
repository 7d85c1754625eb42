import os
import select
import sys
from typing import Optional, TextIO

from .logger import get_logger

try:
    import fcntl
    import termios
except ImportError:  # not available on Windows
    fcntl = None
    termios = None

logger = get_logger("KeyWatcher")

class KeyWatcher:
    """
    Detects a single local keypress without blocking

    Puts the terminal in non-canonical, no-echo mode on enter and restores it on exit,
    flushing whatever was typed so it does not land on the shell prompt.
    """
    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream or sys.stdin
        self._saved = None

    def _fileno(self) -> Optional[int]:
        try:
            return self.stream.fileno()
        except (AttributeError, ValueError, OSError):
            return None

    def _is_tty(self) -> bool:
        fd = self._fileno()
        return fd is not None and termios is not None and os.isatty(fd)

    def enable_raw_mode(self):
        if not self._is_tty():
            logger.debug("stdin is not a terminal, leaving mode untouched")
            return

        fd = self._fileno()
        self._saved = termios.tcgetattr(fd)
        attrs = termios.tcgetattr(fd)
        attrs[3] &= ~(termios.ICANON | termios.ECHO)
        termios.tcsetattr(fd, termios.TCSANOW, attrs)

    def disable_raw_mode(self):
        if self._saved is None:
            return

        fd = self._fileno()
        termios.tcsetattr(fd, termios.TCSANOW, self._saved)
        termios.tcflush(fd, termios.TCIFLUSH)
        self._saved = None

    def key_pressed(self) -> bool:
        fd = self._fileno()
        if fd is None:
            return False

        if fcntl is not None and termios is not None:
            # an fd at EOF reports 0 pending bytes, not a key
            buf = bytearray(4)
            try:
                fcntl.ioctl(fd, termios.FIONREAD, buf)
            except OSError:
                return False
            return int.from_bytes(buf, sys.byteorder) > 0

        try:
            readable, _, _ = select.select([fd], [], [], 0)
        except (OSError, ValueError):
            return False
        return bool(readable)

    def __enter__(self):
        self.enable_raw_mode()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disable_raw_mode()
