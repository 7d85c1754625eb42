from datetime import timedelta
from threading import Lock
from typing import List, Optional

from rich.console import Console

def hex_dump(buffer, width: int = 16) -> List[str]:
    """
    Format bytes as rows of two-digit lowercase hex

    Args:
        buffer: bytes-like object to dump
        width: bytes per row

    Returns:
        One string per row, e.g. ["68 65 6c 6c 6f"]
    """
    data = bytes(buffer)
    return [
        " ".join(f"{b:02x}" for b in data[i:i + width])
        for i in range(0, len(data), width)
    ]

class EventConsole:
    """Serializes tagged event lines onto a rich Console, one statement per lock hold"""
    def __init__(self, console: Optional[Console] = None, width: int = 16):
        self.console = console or Console(highlight=False)
        self.width = width
        self._lock = Lock()

    def event(self, tag: str, text) -> None:
        with self._lock:
            self.console.print(f"[{tag}] {text}", markup=False, highlight=False, emoji=False)

    def traffic(self, tag: str, buffer, count: Optional[int] = None) -> None:
        """Byte count line followed by the hex dump, printed as one unit"""
        if count is None:
            count = len(buffer)

        lines = [f"[{tag}] {count} bytes"] + hex_dump(buffer, self.width)
        with self._lock:
            self.console.print("\n".join(lines), markup=False, highlight=False, emoji=False)

def format_duration(delta: timedelta) -> str:
    """HH:MM:SS.ffffff, hours keep growing past a day"""
    micros = max(0, (delta.days * 86400 + delta.seconds) * 1_000_000 + delta.microseconds)
    seconds, micros = divmod(micros, 1_000_000)
    minutes, seconds = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}.{micros:06d}"
