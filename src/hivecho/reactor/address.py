from dataclasses import dataclass

from .errors import AddressError

@dataclass(frozen=True)
class Address:
    """Host and port of one socket endpoint, immutable once bound"""
    host: str
    port: int

    @classmethod
    def parse(cls, host, port) -> "Address":
        """Validate a host/port pair, raising AddressError when malformed"""
        if not isinstance(host, str) or not host.strip() or any(c.isspace() for c in host):
            raise AddressError(f"Malformed host: {host!r}")

        if len(host) > 253:
            raise AddressError(f"Host name too long: {host[:32]}...")

        if ":" not in host:
            labels = host[:-1].split(".") if host.endswith(".") else host.split(".")
            if any(not label or len(label) > 63 for label in labels):
                raise AddressError(f"Malformed host name: {host!r}")

        if isinstance(port, bool) or not isinstance(port, int):
            try:
                port = int(str(port), 10)
            except ValueError:
                raise AddressError(f"Malformed port: {port!r}") from None

        if not 0 <= port <= 65535:
            raise AddressError(f"Port out of range: {port}")

        return cls(host, port)

    @classmethod
    def from_sockaddr(cls, sockaddr) -> "Address":
        return cls(sockaddr[0], sockaddr[1])

    def __str__(self):
        return f"{self.host}:{self.port}"
