# Manual check client, raw bytes out and the same bytes expected back

import asyncio
import sys
from typing import List, Optional

class EchoClient:
    def __init__(self, host: str, port: int, timeout: float = 5.0):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.reader: Optional[asyncio.StreamReader] = None
        self.writer: Optional[asyncio.StreamWriter] = None

    async def connect(self):
        print(f"[*] Connecting to {self.host}:{self.port}...")
        self.reader, self.writer = await asyncio.wait_for(
            asyncio.open_connection(self.host, self.port),
            timeout=self.timeout
        )
        print("[✓] Connected")

    async def echo(self, payload: bytes) -> bytes:
        """Send payload and wait for the same number of bytes to come back"""
        self.writer.write(payload)
        await self.writer.drain()

        if not payload:
            return b""

        return await asyncio.wait_for(self.reader.readexactly(len(payload)), timeout=self.timeout)

    async def input_loop(self):
        loop = asyncio.get_running_loop()
        while True:
            text = await loop.run_in_executor(None, input, ">>> ")
            if text in ("/quit", "/q"):
                break

            if not text:
                continue

            reply = await self.echo(text.encode())
            print(f"[<] {reply.decode(errors='replace')}")

    async def run(self, messages: List[str]) -> bool:
        """Echo each message, or read lines interactively when none are given"""
        try:
            await self.connect()

            if not messages:
                await self.input_loop()
                return True

            ok = True
            for text in messages:
                payload = text.encode()
                reply = await self.echo(payload)
                print(f"[<] {reply.decode(errors='replace')}")

                if reply != payload:
                    print(f"[!] Echo mismatch: sent {len(payload)} bytes, got {reply!r}")
                    ok = False
            return ok

        except ConnectionRefusedError:
            print("[!] Connection refused - is the server running?")
            return False

        except asyncio.IncompleteReadError:
            print("[!] Server closed the connection")
            return False

        except asyncio.TimeoutError:
            print("[!] Timed out waiting for the server")
            return False

        finally:
            await self.close()

    async def close(self):
        if self.writer:
            self.writer.close()
            try:
                await self.writer.wait_closed()

            except (ConnectionError, OSError):
                pass
            self.writer = None
        print("[*] Client cleanup complete")

async def _main(argv: List[str]) -> int:
    if len(argv) < 2:
        print("Usage: hivecho-client HOST PORT [MESSAGE...]")
        return 1

    host = argv[0]
    try:
        port = int(argv[1])
    except ValueError:
        print(f"[!] Invalid port: {argv[1]!r}")
        print("Usage: hivecho-client HOST PORT [MESSAGE...]")
        return 1

    client = EchoClient(host, port)
    return 0 if await client.run(argv[2:]) else 1

def main():
    try:
        code = asyncio.run(_main(sys.argv[1:]))

    except KeyboardInterrupt:
        print("\n[*] Exiting...")
        code = 0
    sys.exit(code)

if __name__ == "__main__":
    main()
