import asyncio
from collections import deque
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any, Deque, Optional

from .registry import Registry
from ..utils.logger import get_logger

logger = get_logger("Hive")

# I/O callback, future wakeup, task step
_SETTLE_PASSES = 3

class EventKind(Enum):
    ACCEPT = "accept"
    CONNECT = "connect"
    SEND = "send"
    RECV = "recv"
    TIMER = "timer"
    ERROR = "error"

@dataclass
class Completion:
    """One finished operation waiting to be dispatched to its owner"""
    target: Any
    kind: EventKind
    payload: Any = None

class Hive:
    """
    Poll-driven reactor on top of a private asyncio event loop

    Asynchronous operations run as tasks on the loop and only queue completions.
    Completions are handed to their Acceptor/Connection by poll(), one at a time,
    outside of the running loop, so handler code never overlaps.
    """
    def __init__(self):
        self.loop = asyncio.new_event_loop()
        self.registry = Registry()

        self._completions: Deque[Completion] = deque()
        self._wakeup: Optional[asyncio.Future] = None
        self._stopped = False
        self._dispatching = False

        logger.info("Hive created")

    @property
    def stopped(self) -> bool:
        return self._stopped

    def spawn(self, coro, name: Optional[str] = None) -> asyncio.Task:
        """Start an asynchronous operation on the loop"""
        return self.loop.create_task(coro, name=name)

    def cancel(self, *tasks):
        """Cancel tasks and let the loop unwind them before sockets get closed"""
        pending = [t for t in tasks if t is not None and not t.done()]
        for task in pending:
            task.cancel()

        if pending and not self.loop.is_running() and not self.loop.is_closed():
            self.loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))

    def post(self, target, kind: EventKind, payload=None):
        """Queue a completion for the next poll()"""
        if self._stopped:
            return

        self._completions.append(Completion(target, kind, payload))
        if self._wakeup is not None and not self._wakeup.done():
            self._wakeup.set_result(None)

    async def ticker(self, target, interval: float):
        """Post a TIMER completion every interval seconds with the measured elapsed time"""
        last = self.loop.time()
        while True:
            await asyncio.sleep(interval)
            now = self.loop.time()
            self.post(target, EventKind.TIMER, timedelta(seconds=max(0.0, now - last)))
            last = now

    async def _settle(self, timeout: float):
        for _ in range(_SETTLE_PASSES):
            await asyncio.sleep(0)

        if self._completions or timeout <= 0:
            return

        self._wakeup = self.loop.create_future()
        try:
            await asyncio.wait_for(self._wakeup, timeout)
        except asyncio.TimeoutError:
            pass
        finally:
            self._wakeup = None

    def poll(self, timeout: float = 0.0) -> int:
        """
        Run one bounded reactor step

        Args:
            timeout: Max seconds to wait for the first completion when none is ready

        Returns:
            Number of completions dispatched, 0 when nothing was ready
        """
        if self._stopped:
            return 0

        if self._dispatching:
            raise RuntimeError("Hive.poll() called from inside a completion handler")

        self.loop.run_until_complete(self._settle(timeout))
        return self._dispatch()

    def run(self, interval: float = 1.0):
        """Poll until stop() is called"""
        while not self._stopped:
            self.poll(interval)

    def _dispatch(self) -> int:
        batch = list(self._completions)
        self._completions.clear()

        dispatched = 0
        self._dispatching = True
        try:
            for index, completion in enumerate(batch):
                if self._stopped:
                    for leftover in batch[index:]:
                        self._discard(leftover)
                    break

                if completion.target.closed:
                    logger.debug(f"Dropping {completion.kind.value} for closed {completion.target!r}")
                    self._discard(completion)
                    continue

                self.deliver(completion)
                dispatched += 1
        finally:
            self._dispatching = False

        return dispatched

    @staticmethod
    def _discard(completion: Completion):
        """Release what an undelivered completion still holds"""
        if completion.kind is EventKind.ACCEPT:
            completion.payload[0].close()

    def deliver(self, completion: Completion):
        """Hand one completion to its owner, turning handler failures into error callbacks"""
        target = completion.target
        try:
            target.complete(completion)

        except MemoryError:
            raise

        except Exception as e:
            logger.exception(f"{completion.kind.value} handler of {target!r} raised")
            target.fail(e)

    def stop(self):
        """Close every registered entity and the loop, in-flight operations are abandoned"""
        if self._stopped:
            return

        logger.info("Stopping hive...")
        self._stopped = True
        for completion in self._completions:
            self._discard(completion)
        self._completions.clear()

        for entity in list(self.registry.entities.values()):
            entity.close()

        leftover = [t for t in asyncio.all_tasks(self.loop) if not t.done()]
        self.cancel(*leftover)
        self.loop.close()

        logger.info("Hive stopped")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
