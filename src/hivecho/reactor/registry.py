from itertools import count
from typing import Dict, List, Optional

from ..utils.logger import get_logger

logger = get_logger("Registry")

class Registry:
    """Owns every live Acceptor and Connection of one Hive, keyed by handle"""
    def __init__(self):
        self.entities: Dict[int, object] = {}
        self._handles = count(1)

        logger.debug("Registry initialized")

    def add(self, entity) -> int:
        """Take ownership of an entity and hand back its handle"""
        handle = next(self._handles)
        self.entities[handle] = entity

        logger.debug(f"{type(entity).__name__} #{handle} registered")
        return handle

    def remove(self, handle: int):
        """Drop a closed entity"""
        entity = self.entities.pop(handle, None)
        if entity is not None:
            logger.debug(f"{type(entity).__name__} #{handle} released")

    def get(self, handle: int) -> Optional[object]:
        return self.entities.get(handle)

    def connections(self) -> List[object]:
        """Live connections, oldest first"""
        from .connection import Connection
        return [e for e in self.entities.values() if isinstance(e, Connection)]

    def acceptors(self) -> List[object]:
        """Live acceptors, oldest first"""
        from .acceptor import Acceptor
        return [e for e in self.entities.values() if isinstance(e, Acceptor)]

    def __contains__(self, handle: int) -> bool:
        return handle in self.entities

    def __len__(self) -> int:
        return len(self.entities)
