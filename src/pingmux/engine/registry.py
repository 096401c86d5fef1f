import threading
from typing import Dict, List

from .models import Request, RoutingKey


class CallRegistry:
    """Calls currently between registration and reduction."""

    def __init__(self):
        self._lock = threading.Lock()
        self._pending: Dict[RoutingKey, Request] = {}

    def add(self, key: RoutingKey, request: Request) -> None:
        with self._lock:
            self._pending[key] = request

    def remove(self, key: RoutingKey) -> None:
        with self._lock:
            self._pending.pop(key, None)

    def count(self) -> int:
        with self._lock:
            return len(self._pending)

    def pending(self) -> List[Request]:
        with self._lock:
            return list(self._pending.values())

    def __contains__(self, key: RoutingKey) -> bool:
        with self._lock:
            return key in self._pending
