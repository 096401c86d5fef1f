import random
import threading
from typing import Optional

MAX_IDENTIFIER = 0xFFFF


class IdentifierAllocator:
    """
    Process-wide source of ICMP identifiers.

    The counter starts at a random point of the 16-bit space and wraps around.
    Identifiers still held by pending calls are not checked, so more than
    MAX_IDENTIFIER simultaneous calls can share an identifier.
    """

    def __init__(self, seed: Optional[int] = None):
        self._lock = threading.Lock()
        if seed is None:
            seed = random.randint(0, MAX_IDENTIFIER - 1)
        self._counter = seed

    def next(self) -> int:
        """
        Issue the next identifier.

        Returns:
            int: Identifier in the range 1..0xFFFF.
        """
        with self._lock:
            if self._counter >= MAX_IDENTIFIER:
                self._counter = 0
            self._counter += 1
            return self._counter
