import threading
from typing import Dict, Optional, Tuple

from .models import Probe


class ProbeLedger:
    """Send timestamps of in-flight probes keyed by (identifier, sequence)."""

    def __init__(self):
        self._lock = threading.Lock()
        self._probes: Dict[Tuple[int, int], Probe] = {}

    def record(self, probe: Probe) -> None:
        with self._lock:
            self._probes[(probe.identifier, probe.sequence)] = probe

    def pop(self, identifier: int, sequence: int) -> Optional[Probe]:
        """
        Remove and return the probe matching a reply.

        Returns:
            Optional[Probe]: The probe, or None if it was never recorded or was
            already consumed by an earlier reply.
        """
        with self._lock:
            return self._probes.pop((identifier, sequence), None)

    def discard(self, identifier: int, count: int) -> int:
        """
        Drop the unmatched probes left behind by a finished call.

        Returns:
            int: Number of probes dropped.
        """
        with self._lock:
            dropped = 0
            for sequence in range(count):
                if self._probes.pop((identifier, sequence), None) is not None:
                    dropped += 1
            return dropped

    def __len__(self) -> int:
        with self._lock:
            return len(self._probes)
