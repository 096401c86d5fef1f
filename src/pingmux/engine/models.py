"""
Data model of a ping call.

All durations are expressed in milliseconds and all timestamps in
milliseconds since the epoch, so send and capture timestamps share one clock.
"""

import enum
import time
from dataclasses import dataclass, asdict, replace
from typing import Any, Optional, Tuple

DEFAULT_PING_COUNT = 3
DEFAULT_PING_INTERVAL = 15
DEFAULT_TIMEOUT = 3000

RoutingKey = Tuple[int, str]


def now_ms() -> float:
    """Current wall-clock time in milliseconds with sub-millisecond resolution."""
    return time.time() * 1000


@dataclass(frozen=True)
class Request:
    """
    Caller-supplied description of a ping call.

    Attributes:
        target (str): Host name or IPv4 address to probe.
        count (int): Number of echo requests to send.
        interval (int): Wait time between two sends, in milliseconds.
        timeout (int): Grace period after the last send, in milliseconds.
    """

    target: str
    count: int = DEFAULT_PING_COUNT
    interval: int = DEFAULT_PING_INTERVAL
    timeout: int = DEFAULT_TIMEOUT

    def with_defaults(
        self,
        count: int = DEFAULT_PING_COUNT,
        interval: int = DEFAULT_PING_INTERVAL,
        timeout: int = DEFAULT_TIMEOUT,
    ) -> "Request":
        """
        Return a copy where every non-positive field is replaced by its default.

        Args:
            count (int): Default probe count.
            interval (int): Default interval in milliseconds.
            timeout (int): Default timeout in milliseconds.

        Returns:
            Request: The normalized request.
        """
        return replace(
            self,
            count=self.count if self.count > 0 else count,
            interval=self.interval if self.interval > 0 else interval,
            timeout=self.timeout if self.timeout > 0 else timeout,
        )

    @property
    def deadline(self) -> int:
        """Time budget of the whole call in milliseconds, measured from its start."""
        return self.count * self.interval + self.timeout


@dataclass(frozen=True)
class Probe:
    identifier: int
    sequence: int
    sent_at: float


@dataclass(frozen=True)
class Observation:
    identifier: int
    sequence: int
    code: int
    received_at: float


@dataclass
class Response:
    """
    Outcome of a ping call.

    Attributes:
        target (str): Target as given in the request.
        error (Optional[str]): Resolution failure, None otherwise.
        pkg_loss (float): Fraction of probes without a matching reply.
        rtt_min (float): Minimum round-trip time in milliseconds.
        rtt_mean (float): Mean round-trip time in milliseconds.
        rtt_max (float): Maximum round-trip time in milliseconds.
    """

    target: str
    error: Optional[str] = None
    pkg_loss: float = 0.0
    rtt_min: float = 0.0
    rtt_mean: float = 0.0
    rtt_max: float = 0.0

    @property
    def as_dict(self) -> dict[str, Any]:
        return asdict(self)

    def __str__(self) -> str:
        return (
            f"Target: {self.target}, PkgLoss: {self.pkg_loss}, "
            f"RTTMin: {self.rtt_min:.5f}ms, RTTMean: {self.rtt_mean:.5f}ms, "
            f"RTTMax: {self.rtt_max:.5f}ms"
        )


class CallState(enum.Enum):
    """
    States a call walks through inside its CorrelationWorker.

    Attributes:
        INIT: Worker created, nothing done yet.
        RESOLVING: Target is being resolved to an address.
        SENDING: Echo requests are being paced out.
        COLLECTING: Waiting for replies until complete or deadline.
        REDUCING: Turning matched round-trip times into statistics.
        DONE: Response delivered.
    """

    INIT = 0
    RESOLVING = 1
    SENDING = 2
    COLLECTING = 3
    REDUCING = 4
    DONE = 5
