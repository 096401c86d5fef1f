"""
Concurrent ICMP echo engine.

Probes are paced out per call, replies are captured off the wire by a single
dispatcher and routed back to the call that is waiting for them.

Example usage:
    >>> from pingmux.engine import Pinger, Request
    >>> with Pinger() as pinger:
    ...     print(pinger.call(Request("8.8.8.8", count=5)))
"""

from pingmux.errors import PingerSetupError, PingerStateError, ResolutionError
from .models import Request, Response
from .pinger import Pinger

__all__ = [
    "Pinger",
    "Request",
    "Response",
    "PingerSetupError",
    "PingerStateError",
    "ResolutionError",
]
