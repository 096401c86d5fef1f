import logging
import threading
from typing import Callable, Iterable, NamedTuple, Optional

from scapy.layers.inet import ICMP, IP
from scapy.packet import Packet

from pingmux import logger_main
from pingmux.transport.icmp_packet import ICMP_ECHO_REPLY
from .models import Observation, now_ms
from .router import ReplyRouter

logger = logging.getLogger(f"{logger_main}.{__name__.split('.')[-1]}")


class EchoReply(NamedTuple):
    identifier: int
    sequence: int
    code: int
    source: str
    received_at: float


def parse_echo_reply(frame: Packet) -> Optional[EchoReply]:
    """
    Extract the fields of an IPv4 ICMP echo reply from a captured frame.

    Args:
        frame (Packet): Captured frame at any layer above or at IPv4.

    Returns:
        Optional[EchoReply]: The reply fields, or None if the frame is not an
        IPv4 echo reply. `received_at` is the capture time in milliseconds.
    """
    if not frame.haslayer(IP) or not frame.haslayer(ICMP):
        return None

    icmp = frame[ICMP]
    if icmp.type != ICMP_ECHO_REPLY or icmp.code != 0:
        return None

    captured = getattr(frame, "time", None)
    received_at = float(captured) * 1000 if captured is not None else now_ms()
    return EchoReply(
        identifier=icmp.id,
        sequence=icmp.seq,
        code=icmp.code,
        source=frame[IP].src,
        received_at=received_at,
    )


class CaptureDispatcher:
    """
    Single consumer of captured frames for the lifetime of an engine.

    Every echo reply is routed by (identifier, source address); anything that
    does not parse or has no registered call is dropped without a trace.
    """

    def __init__(
        self,
        router: ReplyRouter,
        on_error: Optional[Callable[[Exception], None]] = None,
    ):
        """
        Initialize the dispatcher.

        Args:
            router (ReplyRouter): Where replies are routed to.
            on_error (Optional[Callable[[Exception], None]]): Called from the
                capture thread if the frame source fails.
        """
        self.router = router
        self.on_error = on_error
        self.routed = 0
        self.error: Optional[Exception] = None
        self._thread: Optional[threading.Thread] = None

    def dispatch(self, frame: Packet) -> bool:
        """
        Route one frame.

        Returns:
            bool: True if the frame reached a pending call.
        """
        reply = parse_echo_reply(frame)
        if reply is None:
            return False

        observation = Observation(
            identifier=reply.identifier,
            sequence=reply.sequence,
            code=reply.code,
            received_at=reply.received_at,
        )
        if not self.router.route((reply.identifier, reply.source), observation):
            return False

        self.routed += 1
        return True

    def serve(self, frames: Iterable[Packet]) -> None:
        """
        Dispatch frames until the source is exhausted.

        A failing frame source ends the loop; the error is logged, kept in
        `error` and handed to `on_error`.
        """
        logger.debug("Capture dispatcher started")
        try:
            for frame in frames:
                self.dispatch(frame)
        except Exception as e:
            self.error = e
            logger.error(f"Capture dispatcher failed: {e}")
            if self.on_error is not None:
                self.on_error(e)
            return
        logger.debug(f"Capture dispatcher stopped after routing {self.routed} replies")

    def start(self, frames: Iterable[Packet]) -> threading.Thread:
        """Run `serve` on a dedicated daemon thread."""
        self.error = None
        self._thread = threading.Thread(
            target=self.serve, args=(frames,), name="pingmux-capture", daemon=True
        )
        self._thread.start()
        return self._thread

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("Capture dispatcher did not stop in time")
            self._thread = None
