"""
Link-layer capture of ICMP traffic.

The capture handle is a scapy level-2 listening socket with a BPF filter
compiled at open time, so a rejected filter surfaces as a setup error.
"""

import logging
import select
import threading
from typing import Iterator, Optional

from scapy.config import conf
from scapy.error import Scapy_Exception
from scapy.packet import Packet

from pingmux import logger_main
from pingmux.errors import PingerSetupError

logger = logging.getLogger(f"{logger_main}.{__name__.split('.')[-1]}")

DEFAULT_FILTER = "less 48 and icmp"


class PacketCapture:
    """
    Lazy, unbounded source of captured frames.

    `frames()` can be iterated once; it ends after `close()`.
    """

    def __init__(
        self,
        iface: Optional[str] = None,
        bpf_filter: str = DEFAULT_FILTER,
        poll_interval: float = 0.2,
    ):
        self.iface = iface
        self.bpf_filter = bpf_filter
        self.poll_interval = poll_interval
        self.sock = None
        self._closed = threading.Event()

    def open(self) -> None:
        """
        Open the capture handle and install the filter.

        Raises:
            PingerSetupError: If the handle cannot be opened or the filter is rejected.
        """
        try:
            self.sock = conf.L2listen(iface=self.iface, filter=self.bpf_filter)
        except (Scapy_Exception, OSError) as e:
            raise PingerSetupError(f"Failed to open capture handle: {e}") from e
        self._closed.clear()
        logger.info(
            f"Capturing on {self.iface or 'all interfaces'} with filter {self.bpf_filter!r}"
        )

    def frames(self) -> Iterator[Packet]:
        """
        Yield captured frames until the capture is closed.

        Yields:
            Packet: The next captured frame, with its capture time in `time`.
        """
        while not self._closed.is_set():
            sock = self.sock
            if sock is None:
                return
            try:
                ready, _, _ = select.select([sock], [], [], self.poll_interval)
                if not ready:
                    continue
                frame = sock.recv()
            except (OSError, ValueError):
                if self._closed.is_set():
                    return
                raise
            if frame is not None:
                yield frame

    def close(self) -> None:
        self._closed.set()
        if self.sock is None:
            return
        sock, self.sock = self.sock, None
        try:
            sock.close()
        except OSError as e:
            logger.warning(f"Error closing capture handle: {str(e)}")
        logger.debug("Capture handle closed")
