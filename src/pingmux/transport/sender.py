import logging
import socket
from typing import Optional

from pingmux import logger_main
from pingmux.errors import PingerSetupError
from pingmux.transport.icmp_packet import parse_echo_header

logger = logging.getLogger(f"{logger_main}.{__name__.split('.')[-1]}")


class IcmpSender:
    """
    Raw ICMP socket used by every call of an engine to send echo requests.

    Sends are blocking and short; the socket is shared by all calls.
    """

    def __init__(
        self,
        listen_addr: str = "0.0.0.0",
        send_buff_size: int = 65536,
        ttl: int = 64,
    ):
        self.listen_addr = listen_addr
        self.send_buff_size = send_buff_size
        self.ttl = ttl
        self.sock: Optional[socket.socket] = None

    def open(self) -> None:
        """
        Create and bind the raw socket.

        Raises:
            PingerSetupError: If the socket cannot be created or bound.
        """
        try:
            self.sock = socket.socket(
                socket.AF_INET, socket.SOCK_RAW, socket.IPPROTO_ICMP
            )
            self.sock.setblocking(True)
            self.sock.setsockopt(socket.SOL_IP, socket.IP_TTL, self.ttl)
            self.sock.setsockopt(
                socket.SOL_SOCKET, socket.SO_SNDBUF, self.send_buff_size
            )
            self.sock.bind((self.listen_addr, 0))
            logger.info(f"ICMP send socket bound to {self.listen_addr}")
        except OSError as e:
            self.close()
            raise PingerSetupError(f"Failed to create ICMP socket: {e}") from e

    def send(self, packet: bytes, address: str) -> bool:
        """
        Send an encoded ICMP message to `address`.

        Returns:
            bool: False if the send failed; the failure is logged, not raised.
        """
        if self.sock is None:
            logger.warning(f"Send to {address} skipped: socket is closed")
            return False
        try:
            self.sock.sendto(packet, (address, 0))
            return True
        except OSError as e:
            header = parse_echo_header(packet)
            logger.warning(
                f"Failed to send echo request id={header.identifier} "
                f"seq={header.sequence} to {address}: {e}"
            )
            return False

    def close(self) -> None:
        if self.sock is None:
            return
        sock, self.sock = self.sock, None
        try:
            sock.close()
        except OSError as e:
            logger.warning(f"Error during socket cleanup: {str(e)}")
        logger.debug("ICMP send socket closed")
