import queue
import threading
import time
import pytest
from unittest.mock import MagicMock

from scapy.layers.inet import ICMP, IP
from scapy.packet import Raw

from pingmux import get_config_path, load_config
from pingmux.engine.pinger import Pinger
from pingmux.errors import ResolutionError
from pingmux.transport.icmp_packet import parse_echo_header


HOSTS = {
    "host-a": "10.0.0.2",
    "host-b": "10.0.0.3",
    "10.0.0.4": "10.0.0.4",
}


def fake_resolver(target: str) -> str:
    """Resolve from the static HOSTS table."""
    try:
        return HOSTS[target]
    except KeyError:
        raise ResolutionError(f"Failed to resolve {target!r}")


def make_echo_reply(
    source: str, identifier: int, sequence: int, captured_at: float, icmp_type: int = 0
):
    """Build a captured echo reply frame as scapy would deliver it."""
    frame = (
        IP(src=source, dst="10.0.0.1")
        / ICMP(type=icmp_type, code=0, id=identifier, seq=sequence)
        / Raw(b"echo")
    )
    frame.time = captured_at
    return frame


class FakeCapture:
    """Capture collaborator fed by FakeSender instead of the wire."""

    def __init__(self):
        self.queue = queue.Queue()
        self.opened = False
        self._closed = threading.Event()

    def open(self):
        self.opened = True
        self._closed.clear()

    def inject(self, frame):
        self.queue.put(frame)

    def frames(self):
        while not self._closed.is_set():
            try:
                frame = self.queue.get(timeout=0.01)
            except queue.Empty:
                continue
            yield frame

    def close(self):
        self._closed.set()


class FakeSender:
    """
    Send collaborator answering every echo request through a FakeCapture.

    Attributes:
        drop: Addresses that never answer.
        fail: Sequence numbers whose send fails.
        duplicate: Answer every request twice.
        delay_ms: Simulated round-trip time.
    """

    def __init__(self, capture: FakeCapture, delay_ms: float = 2.0):
        self.capture = capture
        self.delay_ms = delay_ms
        self.drop = set()
        self.fail = set()
        self.duplicate = False
        self.sent = []
        self.opened = False
        self.closed = False

    def open(self):
        self.opened = True
        self.closed = False

    def close(self):
        self.closed = True

    def send(self, packet: bytes, address: str) -> bool:
        header = parse_echo_header(packet)
        if header.sequence in self.fail:
            return False
        self.sent.append((address, header.identifier, header.sequence, time.monotonic()))
        if address in self.drop:
            return True

        captured_at = time.time() + self.delay_ms / 1000
        copies = 2 if self.duplicate else 1
        for _ in range(copies):
            self.capture.inject(
                make_echo_reply(address, header.identifier, header.sequence, captured_at)
            )
        return True


@pytest.fixture
def fake_capture():
    return FakeCapture()


@pytest.fixture
def fake_sender(fake_capture):
    return FakeSender(fake_capture)


@pytest.fixture
def pinger(fake_sender, fake_capture):
    """Started Pinger wired to the fake sender and capture."""
    pinger = Pinger(sender=fake_sender, capture=fake_capture, resolver=fake_resolver)
    pinger.start()
    yield pinger
    pinger.stop()


@pytest.fixture(scope="session")
def project_config():
    """Fixture to load project config.yaml."""
    config_path = get_config_path()
    return load_config(config_path)


@pytest.fixture
def mock_logger():
    """
    Fixture providing a mock external logger for testing.

    Records every message per level in `logger.messages` for assertions.

    Returns:
        MagicMock: A configured mock object that mimics a logging.Logger
    """
    logger = MagicMock()
    logger.messages = {"debug": [], "info": [], "warning": [], "error": []}

    def store_message(level, *args, **kwargs):
        msg = args[0] if args else kwargs.get("msg", "")
        logger.messages[level].append(msg)

    logger.debug.side_effect = lambda *args, **kwargs: store_message(
        "debug", *args, **kwargs
    )
    logger.info.side_effect = lambda *args, **kwargs: store_message(
        "info", *args, **kwargs
    )
    logger.warning.side_effect = lambda *args, **kwargs: store_message(
        "warning", *args, **kwargs
    )
    logger.error.side_effect = lambda *args, **kwargs: store_message(
        "error", *args, **kwargs
    )

    return logger
