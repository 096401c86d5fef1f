import pytest
from unittest.mock import MagicMock, patch

from scapy.error import Scapy_Exception

from pingmux.errors import PingerSetupError
from pingmux.transport.capture import DEFAULT_FILTER, PacketCapture


@pytest.fixture
def mock_conf():
    with patch("pingmux.transport.capture.conf") as conf:
        conf.L2listen.return_value = MagicMock()
        yield conf


class TestPacketCapture:
    """Tests for the capture handle with scapy mocked out."""

    def test_open(self, mock_conf):
        capture = PacketCapture()
        capture.open()

        mock_conf.L2listen.assert_called_once_with(iface=None, filter=DEFAULT_FILTER)
        assert capture.sock is mock_conf.L2listen.return_value

    def test_open_with_iface_and_filter(self, mock_conf):
        capture = PacketCapture(iface="eth0", bpf_filter="icmp")
        capture.open()
        mock_conf.L2listen.assert_called_once_with(iface="eth0", filter="icmp")

    def test_filter_rejected(self, mock_conf):
        mock_conf.L2listen.side_effect = Scapy_Exception("Failed to compile filter")
        capture = PacketCapture(bpf_filter="not a filter")

        with pytest.raises(PingerSetupError, match="Failed to compile filter"):
            capture.open()
        assert capture.sock is None

    def test_permission_denied(self, mock_conf):
        mock_conf.L2listen.side_effect = PermissionError(1, "Operation not permitted")
        with pytest.raises(PingerSetupError):
            PacketCapture().open()

    @patch("pingmux.transport.capture.select.select")
    def test_frames(self, mock_select, mock_conf):
        sock = mock_conf.L2listen.return_value
        capture = PacketCapture(poll_interval=0.01)
        capture.open()

        first, second = MagicMock(name="first"), MagicMock(name="second")
        mock_select.side_effect = [([sock], [], []), ([], [], []), ([sock], [], [])]
        sock.recv.side_effect = [first, second]

        frames = capture.frames()
        assert next(frames) is first
        assert next(frames) is second
        mock_select.assert_called_with([sock], [], [], 0.01)

        capture.close()
        assert list(frames) == []

    @patch("pingmux.transport.capture.select.select")
    def test_unparsable_frames_skipped(self, mock_select, mock_conf):
        sock = mock_conf.L2listen.return_value
        capture = PacketCapture()
        capture.open()

        frame = MagicMock()
        mock_select.return_value = ([sock], [], [])
        sock.recv.side_effect = [None, frame]

        assert next(capture.frames()) is frame

    @patch("pingmux.transport.capture.select.select")
    def test_error_after_close_ends_iteration(self, mock_select, mock_conf):
        capture = PacketCapture()
        capture.open()

        def closed_while_waiting(*args):
            capture.close()
            raise ValueError("file descriptor cannot be a negative integer")

        mock_select.side_effect = closed_while_waiting

        assert list(capture.frames()) == []

    @patch("pingmux.transport.capture.select.select")
    def test_error_while_open_propagates(self, mock_select, mock_conf):
        capture = PacketCapture()
        capture.open()
        mock_select.side_effect = OSError("Network is down")

        with pytest.raises(OSError):
            next(capture.frames())

    def test_frames_without_open(self):
        assert list(PacketCapture().frames()) == []

    def test_close(self, mock_conf):
        capture = PacketCapture()
        capture.open()
        sock = capture.sock

        capture.close()
        capture.close()

        sock.close.assert_called_once()
        assert capture.sock is None
