"""
ICMP echo message codec.

    0                   1                   2                   3
    0 1 2 3 4 5 6 7 8 9 0 1 2 3 4 5 6 7 8 9 0 1 2 3 4 5 6 7 8 9 0 1
   +-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+
   |     Type      |     Code      |          Checksum             |
   +-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+
   |           Identifier          |        Sequence Number        |
   +-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+
   |     Data ...
   +-+-+-+-+-
"""

import struct
from typing import NamedTuple

ICMP_ECHO_REPLY = 0
ICMP_ECHO_REQUEST = 8
ICMP_HEADER_FORMAT = "!BBHHH"
ICMP_HEADER_SIZE = struct.calcsize(ICMP_HEADER_FORMAT)

DEFAULT_PAYLOAD = b"echo"


class EchoHeader(NamedTuple):
    type: int
    code: int
    checksum: int
    identifier: int
    sequence: int


def calculate_checksum(data: bytes) -> int:
    """
    Internet checksum (RFC 1071) of `data`.

    Args:
        data: The data to calculate the checksum for

    Returns:
        int: 16-bit one's complement of the one's complement sum
    """
    if len(data) % 2:
        data += b"\x00"

    total = sum(struct.unpack(f"!{len(data) // 2}H", data))
    total = (total >> 16) + (total & 0xFFFF)
    total += total >> 16
    return ~total & 0xFFFF


def build_echo_request(
    identifier: int, sequence: int, payload: bytes = DEFAULT_PAYLOAD
) -> bytes:
    """
    Encode an ICMP echo request (type 8, code 0) with its checksum filled in.

    Args:
        identifier: ICMP identifier (0..0xFFFF)
        sequence: ICMP sequence number, truncated to 16 bits
        payload: Echo data

    Returns:
        bytes: The ICMP message ready to be sent
    """
    identifier &= 0xFFFF
    sequence &= 0xFFFF
    header = struct.pack(
        ICMP_HEADER_FORMAT, ICMP_ECHO_REQUEST, 0, 0, identifier, sequence
    )
    checksum = calculate_checksum(header + payload)
    header = struct.pack(
        ICMP_HEADER_FORMAT, ICMP_ECHO_REQUEST, 0, checksum, identifier, sequence
    )
    return header + payload


def parse_echo_header(message: bytes) -> EchoHeader:
    """
    Decode the header of an ICMP message.

    Raises:
        ValueError: If the message is shorter than an ICMP header.
    """
    if len(message) < ICMP_HEADER_SIZE:
        raise ValueError("ICMP message is too short")
    return EchoHeader(*struct.unpack(ICMP_HEADER_FORMAT, message[:ICMP_HEADER_SIZE]))
