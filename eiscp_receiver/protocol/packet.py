# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Encapsulation of a single eISCP packet sent over TCP/IP or UDP in either direction.

An eISCP packet is a fixed 16-byte header followed by an ASCII ISCP message:

    offset  size  field
    0       4     magic b'ISCP'
    4       4     header length (big-endian, always 16)
    8       4     payload length (big-endian, includes the message terminator)
    12      1     version (always 1)
    13      3     reserved (zero)
    16      N     payload: b'!1PWR01\\r\\n'
"""

from __future__ import annotations

import struct

from ..internal_types import *
from ..exceptions import EiscpReceiverError
from .constants import (
    EISCP_MAGIC,
    EISCP_HEADER_LENGTH,
    EISCP_VERSION,
    MAX_PAYLOAD_LENGTH,
    MAX_HEADER_LENGTH,
    START_OF_MESSAGE,
    DEFAULT_MESSAGE_PREFIX,
    END_OF_MESSAGE_BYTES,
    TRAILING_TERMINATOR_CHARS,
  )

_HEADER_STRUCT = struct.Struct('>4sIIB3s')

class EiscpPacket:
    """
    A single eISCP packet: header fields plus the raw payload bytes (including terminator).
    """

    header_length: int
    payload_length: int
    version: int
    payload: bytes

    def __init__(self, payload: bytes, header_length: int=EISCP_HEADER_LENGTH, version: int=EISCP_VERSION) -> None:
        self.payload = payload
        self.payload_length = len(payload)
        self.header_length = header_length
        self.version = version

    @classmethod
    def from_message(cls, message: str, terminator: bytes=END_OF_MESSAGE_BYTES) -> EiscpPacket:
        """Create a packet that carries an ISCP message.

        If the message does not begin with '!', the receiver prefix '!1' is prepended.
        The terminator (CR LF by default) is appended.

        Raises:
            EiscpReceiverError if the message is not ASCII.
        """
        if not message.startswith(START_OF_MESSAGE):
            message = DEFAULT_MESSAGE_PREFIX + message
        try:
            payload = message.encode('ascii')
        except UnicodeEncodeError as e:
            raise EiscpReceiverError(f"ISCP message is not ASCII: {message!r}") from e
        return cls(payload + terminator)

    @staticmethod
    def parse_header(data: Union[bytes, bytearray, memoryview]) -> Tuple[int, int, int]:
        """Parse and validate a packet header.

        Returns:
            (header_length, payload_length, version)

        Raises:
            EiscpReceiverError if the header is short, has the wrong magic, or has
            impossible length fields.
        """
        if len(data) < EISCP_HEADER_LENGTH:
            raise EiscpReceiverError(f"eISCP header too short ({len(data)} bytes)")
        magic, header_length, payload_length, version, _ = _HEADER_STRUCT.unpack_from(data, 0)
        if magic != EISCP_MAGIC:
            raise EiscpReceiverError(f"Invalid eISCP magic {bytes(magic)!r}")
        if header_length < EISCP_HEADER_LENGTH or header_length > MAX_HEADER_LENGTH:
            raise EiscpReceiverError(f"Invalid eISCP header length {header_length}")
        if payload_length > MAX_PAYLOAD_LENGTH:
            raise EiscpReceiverError(f"eISCP payload length {payload_length} exceeds maximum {MAX_PAYLOAD_LENGTH}")
        return (header_length, payload_length, version)

    @classmethod
    def from_raw_data(cls, raw_data: Union[bytes, bytearray, memoryview]) -> EiscpPacket:
        """Create a packet from one complete packet's bytes (header + full payload).

        The header's own length fields are used to locate the payload. Any bytes
        beyond header_length + payload_length are ignored.
        """
        header_length, payload_length, version = cls.parse_header(raw_data)
        end = header_length + payload_length
        if len(raw_data) < end:
            raise EiscpReceiverError(
                f"Incomplete eISCP packet: expected {end} bytes, got {len(raw_data)}")
        return cls(bytes(raw_data[header_length:end]), header_length=header_length, version=version)

    @property
    def raw_data(self) -> bytes:
        """The complete encoded packet. Always uses a 16-byte header."""
        header = _HEADER_STRUCT.pack(
            EISCP_MAGIC, EISCP_HEADER_LENGTH, len(self.payload), self.version, b'\0\0\0')
        return header + self.payload

    @property
    def message(self) -> str:
        """The ISCP message text with the start marker and device type stripped
           and the trailing terminator removed; e.g., 'PWR01'."""
        text = self.payload.decode('ascii', errors='replace').rstrip(TRAILING_TERMINATOR_CHARS)
        if text.startswith(START_OF_MESSAGE):
            text = text[2:]
        return text

    @property
    def marker(self) -> str:
        """The start marker and device type, e.g. '!1', or '' if the payload has none."""
        text = self.payload[:2].decode('ascii', errors='replace')
        if text.startswith(START_OF_MESSAGE):
            return text
        return ''

    def __str__(self) -> str:
        return f"EiscpPacket({self.payload!r})"

    def __repr__(self) -> str:
        return str(self)

def encode_message(message: str) -> bytes:
    """Encode an ISCP message (e.g., 'PWR01' or '!1PWR01') into a complete eISCP packet."""
    return EiscpPacket.from_message(message).raw_data

def decode_packet(data: Union[bytes, bytearray, memoryview]) -> str:
    """Decode one complete eISCP packet into its ISCP message text, e.g. 'PWR01'.

    The caller must supply a complete packet; use EiscpPacketReassembler for
    stream data.
    """
    return EiscpPacket.from_raw_data(data).message
