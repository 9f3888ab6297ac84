# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Protocol-specific constants
"""

from __future__ import annotations

from ..internal_types import *

EISCP_MAGIC = b'ISCP'
"""The 4-byte magic value that begins every eISCP packet."""

EISCP_HEADER_LENGTH = 16
"""The length of the fixed eISCP packet header, in bytes."""

EISCP_VERSION = 1
"""The eISCP protocol version byte."""

MAX_PAYLOAD_LENGTH = 0x10000
"""The largest payload length accepted in an inbound packet header. Larger
   values are treated as stream corruption."""

MAX_HEADER_LENGTH = 0x100
"""The largest header length accepted in an inbound packet header. Receivers
   always send 16; larger values are treated as stream corruption."""

START_OF_MESSAGE = '!'
"""The character that begins every ISCP message."""

RECEIVER_DEVICE_TYPE = '1'
"""The ISCP unit type character for receivers."""

DEFAULT_MESSAGE_PREFIX = START_OF_MESSAGE + RECEIVER_DEVICE_TYPE
"""Prepended to outbound messages that do not already begin with START_OF_MESSAGE."""

END_OF_MESSAGE_BYTES = b'\r\n'
"""The terminator appended to outbound ISCP messages."""

TRAILING_TERMINATOR_CHARS = '\x1a\r\n'
"""Characters that may terminate an inbound ISCP message (EOF, CR, LF)."""

COMMAND_CODE_LENGTH = 3
"""The length of an ISCP command code, e.g., 'PWR'."""

DISCOVERY_RESPONSE_CODE = 'ECN'
"""The command code of a discovery response."""

DISCOVERY_QUERY = 'ECNQSTN'
"""The discovery query message, without a start marker."""

ONKYO_DISCOVERY_MARKER = START_OF_MESSAGE + 'x'
"""Start marker used for discovery queries to Onkyo/Integra devices."""

PIONEER_DISCOVERY_MARKER = START_OF_MESSAGE + 'p'
"""Start marker used for discovery queries to Pioneer devices."""

DISCOVERY_MARKERS: Tuple[str, ...] = (ONKYO_DISCOVERY_MARKER, PIONEER_DISCOVERY_MARKER)
"""Each discovery cycle sends one query per marker, in this order."""

MAC_ADDRESS_LENGTH = 12
"""The number of significant characters in the MAC field of a discovery response."""

DEVICE_END_OF_MESSAGE_BYTES = b'\x1a\r\n'
"""The terminator receivers append to the ISCP messages they send (EOF CR LF)."""
