# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
eISCP protocol packet and message handling. No I/O.
"""

from .constants import (
    EISCP_MAGIC,
    EISCP_HEADER_LENGTH,
    EISCP_VERSION,
    MAX_PAYLOAD_LENGTH,
    MAX_HEADER_LENGTH,
    START_OF_MESSAGE,
    DEFAULT_MESSAGE_PREFIX,
    END_OF_MESSAGE_BYTES,
    DEVICE_END_OF_MESSAGE_BYTES,
    TRAILING_TERMINATOR_CHARS,
    COMMAND_CODE_LENGTH,
    DISCOVERY_RESPONSE_CODE,
    DISCOVERY_QUERY,
    DISCOVERY_MARKERS,
    ONKYO_DISCOVERY_MARKER,
    PIONEER_DISCOVERY_MARKER,
    MAC_ADDRESS_LENGTH,
  )
from .packet import EiscpPacket, encode_message, decode_packet
from .message import IscpMessage, split_command, parse_discovery_payload
from .packet_stream import EiscpPacketReassembler
