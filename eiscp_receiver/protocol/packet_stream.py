# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Reassembly of eISCP packets from a TCP byte stream.

A single read from the stream may contain a partial packet, exactly one packet,
or several packets. EiscpPacketReassembler buffers the stream and uses each
header's length fields to cut it into complete packets.
"""

from __future__ import annotations

from ..internal_types import *
from ..exceptions import EiscpReceiverError
from ..pkg_logging import logger
from .constants import EISCP_MAGIC, EISCP_HEADER_LENGTH
from .packet import EiscpPacket

InvalidDataHandler = Callable[[bytes, str], None]
"""Called with (discarded_bytes, reason) when the reassembler drops stream data."""

class EiscpPacketReassembler:
    """
    Incremental eISCP packet parser for stream transports.
    """

    buffer: bytearray

    on_invalid_data: Optional[InvalidDataHandler] = None
    """Optional handler notified whenever data is discarded."""

    def __init__(self, on_invalid_data: Optional[InvalidDataHandler]=None) -> None:
        self.buffer = bytearray()
        self.on_invalid_data = on_invalid_data

    def _discard(self, n: int, reason: str) -> None:
        discarded = bytes(self.buffer[:n])
        del self.buffer[:n]
        logger.debug(f"Discarding {len(discarded)} bytes of eISCP stream data ({reason}): {discarded.hex(' ')}")
        if self.on_invalid_data is not None:
            self.on_invalid_data(discarded, reason)

    def feed(self, data: Union[bytes, bytearray, memoryview]) -> List[EiscpPacket]:
        """Append stream data and return all packets that are now complete."""
        self.buffer.extend(data)
        packets: List[EiscpPacket] = []
        while True:
            i_magic = self.buffer.find(EISCP_MAGIC)
            if i_magic < 0:
                # Keep a possible partial magic at the end of the buffer
                keep = len(EISCP_MAGIC) - 1
                if len(self.buffer) > keep:
                    self._discard(len(self.buffer) - keep, "no packet header")
                break
            if i_magic > 0:
                self._discard(i_magic, "data before packet header")
            if len(self.buffer) < EISCP_HEADER_LENGTH:
                break
            try:
                header_length, payload_length, _ = EiscpPacket.parse_header(self.buffer)
            except EiscpReceiverError as e:
                # Skip past this magic and resynchronize on the next one
                self._discard(len(EISCP_MAGIC), str(e))
                continue
            end = header_length + payload_length
            if len(self.buffer) < end:
                break
            packets.append(EiscpPacket.from_raw_data(self.buffer[:end]))
            del self.buffer[:end]
        return packets

    def clear(self) -> None:
        """Discards any buffered partial packet, e.g., when the stream is reconnected."""
        self.buffer.clear()

    @property
    def pending_length(self) -> int:
        """The number of buffered bytes not yet returned as a packet."""
        return len(self.buffer)
