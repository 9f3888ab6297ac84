# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
A single TCP/IP control session of the eISCP receiver emulator.
"""

from __future__ import annotations

import asyncio

from ..internal_types import *
from ..exceptions import EiscpReceiverError
from ..pkg_logging import logger
from ..protocol import (
    EiscpPacket,
    EiscpPacketReassembler,
    DEVICE_END_OF_MESSAGE_BYTES,
  )

if TYPE_CHECKING:
    from .emulator_impl import EiscpReceiverEmulator

class EiscpReceiverEmulatorSession(asyncio.Protocol):
    session_id: int = -1
    emulator: EiscpReceiverEmulator
    transport: Optional[asyncio.Transport] = None
    peer_name: str = "<unconnected>"
    description: str = "EmulatorSession(<unconnected>)"
    reassembler: EiscpPacketReassembler
    closed: bool = False

    def __init__(self, emulator: EiscpReceiverEmulator):
        self.emulator = emulator
        self.session_id = emulator.alloc_session_id(self)
        self.description = f"EmulatorSession(id={self.session_id}, from=<unconnected>)"
        self.reassembler = EiscpPacketReassembler()

    def write(self, data: Union[bytes, bytearray, memoryview]) -> None:
        if self.transport is None or self.closed:
            logger.debug(f"EmulatorSession: Attempt to write to closed session {self.description}; ignored")
            return
        self.transport.write(data)

    def send_message(self, message: str) -> None:
        """Sends an ISCP message (e.g., 'PWR01') to the client, framed the way a receiver frames it."""
        packet = EiscpPacket.from_message(message, terminator=DEVICE_END_OF_MESSAGE_BYTES)
        logger.debug(f"{self}: Sending {packet}")
        self.write(packet.raw_data)

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        assert isinstance(transport, asyncio.Transport)
        self.transport = transport
        self.peer_name = str(transport.get_extra_info('peername'))
        self.description = f"EmulatorSession(id={self.session_id}, from='{self.peer_name}')"
        logger.debug(f"EmulatorSession: Connection from {self.peer_name}")
        self.emulator.on_session_connected(self)

    def close(self, abort: bool=False) -> None:
        """Closes the session. If abort is True, buffered output is discarded."""
        if not self.closed:
            self.closed = True
            if self.transport is not None:
                if abort:
                    self.transport.abort()
                else:
                    self.transport.close()
            self.emulator.free_session_id(self.session_id)

    def data_received(self, data: bytes) -> None:
        for packet in self.reassembler.feed(data):
            logger.debug(f"{self}: Received {packet}")
            try:
                self.emulator.on_message_received(self, packet.message)
            except EiscpReceiverError as e:
                logger.debug(f"{self}: Ignoring invalid message: {e}")

    def connection_lost(self, exc: Optional[BaseException]) -> None:
        logger.debug(f"{self}: Connection lost, exception={exc}; closing connection")
        self.close()

    def eof_received(self) -> bool:
        logger.debug(f"{self}: EOF received; closing connection")
        self.close()
        return True

    def __str__(self) -> str:
        return self.description

    def __repr__(self) -> str:
        return str(self)
