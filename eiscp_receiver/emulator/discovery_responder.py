# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Emulated eISCP discovery responder.

Listens for 'ECNQSTN' discovery queries on a UDP port and answers with an
'ECN' response for each emulated device, the way a receiver does.
"""

from __future__ import annotations

import asyncio

from ..internal_types import *
from ..exceptions import EiscpReceiverError
from ..pkg_logging import logger
from ..protocol import (
    EiscpPacket,
    DISCOVERY_QUERY,
    ONKYO_DISCOVERY_MARKER,
    DISCOVERY_RESPONSE_CODE,
    DEVICE_END_OF_MESSAGE_BYTES,
    MAC_ADDRESS_LENGTH,
  )
from ..constants import DEFAULT_PORT

MAC_PADDING_LENGTH = 4
"""Receivers pad the MAC field of a discovery response with null characters."""

class EmulatedDiscoveryDevice:
    """A device that an EiscpDiscoveryResponder answers discovery queries for."""

    model: str
    port: int
    area_code: str
    mac: str
    markers: Tuple[str, ...]
    """The query markers ('!x' for Onkyo, '!p' for Pioneer) this device answers. Default: Onkyo only."""
    response_delay_secs: float

    def __init__(
            self,
            model: str='TX-NR609',
            port: int=DEFAULT_PORT,
            area_code: str='DX',
            mac: str='0009B0D2A8F0',
            markers: Optional[Iterable[str]]=None,
            response_delay_secs: float=0.0,
          ) -> None:
        if len(mac) > MAC_ADDRESS_LENGTH:
            raise EiscpReceiverError(f"MAC identifier longer than {MAC_ADDRESS_LENGTH} characters: {mac!r}")
        self.model = model
        self.port = port
        self.area_code = area_code
        self.mac = mac
        self.markers = (ONKYO_DISCOVERY_MARKER,) if markers is None else tuple(markers)
        self.response_delay_secs = response_delay_secs

    def response_message(self) -> str:
        """The complete ISCP discovery response, e.g. '!1ECNTX-NR609/60128/DX/0009B0D2A8F0' plus padding."""
        padding = '\0' * MAC_PADDING_LENGTH
        return f"!1{DISCOVERY_RESPONSE_CODE}{self.model}/{self.port}/{self.area_code}/{self.mac}{padding}"

    def __str__(self) -> str:
        return f"EmulatedDiscoveryDevice(model={self.model!r}, port={self.port})"

    def __repr__(self) -> str:
        return str(self)

class _DiscoveryResponderProtocol(asyncio.DatagramProtocol):
    responder: EiscpDiscoveryResponder

    def __init__(self, responder: EiscpDiscoveryResponder) -> None:
        self.responder = responder

    def datagram_received(self, data: bytes, addr: HostAndPort) -> None:
        self.responder.on_datagram(data, addr)

    def error_received(self, exc: Exception) -> None:
        logger.debug(f"Discovery responder: socket error: {exc}")

class EiscpDiscoveryResponder(AsyncContextManager['EiscpDiscoveryResponder']):
    devices: List[EmulatedDiscoveryDevice]
    bind_addr: str
    port: int
    """The UDP port. 0 before start() selects an ephemeral port; after start() it is the bound port."""
    transport: Optional[asyncio.DatagramTransport] = None
    queries_received: int = 0
    _reply_timers: Set[asyncio.TimerHandle]

    def __init__(
            self,
            devices: Optional[Iterable[EmulatedDiscoveryDevice]]=None,
            bind_addr: str='127.0.0.1',
            port: int=DEFAULT_PORT,
          ) -> None:
        self.devices = [] if devices is None else list(devices)
        self.bind_addr = bind_addr
        self.port = port
        self._reply_timers = set()

    async def start(self) -> None:
        loop = asyncio.get_running_loop()
        transport, _ = await loop.create_datagram_endpoint(
            lambda: _DiscoveryResponderProtocol(self),
            local_addr=(self.bind_addr, self.port),
          )
        self.transport = transport
        self.port = transport.get_extra_info('sockname')[1]
        logger.debug(f"Discovery responder: Listening on {self.bind_addr}:{self.port}")

    def on_datagram(self, data: bytes, addr: HostAndPort) -> None:
        try:
            packet = EiscpPacket.from_raw_data(data)
        except EiscpReceiverError as e:
            logger.debug(f"Discovery responder: ignoring invalid datagram from {addr}: {e}")
            return
        if packet.message != DISCOVERY_QUERY:
            logger.debug(f"Discovery responder: ignoring {packet} from {addr}")
            return
        self.queries_received += 1
        loop = asyncio.get_running_loop()
        for device in self.devices:
            if packet.marker not in device.markers:
                continue
            if device.response_delay_secs > 0:
                # Fired timers are left in the set until close()
                self._reply_timers.add(
                    loop.call_later(device.response_delay_secs, self._send_response, device, addr))
            else:
                self._send_response(device, addr)

    def _send_response(self, device: EmulatedDiscoveryDevice, addr: HostAndPort) -> None:
        if self.transport is None:
            return
        packet = EiscpPacket.from_message(device.response_message(), terminator=DEVICE_END_OF_MESSAGE_BYTES)
        logger.debug(f"Discovery responder: answering {addr} as {device}")
        self.transport.sendto(packet.raw_data, addr)

    def close(self) -> None:
        for timer in self._reply_timers:
            timer.cancel()
        self._reply_timers.clear()
        if self.transport is not None:
            self.transport.close()
            self.transport = None

    async def __aenter__(self) -> EiscpDiscoveryResponder:
        await self.start()
        return self

    async def __aexit__(
            self,
            exc_type: Optional[Type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType],
          ) -> None:
        self.close()
