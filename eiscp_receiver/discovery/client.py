# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
EiscpDiscoveryClient -- An eISCP discovery client that can:

  1. Send discovery queries to a broadcast UDP address (typically 255.255.255.255:60128),
     once for Onkyo devices ('!xECNQSTN') and once for Pioneer devices ('!pECNQSTN')
  2. Receive and decode 'ECN' discovery responses from receivers
  3. Return the responses received before a desired count is reached or a timeout expires
"""

from __future__ import annotations

import asyncio
import time
import datetime

from ..internal_types import *
from ..exceptions import EiscpReceiverError
from ..pkg_logging import logger
from ..events import EventBus
from ..util import describe_exception
from ..protocol import (
    EiscpPacket,
    encode_message,
    split_command,
    parse_discovery_payload,
    DISCOVERY_QUERY,
    DISCOVERY_MARKERS,
    DISCOVERY_RESPONSE_CODE,
  )
from .constants import (
    EISCP_DISCOVERY_PORT,
    EISCP_BROADCAST_ADDRESS,
    EISCP_DISCOVERY_DEFAULT_TIMEOUT,
    EISCP_DISCOVERY_DEFAULT_DEVICE_COUNT,
    EISCP_DISCOVERY_BIND_ADDRESS,
  )

class DiscoveredDevice:
    host: str
    """The source address of the discovery response"""

    port: int
    """The eISCP TCP/IP port advertised by the receiver"""

    model: str
    """The model name advertised by the receiver, e.g. 'TX-NR609'"""

    area_code: str
    """The destination area code advertised by the receiver, e.g. 'DX'"""

    mac: str
    """The receiver's 12-character MAC identifier"""

    raw_response: str
    """The decoded ISCP response message"""

    monotonic_time: float
    """The local time (in seconds) since an arbitrary point in the past at which
       the response was received, as returned by time.monotonic()."""

    utc_time: datetime.datetime
    """The UTC time at which the response was received."""

    def __init__(
            self,
            host: str,
            port: int,
            model: str,
            area_code: str,
            mac: str,
            raw_response: str,
          ) -> None:
        self.host = host
        self.port = port
        self.model = model
        self.area_code = area_code
        self.mac = mac
        self.raw_response = raw_response
        self.monotonic_time = time.monotonic()
        self.utc_time = datetime.datetime.now(datetime.timezone.utc)

    @classmethod
    def from_response(cls, host: str, message: str) -> DiscoveredDevice:
        """Creates a DiscoveredDevice from a decoded 'ECN' response message."""
        model, port, area_code, mac = parse_discovery_payload(message)
        return cls(host, port, model, area_code, mac, message)

    def to_jsonable(self) -> JsonableDict:
        return dict(
            host=self.host,
            port=self.port,
            model=self.model,
            area_code=self.area_code,
            mac=self.mac,
          )

    def __str__(self) -> str:
        return f"DiscoveredDevice(host={self.host!r}, port={self.port}, model={self.model!r}, mac={self.mac!r})"

    def __repr__(self) -> str:
        return str(self)

class _EiscpDiscoveryProtocol(asyncio.DatagramProtocol):
    """Forwards datagram endpoint callbacks to an EiscpDiscoveryRequest."""

    request: EiscpDiscoveryRequest

    def __init__(self, request: EiscpDiscoveryRequest) -> None:
        self.request = request

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        transport = cast(asyncio.DatagramTransport, transport)
        self.request.on_listening(transport)

    def datagram_received(self, data: bytes, addr: HostAndPort) -> None:
        self.request.on_datagram(data, addr)

    def error_received(self, exc: Exception) -> None:
        self.request.on_error(exc)

class EiscpDiscoveryRequest:
    """A single discovery cycle: send the queries, collect responses, and
       finish on device count or timeout, whichever comes first."""

    device_count: int
    timeout_secs: float
    broadcast_address: str
    port: int
    event_bus: Optional[EventBus]
    results: List[DiscoveredDevice]
    transport: Optional[asyncio.DatagramTransport] = None
    timeout_timer: Optional[asyncio.TimerHandle] = None
    final_result: Optional[asyncio.Future[List[DiscoveredDevice]]] = None
    finished: bool = False

    def __init__(
            self,
            device_count: int=EISCP_DISCOVERY_DEFAULT_DEVICE_COUNT,
            timeout_secs: float=EISCP_DISCOVERY_DEFAULT_TIMEOUT,
            broadcast_address: str=EISCP_BROADCAST_ADDRESS,
            port: int=EISCP_DISCOVERY_PORT,
            event_bus: Optional[EventBus]=None,
          ) -> None:
        self.device_count = device_count
        self.timeout_secs = timeout_secs
        self.broadcast_address = broadcast_address
        self.port = port
        self.event_bus = event_bus
        self.results = []

    def _debug(self, message: str) -> None:
        if self.event_bus is None:
            logger.debug(message)
        else:
            self.event_bus.debug(message)

    def _error(self, message: str) -> None:
        if self.event_bus is None:
            logger.warning(message)
        else:
            self.event_bus.error(message)

    def on_listening(self, transport: asyncio.DatagramTransport) -> None:
        """Called when the socket is bound; sends the discovery queries and starts the timeout."""
        self.transport = transport
        target = (self.broadcast_address, self.port)
        try:
            for marker in DISCOVERY_MARKERS:
                transport.sendto(encode_message(marker + DISCOVERY_QUERY), target)
        except OSError as e:
            self.on_error(e)
            return
        self._debug(f"DEBUG (sent_discovery) Sent broadcast discovery packet to {self.broadcast_address}:{self.port}")
        self.timeout_timer = asyncio.get_running_loop().call_later(
            self.timeout_secs, self._on_timeout)

    def on_datagram(self, data: bytes, addr: HostAndPort) -> None:
        """Called for each received datagram."""
        if self.finished:
            return
        try:
            message = EiscpPacket.from_raw_data(data).message
            code, _ = split_command(message)
        except EiscpReceiverError as e:
            self._debug(f"DEBUG (received_data) Ignoring invalid datagram from {addr[0]}:{addr[1]} - {e}")
            return
        if code != DISCOVERY_RESPONSE_CODE:
            self._debug(f"DEBUG (received_data) Received data from {addr[0]}:{addr[1]} - {message!r}")
            return
        try:
            device = DiscoveredDevice.from_response(addr[0], message)
        except EiscpReceiverError as e:
            # Includes our own queries looped back by the broadcast
            self._debug(f"DEBUG (received_data) Ignoring {message!r} from {addr[0]}:{addr[1]} - {e}")
            return
        self.results.append(device)
        self._debug(f"DEBUG (received_discovery) Received discovery packet from {addr[0]}:{addr[1]} ({device})")
        if len(self.results) >= self.device_count:
            self.finish()

    def on_error(self, exc: BaseException) -> None:
        """Called on a socket-level error. Aborts the discovery with an error."""
        self._error(
            f"ERROR (server_error) Server error on {self.broadcast_address}:{self.port} - {describe_exception(exc)}")
        error = EiscpReceiverError(f"Discovery failed: {describe_exception(exc)}")
        error.__cause__ = exc
        self.finish(error)

    def _on_timeout(self) -> None:
        self.timeout_timer = None
        self.finish()

    def finish(self, exc: Optional[BaseException]=None) -> None:
        """Stops the discovery. Cancels the timeout and closes the socket exactly once."""
        if self.finished:
            return
        self.finished = True
        if self.timeout_timer is not None:
            self.timeout_timer.cancel()
            self.timeout_timer = None
        if self.transport is not None:
            self.transport.close()
        if self.final_result is not None and not self.final_result.done():
            if exc is None:
                self.final_result.set_result(list(self.results))
            else:
                self.final_result.set_exception(exc)

    async def run(self) -> List[DiscoveredDevice]:
        """Runs the discovery cycle.

        Returns:
            The responses received, in arrival order. May be empty if the
            timeout expires first.

        Raises:
            EiscpReceiverError if the socket cannot be opened or a socket error occurs.
        """
        if self.final_result is not None:
            raise EiscpReceiverError("EiscpDiscoveryRequest can only be run once")
        loop = asyncio.get_running_loop()
        self.final_result = loop.create_future()
        try:
            await loop.create_datagram_endpoint(
                lambda: _EiscpDiscoveryProtocol(self),
                local_addr=(EISCP_DISCOVERY_BIND_ADDRESS, 0),
                allow_broadcast=True,
              )
        except OSError as e:
            self.on_error(e)
        try:
            return await self.final_result
        finally:
            # Cleans up if we were cancelled
            self.finish()

class EiscpDiscoveryClient:
    """
    An eISCP discovery client with configurable defaults. Each call to discover()
    runs an independent EiscpDiscoveryRequest on its own ephemeral socket.
    """

    device_count: int
    timeout_secs: float
    broadcast_address: str
    port: int
    event_bus: Optional[EventBus]

    def __init__(
            self,
            device_count: int=EISCP_DISCOVERY_DEFAULT_DEVICE_COUNT,
            timeout_secs: float=EISCP_DISCOVERY_DEFAULT_TIMEOUT,
            broadcast_address: str=EISCP_BROADCAST_ADDRESS,
            port: int=EISCP_DISCOVERY_PORT,
            event_bus: Optional[EventBus]=None,
          ) -> None:
        self.device_count = device_count
        self.timeout_secs = timeout_secs
        self.broadcast_address = broadcast_address
        self.port = port
        self.event_bus = event_bus

    async def discover(
            self,
            device_count: Optional[int]=None,
            timeout_secs: Optional[float]=None,
            broadcast_address: Optional[str]=None,
            port: Optional[int]=None,
          ) -> List[DiscoveredDevice]:
        """Broadcasts discovery queries and collects the responses.

        Parameters:
            device_count:      Stop as soon as this many responses have arrived. Responses are
                                 not deduplicated; a receiver that answers twice counts twice.
                                 Defaults to the client's device_count.
            timeout_secs:      Stop after this many seconds. Defaults to the client's timeout_secs.
            broadcast_address: The address to send queries to. May be a unicast address to
                                 query a single receiver. Defaults to the client's broadcast_address.
            port:              The UDP port to send queries to. Defaults to the client's port.
        """
        if device_count is None or device_count < 1:
            device_count = self.device_count
        if timeout_secs is None or timeout_secs <= 0:
            timeout_secs = self.timeout_secs
        if broadcast_address is None or broadcast_address == '':
            broadcast_address = self.broadcast_address
        if port is None or port <= 0:
            port = self.port
        request = EiscpDiscoveryRequest(
            device_count=device_count,
            timeout_secs=timeout_secs,
            broadcast_address=broadcast_address,
            port=port,
            event_bus=self.event_bus,
          )
        return await request.run()

async def discover_receivers(
        device_count: Optional[int]=None,
        timeout_secs: Optional[float]=None,
        broadcast_address: Optional[str]=None,
        port: Optional[int]=None,
        event_bus: Optional[EventBus]=None,
      ) -> List[DiscoveredDevice]:
    """Runs a single discovery cycle with default settings. See EiscpDiscoveryClient.discover()."""
    client = EiscpDiscoveryClient(event_bus=event_bus)
    return await client.discover(
        device_count=device_count,
        timeout_secs=timeout_secs,
        broadcast_address=broadcast_address,
        port=port,
      )
