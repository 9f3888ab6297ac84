# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
eISCP receiver TCP/IP session.

ConnectionManager owns the session configuration, the TCP transport and the
connection state. It resolves missing host/model information with discovery,
reconnects after the connection is lost (if configured), and decodes inbound
packets and publishes them on the EventBus.
"""

from __future__ import annotations

import asyncio

from aenum import Enum as AEnum

from ..internal_types import *
from ..exceptions import EiscpReceiverError
from ..pkg_logging import logger
from ..events import EventBus, EventTopic
from ..util import describe_exception
from ..protocol import EiscpPacketReassembler, IscpMessage
from ..discovery import EiscpDiscoveryClient, DiscoveredDevice

from .client_config import EiscpReceiverClientConfig
from .command_queue import CommandTransport

CLOSE_WAIT_TIMEOUT = 2.0
"""How long aclose() waits for an aborted transport to report connection lost, in seconds."""

class ConnectionState(AEnum):
    DISCONNECTED = 0
    CONNECTING = 1
    CONNECTED = 2

class _EiscpClientProtocol(asyncio.Protocol):
    """Forwards the callbacks of one TCP connection to its ConnectionManager.

    A ConnectionManager ignores callbacks from protocol instances it has
    abandoned, so a superseded connection cannot disturb the current one."""

    manager: ConnectionManager
    connection_lost_result: asyncio.Future[None]

    def __init__(self, manager: ConnectionManager) -> None:
        self.manager = manager
        self.connection_lost_result = asyncio.get_running_loop().create_future()

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        assert isinstance(transport, asyncio.Transport)
        self.manager._on_connection_made(self, transport)

    def data_received(self, data: bytes) -> None:
        self.manager._on_data_received(self, data)

    def eof_received(self) -> Optional[bool]:
        # Returning None lets the transport close itself; connection_lost follows
        logger.debug("Receiver closed its end of the connection")
        return None

    def connection_lost(self, exc: Optional[BaseException]) -> None:
        if not self.connection_lost_result.done():
            self.connection_lost_result.set_result(None)
        self.manager._on_connection_lost(self, exc)

class ConnectionManager(CommandTransport):
    """Manages the TCP/IP session with one eISCP receiver."""

    config: EiscpReceiverClientConfig
    event_bus: EventBus
    discovery_client: EiscpDiscoveryClient
    state: ConnectionState = ConnectionState.DISCONNECTED
    transport: Optional[asyncio.Transport] = None
    protocol: Optional[_EiscpClientProtocol] = None
    reassembler: EiscpPacketReassembler
    reconnect_timer: Optional[asyncio.TimerHandle] = None
    connect_task: Optional[asyncio.Task[bool]] = None
    closed: bool = False
    _suppress_reconnect: bool = False

    def __init__(
            self,
            config: EiscpReceiverClientConfig,
            event_bus: EventBus,
            discovery_client: Optional[EiscpDiscoveryClient]=None,
          ) -> None:
        self.config = config
        self.event_bus = event_bus
        if discovery_client is None:
            discovery_client = EiscpDiscoveryClient(event_bus=event_bus)
        self.discovery_client = discovery_client
        self.reassembler = EiscpPacketReassembler(on_invalid_data=self._on_invalid_data)

    # @override
    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED and self.transport is not None

    @property
    def is_connecting(self) -> bool:
        return self.state == ConnectionState.CONNECTING

    # @override
    def write_packet(self, data: bytes) -> None:
        """Writes one encoded packet to the receiver.

        On error, an error event is emitted and the transport is aborted, which
        leads to the normal close handling.
        """
        transport = self.transport
        if transport is None or self.state != ConnectionState.CONNECTED:
            raise EiscpReceiverError("Send command, while not connected")
        try:
            transport.write(data)
        except (OSError, RuntimeError) as e:
            self.event_bus.error(
                f"ERROR (server_error) Server error on {self.config.host}:{self.config.port} - {describe_exception(e)}")
            transport.abort()
            raise EiscpReceiverError(f"Write to receiver failed: {describe_exception(e)}") from e

    async def connect(
            self,
            host: Optional[str]=None,
            port: Optional[int]=None,
            *,
            model: Optional[str]=None,
            reconnect: Optional[bool]=None,
            reconnect_delay_secs: Optional[float]=None,
            send_delay_secs: Optional[float]=None,
            discovery_timeout_secs: Optional[float]=None,
            force: bool=False,
          ) -> bool:
        """Connects to the receiver.

        Supplied settings are merged into the session configuration; settings
        left as None keep their current values. If the host is unknown, the
        first receiver to answer a broadcast discovery is used. If the host is
        known but the model is not, a discovery query is sent directly to the
        host to learn it.

        Args:
            force: If False (the default), connecting while already connecting
                   or connected raises EiscpReceiverError. If True, the existing
                   connection or connection attempt is abandoned and a new one
                   is started.

        Returns:
            True if the session is connected. False if discovery found nothing
            or the connection attempt failed; failures are reported on the
            error topic, and a failed TCP connect schedules a reconnect if
            reconnect is enabled.
        """
        if self.closed:
            raise EiscpReceiverError("Connection manager is closed")
        connect_task = self.connect_task
        busy = self.state != ConnectionState.DISCONNECTED or (connect_task is not None and not connect_task.done())
        if busy:
            if not force:
                raise EiscpReceiverError(
                    f"Already {self.state.name.lower()} to receiver at {self.config.host}:{self.config.port}")
            await self._abandon_session()
        self.cancel_reconnect()
        self.config.update(
            host=host,
            port=port,
            model=model,
            reconnect=reconnect,
            reconnect_delay_secs=reconnect_delay_secs,
            send_delay_secs=send_delay_secs,
            discovery_timeout_secs=discovery_timeout_secs,
          )
        connect_task = asyncio.create_task(self._run_connect())
        self.connect_task = connect_task
        return await connect_task

    async def _discover(self, address: Optional[str]) -> Optional[DiscoveredDevice]:
        try:
            devices = await self.discovery_client.discover(
                device_count=1,
                timeout_secs=self.config.discovery_timeout_secs,
                broadcast_address=address,
              )
        except EiscpReceiverError as e:
            logger.debug(f"Discovery failed; not connecting: {e}")
            return None
        if len(devices) == 0:
            logger.info("No receiver answered discovery; not connecting")
            return None
        return devices[0]

    async def _run_connect(self) -> bool:
        """Runs one connection attempt. Runs as self.connect_task."""
        loop = asyncio.get_running_loop()
        self.state = ConnectionState.CONNECTING
        try:
            if self.config.host is None:
                device = await self._discover(None)
                if device is None:
                    self.state = ConnectionState.DISCONNECTED
                    return False
                self.config.update(host=device.host, port=device.port, model=device.model)
            elif self.config.model is None:
                device = await self._discover(self.config.host)
                if device is None:
                    self.state = ConnectionState.DISCONNECTED
                    return False
                self.config.update(host=device.host, port=device.port, model=device.model)

            host = self.config.host
            port = self.config.port
            assert host is not None
            self.event_bus.debug(f"INFO (connecting) Connecting to {host}:{port} (model: {self.config.model})")
            protocol = _EiscpClientProtocol(self)
            self.protocol = protocol
            self.reassembler.clear()
            try:
                await loop.create_connection(lambda: protocol, host, port)
            except OSError as e:
                if self.protocol is protocol:
                    self.protocol = None
                    self.event_bus.error(
                        f"ERROR (server_error) Server error on {host}:{port} - {describe_exception(e)}")
                    self._handle_close()
                return False
            return self.is_connected
        except asyncio.CancelledError:
            if self.state == ConnectionState.CONNECTING:
                self.state = ConnectionState.DISCONNECTED
            raise

    def _on_connection_made(self, protocol: _EiscpClientProtocol, transport: asyncio.Transport) -> None:
        if protocol is not self.protocol:
            logger.debug("Connection made on an abandoned session; aborting it")
            transport.abort()
            return
        self.transport = transport
        self.state = ConnectionState.CONNECTED
        self.event_bus.debug(
            f"INFO (connected) Connected to {self.config.host}:{self.config.port} (model: {self.config.model})")
        logger.info(f"Connected to receiver at {self.config.host}:{self.config.port}")
        self.event_bus.emit(EventTopic.CONNECT, self.config.host, self.config.port, self.config.model)

    def _on_connection_lost(self, protocol: _EiscpClientProtocol, exc: Optional[BaseException]) -> None:
        if protocol is not self.protocol:
            return
        if exc is not None:
            self.event_bus.error(
                f"ERROR (server_error) Server error on {self.config.host}:{self.config.port} - {describe_exception(exc)}")
        self.protocol = None
        self.transport = None
        self._handle_close()

    def _handle_close(self) -> None:
        """The single close path: every lost or failed connection ends up here."""
        self.state = ConnectionState.DISCONNECTED
        self.reassembler.clear()
        self.event_bus.debug(f"INFO (disconnected) Disconnected from {self.config.host}:{self.config.port}")
        logger.info(f"Disconnected from receiver at {self.config.host}:{self.config.port}")
        self.event_bus.emit(EventTopic.CLOSE, self.config.host, self.config.port)
        suppress_reconnect = self._suppress_reconnect
        self._suppress_reconnect = False
        if self.config.reconnect and not suppress_reconnect and not self.closed:
            self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        self.cancel_reconnect()
        delay = self.config.reconnect_delay_secs
        logger.debug(f"Reconnecting to {self.config.host}:{self.config.port} in {delay} seconds")
        self.reconnect_timer = asyncio.get_running_loop().call_later(delay, self._on_reconnect_timer)

    def _on_reconnect_timer(self) -> None:
        self.reconnect_timer = None
        if self.closed or self.state != ConnectionState.DISCONNECTED:
            return
        connect_task = asyncio.create_task(self._run_connect())
        connect_task.add_done_callback(self._on_reconnect_done)
        self.connect_task = connect_task

    def _on_reconnect_done(self, task: asyncio.Task[bool]) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.error("Reconnect attempt raised an exception", exc_info=task.exception())

    def cancel_reconnect(self) -> None:
        """Cancels a pending automatic reconnect, if any."""
        if self.reconnect_timer is not None:
            self.reconnect_timer.cancel()
            self.reconnect_timer = None

    def _on_invalid_data(self, data: bytes, reason: str) -> None:
        self.event_bus.emit(
            EventTopic.DEBUG,
            f"DEBUG (invalid_data) Ignoring {len(data)} bytes from {self.config.host}:{self.config.port} - {reason}")

    def _on_data_received(self, protocol: _EiscpClientProtocol, data: bytes) -> None:
        if protocol is not self.protocol:
            return
        for packet in self.reassembler.feed(data):
            try:
                message = IscpMessage(
                    packet.message,
                    host=self.config.host,
                    port=self.config.port,
                    model=self.config.model,
                  )
            except EiscpReceiverError as e:
                self.event_bus.debug(
                    f"DEBUG (invalid_data) Ignoring message from {self.config.host}:{self.config.port} - {e}")
                continue
            self.event_bus.debug(
                f"DEBUG (received_data) Received data from {self.config.host}:{self.config.port} - {message.to_jsonable()}")
            self.event_bus.emit(EventTopic.DATA, message)
            self.event_bus.emit_command(message.code, message.argument)

    def disconnect(self, permanent: bool=False) -> None:
        """Closes the connection if connected.

        The normal close handling runs, including an automatic reconnect if
        reconnect is enabled, unless permanent is True. A permanent disconnect
        also cancels a pending automatic reconnect.
        """
        if permanent:
            self.cancel_reconnect()
        if self.is_connected:
            assert self.transport is not None
            if permanent:
                self._suppress_reconnect = True
            self.transport.abort()

    async def _abandon_session(self) -> None:
        """Drops the current connection or connection attempt without reconnecting."""
        connect_task = self.connect_task
        self.connect_task = None
        if connect_task is not None and not connect_task.done() and connect_task is not asyncio.current_task():
            connect_task.cancel()
            try:
                await connect_task
            except asyncio.CancelledError:
                pass
        protocol = self.protocol
        transport = self.transport
        was_connected = self.state == ConnectionState.CONNECTED
        self.protocol = None
        self.transport = None
        self.state = ConnectionState.DISCONNECTED
        if transport is not None:
            transport.abort()
        if was_connected:
            self.event_bus.debug(f"INFO (disconnected) Disconnected from {self.config.host}:{self.config.port}")
            self.event_bus.emit(EventTopic.CLOSE, self.config.host, self.config.port)
        if protocol is not None and transport is not None:
            try:
                await asyncio.wait_for(asyncio.shield(protocol.connection_lost_result), CLOSE_WAIT_TIMEOUT)
            except asyncio.TimeoutError:
                logger.debug("Timed out waiting for abandoned connection to close")

    async def aclose(self) -> None:
        """Permanently closes the session: cancels any reconnect or connection
           attempt and closes the connection. No reconnect follows."""
        if self.closed:
            return
        self.closed = True
        self.cancel_reconnect()
        await self._abandon_session()

    def __str__(self) -> str:
        return f"ConnectionManager({self.config.host}:{self.config.port}, state={self.state.name})"

    def __repr__(self) -> str:
        return str(self)
