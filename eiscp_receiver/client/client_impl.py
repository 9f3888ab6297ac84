# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
eISCP receiver client.

EiscpReceiverClient is the public API of the package. It ties together a
ConnectionManager (the TCP session), a CommandQueue (paced outbound commands)
and an EventBus (lifecycle and inbound message notifications).
"""

from __future__ import annotations

import asyncio

from ..internal_types import *
from ..exceptions import EiscpReceiverError
from ..pkg_logging import logger
from ..events import EventBus, EventTopic, EventHandler
from ..discovery import EiscpDiscoveryClient, DiscoveredDevice

from .client_config import EiscpReceiverClientConfig
from .command_queue import CommandQueue, CommandCallback
from .connection import ConnectionManager, ConnectionState

DiscoveryCallback = Callable[[Optional[BaseException], Optional[List[DiscoveredDevice]]], None]
"""Called with (error, devices) when a discovery started with EiscpReceiverClient.discover() finishes."""

class EiscpReceiverClient(AsyncContextManager['EiscpReceiverClient']):
    """eISCP receiver TCP/IP client.

    Example:

        async with EiscpReceiverClient() as client:
            client.on_command('PWR', lambda argument: print(f"Power: {argument}"))
            if await client.connect(host='192.168.1.50'):
                await client.raw('PWR01')
    """

    config: EiscpReceiverClientConfig
    event_bus: EventBus
    discovery_client: EiscpDiscoveryClient
    connection: ConnectionManager
    queue: CommandQueue

    def __init__(
            self,
            host: Optional[str]=None,
            port: Optional[int]=None,
            *,
            model: Optional[str]=None,
            reconnect: Optional[bool]=None,
            reconnect_delay_secs: Optional[float]=None,
            send_delay_secs: Optional[float]=None,
            discovery_timeout_secs: Optional[float]=None,
            config: Optional[EiscpReceiverClientConfig]=None,
            discovery_client: Optional[EiscpDiscoveryClient]=None,
          ) -> None:
        """Creates a client. No I/O is done until connect() or discover() is called.

        Args are as for EiscpReceiverClientConfig. If discovery_client is
        provided, it is used for both discover() and the host/model resolution
        done by connect().
        """
        self.config = EiscpReceiverClientConfig(
            host=host,
            port=port,
            model=model,
            reconnect=reconnect,
            reconnect_delay_secs=reconnect_delay_secs,
            send_delay_secs=send_delay_secs,
            discovery_timeout_secs=discovery_timeout_secs,
            base_config=config,
          )
        self.event_bus = EventBus()
        if discovery_client is None:
            discovery_client = EiscpDiscoveryClient(event_bus=self.event_bus)
        elif discovery_client.event_bus is None:
            discovery_client.event_bus = self.event_bus
        self.discovery_client = discovery_client
        self.connection = ConnectionManager(self.config, self.event_bus, discovery_client=discovery_client)
        self.queue = CommandQueue(self.connection, self.event_bus, self.config)

    @property
    def is_connected(self) -> bool:
        return self.connection.is_connected

    @property
    def state(self) -> ConnectionState:
        return self.connection.state

    def on(self, topic: Union[EventTopic, str], handler: EventHandler) -> int:
        """Subscribes to 'connect', 'close', 'error', 'debug' or 'data'. Returns a subscription ID."""
        return self.event_bus.subscribe(topic, handler)

    def on_command(self, code: str, handler: EventHandler) -> int:
        """Subscribes to inbound messages with a 3-character command code (e.g., 'PWR').
           The handler receives the message argument (e.g., '01'). Returns a subscription ID."""
        return self.event_bus.subscribe_command(code, handler)

    def off(self, subscription_id: int) -> None:
        """Removes a subscription added with on() or on_command()."""
        self.event_bus.unsubscribe(subscription_id)

    async def discover(
            self,
            device_count: Optional[int]=None,
            timeout_secs: Optional[float]=None,
            broadcast_address: Optional[str]=None,
            port: Optional[int]=None,
            callback: Optional[DiscoveryCallback]=None,
          ) -> List[DiscoveredDevice]:
        """Broadcasts a discovery query and returns the receivers that answered.

        If callback is provided it is also called, with (None, devices) on
        success or (error, None) on failure. Failures are raised as
        EiscpReceiverError in either case.
        """
        try:
            devices = await self.discovery_client.discover(
                device_count=device_count,
                timeout_secs=timeout_secs,
                broadcast_address=broadcast_address,
                port=port,
              )
        except EiscpReceiverError as e:
            if callback is not None:
                callback(e, None)
            raise
        if callback is not None:
            callback(None, devices)
        return devices

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
        """Connects to the receiver. See ConnectionManager.connect()."""
        return await self.connection.connect(
            host=host,
            port=port,
            model=model,
            reconnect=reconnect,
            reconnect_delay_secs=reconnect_delay_secs,
            send_delay_secs=send_delay_secs,
            discovery_timeout_secs=discovery_timeout_secs,
            force=force,
          )

    def disconnect(self, permanent: bool=False) -> None:
        """Closes the connection if connected. Unless permanent is True, an automatic
           reconnect follows if reconnect is enabled."""
        self.connection.disconnect(permanent=permanent)

    def close(self, permanent: bool=False) -> None:
        """Alias for disconnect()."""
        self.disconnect(permanent=permanent)

    def raw(self, data: Optional[str], callback: Optional[CommandCallback]=None) -> asyncio.Future[None]:
        """Queues a raw ISCP command such as 'PWR01' or '!1PWR01'.

        Returns a future that completes once the command has been written and
        the inter-command delay has elapsed. Completion does not mean the
        receiver acted on the command.
        """
        return self.queue.push(data, callback)

    def command(self, code: str, argument: str='', callback: Optional[CommandCallback]=None) -> asyncio.Future[None]:
        """Queues a command given as a code and an argument, e.g. command('MVL', '20')."""
        return self.queue.command(code, argument, callback)

    async def aclose(self) -> None:
        """Permanently shuts down the client. Pending commands fail and no reconnect follows."""
        await self.connection.aclose()
        await self.queue.aclose()
        await self.event_bus.wait_handlers()

    async def __aenter__(self) -> EiscpReceiverClient:
        logger.debug(f"{self}: Entering async context manager")
        return self

    async def __aexit__(
            self,
            exc_type: Optional[Type[BaseException]],
            exc_val: Optional[BaseException],
            exc_tb: Optional[TracebackType],
          ) -> None:
        logger.debug(f"{self}: Exiting async context manager, exc={exc_val}")
        await self.aclose()

    def __str__(self) -> str:
        return f"EiscpReceiverClient({self.config.host}:{self.config.port})"

    def __repr__(self) -> str:
        return str(self)
