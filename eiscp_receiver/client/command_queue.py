# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Serialized outbound command queue.

Receivers cannot reliably process back-to-back commands, so commands are sent
strictly one at a time, in FIFO order, with a fixed delay after each
successful send before the next one is started.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod

from ..internal_types import *
from ..exceptions import EiscpReceiverError
from ..pkg_logging import logger
from ..events import EventBus
from ..util import describe_exception
from ..protocol import encode_message

from .client_config import EiscpReceiverClientConfig

CommandCallback = Callable[[Optional[BaseException]], None]
"""Called when a queued command completes. The argument is None if the command
   was transmitted, or the reason it was not. Success only means the bytes were
   written; it says nothing about what the receiver did with them."""

class CommandTransport(ABC):
    """The connection interface used by CommandQueue."""

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """True if write_packet() can currently be used."""
        raise NotImplementedError()

    @abstractmethod
    def write_packet(self, data: bytes) -> None:
        """Writes one encoded eISCP packet. Raises EiscpReceiverError on failure."""
        raise NotImplementedError()

class CommandQueueItem:
    """A raw command waiting to be sent, and the means to report its completion."""

    raw_command: str
    future: asyncio.Future[None]
    callback: Optional[CommandCallback]

    def __init__(
            self,
            raw_command: str,
            future: asyncio.Future[None],
            callback: Optional[CommandCallback]=None
          ) -> None:
        self.raw_command = raw_command
        self.future = future
        self.callback = callback

    def complete(self, exc: Optional[BaseException]=None) -> None:
        """Resolves the item's future and invokes its callback. Only the first call has any effect."""
        if self.future.done():
            return
        if exc is None:
            self.future.set_result(None)
        else:
            self.future.set_exception(exc)
        if self.callback is not None:
            try:
                self.callback(exc)
            except Exception:
                logger.exception(f"Exception in completion callback for command {self.raw_command!r}")

    def __str__(self) -> str:
        return f"CommandQueueItem({self.raw_command!r})"

    def __repr__(self) -> str:
        return str(self)

def _consume_exception(future: asyncio.Future[None]) -> None:
    # Failures are also reported on the error topic and to the callback, so a
    # caller that ignores the future should not get "exception never retrieved".
    if not future.cancelled():
        future.exception()

class CommandQueue:
    """A FIFO, single-worker sender of raw ISCP commands."""

    connection: CommandTransport
    event_bus: EventBus
    config: EiscpReceiverClientConfig
    queue: Optional[asyncio.Queue[CommandQueueItem]] = None
    """Created by the first push(), so the queue binds to the running event loop."""
    worker_task: Optional[asyncio.Task[None]] = None
    current_item: Optional[CommandQueueItem] = None
    is_sending: bool = False
    """True from the moment a command is written until its inter-command delay has elapsed."""
    closed: bool = False

    def __init__(
            self,
            connection: CommandTransport,
            event_bus: EventBus,
            config: EiscpReceiverClientConfig,
          ) -> None:
        self.connection = connection
        self.event_bus = event_bus
        self.config = config

    def __len__(self) -> int:
        """The number of commands waiting to be sent, not counting one in progress."""
        return 0 if self.queue is None else self.queue.qsize()

    def push(self, raw_command: Optional[str], callback: Optional[CommandCallback]=None) -> asyncio.Future[None]:
        """Queues a raw ISCP command (e.g., 'PWR01') for sending.

        Must be called from within the event loop.

        Returns:
            A future that completes when the command has been written and the
            inter-command delay has elapsed, or fails with EiscpReceiverError if
            the command could not be sent. If callback is provided, it is also
            called on completion.
        """
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        future.add_done_callback(_consume_exception)
        if raw_command is None or raw_command == '':
            item = CommandQueueItem('', future, callback)
            item.complete(EiscpReceiverError("No data provided."))
            return future
        item = CommandQueueItem(raw_command, future, callback)
        if self.closed:
            item.complete(EiscpReceiverError("Command queue is closed"))
            return future
        if self.queue is None:
            self.queue = asyncio.Queue()
        self.queue.put_nowait(item)
        if self.worker_task is None:
            self.worker_task = asyncio.create_task(self._run_worker())
        return future

    def command(self, code: str, argument: str='', callback: Optional[CommandCallback]=None) -> asyncio.Future[None]:
        """Queues a command given as separate code and argument, e.g. ('PWR', '01')."""
        return self.push(code + argument, callback)

    async def _run_worker(self) -> None:
        assert self.queue is not None
        while True:
            item = await self.queue.get()
            # If cancelled while sending, current_item is left set for aclose() to fail
            self.current_item = item
            await self._send_item(item)
            self.current_item = None
            self.queue.task_done()

    async def _send_item(self, item: CommandQueueItem) -> None:
        if item.future.done():
            logger.debug(f"Skipping {item}; its future was cancelled before it was sent")
            return

        if not self.connection.is_connected:
            self.event_bus.error(f"ERROR (send_not_connected) Not connected, can't send data: {item.raw_command!r}")
            item.complete(EiscpReceiverError("Send command, while not connected"))
            return

        try:
            data = encode_message(item.raw_command)
        except EiscpReceiverError as e:
            self.event_bus.error(f"ERROR (send_invalid) Can't encode command: {describe_exception(e)}")
            item.complete(e)
            return

        self.is_sending = True
        try:
            self.event_bus.debug(
                f"DEBUG (sent_command) Sent command to {self.config.host}:{self.config.port} - {item.raw_command}")
            try:
                self.connection.write_packet(data)
            except EiscpReceiverError as e:
                item.complete(e)
                return
            # Paces the next send, so it applies even after a successful write
            await asyncio.sleep(self.config.send_delay_secs)
            item.complete()
        finally:
            self.is_sending = False

    async def join(self) -> None:
        """Waits until every queued command has completed."""
        if self.queue is not None:
            await self.queue.join()

    async def aclose(self) -> None:
        """Stops the worker. Commands that have not completed fail with EiscpReceiverError."""
        self.closed = True
        worker_task = self.worker_task
        self.worker_task = None
        if worker_task is not None:
            worker_task.cancel()
            try:
                await worker_task
            except asyncio.CancelledError:
                pass
        if self.queue is None:
            return
        error = EiscpReceiverError("Command queue is closed")
        if self.current_item is not None:
            self.current_item.complete(error)
            self.current_item = None
            self.queue.task_done()
        while not self.queue.empty():
            item = self.queue.get_nowait()
            item.complete(error)
            self.queue.task_done()
