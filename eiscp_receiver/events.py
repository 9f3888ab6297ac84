# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Publish/subscribe surface for eISCP client sessions.

Subscribers register either for one of the fixed EventTopic values or for a
specific 3-character ISCP command code. Handlers may be plain callables or
coroutine functions; coroutines are scheduled as tasks on the running loop.
"""

from __future__ import annotations

import asyncio
import inspect

from aenum import Enum as AEnum

from .internal_types import *
from .exceptions import EiscpReceiverError
from .pkg_logging import logger
from .protocol import COMMAND_CODE_LENGTH

class EventTopic(AEnum):
    CONNECT = 'connect'
    """Session connected. Handler args: (host: str, port: int, model: Optional[str])"""

    CLOSE = 'close'
    """Session closed. Handler args: (host: str, port: int)"""

    ERROR = 'error'
    """Transport or send error. Handler args: (message: str)"""

    DEBUG = 'debug'
    """Diagnostic trace. Handler args: (message: str)"""

    DATA = 'data'
    """Any decoded inbound message. Handler args: (message: IscpMessage)"""

EventHandler = Callable[..., Any]
"""A subscriber callback. May return an awaitable, which will be run as a task."""

class EventBus:
    """A registry of subscribers keyed by EventTopic and by ISCP command code."""

    topic_handlers: Dict[EventTopic, Dict[int, EventHandler]]
    """Handlers for the fixed topics, indexed by subscription ID."""

    command_handlers: Dict[str, Dict[int, EventHandler]]
    """Handlers for per-command-code notifications, indexed by command code, then by subscription ID."""

    i_next_subscription: int = 0
    """The next subscription ID to assign."""

    _subscription_keys: Dict[int, Union[EventTopic, str]]
    _pending_tasks: Set[asyncio.Task[Any]]

    def __init__(self) -> None:
        self.topic_handlers = { topic: {} for topic in EventTopic }
        self.command_handlers = {}
        self._subscription_keys = {}
        self._pending_tasks = set()

    def _alloc_subscription_id(self, key: Union[EventTopic, str]) -> int:
        i = self.i_next_subscription
        self.i_next_subscription += 1
        self._subscription_keys[i] = key
        return i

    def subscribe(self, topic: Union[EventTopic, str], handler: EventHandler) -> int:
        """Adds a handler for a fixed topic. Returns a subscription ID for unsubscribe()."""
        topic = EventTopic(topic)
        i = self._alloc_subscription_id(topic)
        self.topic_handlers[topic][i] = handler
        return i

    def subscribe_command(self, code: str, handler: EventHandler) -> int:
        """Adds a handler that is called with the argument string of every inbound
           message with the given 3-character command code (e.g., 'PWR').
           Returns a subscription ID for unsubscribe()."""
        if len(code) != COMMAND_CODE_LENGTH:
            raise EiscpReceiverError(f"ISCP command code must be {COMMAND_CODE_LENGTH} characters: {code!r}")
        i = self._alloc_subscription_id(code)
        self.command_handlers.setdefault(code, {})[i] = handler
        return i

    def unsubscribe(self, subscription_id: int) -> None:
        """Removes a previously added subscription. Unknown IDs are ignored."""
        key = self._subscription_keys.pop(subscription_id, None)
        if key is None:
            return
        if isinstance(key, EventTopic):
            self.topic_handlers[key].pop(subscription_id, None)
        else:
            handlers = self.command_handlers.get(key)
            if handlers is not None:
                handlers.pop(subscription_id, None)
                if len(handlers) == 0:
                    del self.command_handlers[key]

    def has_subscribers(self, topic: EventTopic) -> bool:
        return len(self.topic_handlers[topic]) > 0

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._pending_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Event handler task raised an exception", exc_info=task.exception())

    def _dispatch(self, handlers: Iterable[EventHandler], args: Tuple[Any, ...]) -> None:
        # Copy so handlers can unsubscribe while being called
        for handler in list(handlers):
            try:
                result = handler(*args)
                if inspect.isawaitable(result):
                    task = asyncio.ensure_future(result)
                    self._pending_tasks.add(task)
                    task.add_done_callback(self._on_task_done)
            except Exception:
                logger.exception(f"Exception in event handler {handler!r}")

    def emit(self, topic: EventTopic, *args: Any) -> None:
        """Calls all handlers subscribed to a topic."""
        self._dispatch(self.topic_handlers[topic].values(), args)

    def emit_command(self, code: str, argument: str) -> None:
        """Calls all handlers subscribed to a command code with the message argument."""
        handlers = self.command_handlers.get(code)
        if handlers is not None:
            self._dispatch(handlers.values(), (argument,))

    def debug(self, message: str) -> None:
        """Logs a debug message and publishes it on the DEBUG topic."""
        logger.debug(message)
        self.emit(EventTopic.DEBUG, message)

    def error(self, message: str) -> None:
        """Logs an error message and publishes it on the ERROR topic."""
        logger.warning(message)
        self.emit(EventTopic.ERROR, message)

    async def wait_handlers(self) -> None:
        """Waits for any handler tasks that are still running."""
        while len(self._pending_tasks) > 0:
            await asyncio.gather(*list(self._pending_tasks), return_exceptions=True)
