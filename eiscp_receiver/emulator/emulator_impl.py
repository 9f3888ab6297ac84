# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
eISCP receiver emulator.

Provides a simple emulation of an eISCP receiver on TCP/IP, with an optional
UDP discovery responder. The emulator keeps a table of current values indexed
by command code: a 'QSTN' argument queries the value, and any other argument
sets it and echoes the new value back to the client, as receivers do.
"""

from __future__ import annotations

import asyncio
import time

from ..internal_types import *
from ..exceptions import EiscpReceiverError
from ..pkg_logging import logger
from ..protocol import split_command

from .session import EiscpReceiverEmulatorSession
from .discovery_responder import EiscpDiscoveryResponder, EmulatedDiscoveryDevice

QUERY_ARGUMENT = 'QSTN'
UNAVAILABLE_ARGUMENT = 'N/A'

DEFAULT_EMULATOR_STATE: Dict[str, str] = {
    'PWR': '00',
    'MVL': '28',
    'AMT': '00',
    'SLI': '10',
  }

class EmulatorReceivedMessage:
    session_id: int
    message: str
    monotonic_time: float

    def __init__(self, session_id: int, message: str) -> None:
        self.session_id = session_id
        self.message = message
        self.monotonic_time = time.monotonic()

    def __str__(self) -> str:
        return f"EmulatorReceivedMessage(session={self.session_id}, message={self.message!r})"

    def __repr__(self) -> str:
        return str(self)

class EiscpReceiverEmulator(AsyncContextManager['EiscpReceiverEmulator']):
    model: str
    bind_addr: str
    port: int
    """The TCP port. 0 before start() selects an ephemeral port; after start() it is the bound port."""
    area_code: str
    mac: str
    state: Dict[str, str]
    echo: bool
    sessions: Dict[int, EiscpReceiverEmulatorSession]
    next_session_id: int = 0
    sessions_accepted: int = 0
    received_messages: List[EmulatorReceivedMessage]
    server: Optional[asyncio.Server] = None
    final_result: asyncio.Future[None]

    with_discovery: bool
    discovery_port: int
    discovery_response_delay_secs: float
    discovery_responder: Optional[EiscpDiscoveryResponder] = None

    _message_waiters: List[Tuple[int, asyncio.Future[None]]]
    _session_waiters: List[Tuple[int, asyncio.Future[None]]]

    def __init__(
            self,
            model: str='TX-NR609',
            bind_addr: str='127.0.0.1',
            port: int=0,
            area_code: str='DX',
            mac: str='0009B0D2A8F0',
            initial_state: Optional[Mapping[str, str]]=None,
            echo: bool=True,
            with_discovery: bool=True,
            discovery_port: int=0,
            discovery_response_delay_secs: float=0.0,
          ):
        self.model = model
        self.bind_addr = bind_addr
        self.port = port
        self.area_code = area_code
        self.mac = mac
        self.state = dict(DEFAULT_EMULATOR_STATE)
        if initial_state is not None:
            self.state.update(initial_state)
        self.echo = echo
        self.sessions = {}
        self.received_messages = []
        self.with_discovery = with_discovery
        self.discovery_port = discovery_port
        self.discovery_response_delay_secs = discovery_response_delay_secs
        self._message_waiters = []
        self._session_waiters = []
        self.final_result = asyncio.get_event_loop().create_future()

    def alloc_session_id(self, session: EiscpReceiverEmulatorSession) -> int:
        result = self.next_session_id
        self.next_session_id += 1
        self.sessions[result] = session
        return result

    def free_session_id(self, session_id: int) -> None:
        self.sessions.pop(session_id, None)

    @staticmethod
    def _resolve_waiters(waiters: List[Tuple[int, asyncio.Future[None]]], count: int) -> None:
        for target, future in list(waiters):
            if count >= target:
                waiters.remove((target, future))
                if not future.done():
                    future.set_result(None)

    def on_session_connected(self, session: EiscpReceiverEmulatorSession) -> None:
        self.sessions_accepted += 1
        self._resolve_waiters(self._session_waiters, self.sessions_accepted)

    def on_message_received(self, session: EiscpReceiverEmulatorSession, message: str) -> None:
        """Called when a session receives a complete message. Sends the reply, if any."""
        code, argument = split_command(message)
        self.received_messages.append(EmulatorReceivedMessage(session.session_id, message))
        self._resolve_waiters(self._message_waiters, len(self.received_messages))
        reply = self.handle_command(code, argument)
        if reply is not None:
            session.send_message(reply)

    def handle_command(self, code: str, argument: str) -> Optional[str]:
        """Handles one command and returns the reply message, or None for no reply."""
        if argument == QUERY_ARGUMENT:
            value = self.state.get(code, UNAVAILABLE_ARGUMENT)
            logger.debug(f"Emulator: Responding to {code} query with {value!r}")
            return code + value
        logger.debug(f"Emulator: Setting {code} to {argument!r}")
        self.state[code] = argument
        if self.echo:
            return code + argument
        return None

    def broadcast(self, message: str) -> None:
        """Sends an unsolicited message to every connected client, as a receiver does
           when its state is changed from the front panel or a remote."""
        for session in list(self.sessions.values()):
            session.send_message(message)

    def close_sessions(self, abort: bool=True) -> None:
        """Drops every client connection without stopping the server."""
        for session in list(self.sessions.values()):
            session.close(abort=abort)

    async def _wait_for_count(
            self,
            waiters: List[Tuple[int, asyncio.Future[None]]],
            current: int,
            count: int,
            timeout: Optional[float],
          ) -> None:
        if current >= count:
            return
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        waiters.append((count, future))
        try:
            await asyncio.wait_for(future, timeout)
        finally:
            if (count, future) in waiters:
                waiters.remove((count, future))

    async def wait_for_messages(self, count: int, timeout: Optional[float]=5.0) -> List[EmulatorReceivedMessage]:
        """Waits until at least count messages have been received in total.

        Raises asyncio.TimeoutError if that does not happen within timeout seconds.
        """
        await self._wait_for_count(self._message_waiters, len(self.received_messages), count, timeout)
        return list(self.received_messages)

    async def wait_for_sessions(self, count: int, timeout: Optional[float]=5.0) -> None:
        """Waits until at least count client connections have been accepted in total."""
        await self._wait_for_count(self._session_waiters, self.sessions_accepted, count, timeout)

    async def start(self) -> None:
        try:
            loop = asyncio.get_running_loop()
            self.server = await loop.create_server(
                lambda: EiscpReceiverEmulatorSession(self),
                host=self.bind_addr,
                port=self.port)
            self.port = self.server.sockets[0].getsockname()[1]
            logger.debug(f"Emulator: Listening on {self.bind_addr}:{self.port}")
            await self.server.start_serving()
            if self.with_discovery:
                device = EmulatedDiscoveryDevice(
                    model=self.model,
                    port=self.port,
                    area_code=self.area_code,
                    mac=self.mac,
                    response_delay_secs=self.discovery_response_delay_secs,
                  )
                self.discovery_responder = EiscpDiscoveryResponder(
                    devices=[device],
                    bind_addr=self.bind_addr,
                    port=self.discovery_port,
                  )
                await self.discovery_responder.start()
                self.discovery_port = self.discovery_responder.port
        except BaseException as e:
            self.set_final_result(e)
            try:
                await self.wait_closed()
            except BaseException as e2:
                logger.debug(f"Emulator: Ignoring exception during failed start cleanup: {e2}")
            raise

    def close(self, exc: Optional[BaseException]=None) -> None:
        """Stops the Emulator."""
        self.set_final_result(exc)

    async def wait_closed(self) -> None:
        """Waits for the emulator to be fully closed. Does not initiate shutdown."""
        try:
            await self.final_result
        finally:
            if self.discovery_responder is not None:
                self.discovery_responder.close()
                self.discovery_responder = None
            if self.server is not None:
                server = self.server
                self.server = None
                server.close()
                self.close_sessions(abort=True)
                await server.wait_closed()

    async def close_and_wait(self, exc: Optional[BaseException]=None) -> None:
        self.close(exc)
        await self.wait_closed()

    def set_final_result(self, exc: Optional[BaseException]=None) -> None:
        if not self.final_result.done():
            if exc is None:
                logger.debug(f"Emulator: Setting final result to success")
                self.final_result.set_result(None)
            else:
                logger.debug(f"Emulator: Setting final exception: {exc}")
                self.final_result.set_exception(exc)
            for _, future in self._message_waiters + self._session_waiters:
                if not future.done():
                    future.set_exception(EiscpReceiverError("Emulator closed"))
            self._message_waiters.clear()
            self._session_waiters.clear()
            if self.server is not None:
                self.server.close()

    async def __aenter__(self) -> EiscpReceiverEmulator:
        await self.start()
        return self

    async def __aexit__(
            self,
            exc_type: Optional[Type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> None:
        self.set_final_result(exc)
        try:
            await self.wait_closed()
        except Exception as e:
            logger.debug(f"Emulator: exited with exception: {e}")

    def __str__(self) -> str:
        return f"EiscpReceiverEmulator(model={self.model!r}, {self.bind_addr}:{self.port})"

    def __repr__(self) -> str:
        return str(self)
