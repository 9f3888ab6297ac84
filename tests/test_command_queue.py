# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

import asyncio
import time

import pytest

from eiscp_receiver import EiscpReceiverError, EiscpReceiverClientConfig
from eiscp_receiver.events import EventTopic
from eiscp_receiver.protocol import decode_packet
from eiscp_receiver.client import CommandQueue, CommandTransport

SEND_DELAY = 0.1

class FakeTransport(CommandTransport):
    def __init__(self, connected: bool=True, failing_writes: int=0) -> None:
        self.connected = connected
        self.failing_writes = failing_writes
        self.writes = []

    @property
    def is_connected(self) -> bool:
        return self.connected

    def write_packet(self, data: bytes) -> None:
        if self.failing_writes > 0:
            self.failing_writes -= 1
            raise EiscpReceiverError("Write to receiver failed: broken pipe")
        self.writes.append((time.monotonic(), decode_packet(data)))

def make_queue(transport, event_bus, send_delay_secs=SEND_DELAY):
    config = EiscpReceiverClientConfig('10.0.0.5', model='TX-NR609', send_delay_secs=send_delay_secs)
    return CommandQueue(transport, event_bus, config)

def test_commands_are_sent_in_order_with_delay(event_bus):
    async def main():
        transport = FakeTransport()
        queue = make_queue(transport, event_bus)
        futures = [queue.push('PWR01'), queue.push('MVL20'), queue.command('SLI', '10')]
        await asyncio.gather(*futures)
        await queue.aclose()
        return transport.writes
    writes = asyncio.run(main())
    assert [message for _, message in writes] == ['PWR01', 'MVL20', 'SLI10']
    for (t0, _), (t1, _) in zip(writes, writes[1:]):
        assert t1 - t0 >= SEND_DELAY * 0.9

def test_completion_waits_for_delay(event_bus):
    async def main():
        queue = make_queue(FakeTransport(), event_bus, send_delay_secs=0.2)
        start = time.monotonic()
        await queue.push('PWR01')
        elapsed = time.monotonic() - start
        await queue.aclose()
        return elapsed
    assert asyncio.run(main()) >= 0.18

def test_callback_is_called_on_success(event_bus):
    async def main():
        results = []
        queue = make_queue(FakeTransport(), event_bus)
        await queue.push('PWR01', callback=results.append)
        await queue.aclose()
        return results
    assert asyncio.run(main()) == [None]

def test_not_connected_fails_immediately(event_bus, recorder):
    async def main():
        transport = FakeTransport(connected=False)
        queue = make_queue(transport, event_bus, send_delay_secs=1.0)
        errors = []
        start = time.monotonic()
        future1 = queue.push('PWR01', callback=errors.append)
        future2 = queue.push('MVL20')
        with pytest.raises(EiscpReceiverError, match="Send command, while not connected"):
            await future1
        with pytest.raises(EiscpReceiverError):
            await future2
        elapsed = time.monotonic() - start
        await queue.aclose()
        return transport.writes, errors, elapsed
    writes, errors, elapsed = asyncio.run(main())
    assert writes == []
    assert len(errors) == 1 and isinstance(errors[0], EiscpReceiverError)
    assert elapsed < 0.5
    messages = recorder.messages(EventTopic.ERROR)
    assert len(messages) == 2
    assert messages[0].startswith('ERROR (send_not_connected) Not connected')

def test_empty_command_is_rejected(event_bus):
    async def main():
        transport = FakeTransport()
        queue = make_queue(transport, event_bus)
        errors = []
        future = queue.push('', callback=errors.append)
        with pytest.raises(EiscpReceiverError, match="No data provided."):
            await future
        with pytest.raises(EiscpReceiverError):
            await queue.push(None)
        await queue.aclose()
        return transport.writes, errors
    writes, errors = asyncio.run(main())
    assert writes == []
    assert len(errors) == 1

def test_write_failure_fails_command_and_continues(event_bus):
    async def main():
        transport = FakeTransport(failing_writes=1)
        queue = make_queue(transport, event_bus)
        future1 = queue.push('PWR01')
        future2 = queue.push('MVL20')
        with pytest.raises(EiscpReceiverError):
            await future1
        await future2
        await queue.aclose()
        return transport.writes
    writes = asyncio.run(main())
    assert [message for _, message in writes] == ['MVL20']

def test_aclose_fails_pending_commands(event_bus):
    async def main():
        queue = make_queue(FakeTransport(), event_bus, send_delay_secs=5.0)
        futures = [queue.push('PWR01'), queue.push('MVL20')]
        await asyncio.sleep(0.05)
        assert queue.is_sending
        await queue.aclose()
        results = await asyncio.gather(*futures, return_exceptions=True)
        with pytest.raises(EiscpReceiverError):
            await queue.push('SLI10')
        return results
    results = asyncio.run(main())
    assert all(isinstance(r, EiscpReceiverError) for r in results)

def test_sent_command_debug_event(event_bus, recorder):
    async def main():
        queue = make_queue(FakeTransport(), event_bus, send_delay_secs=0.0)
        await queue.push('PWR01')
        await queue.aclose()
    asyncio.run(main())
    assert 'DEBUG (sent_command) Sent command to 10.0.0.5:60128 - PWR01' in recorder.messages(EventTopic.DEBUG)

def test_queue_created_outside_event_loop(event_bus):
    transport = FakeTransport()
    queue = make_queue(transport, event_bus)
    assert len(queue) == 0
    async def main():
        await queue.join()
        await asyncio.gather(queue.push('PWR01'), queue.push('MVL20'))
        await queue.join()
        await queue.aclose()
    asyncio.run(main())
    assert [message for _, message in transport.writes] == ['PWR01', 'MVL20']

def test_aclose_before_first_push(event_bus):
    async def main():
        queue = make_queue(FakeTransport(), event_bus)
        await queue.aclose()
        with pytest.raises(EiscpReceiverError):
            await queue.push('PWR01')
    asyncio.run(main())
