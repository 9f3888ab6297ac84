# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

import asyncio

import pytest

from eiscp_receiver import EiscpReceiverError
from eiscp_receiver.events import EventBus, EventTopic

def test_topic_subscribers_receive_arguments():
    bus = EventBus()
    seen = []
    bus.subscribe(EventTopic.CONNECT, lambda host, port, model: seen.append((host, port, model)))
    bus.subscribe('close', lambda host, port: seen.append((host, port)))
    bus.emit(EventTopic.CONNECT, '10.0.0.5', 60128, 'TX-NR609')
    bus.emit(EventTopic.CLOSE, '10.0.0.5', 60128)
    assert seen == [('10.0.0.5', 60128, 'TX-NR609'), ('10.0.0.5', 60128)]

def test_command_subscribers_receive_argument_only():
    bus = EventBus()
    power = []
    volume = []
    bus.subscribe_command('PWR', power.append)
    bus.subscribe_command('MVL', volume.append)
    bus.emit_command('PWR', '01')
    bus.emit_command('AMT', '00')
    assert power == ['01']
    assert volume == []

def test_command_code_must_have_three_characters():
    bus = EventBus()
    with pytest.raises(EiscpReceiverError):
        bus.subscribe_command('PW', print)

def test_unsubscribe():
    bus = EventBus()
    seen = []
    topic_id = bus.subscribe(EventTopic.ERROR, seen.append)
    command_id = bus.subscribe_command('PWR', seen.append)
    bus.unsubscribe(topic_id)
    bus.unsubscribe(command_id)
    bus.unsubscribe(12345)
    bus.emit(EventTopic.ERROR, 'boom')
    bus.emit_command('PWR', '01')
    assert seen == []
    assert not bus.has_subscribers(EventTopic.ERROR)
    assert 'PWR' not in bus.command_handlers

def test_failing_handler_does_not_block_others():
    bus = EventBus()
    seen = []
    def bad_handler(message):
        raise RuntimeError("handler failure")
    bus.subscribe(EventTopic.DEBUG, bad_handler)
    bus.subscribe(EventTopic.DEBUG, seen.append)
    bus.debug('hello')
    assert seen == ['hello']

def test_coroutine_handlers_are_run():
    async def main():
        bus = EventBus()
        seen = []
        async def handler(argument):
            await asyncio.sleep(0)
            seen.append(argument)
        bus.subscribe_command('SLI', handler)
        bus.emit_command('SLI', '10')
        await bus.wait_handlers()
        return seen
    assert asyncio.run(main()) == ['10']
