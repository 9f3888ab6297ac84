# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

import asyncio
import time

import pytest

from eiscp_receiver import EiscpReceiverClient, EiscpReceiverError, ConnectionState
from eiscp_receiver.discovery import EiscpDiscoveryClient
from eiscp_receiver.emulator import EiscpReceiverEmulator

SEND_DELAY = 0.1

def make_client(emulator, **kwargs) -> EiscpReceiverClient:
    discovery_client = EiscpDiscoveryClient(broadcast_address='127.0.0.1', port=emulator.discovery_port)
    return EiscpReceiverClient(
        send_delay_secs=SEND_DELAY,
        reconnect_delay_secs=0.1,
        discovery_timeout_secs=1.0,
        discovery_client=discovery_client,
        **kwargs)

def test_power_on_sends_exactly_one_command():
    async def main():
        async with EiscpReceiverEmulator() as emulator:
            async with make_client(emulator, host='127.0.0.1', port=emulator.port, model='TX-NR609') as client:
                power = []
                client.on_command('PWR', power.append)
                assert await client.connect()
                assert client.state == ConnectionState.CONNECTED
                await client.raw('PWR01')
                await emulator.wait_for_messages(1)
                # Give any duplicate send a chance to show up
                await asyncio.sleep(0.2)
                return [m.message for m in emulator.received_messages], emulator.state['PWR'], power
    messages, power_state, power = asyncio.run(main())
    assert messages == ['PWR01']
    assert power_state == '01'
    assert power == ['01']

def test_commands_are_spaced_by_send_delay():
    async def main():
        async with EiscpReceiverEmulator() as emulator:
            async with make_client(emulator, host='127.0.0.1', port=emulator.port, model='TX-NR609') as client:
                assert await client.connect()
                futures = [client.raw('PWR01'), client.command('MVL', '20'), client.raw('!1SLI10')]
                await asyncio.gather(*futures)
                return await emulator.wait_for_messages(3)
    received = asyncio.run(main())
    assert [m.message for m in received] == ['PWR01', 'MVL20', 'SLI10']
    for earlier, later in zip(received, received[1:]):
        assert later.monotonic_time - earlier.monotonic_time >= SEND_DELAY * 0.8

def test_query_reply_is_delivered():
    async def main():
        async with EiscpReceiverEmulator(initial_state={'MVL': '3C'}) as emulator:
            async with make_client(emulator, host='127.0.0.1', port=emulator.port, model='TX-NR609') as client:
                data = []
                client.on('data', data.append)
                volume = []
                client.on_command('MVL', volume.append)
                assert await client.connect()
                await client.command('MVL', 'QSTN')
                deadline = time.monotonic() + 5.0
                while len(volume) == 0 and time.monotonic() < deadline:
                    await asyncio.sleep(0.01)
                return volume, data
    volume, data = asyncio.run(main())
    assert volume == ['3C']
    assert data[0].raw_message == 'MVL3C'
    assert data[0].model == 'TX-NR609'

def test_send_while_disconnected_fails():
    async def main():
        async with EiscpReceiverEmulator() as emulator:
            async with make_client(emulator, host='127.0.0.1', port=emulator.port, model='TX-NR609') as client:
                errors = []
                client.on('error', errors.append)
                callback_results = []
                with pytest.raises(EiscpReceiverError):
                    await client.raw('PWR01', callback=callback_results.append)
                return errors, callback_results, len(emulator.received_messages)
    errors, callback_results, received = asyncio.run(main())
    assert len(errors) == 1
    assert errors[0].startswith('ERROR (send_not_connected)')
    assert len(callback_results) == 1 and isinstance(callback_results[0], EiscpReceiverError)
    assert received == 0

def test_discover_and_connect():
    async def main():
        async with EiscpReceiverEmulator(model='TX-NR646', mac='0009B0AABBCC') as emulator:
            async with make_client(emulator) as client:
                callback_results = []
                devices = await client.discover(callback=lambda err, devices: callback_results.append((err, devices)))
                assert await client.connect()
                return devices, callback_results, client.config.host, client.config.model
    devices, callback_results, host, model = asyncio.run(main())
    assert len(devices) == 1
    assert devices[0].mac == '0009B0AABBCC'
    assert callback_results == [(None, devices)]
    assert host == '127.0.0.1'
    assert model == 'TX-NR646'

def test_subscriptions_can_be_removed():
    async def main():
        async with EiscpReceiverEmulator() as emulator:
            async with make_client(emulator, host='127.0.0.1', port=emulator.port, model='TX-NR609') as client:
                connects = []
                subscription = client.on('connect', lambda host, port, model: connects.append(model))
                assert await client.connect()
                client.off(subscription)
                client.disconnect()
                await emulator.wait_for_sessions(2)
                deadline = time.monotonic() + 5.0
                while not client.is_connected and time.monotonic() < deadline:
                    await asyncio.sleep(0.01)
                return connects, client.is_connected
    connects, connected = asyncio.run(main())
    assert connects == ['TX-NR609']
    assert connected

def test_aclose_fails_queued_commands():
    async def main():
        async with EiscpReceiverEmulator() as emulator:
            client = make_client(emulator, host='127.0.0.1', port=emulator.port, model='TX-NR609')
            client.queue.config.send_delay_secs = 5.0
            assert await client.connect()
            futures = [client.raw('PWR01'), client.raw('PWR00')]
            await emulator.wait_for_messages(1)
            await client.aclose()
            results = await asyncio.gather(*futures, return_exceptions=True)
            return results, client.state
    results, state = asyncio.run(main())
    assert all(isinstance(r, EiscpReceiverError) for r in results)
    assert state == ConnectionState.DISCONNECTED
