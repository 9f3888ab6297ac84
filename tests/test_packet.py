# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

import struct

import pytest

from eiscp_receiver import EiscpReceiverError
from eiscp_receiver.protocol import (
    EiscpPacket,
    EiscpPacketReassembler,
    encode_message,
    decode_packet,
    DEVICE_END_OF_MESSAGE_BYTES,
  )

def device_packet(message: str) -> bytes:
    return EiscpPacket.from_message(message, terminator=DEVICE_END_OF_MESSAGE_BYTES).raw_data

def test_encode_power_on():
    data = encode_message('PWR01')
    assert data == (
        b'ISCP' + b'\x00\x00\x00\x10' + b'\x00\x00\x00\x09' + b'\x01\x00\x00\x00' + b'!1PWR01\r\n')

def test_encode_keeps_existing_marker():
    data = encode_message('!xECNQSTN')
    assert data[16:] == b'!xECNQSTN\r\n'

def test_payload_length_field_matches_payload():
    for message in ('PWR01', 'MVL2A', 'NTCPLAY', '!1SLI10'):
        data = encode_message(message)
        _, header_length, payload_length, version, reserved = struct.unpack('>4sIIB3s', data[:16])
        assert header_length == 16
        assert version == 1
        assert reserved == b'\0\0\0'
        assert payload_length == len(data) - 16

def test_decode_strips_marker_and_terminators():
    assert decode_packet(encode_message('PWR01')) == 'PWR01'
    assert decode_packet(device_packet('!1MVL2A')) == 'MVL2A'

def test_decode_uses_header_length_field():
    # A header longer than 16 bytes must still locate the payload correctly
    payload = b'!1AMT01\x1a\r\n'
    data = struct.pack('>4sIIB3s', b'ISCP', 20, len(payload), 1, b'\0\0\0') + b'\0' * 4 + payload
    assert decode_packet(data) == 'AMT01'

def test_decode_ignores_trailing_bytes():
    data = encode_message('PWR00') + b'junk'
    assert decode_packet(data) == 'PWR00'

def test_decode_rejects_bad_magic():
    data = b'XSCP' + encode_message('PWR01')[4:]
    with pytest.raises(EiscpReceiverError):
        decode_packet(data)

def test_decode_rejects_short_and_incomplete_data():
    data = encode_message('PWR01')
    with pytest.raises(EiscpReceiverError):
        decode_packet(data[:10])
    with pytest.raises(EiscpReceiverError):
        decode_packet(data[:-2])

def test_encode_rejects_non_ascii():
    with pytest.raises(EiscpReceiverError):
        encode_message('NTCé')

def test_packet_marker():
    assert EiscpPacket.from_message('!pECNQSTN').marker == '!p'
    assert EiscpPacket(b'PWR01\r\n').marker == ''
    assert EiscpPacket(b'PWR01\r\n').message == 'PWR01'

def test_reassembler_single_and_coalesced_packets():
    reassembler = EiscpPacketReassembler()
    data = device_packet('PWR01') + device_packet('MVL20') + device_packet('AMT00')
    packets = reassembler.feed(data)
    assert [p.message for p in packets] == ['PWR01', 'MVL20', 'AMT00']
    assert reassembler.pending_length == 0

def test_reassembler_fragmented_packet():
    reassembler = EiscpPacketReassembler()
    data = device_packet('SLI10') + device_packet('PWR00')
    messages = []
    for i in range(len(data)):
        messages.extend(p.message for p in reassembler.feed(data[i:i+1]))
    assert messages == ['SLI10', 'PWR00']

def test_reassembler_discards_garbage():
    discarded = []
    reassembler = EiscpPacketReassembler(on_invalid_data=lambda data, reason: discarded.append(data))
    packets = reassembler.feed(b'garbage' + device_packet('PWR01'))
    assert [p.message for p in packets] == ['PWR01']
    assert b''.join(discarded) == b'garbage'

def test_reassembler_skips_impossible_header():
    discarded = []
    reassembler = EiscpPacketReassembler(on_invalid_data=lambda data, reason: discarded.append(data))
    bad_header = struct.pack('>4sIIB3s', b'ISCP', 4, 5, 1, b'\0\0\0')
    packets = reassembler.feed(bad_header + device_packet('MVL10'))
    assert [p.message for p in packets] == ['MVL10']
    assert len(discarded) > 0

def test_reassembler_skips_oversized_header_length():
    discarded = []
    reassembler = EiscpPacketReassembler(on_invalid_data=lambda data, reason: discarded.append(data))
    bad_header = struct.pack('>4sIIB3s', b'ISCP', 0x7fffffff, 5, 1, b'\0\0\0')
    packets = reassembler.feed(bad_header + device_packet('MVL10'))
    packets += reassembler.feed(device_packet('PWR01'))
    assert [p.message for p in packets] == ['MVL10', 'PWR01']
    assert b''.join(discarded) == bad_header
    assert reassembler.pending_length == 0

def test_reassembler_keeps_partial_magic():
    reassembler = EiscpPacketReassembler()
    data = device_packet('PWR01')
    assert reassembler.feed(b'xx' + data[:3]) == []
    assert [p.message for p in reassembler.feed(data[3:])] == ['PWR01']

def test_reassembler_clear():
    reassembler = EiscpPacketReassembler()
    reassembler.feed(device_packet('PWR01')[:20])
    assert reassembler.pending_length == 20
    reassembler.clear()
    assert reassembler.pending_length == 0
