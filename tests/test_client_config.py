# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

import pytest

from eiscp_receiver import EiscpReceiverError, EiscpReceiverClientConfig

def test_defaults():
    config = EiscpReceiverClientConfig()
    assert config.host is None
    assert config.port == 60128
    assert config.model is None
    assert config.reconnect is True
    assert config.reconnect_delay_secs == 5.0
    assert config.send_delay_secs == 0.5
    assert config.discovery_timeout_secs == 10.0

def test_environment_overrides(monkeypatch):
    monkeypatch.setenv('EISCP_RECEIVER_HOST', '192.168.1.50')
    monkeypatch.setenv('EISCP_RECEIVER_PORT', '60129')
    monkeypatch.setenv('EISCP_RECEIVER_MODEL', 'TX-NR609')
    config = EiscpReceiverClientConfig()
    assert (config.host, config.port, config.model) == ('192.168.1.50', 60129, 'TX-NR609')

    config = EiscpReceiverClientConfig(use_environment=False)
    assert (config.host, config.port, config.model) == (None, 60128, None)

def test_invalid_environment_port(monkeypatch):
    monkeypatch.setenv('EISCP_RECEIVER_PORT', 'sixty')
    with pytest.raises(EiscpReceiverError):
        EiscpReceiverClientConfig()

def test_explicit_values_override_base_config():
    base = EiscpReceiverClientConfig('10.0.0.5', model='TX-NR609', send_delay_secs=0.1)
    config = EiscpReceiverClientConfig(port=60200, reconnect=False, base_config=base)
    assert config.host == '10.0.0.5'
    assert config.port == 60200
    assert config.model == 'TX-NR609'
    assert config.reconnect is False
    assert config.send_delay_secs == 0.1

def test_update_only_merges_supplied_fields():
    config = EiscpReceiverClientConfig('10.0.0.5', model='TX-NR609', reconnect=True)
    config.update(port=60200, reconnect=False)
    assert config.host == '10.0.0.5'
    assert config.model == 'TX-NR609'
    assert config.port == 60200
    assert config.reconnect is False
    config.update(host='', port=0, send_delay_secs=-1.0)
    assert config.host == '10.0.0.5'
    assert config.port == 60200
    assert config.send_delay_secs == 0.5

def test_json_round_trip():
    config = EiscpReceiverClientConfig('10.0.0.5', 60200, model='VSX-1021', reconnect=False, send_delay_secs=0.25)
    restored = EiscpReceiverClientConfig.from_json(config.to_json(), use_environment=False)
    assert restored.to_jsonable() == config.to_jsonable()

def test_from_jsonable_accepts_strings():
    config = EiscpReceiverClientConfig.from_jsonable(dict(host='10.0.0.5', port='60200', send_delay_secs='0.2'))
    assert config.port == 60200
    assert config.send_delay_secs == 0.2

def test_from_jsonable_rejects_bad_values():
    with pytest.raises(EiscpReceiverError):
        EiscpReceiverClientConfig.from_jsonable(dict(port='not-a-port'))
