# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

from __future__ import annotations

import pytest

from eiscp_receiver.events import EventBus, EventTopic

ENV_VARS = ('EISCP_RECEIVER_HOST', 'EISCP_RECEIVER_PORT', 'EISCP_RECEIVER_MODEL')

@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keeps the developer's receiver settings out of the tests."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)

class EventRecorder:
    """Subscribes to every topic of an EventBus and records what it sees."""

    def __init__(self, event_bus: EventBus) -> None:
        self.events = []
        for topic in EventTopic:
            event_bus.subscribe(topic, self._make_handler(topic))

    def _make_handler(self, topic):
        def handler(*args):
            self.events.append((topic, args))
        return handler

    def of(self, topic: EventTopic):
        return [args for t, args in self.events if t == topic]

    def messages(self, topic: EventTopic):
        return [args[0] for args in self.of(topic)]

@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()

@pytest.fixture
def recorder(event_bus: EventBus) -> EventRecorder:
    return EventRecorder(event_bus)
