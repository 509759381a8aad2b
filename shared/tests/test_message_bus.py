"""Tests for event publishing after commit."""

from dataclasses import dataclass
from unittest.mock import patch

import pytest

from shared.application.message_bus import MessageBus
from shared.application.uow import DjangoUnitOfWork
from shared.domain.base import DomainEvent


@dataclass
class SomethingHappened(DomainEvent):
    name: str


def test_failing_handler_does_not_stop_the_others():
    bus = MessageBus()
    seen = []

    def broken(event):
        raise RuntimeError("smtp down")

    bus.register_event_handler(SomethingHappened, broken)
    bus.register_event_handler(SomethingHappened, lambda event: seen.append(event.name))

    bus.publish_events([SomethingHappened(name="first")])

    assert seen == ["first"]


def test_registering_twice_is_a_no_op():
    bus = MessageBus()
    seen = []

    def handler(event):
        seen.append(event.name)

    bus.register_event_handler(SomethingHappened, handler)
    bus.register_event_handler(SomethingHappened, handler)
    bus.publish_events([SomethingHappened(name="once")])

    assert seen == ["once"]


@pytest.mark.django_db
def test_events_are_published_only_after_commit(django_capture_on_commit_callbacks):
    bus = MessageBus()
    seen = []
    bus.register_event_handler(SomethingHappened, lambda event: seen.append(event.name))

    with patch("shared.application.message_bus.message_bus", bus):
        with django_capture_on_commit_callbacks(execute=True):
            with DjangoUnitOfWork() as uow:
                uow.add_event(SomethingHappened(name="committed"))
                assert seen == []

    assert seen == ["committed"]


@pytest.mark.django_db
def test_rolled_back_events_are_discarded(django_capture_on_commit_callbacks):
    bus = MessageBus()
    seen = []
    bus.register_event_handler(SomethingHappened, lambda event: seen.append(event.name))

    with patch("shared.application.message_bus.message_bus", bus):
        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            with pytest.raises(ValueError):
                with DjangoUnitOfWork() as uow:
                    uow.add_event(SomethingHappened(name="rolled back"))
                    raise ValueError("boom")

    assert callbacks == []
    assert seen == []
