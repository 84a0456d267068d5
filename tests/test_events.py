"""Tests for the event bus."""

import pytest

from meucuidador.realtime.events import EventBus, get_event_bus
from meucuidador.realtime.types import ChangeType, DomainChanged, EventName, NotificationPushed


@pytest.fixture
def bus():
    return EventBus()


class TestSubscribe:
    def test_publish_reaches_subscribers_in_order(self, bus):
        calls = []
        bus.subscribe(EventName.NOTIFICATION_PUSHED, lambda e: calls.append(("a", e.data)))
        bus.subscribe("notification_pushed", lambda e: calls.append(("b", e.data)))

        delivered = bus.publish(NotificationPushed(data=1))

        assert calls == [("a", 1), ("b", 1)]
        assert delivered == 2

    def test_events_routed_by_name(self, bus):
        pushed, changed = [], []
        bus.subscribe(EventName.NOTIFICATION_PUSHED, pushed.append)
        bus.subscribe(EventName.DOMAIN_CHANGED, changed.append)

        bus.publish(DomainChanged(change_type=ChangeType.MEDICATION_CREATED))

        assert pushed == []
        assert len(changed) == 1

    def test_unknown_name(self, bus):
        with pytest.raises(ValueError):
            bus.subscribe("medication_deleted", print)

    def test_duplicate_subscription_kept_once(self, bus):
        calls = []
        bus.subscribe(EventName.NOTIFICATION_PUSHED, calls.append)
        bus.subscribe(EventName.NOTIFICATION_PUSHED, calls.append)

        bus.publish(NotificationPushed())

        assert len(calls) == 1
        assert bus.handler_count(EventName.NOTIFICATION_PUSHED) == 1

    def test_no_subscribers(self, bus):
        assert bus.publish(NotificationPushed()) == 0


class TestUnsubscribe:
    def test_returned_callable(self, bus):
        calls = []
        unsubscribe = bus.subscribe(EventName.NOTIFICATION_PUSHED, calls.append)

        unsubscribe()
        unsubscribe()
        bus.publish(NotificationPushed())

        assert calls == []

    def test_unsubscribe_during_publish(self, bus):
        calls = []

        def once(event):
            calls.append("once")
            bus.unsubscribe(EventName.NOTIFICATION_PUSHED, once)

        bus.subscribe(EventName.NOTIFICATION_PUSHED, once)
        bus.subscribe(EventName.NOTIFICATION_PUSHED, lambda e: calls.append("other"))

        bus.publish(NotificationPushed())
        bus.publish(NotificationPushed())

        assert calls == ["once", "other", "other"]

    def test_clear(self, bus):
        bus.subscribe(EventName.DOMAIN_CHANGED, print)
        bus.clear()
        assert bus.handler_count(EventName.DOMAIN_CHANGED) == 0


class TestFailures:
    def test_failing_handler_isolated(self, bus, caplog):
        calls = []

        def broken(event):
            raise RuntimeError("handler bug")

        bus.subscribe(EventName.NOTIFICATION_PUSHED, broken)
        bus.subscribe(EventName.NOTIFICATION_PUSHED, calls.append)

        delivered = bus.publish(NotificationPushed(data="x"))

        assert delivered == 1
        assert len(calls) == 1
        assert "handler bug" in caplog.text


def test_process_bus_is_shared():
    assert get_event_bus() is get_event_bus()
