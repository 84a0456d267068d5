"""Tests for frame parsing and the message dispatcher."""

import json

import pytest

from meucuidador.realtime.events import EventBus
from meucuidador.realtime.exceptions import FrameDecodeError
from meucuidador.realtime.router import MessageDispatcher, parse_frame
from meucuidador.realtime.types import (
    ChangeType,
    DomainChanged,
    EventName,
    InboundFrame,
    NotificationPushed,
)


class TestParseFrame:
    def test_kind(self):
        frame = parse_frame('{"kind": "enterprise_notification", "data": {"id": 1}}')
        assert frame.kind == "enterprise_notification"
        assert frame.data == {"id": 1}

    def test_type_alias(self):
        frame = parse_frame('{"type": "auth_success", "message": "Authenticated"}')
        assert frame.kind == "auth_success"
        assert frame.message == "Authenticated"

    def test_kind_wins_over_type(self):
        frame = parse_frame('{"kind": "medication_created", "type": "other"}')
        assert frame.kind == "medication_created"

    def test_bytes(self):
        frame = parse_frame(json.dumps({"type": "auth_success"}).encode("utf-8"))
        assert frame.kind == "auth_success"

    def test_extra_fields_ignored(self):
        frame = parse_frame('{"type": "auth_success", "timestamp": 123}')
        assert frame == InboundFrame(kind="auth_success")

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            b"\xff\xfe",
            "[]",
            '"text"',
            "42",
            "{}",
            '{"data": {}}',
            '{"kind": 5}',
        ],
    )
    def test_malformed(self, raw):
        with pytest.raises(FrameDecodeError):
            parse_frame(raw)


class TestMessageDispatcher:
    @pytest.fixture
    def bus(self):
        return EventBus()

    @pytest.fixture
    def dispatcher(self, bus):
        return MessageDispatcher(bus)

    def _collect(self, bus, name):
        received = []
        bus.subscribe(name, received.append)
        return received

    def test_enterprise_notification(self, bus, dispatcher):
        received = self._collect(bus, EventName.NOTIFICATION_PUSHED)

        assert dispatcher.dispatch(InboundFrame(kind="enterprise_notification", data={"id": 5}))

        assert received == [NotificationPushed(data={"id": 5})]
        assert dispatcher.dispatched_count == 1

    @pytest.mark.parametrize("kind", ["medication_updated", "medication_created", "notification_created"])
    def test_domain_changes(self, bus, dispatcher, kind):
        received = self._collect(bus, EventName.DOMAIN_CHANGED)

        dispatcher.dispatch(InboundFrame(kind=kind, data={"id": 2}))

        assert received == [DomainChanged(change_type=ChangeType(kind), data={"id": 2})]

    def test_notification_does_not_emit_domain_change(self, bus, dispatcher):
        domain = self._collect(bus, EventName.DOMAIN_CHANGED)

        dispatcher.dispatch(InboundFrame(kind="enterprise_notification"))

        assert domain == []

    def test_unknown_kind_dropped(self, bus, dispatcher):
        pushed = self._collect(bus, EventName.NOTIFICATION_PUSHED)
        changed = self._collect(bus, EventName.DOMAIN_CHANGED)

        assert not dispatcher.dispatch(InboundFrame(kind="appointment_created"))

        assert pushed == [] and changed == []
        assert dispatcher.dropped_count == 1

    def test_handshake_kinds_not_classified(self, dispatcher):
        for kind in MessageDispatcher.HANDSHAKE_KINDS:
            assert dispatcher.classify(InboundFrame(kind=kind)) is None

    def test_missing_data_is_none(self, bus, dispatcher):
        received = self._collect(bus, EventName.NOTIFICATION_PUSHED)

        dispatcher.dispatch(InboundFrame(kind="enterprise_notification"))

        assert received[0].data is None

    def test_handle_raw_never_raises(self, bus, dispatcher):
        received = self._collect(bus, EventName.NOTIFICATION_PUSHED)

        assert dispatcher.handle_raw("garbage") is False
        assert dispatcher.handle_raw('{"type": "enterprise_notification", "data": 1}') is True

        assert len(received) == 1
        assert dispatcher.dropped_count == 1
