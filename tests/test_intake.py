"""Tests for emergency request intake."""

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from conftest import T0, make_payload

from sosrelay.core.exceptions import TransportError, ValidationError
from sosrelay.schemas.priority import ListPriority, SinglePriority
from sosrelay.services.fcm_credentials import ServiceAccountCredentials
from sosrelay.services.intake import build_record, create_emergency, decode_payload
from sosrelay.services.push_dispatcher import FcmDispatcher


class TestDecodePayload:
    """Payloads may arrive as objects or JSON text."""

    def test_mapping(self):
        assert decode_payload({"a": 1}) == {"a": 1}

    def test_json_text(self):
        assert decode_payload('{"a": 1}') == {"a": 1}

    def test_json_bytes(self):
        assert decode_payload(b'{"a": 1}') == {"a": 1}

    def test_double_encoded(self):
        assert decode_payload(json.dumps(json.dumps({"a": 1}))) == {"a": 1}

    def test_invalid_json(self):
        with pytest.raises(ValidationError, match="not valid JSON"):
            decode_payload("{not json")

    def test_non_object(self):
        with pytest.raises(ValidationError, match="JSON object"):
            decode_payload("[1, 2]")


class TestBuildRecord:
    """Validation and the initial record."""

    def test_initial_state(self, clock):
        record = build_record(make_payload(), clock)

        assert record.current_priority_index == 0
        assert record.status == "pending"
        assert record.created_at == T0
        assert record.last_sent_at == T0
        assert record.sender_uid == "user-1"
        assert record.maps_url == "https://maps.example/?q=41,29"
        assert record.priorities == [
            SinglePriority(target="token-a"),
            SinglePriority(target="token-b"),
            SinglePriority(target="token-c"),
        ]

    def test_defaults(self, clock):
        payload = make_payload()
        del payload["senderUid"], payload["condition"], payload["location"]

        record = build_record(payload, clock)

        assert record.sender_uid == "unknown"
        assert record.condition == ""
        assert record.location == {}
        assert record.maps_url == ""

    def test_non_mapping_location_kept(self, clock):
        record = build_record(make_payload(location="Main St 1"), clock)
        assert record.location == "Main St 1"
        assert record.maps_url == ""

    def test_malformed_priorities_accepted(self, clock):
        record = build_record(make_payload(priorities=[{"name": "x"}, "tok"]), clock)
        assert record.priorities == [ListPriority(), SinglePriority(target="tok")]

    @pytest.mark.parametrize("field", ["type", "need"])
    @pytest.mark.parametrize("value", [None, "", "   ", 5])
    def test_required_text(self, clock, field, value):
        with pytest.raises(ValidationError, match=field):
            build_record(make_payload(**{field: value}), clock)

    @pytest.mark.parametrize("value", [None, [], "token-a", {"a": "b"}])
    def test_priorities_must_be_non_empty_list(self, clock, value):
        with pytest.raises(ValidationError, match="priorities"):
            build_record(make_payload(priorities=value), clock)

    def test_non_string_condition_rejected(self, clock):
        with pytest.raises(ValidationError, match="condition"):
            build_record(make_payload(condition=3), clock)


class TestCreateEmergency:
    """Store first, then notify the first priority."""

    @pytest.mark.asyncio
    async def test_stores_and_notifies_first_priority(self, store, dispatcher, clock):
        request_id = await create_emergency(make_payload(), store, dispatcher, clock)

        record = await store.get(request_id)
        assert record.id == request_id
        assert record.current_priority_index == 0

        assert len(dispatcher.calls) == 1
        sent = dispatcher.calls[0]
        assert sent.targets == ["token-a"]
        assert sent.title == "Emergency: medical"
        assert sent.body == "ambulance \u2014 unconscious"
        assert sent.metadata == {
            "emergencyId": request_id,
            "mapsUrl": "https://maps.example/?q=41,29",
        }

    @pytest.mark.asyncio
    async def test_body_without_condition(self, store, dispatcher, clock):
        await create_emergency(make_payload(condition=""), store, dispatcher, clock)
        assert dispatcher.calls[0].body == "ambulance"

    @pytest.mark.asyncio
    async def test_list_priority_multicast(self, store, dispatcher, clock):
        payload = make_payload(priorities=[{"tokens": ["t1", "t2"]}, "token-b"])

        await create_emergency(payload, store, dispatcher, clock)

        assert dispatcher.sent_targets == [["t1", "t2"]]

    @pytest.mark.asyncio
    async def test_json_text_payload(self, store, dispatcher, clock):
        request_id = await create_emergency(
            json.dumps(make_payload()), store, dispatcher, clock
        )
        assert (await store.get(request_id)) is not None

    @pytest.mark.asyncio
    async def test_invalid_payload_stores_nothing(self, store, dispatcher, clock):
        with pytest.raises(ValidationError):
            await create_emergency(make_payload(need=""), store, dispatcher, clock)

        assert len(store) == 0
        assert dispatcher.calls == []

    @pytest.mark.asyncio
    async def test_first_priority_without_target(self, store, dispatcher, clock):
        payload = make_payload(priorities=[{"tokens": []}, "token-b"])

        request_id = await create_emergency(payload, store, dispatcher, clock)

        assert dispatcher.calls == []
        record = await store.get(request_id)
        assert record.current_priority_index == 0
        assert record.last_sent_at == T0

    @pytest.mark.asyncio
    async def test_dispatch_failure_still_creates(self, store, dispatcher, clock):
        dispatcher.error = TransportError("FCM send failed: 500")

        request_id = await create_emergency(make_payload(), store, dispatcher, clock)

        record = await store.get(request_id)
        assert record.status == "pending"
        assert record.current_priority_index == 0

    @pytest.mark.asyncio
    async def test_dispatch_timeout_still_creates(self, store, dispatcher, clock):
        dispatcher.delay = 5

        request_id = await create_emergency(
            make_payload(), store, dispatcher, clock, dispatch_timeout=0.05
        )

        assert (await store.get(request_id)) is not None

    @pytest.mark.asyncio
    async def test_unreadable_fcm_response_still_creates(self, store, clock):
        credentials = MagicMock(spec=ServiceAccountCredentials)
        credentials.get_access_token = AsyncMock(return_value="access-token")
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(
                lambda request: httpx.Response(200, text="<html>ok</html>")
            )
        )
        dispatcher = FcmDispatcher(client, credentials, "demo-project")

        request_id = await create_emergency(make_payload(), store, dispatcher, clock)

        assert len(store) == 1
        assert (await store.get(request_id)).status == "pending"

    @pytest.mark.asyncio
    async def test_unexpected_dispatch_error_still_creates(self, store, dispatcher, clock):
        dispatcher.error = RuntimeError("dispatcher bug")

        request_id = await create_emergency(make_payload(), store, dispatcher, clock)

        assert (await store.get(request_id)) is not None
        assert len(store) == 1
