"""Unit tests for the call/response message model."""

import json

import pytest

from anyrpc.protocol import (
    FIRE_AND_FORGET_ID,
    MessageKind,
    ProtocolError,
    WrappedCall,
    WrappedResponse,
    classify,
    parse_message,
    to_wire,
)


class TestWrappedCall:
    """Test WrappedCall creation and wire form."""

    def test_create(self):
        """create() should fill id, method and payload."""
        call = WrappedCall.create(7, "echo", {"text": "hi"})

        assert call.call_id == 7
        assert call.method == "echo"
        assert call.payload == {"text": "hi"}
        assert call.aux_data is None

    def test_payload_defaults_to_none(self):
        """A call without payload carries None."""
        call = WrappedCall.create(1, "ping")

        assert call.payload is None

    def test_fire_and_forget(self):
        """Only the sentinel id marks a fire-and-forget call."""
        assert WrappedCall.create(FIRE_AND_FORGET_ID, "notify").is_fire_and_forget() is True
        assert WrappedCall.create(1, "notify").is_fire_and_forget() is False

    def test_wire_form_uses_aliases(self):
        """to_wire() should use camelCase keys."""
        wire = to_wire(WrappedCall.create(3, "echo", "hi"))

        assert wire == {"correlationId": 3, "method": "echo", "payload": "hi"}

    def test_wire_form_drops_unset_aux_data(self):
        """auxData should not appear on the wire unless set."""
        assert "auxData" not in to_wire(WrappedCall.create(3, "echo"))

    def test_with_aux_data_copies(self):
        """with_aux_data() should return a copy, leaving the original alone."""
        call = WrappedCall.create(3, "echo", "hi")
        local = call.with_aux_data({"session": "s1"})

        assert local.aux_data == {"session": "s1"}
        assert call.aux_data is None
        assert local.call_id == call.call_id

    def test_accepts_field_names_and_aliases(self):
        """Both Python names and wire aliases should validate."""
        by_alias = WrappedCall.model_validate({"correlationId": 1, "method": "m"})
        by_name = WrappedCall.model_validate({"call_id": 1, "method": "m"})

        assert by_alias == by_name


class TestWrappedResponse:
    """Test WrappedResponse factories and wire form."""

    def test_ok(self):
        response = WrappedResponse.ok(5, [1, 2])

        assert response.success is True
        assert response.payload == [1, 2]

    def test_failure(self):
        response = WrappedResponse.failure(5, "boom")

        assert response.success is False
        assert response.payload == "boom"

    def test_wire_form_keeps_none_payload(self):
        """A None result is still a payload on the wire."""
        wire = to_wire(WrappedResponse.ok(5))

        assert wire == {"correlationId": 5, "success": True, "payload": None}


class TestClassify:
    """Test message classification."""

    def test_models(self):
        assert classify(WrappedCall.create(1, "m")) is MessageKind.CALL
        assert classify(WrappedResponse.ok(1)) is MessageKind.RESPONSE

    def test_call_dict(self):
        assert classify({"correlationId": 1, "method": "m"}) is MessageKind.CALL

    def test_response_dict_success(self):
        assert classify({"correlationId": 1, "success": True}) is MessageKind.RESPONSE

    def test_response_dict_failure(self):
        """A false success flag is still a defined flag."""
        assert classify({"correlationId": 1, "success": False}) is MessageKind.RESPONSE

    def test_null_success_is_not_a_response(self):
        assert classify({"correlationId": 1, "success": None}) is MessageKind.UNKNOWN

    def test_other_shapes(self):
        """Messages for other consumers are unknown."""
        assert classify({"type": "heartbeat"}) is MessageKind.UNKNOWN
        assert classify({"method": ""}) is MessageKind.UNKNOWN
        assert classify(["not", "a", "message"]) is MessageKind.UNKNOWN
        assert classify(None) is MessageKind.UNKNOWN


class TestParseMessage:
    """Test parsing of raw inbound messages."""

    def test_models_pass_through(self):
        call = WrappedCall.create(1, "m")

        assert parse_message(call) is call

    def test_dict_call(self):
        message = parse_message({"correlationId": 2, "method": "echo", "payload": "x"})

        assert isinstance(message, WrappedCall)
        assert message.payload == "x"

    def test_json_response(self):
        raw = json.dumps({"correlationId": 2, "success": False, "payload": "nope"})
        message = parse_message(raw)

        assert isinstance(message, WrappedResponse)
        assert message.success is False

    def test_json_bytes(self):
        raw = b'{"correlationId": 4, "method": "ping"}'

        assert isinstance(parse_message(raw), WrappedCall)

    def test_unknown_returns_none(self):
        assert parse_message({"type": "heartbeat"}) is None
        assert parse_message('{"type": "heartbeat"}') is None

    def test_invalid_json_raises(self):
        with pytest.raises(ProtocolError, match="Invalid JSON"):
            parse_message("{not json")

    def test_invalid_call_raises(self):
        """A recognized call with a bad id should fail validation."""
        with pytest.raises(ProtocolError, match="Invalid call"):
            parse_message({"correlationId": "abc", "method": "m"})

    def test_protocol_error_is_value_error(self):
        with pytest.raises(ValueError):
            parse_message({"method": "m"})
