"""Tests for the JSON-RPC codec."""

import json

import pytest

from qubit.jsonrpc import (
    BadResponse,
    ErrorResponse,
    OkResponse,
    RpcRequest,
    SubscriptionMessage,
    create_payload,
    parse_response,
)


class TestCreatePayload:
    """Tests for request encoding."""

    def test_request_shape(self):
        """Test the canonical request object."""
        request = create_payload(3, "user.get", ["bob", 2])
        assert isinstance(request, RpcRequest)
        assert request.to_json() == {
            "jsonrpc": "2.0",
            "method": "user.get",
            "id": 3,
            "params": ["bob", 2],
        }

    def test_params_tuple_becomes_list(self):
        """Test positional args tuples are sent as a JSON array."""
        request = create_payload("a", "ping", ())
        assert json.loads(request.serialize())["params"] == []

    def test_request_is_immutable(self):
        """Test requests cannot be modified after creation."""
        request = create_payload(1, "ping", [])
        with pytest.raises(AttributeError):
            request.method = "pong"


class TestParseResponse:
    """Tests for classifying inbound frames."""

    def test_ok_response(self):
        response = parse_response({"jsonrpc": "2.0", "id": 0, "result": 42})
        assert response == OkResponse(0, 42)

    def test_ok_response_from_text(self):
        """Test JSON text is decoded before classification."""
        response = parse_response('{"jsonrpc":"2.0","id":"abc","result":null}')
        assert response == OkResponse("abc", None)

    def test_ok_response_from_bytes(self):
        response = parse_response(b'{"jsonrpc":"2.0","id":1,"result":[1,2]}')
        assert response == OkResponse(1, [1, 2])

    def test_null_id_allowed(self):
        response = parse_response({"jsonrpc": "2.0", "id": None, "result": 1})
        assert response == OkResponse(None, 1)

    def test_error_response(self):
        response = parse_response({
            "jsonrpc": "2.0",
            "id": 0,
            "error": {"code": -32601, "message": "method not found", "data": None},
        })
        assert response == ErrorResponse(0, -32601, "method not found", None)

    def test_error_response_without_data(self):
        """Test a missing data member defaults to None."""
        response = parse_response({
            "jsonrpc": "2.0",
            "id": 7,
            "error": {"code": 1, "message": "nope"},
        })
        assert isinstance(response, ErrorResponse)
        assert response.data is None

    def test_subscription_message(self):
        response = parse_response({
            "jsonrpc": "2.0",
            "params": {"subscription": "s1", "result": {"n": 1}},
        })
        assert response == SubscriptionMessage("s1", {"n": 1})

    def test_subscription_message_wins_over_id(self):
        """Test the params.subscription shape is checked before the id."""
        response = parse_response({
            "jsonrpc": "2.0",
            "id": [],
            "params": {"subscription": 5, "result": 1},
        })
        assert response == SubscriptionMessage(5, 1)

    def test_params_without_result_is_not_a_message(self):
        response = parse_response({
            "jsonrpc": "2.0",
            "params": {"subscription": "s1"},
        })
        assert response == BadResponse()

    @pytest.mark.parametrize(
        "frame",
        [
            {"jsonrpc": "2.0", "id": 1, "result": 1, "error": {"code": 1, "message": "x"}},
            {"jsonrpc": "2.0", "id": 1},
            {"jsonrpc": "2.0", "result": 1},
            {"jsonrpc": "2.0", "id": {"a": 1}, "result": 1},
            {"jsonrpc": "2.0", "id": True, "result": 1},
            {"jsonrpc": "1.0", "id": 1, "result": 1},
            {"jsonrpc": "2.0", "id": 1, "error": {"code": "x", "message": "m"}},
            {"jsonrpc": "2.0", "id": 1, "error": {"code": 1, "message": 2}},
            {"jsonrpc": "2.0", "id": 1, "error": {"code": True, "message": "m"}},
            {"jsonrpc": "2.0", "id": 1, "error": "boom"},
            {"jsonrpc": "2.0", "params": {"subscription": [1], "result": 1}},
            [1, 2, 3],
            "not json",
            b"\xff\xfe",
            42,
            None,
        ],
    )
    def test_malformed(self, frame):
        """Test every non-conforming input decodes to BadResponse."""
        assert parse_response(frame) == BadResponse()

    def test_deeply_nested_text_does_not_raise(self):
        """Test pathological JSON nesting is reported, not raised."""
        assert parse_response("[" * 100_000 + "]" * 100_000) == BadResponse()

    def test_malformed_is_logged(self, caplog):
        with caplog.at_level("WARNING", logger="qubit.jsonrpc"):
            parse_response("{")
        assert "parsing response" in caplog.text
