"""JSON-RPC 2.0 codec for the Qubit wire protocol.

Requests are always produced with the same shape:

    {"jsonrpc": "2.0", "method": "user.get", "id": 0, "params": ["bob"]}

Every inbound frame is classified into exactly one of four variants:

- OkResponse: ``{"jsonrpc": "2.0", "id": 0, "result": ...}``
- ErrorResponse: ``{"jsonrpc": "2.0", "id": 0, "error": {"code", "message", "data"}}``
- SubscriptionMessage: ``{"jsonrpc": "2.0", "params": {"subscription": id, "result": ...}}``
- BadResponse: anything else

Decoding never raises. Callers treat BadResponse as "no usable response".
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Final, Union

logger = logging.getLogger(__name__)

JSONRPC_VERSION: Final[str] = "2.0"

RequestId = Union[str, int, float]


def is_int_not_bool(x: object) -> bool:
    """Check if x is an int but not a bool.

    bool is a subclass of int, so True/False would otherwise pass as ids 1/0.
    """
    return isinstance(x, int) and not isinstance(x, bool)


def is_number(x: object) -> bool:
    """Check if x is a JSON number (int or float, never bool)."""
    return is_int_not_bool(x) or isinstance(x, float)


def is_request_id(x: object) -> bool:
    """Check if x can be used as a request or subscription id."""
    return isinstance(x, str) or is_number(x)


@dataclass(frozen=True, slots=True)
class RpcRequest:
    """A single outbound call."""

    id: RequestId
    method: str
    params: list[Any] = field(default_factory=list)

    def to_json(self) -> dict[str, Any]:
        """Convert to the JSON object sent on the wire."""
        return {
            "jsonrpc": JSONRPC_VERSION,
            "method": self.method,
            "id": self.id,
            "params": list(self.params),
        }

    def serialize(self) -> str:
        """Serialize to JSON text."""
        return json.dumps(self.to_json())


@dataclass(frozen=True, slots=True)
class OkResponse:
    """Successful result for request ``id``."""

    id: RequestId | None
    value: Any


@dataclass(frozen=True, slots=True)
class ErrorResponse:
    """Error object returned for request ``id``."""

    id: RequestId | None
    code: int | float
    message: str
    data: Any = None

    def to_json(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "data": self.data}


@dataclass(frozen=True, slots=True)
class SubscriptionMessage:
    """Unsolicited value pushed by the server for an active subscription."""

    subscription_id: RequestId
    value: Any


@dataclass(frozen=True, slots=True)
class BadResponse:
    """A frame that could not be parsed or did not match any known shape."""


RpcResponse = Union[OkResponse, ErrorResponse, SubscriptionMessage, BadResponse]

_MISSING = object()


def create_payload(id: RequestId, method: str, params: list[Any] | tuple[Any, ...]) -> RpcRequest:
    """Build the request for calling ``method`` with positional ``params``."""
    return RpcRequest(id=id, method=method, params=list(params))


def parse_response(raw: Any) -> RpcResponse:
    """Classify a raw inbound frame.

    Args:
        raw: JSON text (str or bytes) or an already-decoded object

    Returns:
        The matching response variant; BadResponse on any failure
    """
    try:
        return _classify(raw)
    except (ValueError, RecursionError) as e:
        logger.warning("Error encountered whilst parsing response: %s", e)
        return BadResponse()


def _classify(raw: Any) -> RpcResponse:
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8")
    if isinstance(raw, str):
        raw = json.loads(raw)

    if not isinstance(raw, dict):
        msg = f"response must be an object, got {type(raw).__name__}"
        raise ValueError(msg)

    version = raw.get("jsonrpc", _MISSING)
    if version is not _MISSING and version != JSONRPC_VERSION:
        msg = f"invalid value for `jsonrpc`: {version!r}"
        raise ValueError(msg)

    params = raw.get("params")
    if isinstance(params, dict) and "subscription" in params and "result" in params:
        subscription_id = params["subscription"]
        if not is_request_id(subscription_id):
            msg = f"invalid subscription id: {subscription_id!r}"
            raise ValueError(msg)
        return SubscriptionMessage(subscription_id, params["result"])

    response_id = raw.get("id", _MISSING)
    if response_id is _MISSING:
        msg = "missing `id` field from response"
        raise ValueError(msg)
    if response_id is not None and not is_request_id(response_id):
        msg = f"invalid `id` field in response: {response_id!r}"
        raise ValueError(msg)

    has_result = "result" in raw
    has_error = "error" in raw

    if has_result and not has_error:
        return OkResponse(response_id, raw["result"])

    if has_error and not has_result:
        error = raw["error"]
        if (
            isinstance(error, dict)
            and is_number(error.get("code"))
            and isinstance(error.get("message"), str)
        ):
            return ErrorResponse(
                response_id, error["code"], error["message"], error.get("data")
            )
        msg = "malformed error object in response"
        raise ValueError(msg)

    msg = "invalid response object"
    raise ValueError(msg)
