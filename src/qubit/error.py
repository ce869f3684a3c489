"""Exception types raised by the Qubit client.

Failures are split by where they come from:

- RpcError: the server answered with a well-formed JSON-RPC error object.
- BadResponseError: the transport produced nothing usable (malformed frame).
- TransportError: the connection itself failed.
- SubscriptionError: a subscription could not be established. These are
  never raised, they are handed to the subscriber's ``on_error`` callback.
"""

from __future__ import annotations

from enum import IntEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from qubit.jsonrpc import ErrorResponse, RpcResponse


class ErrorCode(IntEnum):
    """Standard JSON-RPC 2.0 error codes."""

    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603


class QubitError(Exception):
    """Base class for every error raised by this package."""


class RpcError(QubitError):
    """An error object returned by the server for a single call.

    Attributes:
        code: Numeric JSON-RPC error code
        message: Human readable message from the server
        data: Optional structured data attached by the server
        id: Id of the request that failed
    """

    def __init__(
        self,
        code: int,
        message: str,
        data: Any = None,
        request_id: str | int | float | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data
        self.id = request_id

    @classmethod
    def from_response(cls, response: ErrorResponse) -> RpcError:
        """Build the exception from a decoded error response."""
        return cls(response.code, response.message, response.data, response.id)

    @property
    def error_code(self) -> ErrorCode | None:
        """The code as an ErrorCode, or None for application-defined codes."""
        try:
            return ErrorCode(self.code)
        except ValueError:
            return None

    def to_json(self) -> dict[str, Any]:
        """Return the wire representation of the error object."""
        return {"code": self.code, "message": self.message, "data": self.data}

    def __eq__(self, other: object) -> bool:
        if isinstance(other, RpcError):
            return self.to_json() == other.to_json()
        if isinstance(other, dict):
            return self.to_json() == other
        return NotImplemented

    __hash__ = Exception.__hash__

    def __repr__(self) -> str:
        return f"RpcError(code={self.code!r}, message={self.message!r}, data={self.data!r})"


class BadResponseError(QubitError):
    """The transport could not produce a usable response for a call."""

    def __init__(self, response: RpcResponse | None = None) -> None:
        super().__init__("no usable response received from the server")
        self.response = response


class TransportError(QubitError):
    """The underlying connection failed while carrying a call."""


class SubscriptionError(QubitError):
    """A subscription could not be established."""
