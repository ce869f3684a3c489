"""Qubit client - Python implementation

This module provides an asyncio client for Qubit servers: a JSON-RPC 2.0
derived protocol with queries, mutations and server-pushed subscriptions
over HTTP, WebSocket, or both.
"""

from qubit.client import (
    QubitClient,
    StreamHandlers,
    SubscriptionHandle,
    SubscriptionState,
    build_client,
    connect,
    get_handlers,
)
from qubit.config import ClientConfig, HttpOptions, MultiOptions, SocketOptions
from qubit.correlator import ResponseCorrelator
from qubit.error import (
    BadResponseError,
    ErrorCode,
    QubitError,
    RpcError,
    SubscriptionError,
    TransportError,
)
from qubit.http_transport import HttpTransport
from qubit.jsonrpc import (
    BadResponse,
    ErrorResponse,
    OkResponse,
    RpcRequest,
    RpcResponse,
    SubscriptionMessage,
    create_payload,
    parse_response,
)
from qubit.multi_transport import MultiTransport
from qubit.path_builder import PathBuilder, create_path_builder
from qubit.subscriptions import SubscriptionManager
from qubit.transport import (
    SubscribingTransport,
    Transport,
    create_transport,
    http,
    multi,
    supports_subscriptions,
    ws,
)
from qubit.ws_transport import ConnectionState, WebSocketTransport

__version__ = "0.1.0"

__all__ = [
    # Client builder
    "build_client",
    "connect",
    "QubitClient",
    "SubscriptionHandle",
    "SubscriptionState",
    "StreamHandlers",
    "get_handlers",
    "PathBuilder",
    "create_path_builder",
    # Errors
    "QubitError",
    "RpcError",
    "ErrorCode",
    "BadResponseError",
    "TransportError",
    "SubscriptionError",
    # Configuration (Pydantic models)
    "ClientConfig",
    "HttpOptions",
    "SocketOptions",
    "MultiOptions",
    # Codec
    "RpcRequest",
    "RpcResponse",
    "OkResponse",
    "ErrorResponse",
    "SubscriptionMessage",
    "BadResponse",
    "create_payload",
    "parse_response",
    # Correlation and subscription registry
    "ResponseCorrelator",
    "SubscriptionManager",
    # Transports
    "Transport",
    "SubscribingTransport",
    "supports_subscriptions",
    "create_transport",
    "http",
    "ws",
    "multi",
    "HttpTransport",
    "WebSocketTransport",
    "ConnectionState",
    "MultiTransport",
]
