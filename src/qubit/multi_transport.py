"""Composite transport: HTTP for calls, WebSocket for subscriptions.

Queries stay cacheable GETs and mutations plain POSTs, while the socket is
only needed once something subscribes.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Self

from qubit.config import HttpOptions, SocketOptions
from qubit.http_transport import HttpTransport
from qubit.jsonrpc import RequestId, RpcRequest, RpcResponse
from qubit.transport import Unsubscribe
from qubit.ws_transport import WebSocketTransport


class MultiTransport:
    """Delegate ``query``/``mutate`` to HTTP and ``subscribe`` to a socket."""

    def __init__(
        self,
        host: str,
        http: HttpOptions | None = None,
        ws: SocketOptions | None = None,
        *,
        http_transport: HttpTransport | None = None,
        ws_transport: WebSocketTransport | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            host: URL of the RPC endpoint, shared by both sides
            http: Options for the HTTP transport
            ws: Options for the WebSocket transport
            http_transport: Use this HTTP transport instead of building one
            ws_transport: Use this WebSocket transport instead of building one
        """
        self.host = host
        self.http = http_transport or HttpTransport(host, http)
        self.ws = ws_transport or WebSocketTransport(host, ws)

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    async def query(self, id: RequestId, payload: RpcRequest) -> RpcResponse | None:
        return await self.http.query(id, payload)

    async def mutate(self, id: RequestId, payload: RpcRequest) -> RpcResponse | None:
        return await self.http.mutate(id, payload)

    def subscribe(
        self,
        id: RequestId,
        on_data: Callable[[Any], None],
        on_end: Callable[[], None] | None = None,
    ) -> Unsubscribe:
        return self.ws.subscribe(id, on_data, on_end)

    async def close(self) -> None:
        await asyncio.gather(self.http.close(), self.ws.close())
