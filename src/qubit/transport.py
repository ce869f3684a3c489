"""Transport contract shared by every way of reaching a Qubit server.

A transport carries encoded requests and hands back decoded responses. It
knows nothing about method paths, ids allocation or the subscription
handshake; those live in ``qubit.client``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Protocol, runtime_checkable

from qubit.config import ClientConfig, HttpOptions, MultiOptions, SocketOptions
from qubit.jsonrpc import RequestId, RpcRequest, RpcResponse

if TYPE_CHECKING:
    from qubit.http_transport import HttpTransport
    from qubit.multi_transport import MultiTransport
    from qubit.ws_transport import WebSocketTransport

Unsubscribe = Callable[[], None]


class Transport(Protocol):
    """Interface implemented by HTTP, WebSocket and composite transports.

    ``None`` from ``query`` or ``mutate`` means the transport could not
    produce a usable response, as opposed to an ErrorResponse from the
    server.
    """

    async def query(self, id: RequestId, payload: RpcRequest) -> RpcResponse | None:
        """Send a read-style (cacheable) request."""
        ...

    async def mutate(self, id: RequestId, payload: RpcRequest) -> RpcResponse | None:
        """Send a write-style request."""
        ...

    async def close(self) -> None:
        """Release the resources held by the transport."""
        ...


@runtime_checkable
class SubscribingTransport(Transport, Protocol):
    """A transport that can also deliver server pushes."""

    def subscribe(
        self,
        id: RequestId,
        on_data: Callable[[Any], None],
        on_end: Callable[[], None] | None = None,
    ) -> Unsubscribe:
        """Route pushes for subscription ``id`` to ``on_data``.

        Returns:
            A callable removing the registration again
        """
        ...


def supports_subscriptions(transport: object) -> bool:
    """Check whether ``transport`` offers the optional subscribe capability."""
    return callable(getattr(transport, "subscribe", None))


def create_transport(config: ClientConfig) -> Transport:
    """Build the transport described by ``config``."""
    from qubit.http_transport import HttpTransport
    from qubit.multi_transport import MultiTransport
    from qubit.ws_transport import WebSocketTransport

    if config.transport == "http":
        return HttpTransport(config.url, config.http)
    if config.transport == "ws":
        return WebSocketTransport(config.url, config.ws)
    return MultiTransport(config.url, http=config.http, ws=config.ws)


def http(host: str, options: HttpOptions | None = None) -> HttpTransport:
    """HTTP transport: queries as GET, mutations as POST, no subscriptions."""
    from qubit.http_transport import HttpTransport

    return HttpTransport(host, options)


def ws(host: str, options: SocketOptions | None = None) -> WebSocketTransport:
    """Reconnecting WebSocket transport carrying calls and subscriptions."""
    from qubit.ws_transport import WebSocketTransport

    return WebSocketTransport(host, options)


def multi(host: str, options: MultiOptions | None = None) -> MultiTransport:
    """HTTP for queries and mutations, WebSocket for subscriptions."""
    from qubit.multi_transport import MultiTransport

    options = options or MultiOptions()
    return MultiTransport(host, http=options.http, ws=options.ws)
