"""Client builder: the call surface generated bindings talk to.

``build_client`` returns a path builder whose leaves expose three call kinds:

    ```python
    client = build_client(transport)

    user = await client.user.get.query("bob")       # read, cacheable
    count = await client.counter.increment.mutate()  # write
    handle = client.counter.watch.subscribe(print)   # stream
    handle()                                         # cancel
    ```

A subscription is a two-stage protocol. The call itself goes out as a
mutation whose result is the server-assigned subscription id. Once the id is
known, the handle registers with the transport's subscription registry and
forwards pushed values to ``on_data``. The server announces the end of a
stream with a control message ``{"close_stream": <id>, "count": N}``; once N
values have been forwarded the handle unsubscribes by itself.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Coroutine, Self

from qubit.config import ClientConfig
from qubit.error import BadResponseError, RpcError, SubscriptionError
from qubit.jsonrpc import (
    ErrorResponse,
    OkResponse,
    RequestId,
    RpcRequest,
    RpcResponse,
    create_payload,
    is_int_not_bool,
    is_request_id,
)
from qubit.path_builder import PathBuilder, PathHandler
from qubit.transport import Transport, Unsubscribe, create_transport, supports_subscriptions

logger = logging.getLogger(__name__)

Sender = Callable[[RequestId, RpcRequest], Awaitable[RpcResponse | None]]

UNSUBSCRIBE_SUFFIX = "_unsub"


def _noop(*args: Any) -> None:
    pass


@dataclass(slots=True)
class StreamHandlers:
    """Callbacks for a subscription. Any of them may be left out."""

    on_data: Callable[[Any], None] = _noop
    on_error: Callable[[Exception], None] = _noop
    on_end: Callable[[], None] = _noop


StreamHandler = Callable[[Any], None] | StreamHandlers | Mapping[str, Callable[..., None]]


def get_handlers(handler: StreamHandler | None) -> StreamHandlers:
    """Normalise the user's handler into a full set of callbacks.

    Accepts a bare callable (used as ``on_data``), a StreamHandlers, or a
    mapping with any of ``on_data``/``on_error``/``on_end``.
    """
    if handler is None:
        return StreamHandlers()
    if isinstance(handler, StreamHandlers):
        return handler
    if isinstance(handler, Mapping):
        return StreamHandlers(
            on_data=handler.get("on_data") or _noop,
            on_error=handler.get("on_error") or _noop,
            on_end=handler.get("on_end") or _noop,
        )
    if callable(handler):
        return StreamHandlers(on_data=handler)
    msg = f"expected a callable or StreamHandlers, got {type(handler).__name__}"
    raise TypeError(msg)


def is_close_stream(data: Any, subscription_id: RequestId | None) -> bool:
    """Check if ``data`` is the close-stream control message for this subscription."""
    return (
        isinstance(data, dict)
        and "close_stream" in data
        and data["close_stream"] == subscription_id
    )


class SubscriptionState(Enum):
    REQUESTING = "requesting"
    FAILED = "failed"
    ACTIVE = "active"
    DRAINING = "draining"
    CANCELLED = "cancelled"
    ENDED = "ended"


TERMINAL_STATES = frozenset({SubscriptionState.FAILED, SubscriptionState.ENDED})


class SubscriptionHandle:
    """Handle returned synchronously by ``subscribe``.

    Calling the handle (or ``unsubscribe()``) cancels the subscription at any
    point. Before the subscription id is known this only sets a flag: the
    registration is skipped once the id arrives, and teardown runs instead.

    Teardown happens exactly once: remove the registry entry, send the
    ``<method>_unsub`` request without waiting for it, then call ``on_end``.
    """

    def __init__(
        self,
        client: QubitClient,
        path: list[str],
        handlers: StreamHandlers,
    ) -> None:
        self._client = client
        self._path = path
        self._handlers = handlers
        self._state = SubscriptionState.REQUESTING
        self.subscription_id: RequestId | None = None

        self._count = 0
        self._required_count: int | None = None
        self._transport_unsubscribe: Unsubscribe | None = None
        self._registering = False
        self._stopping = False
        self._closed = asyncio.Event()

    @property
    def state(self) -> SubscriptionState:
        return self._state

    @property
    def method(self) -> str:
        return ".".join(self._path)

    def done(self) -> bool:
        """True once the subscription has failed or ended."""
        return self._state in TERMINAL_STATES

    async def wait_closed(self) -> None:
        """Wait until the subscription has failed or ended."""
        await self._closed.wait()

    def __call__(self) -> None:
        self.unsubscribe()

    def unsubscribe(self) -> None:
        """Cancel the subscription."""
        if self._state is SubscriptionState.REQUESTING:
            self._state = SubscriptionState.CANCELLED
            return
        if self._state in (SubscriptionState.ACTIVE, SubscriptionState.DRAINING):
            self._stop()

    # -------------------------------------------------------------------------
    # Establishing the subscription
    # -------------------------------------------------------------------------

    async def _establish(self, request: Coroutine[Any, Any, Any]) -> None:
        try:
            subscription_id = await request
        except Exception as e:
            if self._state is SubscriptionState.CANCELLED:
                self._end_cancelled()
            else:
                self._fail(e)
            return

        if not is_request_id(subscription_id):
            if self._state is SubscriptionState.CANCELLED:
                self._end_cancelled()
                return
            self._fail(SubscriptionError("cannot subscribe to subscription"))
            return

        self.subscription_id = subscription_id
        logger.debug("Subscribed to %s as %r", self.method, subscription_id)

        if self._state is SubscriptionState.CANCELLED:
            # Drop anything buffered for it before tearing down
            self._client.transport.subscribe(subscription_id, _noop)()
            self._teardown()
            return

        self._state = SubscriptionState.ACTIVE
        self._registering = True
        try:
            self._transport_unsubscribe = self._client.transport.subscribe(
                subscription_id, self._on_value
            )
        finally:
            self._registering = False

        # Replaying buffered values may already have drained or cancelled it
        if self._stopping:
            self._teardown()

    def _on_value(self, data: Any) -> None:
        if self._stopping or self._state not in (
            SubscriptionState.ACTIVE,
            SubscriptionState.DRAINING,
        ):
            return

        if is_close_stream(data, self.subscription_id):
            count = data.get("count")
            if not is_int_not_bool(count):
                logger.warning("Ignoring close_stream for %s without a count", self.method)
                return
            self._required_count = count
            self._state = SubscriptionState.DRAINING
        else:
            self._count += 1
            self._invoke(self._handlers.on_data, data)

        if self._count == self._required_count:
            # Every value the server promised has arrived
            self._stop()

    def _stop(self) -> None:
        if self._registering:
            # Finished once the transport hands back its unsubscribe
            self._stopping = True
            return
        self._teardown()

    def _teardown(self) -> None:
        if self._state is SubscriptionState.ENDED:
            return
        self._state = SubscriptionState.ENDED

        if self._transport_unsubscribe is not None:
            self._transport_unsubscribe()
        self._client.send_unsubscribe(self._path, self.subscription_id)
        self._invoke(self._handlers.on_end)
        self._closed.set()

    def _end_cancelled(self) -> None:
        # No subscription id, so there is nothing to release on the server
        logger.debug("Cancelled subscription to %s ended before it started", self.method)
        self._state = SubscriptionState.ENDED
        self._invoke(self._handlers.on_end)
        self._closed.set()

    def _fail(self, error: Exception) -> None:
        logger.debug("Subscription to %s failed: %s", self.method, error)
        self._state = SubscriptionState.FAILED
        self._invoke(self._handlers.on_error, error)
        self._closed.set()

    def _invoke(self, callback: Callable[..., None], *args: Any) -> None:
        try:
            callback(*args)
        except Exception:
            logger.exception("Subscription callback for %s raised", self.method)

    def __repr__(self) -> str:
        return (
            f"SubscriptionHandle({self.method}, state={self._state.value}, "
            f"subscription_id={self.subscription_id!r})"
        )


class QubitClient:
    """Dispatches calls made through the path builder to a transport.

    Owns the request id counter: every request sent by this client,
    including subscribe and unsubscribe requests, takes the next id.
    """

    def __init__(
        self,
        transport: Transport,
        plugins: Mapping[str, PathHandler] | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            transport: Transport carrying the requests
            plugins: Extra handlers reachable at every path depth. Each is
                called as ``fn(path, *args)``.
        """
        self.transport = transport
        self._next_id = 0
        self._background: set[asyncio.Task[Any]] = set()

        handlers: dict[str, PathHandler] = dict(plugins or {})
        handlers.update(
            query=self.query,
            mutate=self.mutate,
            subscribe=self.subscribe,
        )
        self.api = PathBuilder(handlers)

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    def next_id(self) -> int:
        """Allocate the next request id."""
        id = self._next_id
        self._next_id += 1
        return id

    def query(self, path: list[str], *args: Any) -> Coroutine[Any, Any, Any]:
        """Call ``path`` as a query. The id is allocated immediately."""
        return self._call(path, args, self.transport.query)

    def mutate(self, path: list[str], *args: Any) -> Coroutine[Any, Any, Any]:
        """Call ``path`` as a mutation. The id is allocated immediately."""
        return self._call(path, args, self.transport.mutate)

    def subscribe(
        self,
        path: list[str],
        *args: Any,
        on_data: Callable[[Any], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
        on_end: Callable[[], None] | None = None,
    ) -> SubscriptionHandle:
        """Subscribe to the stream produced by ``path``.

        The handler is either passed as keyword callbacks, or as the last
        positional argument (a callable used as ``on_data``, a StreamHandlers,
        or a mapping of callbacks). A mapping as the last call argument must
        therefore be followed by keyword callbacks. Failures are reported
        through ``on_error`` only.
        """
        if on_data is None and on_error is None and on_end is None:
            handler = None
            if args and (
                callable(args[-1]) or isinstance(args[-1], (StreamHandlers, Mapping))
            ):
                args, handler = args[:-1], args[-1]
            handlers = get_handlers(handler)
        else:
            handlers = StreamHandlers(
                on_data=on_data or _noop,
                on_error=on_error or _noop,
                on_end=on_end or _noop,
            )

        handle = SubscriptionHandle(self, list(path), handlers)

        if not supports_subscriptions(self.transport):
            handle._fail(SubscriptionError("client does not support subscriptions"))
            return handle

        request = self._call(path, args, self.transport.mutate)
        self._spawn(handle._establish(request))
        return handle

    def send_unsubscribe(self, path: list[str], subscription_id: RequestId | None) -> None:
        """Tell the server to release ``subscription_id``, without waiting."""
        method = [*path[:-1], f"{path[-1]}{UNSUBSCRIBE_SUFFIX}"]
        self._spawn(self.query(method, subscription_id))

    def _call(self, path: list[str], args: tuple[Any, ...], sender: Sender) -> Coroutine[Any, Any, Any]:
        id = self.next_id()
        payload = create_payload(id, ".".join(path), args)
        return self._dispatch(id, payload, sender)

    async def _dispatch(self, id: RequestId, payload: RpcRequest, sender: Sender) -> Any:
        response = await sender(id, payload)

        if isinstance(response, OkResponse):
            return response.value
        if isinstance(response, ErrorResponse):
            raise RpcError.from_response(response)
        raise BadResponseError(response)

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def _on_background_done(self, task: asyncio.Task[Any]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.debug("Background request failed: %s", error)

    async def drain(self) -> None:
        """Wait for subscribe handshakes and unsubscribe requests in flight."""
        while self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    async def close(self) -> None:
        """Cancel background requests and close the transport."""
        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        await self.transport.close()


def build_client(
    transport: Transport,
    plugins: Mapping[str, PathHandler] | None = None,
) -> PathBuilder:
    """Build a client for the server reachable through ``transport``.

    Args:
        transport: The transport to send requests with
        plugins: Extra handlers injected at every path depth

    Returns:
        The path builder exposing ``query``/``mutate``/``subscribe`` leaves
    """
    return QubitClient(transport, plugins).api


def connect(
    config: ClientConfig,
    plugins: Mapping[str, PathHandler] | None = None,
) -> QubitClient:
    """Build the transport described by ``config`` and a client on top of it.

    Example:
        ```python
        async with connect(ClientConfig(url="http://localhost:9944/rpc")) as client:
            print(await client.api.version.query())
        ```
    """
    return QubitClient(create_transport(config), plugins)
