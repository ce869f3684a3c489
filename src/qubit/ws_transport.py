"""Reconnecting WebSocket transport.

One background task owns the connection. It moves through
``CONNECTING -> OPEN -> CLOSED -> CONNECTING ...`` for as long as the
transport lives:

- While not OPEN, outbound frames are queued instead of failing.
- On OPEN the queue is flushed in order and the backoff is reset.
- On CLOSED (or a failed connect) it waits, doubles the delay, and retries.

Inbound frames are decoded and routed either to the subscription registry
(server pushes) or to the correlator (responses to our requests).

Subscriptions are not re-established after a reconnect: the transport does
not know the arguments that created them.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import deque
from enum import Enum
from typing import Any, Callable, Self

import aiohttp

from qubit.config import SocketOptions
from qubit.correlator import ResponseCorrelator
from qubit.error import TransportError
from qubit.jsonrpc import (
    BadResponse,
    RequestId,
    RpcRequest,
    RpcResponse,
    SubscriptionMessage,
    parse_response,
)
from qubit.subscriptions import SubscriptionManager
from qubit.transport import Unsubscribe

logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class WebSocketTransport:
    """Duplex transport implementing ``query``, ``mutate`` and ``subscribe``.

    The connection is opened lazily by the first call, or explicitly with
    ``start()`` / ``async with``.

    Example:
        ```python
        async with WebSocketTransport("ws://localhost:9944/rpc") as transport:
            client = build_client(transport)
            handle = client.counter.subscribe(print)
        ```
    """

    def __init__(self, host: str, options: SocketOptions | None = None) -> None:
        """Initialize the transport.

        Args:
            host: WebSocket (or HTTP) URL of the RPC endpoint
            options: Optional socket factory, session and reconnect interval
        """
        self.host = host
        self._options = options or SocketOptions()
        self._http_session: aiohttp.ClientSession | None = self._options.session
        self._own_session = self._options.session is None

        self.requests = ResponseCorrelator()
        self.subscriptions = SubscriptionManager()

        self._state = ConnectionState.CLOSED
        self._socket: Any = None
        self._queue: deque[str] = deque()
        self._reconnect_delay = self._options.reconnect_interval
        self._run_task: asyncio.Task[None] | None = None
        self._opened = asyncio.Event()
        self._closing = False

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def queued(self) -> list[str]:
        """Frames waiting for the connection to open, oldest first."""
        return list(self._queue)

    @property
    def reconnect_delay(self) -> float:
        """Delay before the next reconnect attempt."""
        return self._reconnect_delay

    async def __aenter__(self) -> Self:
        self.start()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    def start(self) -> None:
        """Start the background connection task."""
        if self._closing:
            raise TransportError("transport has been closed")
        if self._run_task is None:
            self._run_task = asyncio.create_task(self._run())

    async def wait_open(self) -> None:
        """Wait until the connection is open."""
        self.start()
        await self._opened.wait()

    # -------------------------------------------------------------------------
    # Transport interface
    # -------------------------------------------------------------------------

    async def query(self, id: RequestId, payload: RpcRequest) -> RpcResponse | None:
        return await self._send_request(id, payload)

    async def mutate(self, id: RequestId, payload: RpcRequest) -> RpcResponse | None:
        return await self._send_request(id, payload)

    def subscribe(
        self,
        id: RequestId,
        on_data: Callable[[Any], None],
        on_end: Callable[[], None] | None = None,
    ) -> Unsubscribe:
        """Register ``on_data`` for pushes on subscription ``id``.

        The returned callable only removes the local registration; telling
        the server is the caller's job.
        """
        self.start()
        self.subscriptions.register(id, on_data)

        def unsubscribe() -> None:
            self.subscriptions.remove(id)
            if on_end is not None:
                on_end()

        return unsubscribe

    async def _send_request(self, id: RequestId, payload: RpcRequest) -> RpcResponse:
        self.start()
        response = self.requests.wait_for(id)
        try:
            await self.send(payload.serialize())
        except BaseException:
            self.requests.discard(id)
            raise
        return await response

    async def send(self, message: str) -> None:
        """Send a frame now, or queue it until the connection opens."""
        if self._state is not ConnectionState.OPEN or self._socket is None or self._queue:
            self._queue.append(message)
            return

        try:
            await self._socket.send_str(message)
        except (ConnectionError, aiohttp.ClientError) as e:
            logger.debug("Send failed, queueing until reconnect: %s", e)
            self._queue.append(message)

    async def close(self) -> None:
        """Stop reconnecting, close the socket and fail outstanding requests."""
        self._closing = True
        if self._run_task is not None:
            self._run_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._run_task
            self._run_task = None

        self._state = ConnectionState.CLOSED
        self._opened.clear()
        await self._close_socket()

        if self._own_session and self._http_session is not None:
            await self._http_session.close()
        self._http_session = None

        self.requests.reject_all(TransportError("transport closed"))

    # -------------------------------------------------------------------------
    # Connection loop
    # -------------------------------------------------------------------------

    async def _run(self) -> None:
        while not self._closing:
            self._state = ConnectionState.CONNECTING
            try:
                self._socket = await self._connect()
            except (OSError, aiohttp.ClientError) as e:
                logger.warning("Connecting to %s failed: %s", self.host, e)
                self._on_close()
            else:
                await self._on_open()
                try:
                    await self._read_loop()
                except (ConnectionError, aiohttp.ClientError) as e:
                    logger.debug("Connection to %s lost: %s", self.host, e)
                # Sends issued while the socket closes must be queued
                self._on_close()
                await self._close_socket()

            if self._closing:
                break
            await self._wait_before_reconnect(self._next_delay())

    async def _connect(self) -> Any:
        if self._options.connect is not None:
            return await self._options.connect(self.host)

        if self._http_session is None or self._http_session.closed:
            self._http_session = aiohttp.ClientSession()
            self._own_session = True
        return await self._http_session.ws_connect(self.host)

    async def _on_open(self) -> None:
        logger.debug("Connected to %s", self.host)
        self._state = ConnectionState.OPEN
        self._reconnect_delay = self._options.reconnect_interval
        self._opened.set()
        await self._flush()

    def _on_close(self) -> None:
        if self._state is ConnectionState.OPEN:
            logger.warning("Connection to %s closed", self.host)
        self._state = ConnectionState.CLOSED
        self._opened.clear()

    async def _flush(self) -> None:
        """Send queued frames in order; stop at the first failure."""
        while self._queue and self._state is ConnectionState.OPEN:
            try:
                await self._socket.send_str(self._queue[0])
            except (ConnectionError, aiohttp.ClientError) as e:
                logger.debug("Flush interrupted: %s", e)
                return
            self._queue.popleft()

    def _next_delay(self) -> float:
        delay = self._reconnect_delay
        self._reconnect_delay = delay * 2
        if self._options.max_reconnect_interval is not None:
            self._reconnect_delay = min(
                self._reconnect_delay, self._options.max_reconnect_interval
            )
        return delay

    async def _wait_before_reconnect(self, delay: float) -> None:
        logger.debug("Reconnecting to %s in %.2fs", self.host, delay)
        await asyncio.sleep(delay)

    async def _read_loop(self) -> None:
        while True:
            msg = await self._socket.receive()

            if msg.type == aiohttp.WSMsgType.TEXT:
                self._on_message(msg.data)
            elif msg.type == aiohttp.WSMsgType.BINARY:
                self._on_message(msg.data)
            elif msg.type in (
                aiohttp.WSMsgType.CLOSE,
                aiohttp.WSMsgType.CLOSING,
                aiohttp.WSMsgType.CLOSED,
            ):
                return
            elif msg.type == aiohttp.WSMsgType.ERROR:
                raise ConnectionError(f"WebSocket error: {msg.data}")

    def _on_message(self, data: str | bytes) -> None:
        message = parse_response(data)

        if isinstance(message, SubscriptionMessage):
            try:
                self.subscriptions.handle(message)
            except Exception:
                logger.exception(
                    "Subscription handler for %r raised", message.subscription_id
                )
        elif isinstance(message, BadResponse):
            logger.warning("Dropping malformed frame from %s", self.host)
        else:
            self.requests.resolve(message)

    async def _close_socket(self) -> None:
        socket, self._socket = self._socket, None
        if socket is None:
            return
        try:
            await socket.close()
        except (ConnectionError, aiohttp.ClientError) as e:
            logger.debug("Error closing socket: %s", e)
