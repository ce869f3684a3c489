"""Pytest configuration for all tests."""

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Callable
from urllib.parse import unquote

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from qubit.jsonrpc import (
    BadResponse,
    RpcRequest,
    SubscriptionMessage,
    parse_response,
)
from qubit.subscriptions import SubscriptionManager


class MockTransport:
    """In-memory transport recording every request.

    With a ``responder`` each request is answered immediately with whatever
    it returns (a raw frame, or None for "no usable response"). Without one,
    requests stay pending until the test calls ``reply``.
    """

    def __init__(self, responder: Callable[[str, RpcRequest], Any] | None = None) -> None:
        self.responder = responder
        self.sent: list[tuple[str, RpcRequest]] = []
        self.pending: dict[Any, asyncio.Future] = {}
        self.subscriptions = SubscriptionManager()
        self.closed = False

    async def query(self, id: Any, payload: RpcRequest) -> Any:
        return await self._request("query", id, payload)

    async def mutate(self, id: Any, payload: RpcRequest) -> Any:
        return await self._request("mutate", id, payload)

    async def _request(self, kind: str, id: Any, payload: RpcRequest) -> Any:
        self.sent.append((kind, payload))
        if self.responder is not None:
            raw = self.responder(kind, payload)
            if raw is None:
                return None
            response = parse_response(raw)
            return None if isinstance(response, BadResponse) else response

        future = asyncio.get_running_loop().create_future()
        self.pending[id] = future
        return await future

    def reply(self, id: Any, result: Any) -> None:
        """Answer the pending request ``id`` with a result."""
        self.pending.pop(id).set_result(
            parse_response({"jsonrpc": "2.0", "id": id, "result": result})
        )

    def push(self, subscription_id: Any, value: Any) -> None:
        """Deliver a server push for ``subscription_id``."""
        self.subscriptions.handle(SubscriptionMessage(subscription_id, value))

    def subscribe(self, id: Any, on_data: Callable[[Any], None], on_end: Any = None) -> Callable[[], None]:
        self.subscriptions.register(id, on_data)
        return lambda: self.subscriptions.remove(id)

    def methods(self, kind: str | None = None) -> list[str]:
        return [payload.method for k, payload in self.sent if kind is None or k == kind]

    async def close(self) -> None:
        """Close the transport."""
        self.closed = True


class QueryOnlyTransport(MockTransport):
    """A transport without the subscribe capability."""

    subscribe = None  # type: ignore[assignment]


@dataclass
class FakeMessage:
    """Minimal stand-in for aiohttp.WSMessage."""

    type: aiohttp.WSMsgType
    data: Any = None


class FakeSocket:
    """Socket with aiohttp's websocket surface, driven by the test."""

    def __init__(self) -> None:
        self.sent: list[str] = []
        self.inbox: asyncio.Queue[FakeMessage] = asyncio.Queue()
        self.closed = False

    async def send_str(self, data: str) -> None:
        if self.closed:
            raise ConnectionResetError("socket closed")
        self.sent.append(data)

    async def receive(self) -> FakeMessage:
        return await self.inbox.get()

    def feed(self, frame: Any) -> None:
        """Deliver an inbound frame (object or raw text)."""
        data = frame if isinstance(frame, str) else json.dumps(frame)
        self.inbox.put_nowait(FakeMessage(aiohttp.WSMsgType.TEXT, data))

    def drop(self) -> None:
        """Simulate the server closing the connection."""
        self.closed = True
        self.inbox.put_nowait(FakeMessage(aiohttp.WSMsgType.CLOSED))

    async def close(self) -> None:
        self.closed = True

    def sent_requests(self) -> list[dict[str, Any]]:
        return [json.loads(s) for s in self.sent]


class FakeConnector:
    """Socket factory: each connect attempt waits for the test to decide it."""

    def __init__(self) -> None:
        self.outcomes: asyncio.Queue[FakeSocket | Exception] = asyncio.Queue()
        self.urls: list[str] = []

    async def __call__(self, url: str) -> FakeSocket:
        self.urls.append(url)
        outcome = await self.outcomes.get()
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def accept(self) -> FakeSocket:
        """Let the next connect attempt succeed, returning its socket."""
        socket = FakeSocket()
        self.outcomes.put_nowait(socket)
        return socket

    def refuse(self) -> None:
        """Make the next connect attempt fail."""
        self.outcomes.put_nowait(ConnectionRefusedError("refused"))


@pytest.fixture
def transport() -> MockTransport:
    return MockTransport()


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def wait_until():
    """Poll a condition while letting background tasks run."""

    async def wait(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met in time")
            await asyncio.sleep(0.001)

    return wait


@pytest.fixture
def settle():
    """Let every ready task run a few steps."""

    async def run(steps: int = 10) -> None:
        for _ in range(steps):
            await asyncio.sleep(0)

    return run


class QubitTestServer:
    """aiohttp application answering like a Qubit server on ``/rpc``.

    Serves queries (GET ``?input=``), mutations (POST) and WebSocket
    connections on the same path. Methods:

    - ``add``: sum of the params
    - ``echo``: the first param
    - ``fail``: an application error
    - ``garbage``: a body that is not JSON
    - ``numbers``: subscription pushing ``0..n-1`` then a close_stream
    - ``numbers_unsub``: releases a subscription
    """

    def __init__(self) -> None:
        self.requests: list[tuple[str, dict[str, Any]]] = []
        self.headers: list[dict[str, str]] = []
        self.sockets: list[web.WebSocketResponse] = []
        self._next_subscription = 0

        app = web.Application()
        app.router.add_route("*", "/rpc", self.handle)
        self.server = TestServer(app)

    @property
    def url(self) -> str:
        return str(self.server.make_url("/rpc"))

    async def start(self) -> None:
        await self.server.start_server()

    async def close(self) -> None:
        for socket in list(self.sockets):
            await socket.close()
        await self.server.close()

    async def handle(self, request: web.Request) -> web.StreamResponse:
        socket = web.WebSocketResponse()
        if socket.can_prepare(request).ok:
            return await self._handle_socket(request, socket)

        self.headers.append(dict(request.headers))
        if request.method == "GET":
            payload = json.loads(unquote(request.query["input"]))
        else:
            payload = await request.json()
        self.requests.append((request.method, payload))

        frames = self.respond(payload)
        return web.Response(text=frames[0], content_type="application/json")

    async def _handle_socket(
        self, request: web.Request, socket: web.WebSocketResponse
    ) -> web.WebSocketResponse:
        await socket.prepare(request)
        self.sockets.append(socket)
        try:
            async for msg in socket:
                if msg.type != aiohttp.WSMsgType.TEXT:
                    continue
                payload = json.loads(msg.data)
                self.requests.append(("WS", payload))
                for frame in self.respond(payload):
                    await socket.send_str(frame)
        finally:
            self.sockets.remove(socket)
        return socket

    def respond(self, payload: dict[str, Any]) -> list[str]:
        """Frames sent back for one request, the reply first."""
        id, method, params = payload["id"], payload["method"], payload["params"]

        def result(value: Any) -> str:
            return json.dumps({"jsonrpc": "2.0", "id": id, "result": value})

        def error(code: int, message: str) -> str:
            return json.dumps({
                "jsonrpc": "2.0",
                "id": id,
                "error": {"code": code, "message": message, "data": None},
            })

        if method == "add":
            return [result(sum(params))]
        if method == "echo":
            return [result(params[0])]
        if method == "fail":
            return [error(-32000, "failed on purpose")]
        if method == "garbage":
            return ["this is not json"]
        if method == "numbers":
            subscription_id = f"sub-{self._next_subscription}"
            self._next_subscription += 1
            count = params[0]
            frames = [result(subscription_id)]
            for value in [*range(count), {"close_stream": subscription_id, "count": count}]:
                frames.append(json.dumps({
                    "jsonrpc": "2.0",
                    "params": {"subscription": subscription_id, "result": value},
                }))
            return frames
        if method == "numbers_unsub":
            return [result(True)]
        return [error(-32601, "method not found")]

    def methods(self) -> list[str]:
        return [payload["method"] for _, payload in self.requests]
