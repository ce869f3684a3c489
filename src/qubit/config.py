"""Pydantic configuration models for the Qubit client.

These models are only used while building transports and clients, never on
the hot path (wire parsing, message routing), where plain dataclasses are
used instead.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Literal

import aiohttp
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

HTTP_SCHEMES = ("http://", "https://")
WS_SCHEMES = ("ws://", "wss://")

# Called with the URL, returns an object with aiohttp's websocket surface
SocketFactory = Callable[[str], Awaitable[Any]]


def _validate_url(v: str, schemes: tuple[str, ...]) -> str:
    if not v:
        raise ValueError("URL cannot be empty")

    if not v.startswith(schemes):
        raise ValueError(f"URL must start with one of: {', '.join(schemes)}")
    return v


class HttpOptions(BaseModel):
    """Options for the HTTP transport.

    Attributes:
        session: aiohttp session used for every request. When omitted the
            transport creates (and later closes) its own.
        headers: Extra headers sent with every request
    """

    model_config = ConfigDict(
        frozen=False,
        arbitrary_types_allowed=True,
    )

    session: aiohttp.ClientSession | None = Field(
        default=None,
        description="Caller-owned aiohttp session to send requests with"
    )
    headers: dict[str, str] = Field(default_factory=dict)


class SocketOptions(BaseModel):
    """Options for the reconnecting WebSocket transport.

    Attributes:
        connect: Optional factory opening the socket. Defaults to
            ``session.ws_connect``.
        session: aiohttp session used by the default factory
        reconnect_interval: Delay in seconds before the first reconnect
            attempt; doubled after each consecutive failure
        max_reconnect_interval: Optional upper bound for the delay
    """

    model_config = ConfigDict(
        frozen=False,
        arbitrary_types_allowed=True,
    )

    connect: SocketFactory | None = None
    session: aiohttp.ClientSession | None = None
    reconnect_interval: float = Field(
        default=1.0,
        gt=0,
        description="Base reconnect delay in seconds"
    )
    max_reconnect_interval: float | None = Field(
        default=None,
        gt=0,
        description="Upper bound for the reconnect delay"
    )

    @model_validator(mode="after")
    def validate_intervals(self) -> SocketOptions:
        """The cap cannot be below the base interval."""
        if (
            self.max_reconnect_interval is not None
            and self.max_reconnect_interval < self.reconnect_interval
        ):
            raise ValueError("max_reconnect_interval must be >= reconnect_interval")
        return self


class MultiOptions(BaseModel):
    """Options for the composite transport (HTTP calls, WebSocket streams)."""

    model_config = ConfigDict(
        frozen=False,
        arbitrary_types_allowed=True,
    )

    http: HttpOptions | None = None
    ws: SocketOptions | None = None


class ClientConfig(BaseModel):
    """Configuration for building a client in one step.

    Attributes:
        url: Server endpoint. HTTP(S) for the ``http`` and ``multi``
            transports; WS(S) or HTTP(S) for ``ws``.
        transport: Which transport to build
        http: Options for the HTTP side
        ws: Options for the WebSocket side
    """

    model_config = ConfigDict(
        frozen=False,
        arbitrary_types_allowed=True,
    )

    url: str = Field(..., description="RPC endpoint URL")
    transport: Literal["http", "ws", "multi"] = "http"
    http: HttpOptions | None = None
    ws: SocketOptions | None = None

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate URL format."""
        return _validate_url(v, HTTP_SCHEMES + WS_SCHEMES)

    @model_validator(mode="after")
    def validate_scheme_for_transport(self) -> ClientConfig:
        """HTTP and composite transports need an HTTP(S) URL."""
        if self.transport != "ws" and not self.url.startswith(HTTP_SCHEMES):
            raise ValueError(
                f"{self.transport} transport URL must start with one of: {', '.join(HTTP_SCHEMES)}"
            )
        return self
