"""Stateless HTTP transport.

Queries are sent as ``GET`` with the request carried in the ``input`` query
parameter, so that intermediaries may cache them. Mutations are sent as
``POST`` with the request as the JSON body. There is no subscription support
over plain HTTP; see ``qubit.multi_transport`` for pairing it with a socket.
"""

from __future__ import annotations

import logging
from typing import Self
from urllib.parse import quote

import aiohttp

from qubit.config import HttpOptions
from qubit.error import TransportError
from qubit.jsonrpc import BadResponse, RequestId, RpcRequest, RpcResponse, parse_response

logger = logging.getLogger(__name__)

QUERY_PARAMETER = "input"


def encode_query_input(payload: RpcRequest) -> str:
    """Percent-encode the request for the ``input`` query parameter.

    The server URL-decodes the parameter after parsing the query string, so
    the JSON text is encoded here and then once more by the URL itself.
    """
    return quote(payload.serialize(), safe="")


class HttpTransport:
    """HTTP transport implementing ``query`` and ``mutate``.

    Example:
        ```python
        async with HttpTransport("http://localhost:9944/rpc") as transport:
            client = build_client(transport)
            version = await client.version.query()
        ```
    """

    def __init__(self, host: str, options: HttpOptions | None = None) -> None:
        """Initialize the transport.

        Args:
            host: URL of the RPC endpoint
            options: Optional session and headers
        """
        self.host = host
        self._options = options or HttpOptions()
        self._session: aiohttp.ClientSession | None = self._options.session
        self._own_session = self._options.session is None

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or (self._own_session and self._session.closed):
            self._session = aiohttp.ClientSession()
        return self._session

    async def query(self, id: RequestId, payload: RpcRequest) -> RpcResponse | None:
        """Send a query as ``GET <host>?input=<request>``."""
        logger.debug("GET %s (id=%r)", payload.method, id)
        return await self._request(
            "GET",
            params={QUERY_PARAMETER: encode_query_input(payload)},
        )

    async def mutate(self, id: RequestId, payload: RpcRequest) -> RpcResponse | None:
        """Send a mutation as ``POST <host>`` with a JSON body."""
        logger.debug("POST %s (id=%r)", payload.method, id)
        return await self._request(
            "POST",
            data=payload.serialize(),
            headers={"Content-Type": "application/json"},
        )

    async def _request(
        self,
        method: str,
        *,
        params: dict[str, str] | None = None,
        data: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> RpcResponse | None:
        session = self._get_session()
        request_headers = {**self._options.headers, **(headers or {})}

        try:
            async with session.request(
                method,
                self.host,
                params=params,
                data=data,
                headers=request_headers,
            ) as response:
                body = await response.read()
        except aiohttp.ClientError as e:
            raise TransportError(f"{method} {self.host} failed: {e}") from e

        result = parse_response(body)
        if isinstance(result, BadResponse):
            return None
        return result

    async def close(self) -> None:
        """Close the session if this transport created it."""
        if self._own_session and self._session is not None:
            await self._session.close()
        self._session = None
