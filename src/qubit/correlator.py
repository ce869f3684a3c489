"""Match asynchronous responses back to the call that issued them.

Responses on a duplex connection can arrive in any order. Each outbound
request registers a future under its id, and the receive loop resolves
whichever future matches the id of the incoming response.
"""

from __future__ import annotations

import asyncio
import logging

from qubit.jsonrpc import RequestId, RpcResponse

logger = logging.getLogger(__name__)


class ResponseCorrelator:
    """Table of outstanding request ids and the futures waiting on them.

    There is no timeout: a request whose reply never arrives stays pending
    until the owner calls ``reject_all``.
    """

    __slots__ = ("_waiting",)

    def __init__(self) -> None:
        self._waiting: dict[RequestId, asyncio.Future[RpcResponse]] = {}

    def wait_for(self, id: RequestId) -> asyncio.Future[RpcResponse]:
        """Register interest in the response for ``id``.

        Raises:
            ValueError: If ``id`` is already outstanding
        """
        if id in self._waiting:
            msg = f"request id {id!r} is already outstanding"
            raise ValueError(msg)

        future: asyncio.Future[RpcResponse] = asyncio.get_running_loop().create_future()
        self._waiting[id] = future
        return future

    def resolve(self, response: RpcResponse) -> None:
        """Deliver ``response`` to whoever is waiting on its id.

        Responses nobody is waiting for (duplicates, strays) are ignored.
        """
        id = getattr(response, "id", None)
        future = self._waiting.pop(id, None)
        if future is None:
            logger.debug("Dropping response for unknown request id %r", id)
            return
        if not future.done():
            future.set_result(response)

    def discard(self, id: RequestId) -> None:
        """Stop waiting for ``id`` without resolving its future."""
        self._waiting.pop(id, None)

    def reject_all(self, error: BaseException) -> None:
        """Fail every outstanding request with ``error``."""
        waiting, self._waiting = self._waiting, {}
        for future in waiting.values():
            if not future.done():
                future.set_exception(error)

    def __contains__(self, id: object) -> bool:
        return id in self._waiting

    def __len__(self) -> int:
        return len(self._waiting)
