"""Counter client using the WebSocket transport.

This example demonstrates:
- Queries and mutations through the dynamic call path
- A subscription that the server ends with a close_stream message
- Cancelling a subscription from the client side

It expects a Qubit counter server (handlers ``increment``, ``decrement``,
``add``, ``get`` and the ``countdown`` subscription) listening on
127.0.0.1:9944.

Run:
    uv run python examples/counter/client.py
"""

import asyncio
import logging

from qubit import ClientConfig, RpcError, StreamHandlers, connect

URL = "ws://127.0.0.1:9944/rpc"


async def main() -> None:
    """Run the counter client."""
    print("🔢 Counter Client")
    print("=" * 40)

    async with connect(ClientConfig(url=URL, transport="ws")) as client:
        api = client.api

        print("\nIncrementing twice and adding 10...")
        await api.increment.mutate()
        await api.increment.mutate()
        await api.add.mutate(10)
        print(f"  counter = {await api.get.query()}")

        print("\nCounting down...")
        finished = asyncio.Event()
        handle = api.countdown.subscribe(
            StreamHandlers(
                on_data=lambda n: print(f"  {n}"),
                on_error=lambda e: print(f"  ❌ {e}") or finished.set(),
                on_end=finished.set,
            )
        )
        await finished.wait()
        print(f"  subscription {handle.state.value}")

        print("\nCalling a method the server does not have...")
        try:
            await api.reset.mutate()
        except RpcError as e:
            print(f"  Expected error {e.code}: {e.message}")

    print("\n" + "=" * 40)
    print("✅ Done!")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    try:
        asyncio.run(main())
    except Exception as e:
        print(f"\n❌ Error: {e}")
        print("Make sure a Qubit counter server is listening on 127.0.0.1:9944")
