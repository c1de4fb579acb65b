#!/usr/bin/env uv run
# /// script
# requires-python = ">=3.9"
# dependencies = [
#     "offgrid[httpx]",
# ]
#
# [tool.uv.sources]
# offgrid = { path = "../", editable = true }
# ///

import asyncio
import logging
from typing import cast

import anysqlite

from offgrid import AsyncSqliteStorage, CacheConfig, ResponseMetadata
from offgrid.httpx import AsyncCacheClient


async def fetch_and_print(client, url: str):
    print(f"\n➡ Sending request to {url}...")
    response = await client.get(url)
    meta = cast(ResponseMetadata, response.extensions)

    print(f"📦 Status: {response.status_code}")
    print(f"🧭 Strategy: {meta.get('offgrid_strategy')}")
    print(f"🚀 Was Stored: {meta.get('offgrid_stored')}")
    print(f"🔄 From Cache: {meta.get('offgrid_from_cache')}")
    print(f"📴 Offline: {meta.get('offgrid_offline', False)}")


async def main():
    logging.basicConfig(level=logging.INFO)
    config = CacheConfig(
        generation="example-v1",
        origin="https://www.python-httpx.org",
        critical_assets=["/"],
        optional_assets=[],
    )
    storage = AsyncSqliteStorage(connection=await anysqlite.connect(":memory:"))

    async with AsyncCacheClient(config=config, storage=storage) as client:
        await client.start()
        await fetch_and_print(client, "https://www.python-httpx.org/")
        await fetch_and_print(client, "https://www.python-httpx.org/img/butterfly.png")
        await fetch_and_print(client, "https://www.python-httpx.org/img/butterfly.png")


if __name__ == "__main__":
    asyncio.run(main())
