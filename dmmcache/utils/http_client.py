import asyncio
from typing import Optional

import aiohttp


class HttpClientManager:
    def __init__(self, limit: int = 100, limit_per_host: int = 20):
        self.limit = limit
        self.limit_per_host = limit_per_host
        self._session: Optional[aiohttp.ClientSession] = None
        self._lock = asyncio.Lock()

    async def init(self) -> aiohttp.ClientSession:
        if self._session and not self._session.closed:
            return self._session

        async with self._lock:
            if self._session and not self._session.closed:
                return self._session

            connector = aiohttp.TCPConnector(
                limit=self.limit,
                limit_per_host=self.limit_per_host,
                enable_cleanup_closed=True,
            )
            self._session = aiohttp.ClientSession(connector=connector)
            return self._session

    async def get_session(self) -> aiohttp.ClientSession:
        return await self.init()

    async def close(self) -> None:
        async with self._lock:
            if self._session and not self._session.closed:
                await self._session.close()
            self._session = None
