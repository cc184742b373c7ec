import aiohttp
import asyncio
import logging
import random
import time
from typing import Optional

from ..core.errors import NetworkError

logger = logging.getLogger(__name__)

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}


def cache_busting_params() -> dict:
    """Query params that make every export request unique to intermediary caches."""
    return {"t": str(int(time.time() * 1000)), "r": str(random.random())}


class SheetsClient:
    """
    Fetches the raw CSV export of the signal sheet.
    Pass a shared aiohttp session to reuse connections; otherwise one is opened per call.
    """

    def __init__(self, timeout: float = 15.0, session: Optional[aiohttp.ClientSession] = None) -> None:
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session

    async def fetch(self, url: str) -> str:
        """
        GET the export URL with cache busters and return the body text.
        Raises NetworkError on a non-2xx status or any transport failure.
        """
        if self._session is not None:
            return await self._fetch(self._session, url)
        async with aiohttp.ClientSession() as session:
            return await self._fetch(session, url)

    async def _fetch(self, session: aiohttp.ClientSession, url: str) -> str:
        try:
            async with session.get(
                url,
                params=cache_busting_params(),
                headers=NO_CACHE_HEADERS,
                timeout=self.timeout,
            ) as response:
                if response.status < 200 or response.status >= 300:
                    raise NetworkError(f"Failed to fetch sheet: {response.status}", status=response.status)
                text = await response.text()
        except aiohttp.ClientError as e:
            raise NetworkError(f"Failed to fetch sheet: {e}") from e
        except asyncio.TimeoutError as e:
            raise NetworkError("Failed to fetch sheet: request timed out") from e
        except UnicodeDecodeError as e:
            raise NetworkError(f"Failed to fetch sheet: body is not valid {e.encoding}") from e

        logger.debug("Fetched %d bytes from sheet export", len(text))
        return text
