import aiohttp
import asyncio
import json
import logging
from typing import Optional

from pydantic import ValidationError

from ..core.errors import NetworkError, PollError
from ..core.models import ScanStatus

logger = logging.getLogger(__name__)


class ScanClient:
    """
    HTTP side of a remote scan: one trigger endpoint (POST) and one status endpoint (GET).
    """

    def __init__(
        self,
        trigger_url: str,
        status_url: str,
        timeout: float = 15.0,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.trigger_url = trigger_url
        self.status_url = status_url
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session

    async def _with_session(self, fn):
        if self._session is not None:
            return await fn(self._session)
        async with aiohttp.ClientSession() as session:
            return await fn(session)

    async def trigger(self) -> int:
        """
        POST an empty JSON object to the trigger endpoint and return the status code.
        The body is ignored. Raises NetworkError on non-2xx or transport failure.
        """
        async def _post(session: aiohttp.ClientSession) -> int:
            async with session.post(self.trigger_url, json={}, timeout=self.timeout) as response:
                if response.status < 200 or response.status >= 300:
                    raise NetworkError(f"Scan trigger failed: {response.status}", status=response.status)
                return response.status

        try:
            return await self._with_session(_post)
        except aiohttp.ClientError as e:
            raise NetworkError(f"Could not reach scan service: {e}") from e
        except asyncio.TimeoutError as e:
            raise NetworkError("Could not reach scan service: request timed out") from e

    async def poll_status(self) -> ScanStatus:
        """
        GET the status endpoint and parse the JSON body into a ScanStatus.
        Every failure (transport, HTTP status, bad JSON, non-object body) raises PollError.
        """
        async def _get(session: aiohttp.ClientSession) -> str:
            async with session.get(self.status_url, timeout=self.timeout) as response:
                if response.status < 200 or response.status >= 300:
                    raise PollError(f"Status poll returned {response.status}")
                return await response.text()

        try:
            body = await self._with_session(_get)
        except (aiohttp.ClientError, asyncio.TimeoutError, UnicodeDecodeError) as e:
            raise PollError(f"Status poll failed: {e!r}") from e

        try:
            data = json.loads(body) if body.strip() else {}
        except json.JSONDecodeError as e:
            raise PollError(f"Status body is not JSON: {body[:100]}") from e

        try:
            return ScanStatus.model_validate(data)
        except ValidationError as e:
            raise PollError(f"Status body is not an object: {type(data).__name__}") from e
