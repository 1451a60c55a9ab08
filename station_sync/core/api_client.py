"""
HTTP client for the remote laundry API
Injects the bearer token and maps transport failures onto the sync error taxonomy
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import aiohttp

from station_sync.core.exceptions import (
    AuthenticationMissingError, RemoteUnavailableError,
    RemoteRejectedError, InvalidResponseError
)

DEFAULT_BASE_URL = 'https://rfid-laundry-backend-production.up.railway.app/api'
DEFAULT_TIMEOUT_SECONDS = 30.0


class RemoteApiClient:
    """
    Thin aiohttp wrapper around the remote API.

    Network-level failures (connection refused, DNS, timeout) raise
    RemoteUnavailableError. Any non-2xx status raises RemoteRejectedError.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        verify_tls: bool = True
    ):
        self.base_url = base_url.rstrip('/')
        self.timeout_seconds = timeout_seconds
        self.verify_tls = verify_tls
        self.logger = logging.getLogger(__name__)

        # HTTP session will be created on first use
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
            connector = aiohttp.TCPConnector(ssl=self.verify_tls)
            self._session = aiohttp.ClientSession(
                timeout=timeout,
                connector=connector,
                headers={
                    'User-Agent': 'LaundryStation-Sync/1.0',
                    'Content-Type': 'application/json'
                }
            )
        return self._session

    def build_url(self, endpoint: str) -> str:
        path = endpoint if endpoint.startswith('/') else '/' + endpoint
        return self.base_url + path

    async def request(
        self,
        endpoint: str,
        method: str = 'GET',
        body: Any = None,
        token: Optional[str] = None
    ) -> Any:
        """Perform one call and return the decoded JSON body"""
        if not token:
            raise AuthenticationMissingError("No auth token")

        method = method.upper()
        url = self.build_url(endpoint)
        headers: Dict[str, str] = {'Authorization': f'Bearer {token}'}
        self.logger.debug(f"API request: {method} {endpoint}")

        session = await self._get_session()
        try:
            async with session.request(
                method,
                url,
                data=json.dumps(body) if body is not None else None,
                headers=headers
            ) as response:
                status = response.status
                text = await response.text()
        except asyncio.TimeoutError as e:
            raise RemoteUnavailableError(f"Request timeout after {self.timeout_seconds}s: {method} {endpoint}") from e
        except aiohttp.ClientError as e:
            raise RemoteUnavailableError(f"{method} {endpoint} failed: {e}") from e

        if not 200 <= status < 300:
            raise RemoteRejectedError(status, text, endpoint)

        if not text:
            return None

        try:
            return json.loads(text)
        except ValueError as e:
            raise InvalidResponseError(status, text[:200], endpoint) from e

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
