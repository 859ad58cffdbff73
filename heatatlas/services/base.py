"""
Base service class for external HTTP integrations.

Provides:
- Async HTTP session (aiohttp) created lazily and reused
- Retry with exponential backoff on connection errors and timeouts (tenacity)
- Per-request timeout override
- Structured error logging and mapping onto the HeatAtlas error taxonomy
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Union

import aiohttp
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from heatatlas.utils.exceptions import APITimeoutError, ExternalServiceError
from heatatlas.utils.logger import get_logger

logger = get_logger(__name__)


class BaseService(ABC):
    """
    Base class for external API services.

    Features:
    - Async HTTP with connection pooling
    - Exponential backoff: ``max_retries`` attempts with 1s -> 2s -> 4s delays
    - Automatic timeout handling (30s default)
    - Structured error logging with context
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 30,
        max_retries: int = 3,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.max_retries = max_retries

        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def connect(self):
        """Initialize HTTP session with connection pooling."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(limit=20, ttl_dns_cache=300)
            self._session = aiohttp.ClientSession(
                connector=connector,
                timeout=self.timeout,
                raise_for_status=False,
            )
            logger.debug(f"HTTP session created for {self.__class__.__name__}", base_url=self.base_url)

    async def close(self):
        """Close HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            logger.debug(f"HTTP session closed for {self.__class__.__name__}")

    async def _send(
        self,
        method: str,
        url: str,
        params: Optional[Dict],
        json_data: Optional[Dict],
        headers: Dict[str, str],
        timeout: Optional[aiohttp.ClientTimeout],
    ) -> Union[Dict, str, bytes]:
        async with self._session.request(
            method=method,
            url=url,
            params=params,
            json=json_data,
            headers=headers,
            timeout=timeout or self.timeout,
        ) as response:
            if response.status >= 400:
                error_text = await response.text()
                logger.error(
                    f"API error {response.status}",
                    url=url,
                    status=response.status,
                    response=error_text[:500],
                )
                raise ExternalServiceError(
                    f"API returned {response.status}: {error_text[:200]}",
                    service_name=self.__class__.__name__,
                    response_body=error_text,
                )

            content_type = response.headers.get("Content-Type", "")
            if "application/json" in content_type:
                return await response.json()
            if "text/" in content_type:
                return await response.text()
            return await response.read()

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict] = None,
        json_data: Optional[Dict] = None,
        headers: Optional[Dict] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
    ) -> Union[Dict, str, bytes]:
        """
        Make an HTTP request with retry logic.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: API endpoint (appended to base_url)
            params: Query parameters
            json_data: JSON body for POST/PUT
            headers: Additional headers
            timeout: Total timeout override for this request, in seconds
            max_retries: Attempt count override for this request

        Returns:
            Response data (dict for JSON, str for text, bytes for binary)

        Raises:
            ExternalServiceError: API returned an error response or the connection failed
            APITimeoutError: Request timed out on the last attempt
        """
        await self.connect()

        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        request_headers = dict(headers or {})
        if self.api_key:
            request_headers["Authorization"] = f"Bearer {self.api_key}"
        request_timeout = aiohttp.ClientTimeout(total=timeout) if timeout else None

        logger.debug(f"Making {method} request", url=url, has_body=json_data is not None)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(max_retries or self.max_retries),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception_type((aiohttp.ClientError, asyncio.TimeoutError)),
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    return await self._send(method, url, params, json_data, request_headers, request_timeout)

        except asyncio.TimeoutError as e:
            seconds = (request_timeout or self.timeout).total
            logger.error(f"Request timeout: {url}", timeout=seconds)
            raise APITimeoutError(
                f"Request to {url} timed out after {seconds}s",
                service_name=self.__class__.__name__,
                timeout_seconds=seconds,
            ) from e

        except aiohttp.ClientError as e:
            logger.error(f"HTTP client error: {url}", error=str(e))
            raise ExternalServiceError(
                f"HTTP client error: {e}",
                service_name=self.__class__.__name__,
            ) from e

    async def get(self, endpoint: str, params: Optional[Dict] = None, **kwargs) -> Union[Dict, str, bytes]:
        """Make GET request."""
        return await self._make_request("GET", endpoint, params=params, **kwargs)

    async def post(self, endpoint: str, json_data: Optional[Dict] = None, **kwargs) -> Union[Dict, str, bytes]:
        """Make POST request."""
        return await self._make_request("POST", endpoint, json_data=json_data, **kwargs)

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check if the external service is reachable.

        Returns:
            True if service is healthy, False otherwise
        """
        pass
