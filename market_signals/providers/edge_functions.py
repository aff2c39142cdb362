"""
Hosted Function Source - POSTs to the serverless function gateway.

Every upstream integration (Reddit, X, YouTube, GDELT, web search,
market sizing, ...) is deployed as a named function behind one
gateway:

    POST {base_url}/functions/v1/{function_name}
    Authorization: Bearer {api_key}

The functions themselves are opaque; this adapter only maps HTTP
outcomes onto the source error hierarchy.
"""

import logging
from typing import Any, Optional

import aiohttp

from core.clock import ClockProtocol
from core.config import CircuitBreakerConfig, RetryConfig

from ..base import BaseSignalSource
from ..exceptions import (
    AuthenticationError,
    FetchError,
    ParseError,
    RateLimitError,
    UpstreamError,
)
from ..models import SourceMetadata


logger = logging.getLogger(__name__)


class EdgeFunctionSource(BaseSignalSource):
    """Fetcher for the hosted function gateway."""

    DEFAULT_TIMEOUT = 15.0

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: Optional[float] = None,
        retry: Optional[RetryConfig] = None,
        circuit: Optional[CircuitBreakerConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        super().__init__(retry=retry, circuit=circuit, clock=clock)
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout or self.DEFAULT_TIMEOUT
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def metadata(self) -> SourceMetadata:
        return SourceMetadata(
            name="edge_functions",
            display_name="Hosted Functions",
            requires_api_key=True,
            base_url=self.base_url,
            tags=["http", "serverless"],
        )

    def function_url(self, function_name: str) -> str:
        return f"{self.base_url}/functions/v1/{function_name}"

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
            headers["apikey"] = self.api_key
        return headers

    async def _invoke_raw(self, function_name: str, body: dict[str, Any]) -> Any:
        session = await self._get_session()
        url = self.function_url(function_name)

        try:
            async with session.post(url, json=body, headers=self._headers()) as response:
                if response.status == 429:
                    retry_after = response.headers.get("Retry-After", "60")
                    raise RateLimitError(
                        f"{function_name} rate limit exceeded",
                        source_name=function_name,
                        retry_after_seconds=int(retry_after) if retry_after.isdigit() else None,
                    )

                if response.status in (401, 403):
                    raise AuthenticationError(
                        f"{function_name} rejected credentials ({response.status})",
                        source_name=function_name,
                    )

                if response.status != 200:
                    text = await response.text()
                    raise FetchError(
                        f"{function_name} error: {response.status}",
                        source_name=function_name,
                        status_code=response.status,
                        url=url,
                        details={"response": text[:500]},
                    )

                text = await response.text()
                try:
                    data = await response.json(content_type=None)
                except ValueError:
                    raise ParseError(
                        f"{function_name} returned invalid JSON",
                        source_name=function_name,
                        raw_data=text,
                    )

        except aiohttp.ClientError as e:
            raise FetchError(
                f"Network error: {e}",
                source_name=function_name,
                url=url,
            )

        if isinstance(data, dict) and data.get("error"):
            raise UpstreamError(
                str(data.get("message") or data.get("error")),
                source_name=function_name,
                details={"error": str(data.get("error"))[:200]},
            )

        logger.debug(f"[{function_name}] OK")
        return data

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None
