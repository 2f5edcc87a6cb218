"""HTTP fetching for ContentFoundry pipelines.

One ``aiohttp.ClientSession`` per fetcher, created on first use and closed by
``close()`` or the async context manager. Every request carries its own
timeout. There are no automatic retries.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import aiohttp

from config.settings import DEFAULT_USER_AGENT

logger = logging.getLogger(__name__)


class FetchError(Exception):
    """A request failed at the transport level or returned a non-2xx status."""

    def __init__(self, message: str, url: str, status: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status = status


@dataclass
class FetchResponse:
    url: str
    status: int
    body: bytes
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def content_type(self) -> str:
        for key, value in self.headers.items():
            if key.lower() == 'content-type':
                return value
        return ''

    @property
    def charset(self) -> str:
        for part in self.content_type.split(';')[1:]:
            name, _, value = part.strip().partition('=')
            if name.lower() == 'charset' and value:
                return value.strip('"\'')
        return 'utf-8'

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def text(self) -> str:
        try:
            return self.body.decode(self.charset, errors='replace')
        except LookupError:
            return self.body.decode('utf-8', errors='replace')

    def json(self) -> Any:
        return json.loads(self.text)

    def is_html(self) -> bool:
        content_type = self.content_type.lower()
        return 'text/html' in content_type or 'application/xhtml' in content_type


class HttpFetcher:
    """Asynchronous GET client shared by the URL, crawl and feed pipelines."""

    def __init__(self, user_agent: str = DEFAULT_USER_AGENT, timeout: float = 30.0):
        """Initialize fetcher.

        Args:
            user_agent: User-Agent header sent with every request
            timeout: Default per-request timeout in seconds
        """
        self.user_agent = user_agent
        self.timeout = timeout
        self.session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(headers={'User-Agent': self.user_agent})
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        """Close the HTTP session."""
        if self.session:
            await self.session.close()
            self.session = None

    async def fetch(self, url: str, headers: Optional[Dict[str, str]] = None,
                    timeout: Optional[float] = None) -> FetchResponse:
        """GET ``url`` and return the full response.

        Raises:
            FetchError: On network errors, timeouts and non-2xx statuses
        """
        if self.session is None or self.session.closed:
            await self.__aenter__()

        client_timeout = aiohttp.ClientTimeout(total=timeout or self.timeout)
        logger.debug(f"Fetching {url}")

        try:
            async with self.session.get(url, headers=headers or {}, timeout=client_timeout,
                                        allow_redirects=True) as response:
                body = await response.read()
                result = FetchResponse(
                    url=str(response.url),
                    status=response.status,
                    body=body,
                    headers=dict(response.headers),
                )
        except asyncio.TimeoutError as e:
            raise FetchError(f"Timeout fetching {url}", url) from e
        except aiohttp.ClientError as e:
            raise FetchError(f"Error fetching {url}: {e}", url) from e

        if not result.ok:
            raise FetchError(f"HTTP {result.status} fetching {url}", url, status=result.status)

        return result
