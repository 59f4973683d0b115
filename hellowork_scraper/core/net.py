"""
HTTP client for the cheap fetch tier: rotating browser-like headers,
randomized pacing, retries with exponential backoff, proxy passthrough.
"""
import time
import random
import asyncio
import logging
import itertools
from typing import Dict, List, Optional

import httpx
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from ..config import TierSettings
from .errors import FetchError, TransientFetchError

logger = logging.getLogger(__name__)

USER_AGENTS = [
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36',
    'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0',
    'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.2 Safari/605.1.15',
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 Edg/120.0.0.0',
    'Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/118.0.0.0 Safari/537.36',
]

# Statuses worth retrying; anything else >= 400 fails the tier immediately
RETRYABLE_STATUSES = {429, 500, 502, 503, 504}


def get_random_user_agent() -> str:
    return random.choice(USER_AGENTS)


def build_stealth_headers() -> Dict[str, str]:
    """Browser-like navigation headers with a French locale and a rotated User-Agent."""
    return {
        "User-Agent": get_random_user_agent(),
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
        "Accept-Language": "fr-FR,fr;q=0.9,en;q=0.8",
        "Accept-Encoding": "gzip, deflate",
        "DNT": "1",
        "Connection": "keep-alive",
        "Upgrade-Insecure-Requests": "1",
        "Sec-Fetch-Dest": "document",
        "Sec-Fetch-Mode": "navigate",
        "Sec-Fetch-Site": "none",
        "Sec-Fetch-User": "?1",
        "Cache-Control": "max-age=0",
    }


class ProxyRotator:
    """Round-robin over the configured proxy URLs. Opaque to the rest of the pipeline."""

    def __init__(self, proxy_urls: Optional[List[str]] = None):
        self.proxy_urls = list(proxy_urls or [])
        self._cycle = itertools.cycle(self.proxy_urls) if self.proxy_urls else None

    def next_proxy(self) -> Optional[str]:
        if self._cycle is None:
            return None
        return next(self._cycle)

    def __bool__(self):
        return bool(self.proxy_urls)


class HTTPClient:
    """Cheap-tier HTTP client with pacing, retries and proxy rotation"""

    def __init__(
        self,
        settings: TierSettings,
        proxy_rotator: Optional[ProxyRotator] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        name: str = "net"
    ):
        self.settings = settings
        self.proxy_rotator = proxy_rotator or ProxyRotator()
        self.timeout = httpx.Timeout(settings.timeout_secs)
        self.name = name
        # Injected transport (tests, custom adapters); bypasses proxy mounts
        self._transport = transport

    async def _pace(self):
        """Small randomized delay to avoid a fixed request-rate fingerprint."""
        low, high = self.settings.min_delay_secs, self.settings.max_delay_secs
        if high > 0:
            await asyncio.sleep(random.uniform(low, max(low, high)))

    def _client_kwargs(self) -> Dict:
        kwargs = {"timeout": self.timeout, "follow_redirects": True}
        if self._transport is not None:
            kwargs["transport"] = self._transport
        else:
            proxy = self.proxy_rotator.next_proxy()
            if proxy:
                kwargs["proxy"] = proxy
        return kwargs

    async def _fetch_once(self, url: str) -> str:
        await self._pace()

        async with httpx.AsyncClient(**self._client_kwargs()) as client:
            start_time = time.time()
            try:
                response = await client.get(url, headers=build_stealth_headers())
            except httpx.TimeoutException as e:
                logger.warning(f"[{self.name}] Timeout fetching {url}: {e}")
                raise TransientFetchError(url, "timeout") from e
            except httpx.TransportError as e:
                logger.warning(f"[{self.name}] Connection error fetching {url}: {e}")
                raise TransientFetchError(url, f"connection error: {type(e).__name__}") from e

            elapsed_ms = int((time.time() - start_time) * 1000)
            status = response.status_code
            logger.debug(f"[{self.name}] GET {status} {url} ({len(response.content)} bytes, {elapsed_ms}ms)")

            if status in RETRYABLE_STATUSES:
                raise TransientFetchError(url, f"HTTP {status}", status_code=status)
            if status >= 400:
                raise FetchError(url, f"HTTP {status}", status_code=status)

            return response.text

    async def fetch_text(self, url: str) -> str:
        """
        Fetch a page body with bounded retries.

        Args:
            url: Absolute URL

        Returns:
            Decoded response body

        Raises:
            FetchError: non-retryable status, or retries exhausted (TransientFetchError)
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.settings.max_retries + 1),
            wait=wait_exponential(
                multiplier=1,
                min=self.settings.backoff_min_secs,
                max=self.settings.backoff_max_secs
            ),
            retry=retry_if_exception_type(TransientFetchError),
            reraise=True
        )
        async for attempt in retrying:
            with attempt:
                attempt_no = attempt.retry_state.attempt_number
                if attempt_no > 1:
                    logger.info(f"[{self.name}] Retry {attempt_no - 1}/{self.settings.max_retries} for {url}")
                return await self._fetch_once(url)
