"""Round-robin outbound proxy pool fed from a remote plain-text list.

ROTATION
========
- The list is replaced wholesale on refresh and the cursor goes back to 0
- Refreshes inside the refresh interval are skipped unless the pool is empty
- next() hands out addresses in order and wraps around
- No health tracking: a proxy that keeps getting 429s comes round again
"""

import time
from typing import Awaitable, Callable, List, Optional

import httpx

from ytaudio.services import logger
from ytaudio.utils.exceptions import ProxyListError


ProxySource = Callable[[], Awaitable[List[str]]]

PROXY_LIST_TIMEOUT_SECONDS = 15


def normalize_proxy(line: str) -> Optional[str]:
    """
    Turn one line of a proxy list into a proxy URL.

    Blank lines and '#' comments yield None; bare host:port entries get an
    http:// scheme.
    """
    entry = line.strip()
    if not entry or entry.startswith("#"):
        return None
    if "://" not in entry:
        entry = f"http://{entry}"
    return entry


def parse_proxy_list(text: str) -> List[str]:
    """Parse a newline-separated proxy list, dropping duplicates in order."""
    proxies: List[str] = []
    for line in text.splitlines():
        proxy = normalize_proxy(line)
        if proxy and proxy not in proxies:
            proxies.append(proxy)
    return proxies


def mask_proxy(proxy_url: str) -> str:
    """Hide credentials in a proxy URL for logs and API responses."""
    if "@" not in proxy_url:
        return proxy_url
    prefix = ""
    if "://" in proxy_url:
        scheme, proxy_url = proxy_url.split("://", 1)
        prefix = f"{scheme}://"
    return f"{prefix}***@{proxy_url.rsplit('@', 1)[-1]}"


def http_proxy_source(url: str) -> ProxySource:
    """Build a proxy source that downloads a plain-text list over HTTP."""

    async def fetch() -> List[str]:
        try:
            async with httpx.AsyncClient(timeout=PROXY_LIST_TIMEOUT_SECONDS, follow_redirects=True) as client:
                response = await client.get(url)
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise ProxyListError(f"Could not fetch proxy list from {url}: {e}") from e
        return parse_proxy_list(response.text)

    return fetch


class ProxyPool:
    """
    Round-robin cursor over a periodically refreshed proxy list.

    Usage:
        pool = ProxyPool(http_proxy_source(url), refresh_interval=600)
        await pool.refresh()
        proxy = pool.next()  # None when the pool is empty
    """

    def __init__(
        self,
        source: Optional[ProxySource] = None,
        refresh_interval: float = 600,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._source = source
        self.refresh_interval = refresh_interval
        self._clock = clock
        self.addresses: List[str] = []
        self.cursor = 0
        self.last_refreshed: Optional[float] = None

    def __len__(self) -> int:
        return len(self.addresses)

    @property
    def enabled(self) -> bool:
        return self._source is not None

    def next(self) -> Optional[str]:
        """Return the proxy under the cursor and advance it, or None if empty."""
        if not self.addresses:
            return None
        address = self.addresses[self.cursor]
        self.cursor = (self.cursor + 1) % len(self.addresses)
        return address

    def _is_due(self) -> bool:
        if not self.addresses or self.last_refreshed is None:
            return True
        return self._clock() - self.last_refreshed > self.refresh_interval

    async def refresh(self, force: bool = False) -> bool:
        """
        Replace the address list from the source.

        Args:
            force: Refresh even if the refresh interval has not elapsed

        Returns:
            bool: True if the list was replaced, False if the refresh was skipped

        Raises:
            ProxyListError: If the source fails. The previous list is kept.
        """
        if self._source is None:
            return False
        if not force and not self._is_due():
            logger.debug("Proxy refresh skipped, list is still fresh", "proxy")
            return False

        try:
            addresses = await self._source()
        except ProxyListError as e:
            logger.error(e.message, "proxy", {"kept": len(self.addresses)})
            raise

        self.addresses = list(addresses)
        self.cursor = 0
        self.last_refreshed = self._clock()
        logger.info(
            f"Proxy list refreshed: {len(self.addresses)} proxies",
            "proxy",
            {"count": len(self.addresses)},
        )
        return True

    def masked_addresses(self) -> List[str]:
        return [mask_proxy(address) for address in self.addresses]
