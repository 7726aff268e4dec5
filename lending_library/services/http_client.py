import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


class SharedHTTPClient:
    """Pooled async HTTP client shared by the outbound services (catalog, identity keys)."""

    def __init__(self, timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        limits = httpx.Limits(
            max_keepalive_connections=10,
            max_connections=50,
            keepalive_expiry=30.0,
        )
        self._client = httpx.AsyncClient(
            limits=limits,
            timeout=httpx.Timeout(timeout, connect=5.0),
            follow_redirects=True,
            transport=transport,
        )

    async def get(self, url: str, **kwargs) -> httpx.Response:
        return await self._client.get(url, **kwargs)

    async def close(self):
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


# Built on first use; the app lifespan closes it on shutdown
_global_client: Optional[SharedHTTPClient] = None


async def get_http_client() -> SharedHTTPClient:
    global _global_client
    if _global_client is None:
        _global_client = SharedHTTPClient()
        logger.debug("Shared HTTP client created")
    return _global_client


async def cleanup_http_client():
    global _global_client
    if _global_client:
        await _global_client.close()
        _global_client = None
