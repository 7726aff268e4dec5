import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from lending_library.config import settings
from lending_library.errors import NotFoundError
from lending_library.services.http_client import SharedHTTPClient, get_http_client

logger = logging.getLogger(__name__)

ISBN_PREFERENCE = ("ISBN_13", "ISBN_10")


@dataclass
class CatalogVolume:
    """A Google Books volume trimmed to the fields used for registration"""
    id: str
    title: str
    authors: Optional[List[str]] = None
    publisher: Optional[str] = None
    published_date: Optional[str] = None
    industry_identifiers: Optional[List[Dict[str, str]]] = None
    image_links: Optional[Dict[str, Optional[str]]] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "CatalogVolume":
        info = data.get("volumeInfo") or {}
        links = info.get("imageLinks")
        return cls(
            id=data.get("id") or "",
            title=info.get("title") or "",
            authors=info.get("authors") or None,
            publisher=info.get("publisher") or None,
            published_date=info.get("publishedDate") or None,
            industry_identifiers=info.get("industryIdentifiers") or None,
            image_links={
                "thumbnail": links.get("thumbnail") or None,
                "smallThumbnail": links.get("smallThumbnail") or None,
            } if links else None,
        )

    @property
    def thumbnail(self) -> str:
        return (self.image_links or {}).get("thumbnail") or ""

    def isbn(self) -> str:
        """ISBN-13 when listed, else ISBN-10, else ''."""
        identifiers = self.industry_identifiers or []
        for wanted in ISBN_PREFERENCE:
            for identifier in identifiers:
                if identifier.get("type") == wanted and identifier.get("identifier"):
                    return identifier["identifier"]
        return ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "volumeInfo": {
                "title": self.title,
                "authors": self.authors,
                "publisher": self.publisher,
                "publishedDate": self.published_date,
                "industryIdentifiers": self.industry_identifiers,
                "imageLinks": self.image_links,
            },
        }


class GoogleBooksAPIError(Exception):
    """Google Books answered with an unexpected status or could not be reached"""
    pass


class RateLimitExceeded(GoogleBooksAPIError):
    pass


class GoogleBooksService:
    """External catalog lookups against the Google Books volumes API"""

    def __init__(self, api_key: Optional[str] = None, client: Optional[SharedHTTPClient] = None):
        self.api_key = api_key or settings.google_books_api_key
        self.base_url = "https://www.googleapis.com/books/v1"
        self.timeout = settings.google_books_timeout
        self._client = client

    async def _http(self) -> SharedHTTPClient:
        if self._client is None:
            self._client = await get_http_client()
        return self._client

    async def _make_api_request(self, endpoint: str, params: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}/{endpoint}"
        if self.api_key:
            params["key"] = self.api_key

        client = await self._http()
        start_time = time.time()
        try:
            response = await client.get(url, params=params, timeout=self.timeout)
        except httpx.TimeoutException as e:
            logger.warning(f"Google Books request timed out after {self.timeout}s: {endpoint}")
            raise GoogleBooksAPIError(f"Request timed out: {endpoint}") from e
        except httpx.RequestError as e:
            logger.warning(f"Google Books request failed: {e}")
            raise GoogleBooksAPIError(str(e)) from e

        response_time_ms = int((time.time() - start_time) * 1000)
        logger.debug(f"Google Books {endpoint} -> {response.status_code} in {response_time_ms}ms")

        if response.status_code == 200:
            return response.json()
        if response.status_code == 404:
            raise NotFoundError("Book not found in the external catalog")
        if response.status_code == 429:
            logger.warning("Rate limit exceeded for Google Books API")
            raise RateLimitExceeded("Rate limit exceeded")
        logger.error(f"Google Books request failed: {response.status_code} - {response.text}")
        raise GoogleBooksAPIError(f"Unexpected status {response.status_code} from {endpoint}")

    async def search_volumes(self, query: str) -> Dict[str, Any]:
        """
        Search the catalog with a free-text query

        Returns:
            {"totalItems": int, "items": [CatalogVolume, ...]}
        """
        params: Dict[str, Any] = {
            "q": query,
            "maxResults": min(settings.catalog_max_results, 40),  # API maximum
        }
        if settings.catalog_lang_restrict:
            params["langRestrict"] = settings.catalog_lang_restrict

        data = await self._make_api_request("volumes", params)
        items = [CatalogVolume.from_api(item) for item in data.get("items") or []]
        logger.info(f"Found {len(items)} catalog volumes for query: {query}")
        return {"totalItems": data.get("totalItems") or 0, "items": items}

    async def get_volume(self, volume_id: str) -> CatalogVolume:
        data = await self._make_api_request(f"volumes/{volume_id}", {})
        return CatalogVolume.from_api(data)
