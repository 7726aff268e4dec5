import httpx
import pytest

from lending_library.errors import NotFoundError
from lending_library.services.google_books_service import (
    CatalogVolume,
    GoogleBooksAPIError,
    GoogleBooksService,
    RateLimitExceeded,
)
from lending_library.services.http_client import SharedHTTPClient

VOLUME = {
    "id": "zyTCAlFPjgYC",
    "volumeInfo": {
        "title": "The Google Story",
        "authors": ["David A. Vise", "Mark Malseed"],
        "publisher": "Random House",
        "publishedDate": "2005-11-15",
        "industryIdentifiers": [
            {"type": "ISBN_10", "identifier": "055380457X"},
            {"type": "ISBN_13", "identifier": "9780553804577"},
        ],
        "imageLinks": {"smallThumbnail": "http://books.example/s.jpg", "thumbnail": "http://books.example/t.jpg"},
    },
}


def _service(handler):
    return GoogleBooksService(api_key="k", client=SharedHTTPClient(transport=httpx.MockTransport(handler)))


def test_volume_mapping():
    volume = CatalogVolume.from_api(VOLUME)

    assert volume.title == "The Google Story"
    assert volume.authors == ["David A. Vise", "Mark Malseed"]
    assert volume.published_date == "2005-11-15"
    assert volume.thumbnail == "http://books.example/t.jpg"
    assert volume.isbn() == "9780553804577"


def test_isbn_falls_back_to_isbn10():
    volume = CatalogVolume.from_api({
        "id": "x",
        "volumeInfo": {"title": "Old", "industryIdentifiers": [{"type": "ISBN_10", "identifier": "0306406152"}]},
    })
    assert volume.isbn() == "0306406152"


def test_sparse_volume():
    volume = CatalogVolume.from_api({"id": "x", "volumeInfo": {"title": "Bare"}})
    assert volume.isbn() == ""
    assert volume.thumbnail == ""
    assert volume.to_dict()["volumeInfo"]["authors"] is None


@pytest.mark.asyncio
async def test_search_volumes():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"totalItems": 1, "items": [VOLUME]})

    result = await _service(handler).search_volumes("google story")

    assert result["totalItems"] == 1
    assert result["items"][0].id == "zyTCAlFPjgYC"
    params = seen[0].url.params
    assert seen[0].url.path == "/books/v1/volumes"
    assert params["q"] == "google story"
    assert params["key"] == "k"
    assert int(params["maxResults"]) <= 40


@pytest.mark.asyncio
async def test_search_without_items():
    service = _service(lambda r: httpx.Response(200, json={"totalItems": 0}))
    result = await service.search_volumes("nothing matches")
    assert result == {"totalItems": 0, "items": []}


@pytest.mark.asyncio
async def test_get_volume():
    def handler(request):
        assert request.url.path == "/books/v1/volumes/zyTCAlFPjgYC"
        return httpx.Response(200, json=VOLUME)

    volume = await _service(handler).get_volume("zyTCAlFPjgYC")
    assert volume.publisher == "Random House"


@pytest.mark.asyncio
async def test_get_volume_not_found():
    with pytest.raises(NotFoundError):
        await _service(lambda r: httpx.Response(404, json={})).get_volume("missing")


@pytest.mark.asyncio
async def test_rate_limited():
    with pytest.raises(RateLimitExceeded):
        await _service(lambda r: httpx.Response(429, json={})).search_volumes("x")


@pytest.mark.asyncio
async def test_server_error():
    with pytest.raises(GoogleBooksAPIError):
        await _service(lambda r: httpx.Response(503, text="unavailable")).search_volumes("x")


@pytest.mark.asyncio
async def test_network_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(GoogleBooksAPIError):
        await _service(handler).search_volumes("x")
