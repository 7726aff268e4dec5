import pytest
from fastapi.testclient import TestClient

from lending_library import database
from lending_library.api import app, get_dispatcher
from lending_library.auth import Authenticator
from lending_library.database import MemoryRowStore
from lending_library.dispatcher import Dispatcher
from lending_library.errors import NotFoundError
from lending_library.library import Library
from lending_library.models import ROLE_ADMIN
from lending_library.services.google_books_service import GoogleBooksService

ALICE = "alice@example.com"
BOB = "bob@example.com"
ADMIN = "admin@example.com"

# token -> claims the identity provider would vouch for
TOKENS = {
    "token-alice": {"email": ALICE, "email_verified": True, "name": "Alice"},
    "token-bob": {"email": BOB, "email_verified": True, "name": "Bob"},
    "token-admin": {"email": ADMIN, "email_verified": True, "name": "Admin"},
    "token-outsider": {"email": "eve@elsewhere.org", "email_verified": True},
    "token-unverified": {"email": "mallory@example.com", "email_verified": False},
}


class FakeVerifier:
    async def verify(self, token):
        try:
            return dict(TOKENS[token])
        except KeyError:
            raise ValueError("signature mismatch")


class StubCatalog(GoogleBooksService):
    """Catalog that answers from a canned list of volume payloads."""

    def __init__(self, volumes=None):
        super().__init__(api_key="test")
        self.volumes = volumes or []
        self.queries = []

    async def _make_api_request(self, endpoint, params):
        if endpoint == "volumes":
            query = params["q"]
            self.queries.append(query)
            if query.startswith("isbn:"):
                matches = [
                    v for v in self.volumes
                    if any(i["identifier"] == query[5:] for i in v["volumeInfo"].get("industryIdentifiers", []))
                ]
            else:
                matches = [v for v in self.volumes if query.lower() in v["volumeInfo"]["title"].lower()]
            return {"totalItems": len(matches), "items": matches}
        volume_id = endpoint.split("/", 1)[1]
        for v in self.volumes:
            if v["id"] == volume_id:
                return v
        raise NotFoundError("Book not found in the external catalog")


@pytest.fixture
def store():
    store = MemoryRowStore()
    Library(store).init_tables()
    return store


@pytest.fixture
def lib(store):
    lib = Library(store)
    lib.users.set_role(ADMIN, ROLE_ADMIN)
    return lib


@pytest.fixture
def catalog():
    return StubCatalog([
        {
            "id": "vol-1",
            "volumeInfo": {
                "title": "Fluent Python",
                "authors": ["Luciano Ramalho"],
                "publisher": "O'Reilly",
                "publishedDate": "2022-04",
                "industryIdentifiers": [
                    {"type": "ISBN_10", "identifier": "1492056359"},
                    {"type": "ISBN_13", "identifier": "9781492056355"},
                ],
                "imageLinks": {"thumbnail": "http://books.example/fp.jpg"},
            },
        },
    ])


@pytest.fixture
def dispatcher(lib, catalog):
    return Dispatcher(lib, catalog, Authenticator(FakeVerifier(), allowed_domains=["example.com"]))


@pytest.fixture
def client(dispatcher):
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def global_store(store):
    """Install the fixture store as the process-wide row store (used by the CLI)."""
    database.set_row_store(store)
    yield store
    database.set_row_store(None)
