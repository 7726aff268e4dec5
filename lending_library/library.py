import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from lending_library.database import RowStore, get_row_store
from lending_library.models import TABLE_HEADERS, Book, BookWithStats
from lending_library.repositories import BookRepository, LoanRepository, ReviewRepository, UserRepository
from lending_library.services.google_books_service import GoogleBooksAPIError, GoogleBooksService

logger = logging.getLogger(__name__)

_ISBN_SEPARATORS = re.compile(r"[-\s]")
_ISBN_SHAPE = re.compile(r"^(\d{9}[\dXx]|\d{13})$", re.ASCII)


def is_isbn_query(text: str) -> bool:
    """True for ISBN-10 or ISBN-13 shaped text once hyphens and spaces are removed."""
    return bool(_ISBN_SHAPE.match(_ISBN_SEPARATORS.sub("", text)))


def catalog_query(text: str) -> str:
    if is_isbn_query(text):
        return f"isbn:{_ISBN_SEPARATORS.sub('', text)}"
    return text


@dataclass
class TitleResult:
    title: str
    status: str  # success | not_found | error
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"title": self.title, "status": self.status, "message": self.message}


@dataclass
class TitleImport:
    results: List[TitleResult] = field(default_factory=list)
    created: List[Book] = field(default_factory=list)


class Library:
    """Wires the table repositories over one row store."""

    def __init__(self, store: Optional[RowStore] = None) -> None:
        self.store = store or get_row_store()
        self.books = BookRepository(self.store)
        self.loans = LoanRepository(self.store, self.books)
        self.reviews = ReviewRepository(self.store, self.books)
        self.users = UserRepository(self.store)

    def list_books_with_review_stats(self) -> List[BookWithStats]:
        return self.books.list_books_with_review_stats(self.reviews)

    def delete_book(self, book_id: str, role: str) -> None:
        self.books.delete_book(book_id, role, loans=self.loans)

    def init_tables(self) -> List[str]:
        """Create any missing table and header row; returns the names that changed."""
        return [name for name, header in TABLE_HEADERS.items() if self.store.ensure_table(name, header)]

    async def register_titles(
        self,
        titles: Iterable[str],
        created_by: str,
        catalog: GoogleBooksService,
        delay: float = 0.0,
    ) -> TitleImport:
        """Look each title up in the catalog, take the first hit, then batch-register the hits.

        ISBN-shaped lines are searched as `isbn:<digits>`; results keep the line as typed.

        Books already registered before the call are skipped by create_books.
        """
        outcome = TitleImport()
        to_register: List[Dict[str, Any]] = []

        for raw in titles:
            title = raw.strip()
            if not title:
                continue
            try:
                found = await catalog.search_volumes(catalog_query(title))
            except GoogleBooksAPIError as e:
                logger.warning(f"Catalog search failed for '{title}': {e}")
                outcome.results.append(TitleResult(title, "error", "Catalog search failed"))
                continue

            items = found["items"]
            if not items:
                outcome.results.append(TitleResult(title, "not_found", "No matching book found"))
                continue

            volume = items[0]
            to_register.append({
                "title": volume.title,
                "isbn": volume.isbn(),
                "authors": volume.authors or [],
                "publisher": volume.publisher or "",
                "published_date": volume.published_date or "",
                "image_url": volume.thumbnail,
                "google_books_id": volume.id,
                "created_by": created_by,
                "genre": "",
                "title_kana": "",
            })
            outcome.results.append(TitleResult(volume.title, "success"))
            if delay:
                await asyncio.sleep(delay)

        if to_register:
            outcome.created = self.books.create_books(to_register)
        return outcome
