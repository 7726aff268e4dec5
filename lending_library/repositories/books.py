from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional

from lending_library.database import RowStore
from lending_library.errors import AppError, DuplicateBookError, ForbiddenError, NotFoundError
from lending_library.models import BOOKS_TABLE, ROLE_ADMIN, Book, BookWithStats, new_id, now_iso

if TYPE_CHECKING:
    from lending_library.repositories.loans import LoanRepository
    from lending_library.repositories.reviews import ReviewRepository

logger = logging.getLogger(__name__)


def _text(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    return str(value) if value else ""


def find_duplicate(books: Iterable[Book], isbn: str, google_books_id: str) -> Optional[Book]:
    """First book sharing a non-empty ISBN or catalog id."""
    for book in books:
        if isbn and book.isbn == isbn:
            return book
        if google_books_id and book.google_books_id == google_books_id:
            return book
    return None


class BookRepository:
    """Books table. Every query is a full scan of the sheet."""

    def __init__(self, store: RowStore) -> None:
        self.store = store

    def list_books(self) -> List[Book]:
        rows = self.store.read_table(BOOKS_TABLE)
        return [Book.from_row(row) for row in rows[1:]]

    def list_books_with_review_stats(self, reviews: "ReviewRepository") -> List[BookWithStats]:
        books = self.list_books()
        stats = reviews.get_aggregate_stats()
        result = []
        for book in books:
            s = stats.get(book.id)
            if s:
                result.append(BookWithStats(book, s.average_rating, s.review_count))
            else:
                result.append(BookWithStats(book))
        return result

    def get_book_by_id(self, book_id: str) -> Optional[Book]:
        for book in self.list_books():
            if book.id == book_id:
                return book
        return None

    def search_books(self, query: str) -> List[Book]:
        """Title/author match ignores case; the ISBN match is a raw substring test."""
        lowered = query.lower()
        return [
            book for book in self.list_books()
            if lowered in book.title.lower()
            or any(lowered in author.lower() for author in book.authors)
            or query in book.isbn
        ]

    def _build(self, data: Dict[str, Any]) -> Book:
        authors = data.get("authors")
        return Book(
            id=new_id(),
            title=_text(data, "title"),
            isbn=_text(data, "isbn"),
            authors=[str(a) for a in authors] if isinstance(authors, list) else [],
            publisher=_text(data, "publisher"),
            published_date=_text(data, "published_date"),
            image_url=_text(data, "image_url"),
            google_books_id=_text(data, "google_books_id"),
            created_at=now_iso(),
            created_by=_text(data, "created_by"),
            genre=_text(data, "genre"),
            title_kana=_text(data, "title_kana"),
        )

    def create_book(self, data: Dict[str, Any]) -> Book:
        duplicate = find_duplicate(self.list_books(), _text(data, "isbn"), _text(data, "google_books_id"))
        if duplicate:
            raise DuplicateBookError(duplicate.title)

        book = self._build(data)
        self.store.append_row(BOOKS_TABLE, book.to_row())
        logger.info("Book registered: %s (%s) by %s", book.title, book.id, book.created_by)
        return book

    def create_books(self, data_list: List[Dict[str, Any]]) -> List[Book]:
        """Batch register. Duplicates of books that existed before the call are skipped silently.

        Items inside the same batch are not checked against each other.
        """
        existing = self.list_books()
        created: List[Book] = []
        for data in data_list:
            if find_duplicate(existing, _text(data, "isbn"), _text(data, "google_books_id")):
                continue
            created.append(self._build(data))

        self.store.append_rows(BOOKS_TABLE, [book.to_row() for book in created])
        logger.info("Batch registration: %d of %d books created", len(created), len(data_list))
        return created

    def delete_book(self, book_id: str, role: str, loans: Optional["LoanRepository"] = None) -> None:
        if role != ROLE_ADMIN:
            raise ForbiddenError("Only administrators can delete books")
        if loans is not None and loans.get_open_loan_for_book(book_id):
            raise AppError("Books that are currently on loan cannot be deleted")

        rows = self.store.read_table(BOOKS_TABLE)
        for i, row in enumerate(rows[1:], start=2):
            if row and row[0] == book_id:
                self.store.delete_row(BOOKS_TABLE, i)
                logger.info("Book deleted: %s", book_id)
                return
        raise NotFoundError("Book not found")
