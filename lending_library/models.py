from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from lending_library.config import settings

BOOKS_TABLE = "books"
LOANS_TABLE = "loans"
REVIEWS_TABLE = "reviews"
USERS_TABLE = "users"

BOOK_HEADER = [
    "id", "title", "isbn", "authors", "publisher", "publishedDate", "imageUrl",
    "googleBooksId", "createdAt", "createdBy", "genre", "titleKana",
]
LOAN_HEADER = ["id", "bookId", "borrower", "borrowedAt", "returnedAt"]
REVIEW_HEADER = ["id", "bookId", "rating", "comment", "createdBy", "createdAt", "updatedAt"]
USER_HEADER = ["email", "role", "createdAt"]

TABLE_HEADERS = {
    BOOKS_TABLE: BOOK_HEADER,
    LOANS_TABLE: LOAN_HEADER,
    REVIEWS_TABLE: REVIEW_HEADER,
    USERS_TABLE: USER_HEADER,
}

ROLE_ADMIN = "admin"
ROLE_USER = "user"


def new_id() -> str:
    return str(uuid.uuid4())


def now_iso() -> str:
    """Current UTC time as ISO-8601 with milliseconds and a Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def cell(row: Sequence[str], index: int) -> str:
    """Missing and empty cells both read as ''."""
    if index < len(row) and row[index] is not None:
        return str(row[index])
    return ""


def to_number(value: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    return int(number) if number.is_integer() else number


def split_authors(raw: str) -> List[str]:
    return [a.strip() for a in raw.split(",") if a.strip()]


def resolve_image_url(image_url: Optional[str]) -> str:
    """Map a stored imageUrl to something a browser can load.

    IMAGE_STORAGE (local or s3) only records which deployment serves IMAGE_BASE_URL;
    the mapping is the same for both.
    """
    base = settings.image_base_url.rstrip("/")
    if not image_url:
        return f"{base}/no-image.svg"
    if image_url.startswith(("http://", "https://")):
        return image_url
    return f"{base}/{image_url.lstrip('/')}"


@dataclass
class Book:
    """A registered book. `authors` is stored as one comma-joined cell."""

    id: str
    title: str
    isbn: str = ""
    authors: List[str] = field(default_factory=list)
    publisher: str = ""
    published_date: str = ""
    image_url: str = ""
    google_books_id: str = ""
    created_at: str = ""
    created_by: str = ""
    genre: str = ""
    title_kana: str = ""

    @classmethod
    def from_row(cls, row: Sequence[str]) -> "Book":
        return cls(
            id=cell(row, 0),
            title=cell(row, 1),
            isbn=cell(row, 2),
            authors=split_authors(cell(row, 3)),
            publisher=cell(row, 4),
            published_date=cell(row, 5),
            image_url=cell(row, 6),
            google_books_id=cell(row, 7),
            created_at=cell(row, 8),
            created_by=cell(row, 9),
            genre=cell(row, 10),
            title_kana=cell(row, 11),
        )

    def to_row(self) -> List[str]:
        return [
            self.id,
            self.title,
            self.isbn,
            ", ".join(self.authors),
            self.publisher,
            self.published_date,
            self.image_url,
            self.google_books_id,
            self.created_at,
            self.created_by,
            self.genre or "",
            self.title_kana or "",
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "isbn": self.isbn,
            "authors": list(self.authors),
            "publisher": self.publisher,
            "publishedDate": self.published_date,
            "imageUrl": self.image_url,
            "imageSrc": resolve_image_url(self.image_url),
            "googleBooksId": self.google_books_id,
            "createdAt": self.created_at,
            "createdBy": self.created_by,
            "genre": self.genre,
            "titleKana": self.title_kana,
        }


@dataclass
class BookWithStats:
    book: Book
    average_rating: float = 0
    review_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data = self.book.to_dict()
        data["averageRating"] = self.average_rating
        data["reviewCount"] = self.review_count
        return data


@dataclass
class Loan:
    """returned_at is None while the book is still checked out."""

    id: str
    book_id: str
    borrower: str
    borrowed_at: str
    returned_at: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return not self.returned_at

    @classmethod
    def from_row(cls, row: Sequence[str]) -> "Loan":
        return cls(
            id=cell(row, 0),
            book_id=cell(row, 1),
            borrower=cell(row, 2),
            borrowed_at=cell(row, 3),
            returned_at=cell(row, 4) or None,
        )

    def to_row(self) -> List[str]:
        return [self.id, self.book_id, self.borrower, self.borrowed_at, self.returned_at or ""]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "bookId": self.book_id,
            "borrower": self.borrower,
            "borrowedAt": self.borrowed_at,
            "returnedAt": self.returned_at,
        }


@dataclass
class Review:
    id: str
    book_id: str
    rating: float
    comment: str
    created_by: str
    created_at: str
    updated_at: str

    @classmethod
    def from_row(cls, row: Sequence[str]) -> "Review":
        return cls(
            id=cell(row, 0),
            book_id=cell(row, 1),
            rating=to_number(cell(row, 2)),
            comment=cell(row, 3),
            created_by=cell(row, 4),
            created_at=cell(row, 5),
            updated_at=cell(row, 6),
        )

    def to_row(self) -> List[Any]:
        return [
            self.id,
            self.book_id,
            self.rating,
            self.comment,
            self.created_by,
            self.created_at,
            self.updated_at,
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "bookId": self.book_id,
            "rating": self.rating,
            "comment": self.comment,
            "createdBy": self.created_by,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass
class ReviewWithBook:
    review: Review
    book_title: str
    book_image_url: str

    def to_dict(self) -> Dict[str, Any]:
        data = self.review.to_dict()
        data["bookTitle"] = self.book_title
        data["bookImageUrl"] = self.book_image_url
        return data


@dataclass
class ReviewStats:
    average_rating: float
    review_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {"averageRating": self.average_rating, "reviewCount": self.review_count}
