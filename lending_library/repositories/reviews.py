import logging
from datetime import datetime
from typing import Dict, List, Optional

from lending_library.database import RowStore
from lending_library.errors import ForbiddenError, NotFoundError
from lending_library.models import (
    REVIEWS_TABLE,
    ROLE_ADMIN,
    Review,
    ReviewStats,
    ReviewWithBook,
    cell,
    new_id,
    now_iso,
    to_number,
)
from lending_library.repositories.books import BookRepository

logger = logging.getLogger(__name__)

DELETED_BOOK_TITLE = "(deleted book)"


def _sort_key(value: str) -> float:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()
    except ValueError:
        return 0.0


class ReviewRepository:
    """Reviews table. A user holds at most one review per book."""

    def __init__(self, store: RowStore, books: BookRepository) -> None:
        self.store = store
        self.books = books

    def _rows(self) -> List[List[str]]:
        return self.store.read_table(REVIEWS_TABLE)[1:]

    def get_aggregate_stats(self) -> Dict[str, ReviewStats]:
        """Mean rating and count per book id. Books without reviews are absent."""
        totals: Dict[str, List[float]] = {}
        for row in self._rows():
            entry = totals.setdefault(cell(row, 1), [0, 0])
            entry[0] += to_number(cell(row, 2))
            entry[1] += 1
        return {
            book_id: ReviewStats(average_rating=total / count, review_count=int(count))
            for book_id, (total, count) in totals.items()
        }

    def list_all_with_book_info(self) -> List[ReviewWithBook]:
        books = {book.id: book for book in self.books.list_books()}
        result = []
        for row in self._rows():
            review = Review.from_row(row)
            book = books.get(review.book_id)
            result.append(ReviewWithBook(
                review=review,
                book_title=book.title if book else DELETED_BOOK_TITLE,
                book_image_url=book.image_url if book else "",
            ))
        result.sort(key=lambda r: _sort_key(r.review.updated_at), reverse=True)
        return result

    def list_by_book(self, book_id: str) -> List[Review]:
        return [Review.from_row(row) for row in self._rows() if cell(row, 1) == book_id]

    def get_by_book_and_user(self, book_id: str, email: str) -> Optional[Review]:
        for row in self._rows():
            if cell(row, 1) == book_id and cell(row, 4) == email:
                return Review.from_row(row)
        return None

    def create_or_update(self, book_id: str, rating: int, comment: str, user_email: str) -> Review:
        """Overwrite the caller's existing review for the book in place, or append a new one."""
        now = now_iso()
        for i, row in enumerate(self._rows(), start=2):
            if cell(row, 1) == book_id and cell(row, 4) == user_email:
                review = Review(
                    id=cell(row, 0),
                    book_id=book_id,
                    rating=rating,
                    comment=comment,
                    created_by=user_email,
                    created_at=cell(row, 5),
                    updated_at=now,
                )
                self.store.update_row(REVIEWS_TABLE, i, review.to_row())
                logger.info("Review %s updated by %s", review.id, user_email)
                return review

        review = Review(
            id=new_id(),
            book_id=book_id,
            rating=rating,
            comment=comment,
            created_by=user_email,
            created_at=now,
            updated_at=now,
        )
        self.store.append_row(REVIEWS_TABLE, review.to_row())
        logger.info("Review %s created by %s", review.id, user_email)
        return review

    def delete(self, review_id: str, user_email: str, role: str) -> None:
        for i, row in enumerate(self._rows(), start=2):
            if cell(row, 0) != review_id:
                continue
            if cell(row, 4) != user_email and role != ROLE_ADMIN:
                raise ForbiddenError("You can only delete your own reviews")
            self.store.delete_row(REVIEWS_TABLE, i)
            logger.info("Review %s deleted by %s", review_id, user_email)
            return
        raise NotFoundError("Review not found")
