"""Table repositories built on the row store.

- books: registration, duplicate detection, search, admin-only deletion
- loans: borrow/return with the one-open-loan-per-book rule
- reviews: one review per (book, user), rating aggregates
- users: role lookup
"""

from lending_library.repositories.books import BookRepository
from lending_library.repositories.loans import LoanRepository
from lending_library.repositories.reviews import ReviewRepository
from lending_library.repositories.users import UserRepository

__all__ = ["BookRepository", "LoanRepository", "ReviewRepository", "UserRepository"]
