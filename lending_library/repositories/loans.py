import logging
from typing import List, Optional

from lending_library.database import RowStore
from lending_library.errors import AlreadyOnLoanError, ForbiddenError, NotFoundError
from lending_library.models import LOANS_TABLE, ROLE_ADMIN, Loan, new_id, now_iso
from lending_library.repositories.books import BookRepository

logger = logging.getLogger(__name__)

RETURNED_AT_COL = 4


class LoanRepository:
    def __init__(self, store: RowStore, books: BookRepository) -> None:
        self.store = store
        self.books = books

    def list_loans(self) -> List[Loan]:
        rows = self.store.read_table(LOANS_TABLE)
        return [Loan.from_row(row) for row in rows[1:]]

    def get_open_loan_for_book(self, book_id: str) -> Optional[Loan]:
        """First open loan for the book in sheet order."""
        for loan in self.list_loans():
            if loan.book_id == book_id and loan.is_open:
                return loan
        return None

    def borrow_book(self, book_id: str, borrower: str) -> Loan:
        # Check-then-append without a lock: two simultaneous borrows can both pass
        if self.get_open_loan_for_book(book_id):
            raise AlreadyOnLoanError()
        if self.books.get_book_by_id(book_id) is None:
            raise NotFoundError("Book not found")

        loan = Loan(id=new_id(), book_id=book_id, borrower=borrower, borrowed_at=now_iso())
        self.store.append_row(LOANS_TABLE, loan.to_row())
        logger.info("Loan %s opened: book=%s borrower=%s", loan.id, book_id, borrower)
        return loan

    def return_book(self, loan_id: str, caller_email: str, role: str) -> Loan:
        """Close a loan. Only the borrower or an administrator may do so."""
        rows = self.store.read_table(LOANS_TABLE)
        for i, row in enumerate(rows[1:], start=2):
            loan = Loan.from_row(row)
            if loan.id != loan_id:
                continue
            if loan.borrower != caller_email and role != ROLE_ADMIN:
                raise ForbiddenError("Only the borrower can return this book")
            loan.returned_at = now_iso()
            self.store.update_cell(LOANS_TABLE, i, RETURNED_AT_COL, loan.returned_at)
            logger.info("Loan %s closed by %s", loan_id, caller_email)
            return loan
        raise NotFoundError("Loan not found")
