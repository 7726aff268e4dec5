import pytest

from conftest import ADMIN, ALICE, BOB
from lending_library.errors import AlreadyOnLoanError, AppError, DuplicateBookError, ForbiddenError, NotFoundError
from lending_library.models import BOOKS_TABLE, LOANS_TABLE, REVIEWS_TABLE, ROLE_ADMIN, ROLE_USER


def _book(title, isbn="", google_books_id="", authors=None):
    return {
        "title": title,
        "isbn": isbn,
        "google_books_id": google_books_id,
        "authors": authors or [],
        "created_by": ALICE,
    }


# ------------------------- books ------------------------- #
def test_add_list_and_find(lib):
    assert lib.books.list_books() == []

    book = lib.books.create_book(_book("Ulysses", "9780199535675", authors=["James Joyce"]))

    assert lib.books.get_book_by_id(book.id) == book
    assert len(lib.books.list_books()) == 1
    assert lib.books.list_books()[0].title == "Ulysses"
    assert book.created_by == ALICE
    assert book.created_at.endswith("Z")


def test_authors_round_trip_through_one_cell(lib, store):
    lib.books.create_book(_book("Good Omens", authors=["Terry Pratchett", " Neil Gaiman "]))
    assert store.tables[BOOKS_TABLE][1][3] == "Terry Pratchett,  Neil Gaiman "
    assert lib.books.list_books()[0].authors == ["Terry Pratchett", "Neil Gaiman"]


def test_add_duplicate_isbn(lib):
    lib.books.create_book(_book("Test Book", "1234567890"))

    with pytest.raises(DuplicateBookError, match="already registered: Test Book"):
        lib.books.create_book(_book("Other Title", "1234567890"))

    assert len(lib.books.list_books()) == 1


def test_add_duplicate_catalog_id(lib):
    lib.books.create_book(_book("First", google_books_id="vol-9"))
    with pytest.raises(DuplicateBookError) as exc:
        lib.books.create_book(_book("Second", google_books_id="vol-9"))
    assert exc.value.title == "First"


def test_empty_isbn_is_never_a_duplicate(lib):
    lib.books.create_book(_book("No ISBN one"))
    lib.books.create_book(_book("No ISBN two"))
    assert len(lib.books.list_books()) == 2


def test_create_books_skips_preexisting_duplicates(lib):
    lib.books.create_book(_book("Existing", "111"))

    created = lib.books.create_books([
        _book("Dup of existing", "111"),
        _book("New A", "222"),
        _book("New B", "222"),  # same batch, not checked against each other
    ])

    assert [b.title for b in created] == ["New A", "New B"]
    assert len(lib.books.list_books()) == 3


def test_create_books_single_write(lib, store, monkeypatch):
    calls = []
    original = store.append_rows
    monkeypatch.setattr(store, "append_rows", lambda name, rows: (calls.append(len(rows)), original(name, rows)))

    lib.books.create_books([_book("A"), _book("B"), _book("C")])
    assert calls == [3]


def test_search_case_asymmetry(lib):
    lib.books.create_book(_book("The Pragmatic Programmer", "9780135957059", authors=["David Thomas"]))
    lib.books.create_book(_book("Unrelated", "9781234567ABC", authors=["John Smith"]))

    assert [b.title for b in lib.books.search_books("pragmatic")] == ["The Pragmatic Programmer"]
    assert [b.title for b in lib.books.search_books("SMITH")] == ["Unrelated"]
    assert [b.title for b in lib.books.search_books("567ABC")] == ["Unrelated"]
    # ISBN matching is case-sensitive
    assert lib.books.search_books("567abc") == []


def test_delete_book_requires_admin(lib, store):
    book = lib.books.create_book(_book("Keep me"))
    before = [list(r) for r in store.tables[BOOKS_TABLE]]

    with pytest.raises(ForbiddenError):
        lib.delete_book(book.id, ROLE_USER)

    assert store.tables[BOOKS_TABLE] == before


def test_delete_book_not_found(lib):
    with pytest.raises(NotFoundError):
        lib.delete_book("nonexistent", ROLE_ADMIN)


def test_delete_book(lib):
    keep = lib.books.create_book(_book("Keep"))
    drop = lib.books.create_book(_book("Drop"))

    lib.delete_book(drop.id, ROLE_ADMIN)

    assert [b.id for b in lib.books.list_books()] == [keep.id]


def test_delete_book_on_loan_is_rejected(lib):
    book = lib.books.create_book(_book("Borrowed"))
    lib.loans.borrow_book(book.id, BOB)

    with pytest.raises(AppError, match="on loan"):
        lib.delete_book(book.id, ROLE_ADMIN)
    assert lib.books.get_book_by_id(book.id) is not None


def test_books_with_review_stats(lib):
    rated = lib.books.create_book(_book("Rated"))
    unrated = lib.books.create_book(_book("Unrated"))
    lib.reviews.create_or_update(rated.id, 3, "ok", ALICE)
    lib.reviews.create_or_update(rated.id, 5, "great", BOB)

    stats = {s.book.id: s for s in lib.list_books_with_review_stats()}

    assert stats[rated.id].average_rating == 4
    assert stats[rated.id].review_count == 2
    assert stats[unrated.id].average_rating == 0
    assert stats[unrated.id].review_count == 0


# ------------------------- loans ------------------------- #
def test_borrow_and_return(lib):
    book = lib.books.create_book(_book("Dune"))

    loan = lib.loans.borrow_book(book.id, BOB)
    assert loan.returned_at is None
    assert lib.loans.get_open_loan_for_book(book.id) == loan

    returned = lib.loans.return_book(loan.id, BOB, ROLE_USER)
    assert returned.returned_at
    assert lib.loans.get_open_loan_for_book(book.id) is None
    assert lib.loans.list_loans()[0].returned_at == returned.returned_at


def test_second_borrow_fails_before_writing(lib, store):
    book = lib.books.create_book(_book("Dune"))
    lib.loans.borrow_book(book.id, BOB)
    rows_before = len(store.tables[LOANS_TABLE])

    with pytest.raises(AlreadyOnLoanError):
        lib.loans.borrow_book(book.id, ALICE)

    assert len(store.tables[LOANS_TABLE]) == rows_before


def test_borrow_unknown_book(lib):
    with pytest.raises(NotFoundError):
        lib.loans.borrow_book("missing", BOB)


def test_borrow_again_after_return(lib):
    book = lib.books.create_book(_book("Dune"))
    first = lib.loans.borrow_book(book.id, BOB)
    lib.loans.return_book(first.id, BOB, ROLE_USER)

    second = lib.loans.borrow_book(book.id, ALICE)
    assert lib.loans.get_open_loan_for_book(book.id).id == second.id


def test_return_by_other_user_is_forbidden(lib):
    book = lib.books.create_book(_book("Dune"))
    loan = lib.loans.borrow_book(book.id, BOB)

    with pytest.raises(ForbiddenError):
        lib.loans.return_book(loan.id, ALICE, ROLE_USER)
    assert lib.loans.get_open_loan_for_book(book.id) is not None


def test_admin_can_return_any_loan(lib):
    book = lib.books.create_book(_book("Dune"))
    loan = lib.loans.borrow_book(book.id, BOB)

    assert lib.loans.return_book(loan.id, ADMIN, ROLE_ADMIN).returned_at


def test_return_unknown_loan(lib):
    with pytest.raises(NotFoundError):
        lib.loans.return_book("missing", BOB, ROLE_USER)


# ------------------------- reviews ------------------------- #
def test_review_create_then_update_keeps_one_row(lib, store):
    book = lib.books.create_book(_book("Dune"))

    first = lib.reviews.create_or_update(book.id, 2, "meh", ALICE)
    second = lib.reviews.create_or_update(book.id, 5, "grew on me", ALICE)

    assert len(store.tables[REVIEWS_TABLE]) == 2  # header + one review
    assert second.id == first.id
    assert second.created_at == first.created_at
    assert second.rating == 5
    assert second.comment == "grew on me"
    assert lib.reviews.get_by_book_and_user(book.id, ALICE).rating == 5


def test_aggregate_stats(lib):
    lib.reviews.create_or_update("book-1", 3, "", ALICE)
    lib.reviews.create_or_update("book-1", 5, "", BOB)

    stats = lib.reviews.get_aggregate_stats()

    assert stats["book-1"].average_rating == 4
    assert stats["book-1"].review_count == 2
    assert "book-2" not in stats


def test_list_all_with_book_info(lib, store):
    book = lib.books.create_book(_book("Dune"))
    lib.reviews.create_or_update(book.id, 4, "", ALICE)
    lib.reviews.create_or_update("gone", 1, "", BOB)
    # make the first review the most recently updated
    store.tables[REVIEWS_TABLE][1][6] = "2030-01-01T00:00:00.000Z"

    reviews = lib.reviews.list_all_with_book_info()

    assert [r.book_title for r in reviews] == ["Dune", "(deleted book)"]
    assert reviews[1].book_image_url == ""


def test_list_by_book(lib):
    lib.reviews.create_or_update("book-1", 3, "", ALICE)
    lib.reviews.create_or_update("book-2", 4, "", ALICE)
    assert [r.rating for r in lib.reviews.list_by_book("book-2")] == [4]
    assert lib.reviews.get_by_book_and_user("book-1", BOB) is None


def test_delete_review_owner_only(lib):
    review = lib.reviews.create_or_update("book-1", 3, "", ALICE)

    with pytest.raises(ForbiddenError):
        lib.reviews.delete(review.id, BOB, ROLE_USER)

    lib.reviews.delete(review.id, ALICE, ROLE_USER)
    assert lib.reviews.list_by_book("book-1") == []


def test_admin_can_delete_any_review(lib):
    review = lib.reviews.create_or_update("book-1", 3, "", ALICE)
    lib.reviews.delete(review.id, ADMIN, ROLE_ADMIN)
    assert lib.reviews.list_by_book("book-1") == []


def test_delete_unknown_review(lib):
    with pytest.raises(NotFoundError):
        lib.reviews.delete("missing", ALICE, ROLE_USER)


# ------------------------- users ------------------------- #
def test_resolve_role(lib):
    assert lib.users.resolve_role(ADMIN) == ROLE_ADMIN
    assert lib.users.resolve_role("nobody@example.com") == ROLE_USER


def test_resolve_role_ignores_unknown_values(lib):
    lib.store.append_row("users", ["odd@example.com", "superuser", ""])
    assert lib.users.resolve_role("odd@example.com") == ROLE_USER


def test_resolve_role_has_no_side_effects(lib, store):
    before = len(store.tables["users"])
    lib.users.resolve_role("new@example.com")
    assert len(store.tables["users"]) == before


def test_set_role_updates_in_place(lib, store):
    assert lib.users.set_role(ALICE, ROLE_ADMIN) is True
    assert lib.users.set_role(ALICE, ROLE_USER) is False
    assert lib.users.resolve_role(ALICE) == ROLE_USER
    assert sum(1 for row in store.tables["users"] if row[0] == ALICE) == 1
