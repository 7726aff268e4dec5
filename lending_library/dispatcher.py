"""Action dispatch: authenticate, resolve the role, validate, run, wrap.

This is the only place where errors are turned into status codes. Business
errors (`AppError`) keep their message; anything else becomes a generic 500
and is logged with its traceback.
"""

import inspect
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple, Type

from fastapi.concurrency import run_in_threadpool

from lending_library import actions
from lending_library.auth import Authenticator
from lending_library.errors import AppError, ValidationError
from lending_library.library import Library
from lending_library.services.google_books_service import GoogleBooksService

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "An internal server error occurred"

Handler = Callable[["Dispatcher", Any, "Caller"], Any]
_HANDLERS: Dict[Type[Any], Handler] = {}


@dataclass
class Caller:
    email: str
    role: str


def handles(model: Type[Any]) -> Callable[[Handler], Handler]:
    def decorator(func: Handler) -> Handler:
        if model in _HANDLERS:
            raise RuntimeError(f"Duplicate handler for {model.__name__}")
        _HANDLERS[model] = func
        return func
    return decorator


def handler_for(model: Type[Any]) -> Optional[Handler]:
    return _HANDLERS.get(model)


def to_jsonable(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


def success(data: Any) -> Dict[str, Any]:
    return {"success": True, "data": data}


def failure(message: str) -> Dict[str, Any]:
    return {"success": False, "error": message}


class Dispatcher:
    def __init__(self, library: Library, catalog: GoogleBooksService, authenticator: Authenticator):
        self.library = library
        self.catalog = catalog
        self.authenticator = authenticator

    async def dispatch(self, request: Any, caller: Caller) -> Any:
        handler = _HANDLERS[type(request)]
        if inspect.iscoroutinefunction(handler):
            result = await handler(self, request, caller)
        else:
            # Row store calls block, keep them off the event loop
            result = await run_in_threadpool(handler, self, request, caller)
        return to_jsonable(result)

    async def handle(self, token: str, raw_body: bytes) -> Tuple[int, Dict[str, Any]]:
        """Run one request through the whole pipeline and return (status, envelope)."""
        try:
            user = await self.authenticator.authenticate(token)
            role = await run_in_threadpool(self.library.users.resolve_role, user.email)
            try:
                body = json.loads(raw_body or b"{}")
            except ValueError as e:
                raise ValidationError("Invalid JSON body") from e
            request = actions.parse_action(body)
            data = await self.dispatch(request, Caller(email=user.email, role=role))
            return 200, success(data)
        except AppError as e:
            return e.status_code, failure(e.message)
        except Exception:
            logger.exception("Unhandled error while processing action request")
            return 500, failure(INTERNAL_ERROR_MESSAGE)


# ------------------------- users ------------------------- #
@handles(actions.GetMyRole)
def _get_my_role(ctx: Dispatcher, req: actions.GetMyRole, caller: Caller):
    return {"role": caller.role}


# ------------------------- books ------------------------- #
@handles(actions.GetBooks)
def _get_books(ctx: Dispatcher, req: actions.GetBooks, caller: Caller):
    return ctx.library.list_books_with_review_stats()


@handles(actions.GetBookById)
def _get_book_by_id(ctx: Dispatcher, req: actions.GetBookById, caller: Caller):
    return ctx.library.books.get_book_by_id(req.id)


@handles(actions.SearchBooks)
def _search_books(ctx: Dispatcher, req: actions.SearchBooks, caller: Caller):
    return ctx.library.books.search_books(req.query)


def _book_data(book: actions.BookInput, caller: Caller) -> Dict[str, Any]:
    data = book.model_dump()
    data["created_by"] = caller.email
    return data


@handles(actions.CreateBook)
def _create_book(ctx: Dispatcher, req: actions.CreateBook, caller: Caller):
    return ctx.library.books.create_book(_book_data(req.book, caller))


@handles(actions.CreateBooks)
def _create_books(ctx: Dispatcher, req: actions.CreateBooks, caller: Caller):
    return ctx.library.books.create_books([_book_data(b, caller) for b in req.books])


@handles(actions.DeleteBook)
def _delete_book(ctx: Dispatcher, req: actions.DeleteBook, caller: Caller):
    ctx.library.delete_book(req.id, caller.role)
    return None


# ------------------------- loans ------------------------- #
@handles(actions.GetLoans)
def _get_loans(ctx: Dispatcher, req: actions.GetLoans, caller: Caller):
    return ctx.library.loans.list_loans()


@handles(actions.GetLoanByBookId)
def _get_loan_by_book_id(ctx: Dispatcher, req: actions.GetLoanByBookId, caller: Caller):
    return ctx.library.loans.get_open_loan_for_book(req.book_id)


@handles(actions.BorrowBook)
def _borrow_book(ctx: Dispatcher, req: actions.BorrowBook, caller: Caller):
    return ctx.library.loans.borrow_book(req.book_id, caller.email)


@handles(actions.ReturnBook)
def _return_book(ctx: Dispatcher, req: actions.ReturnBook, caller: Caller):
    return ctx.library.loans.return_book(req.loan_id, caller.email, caller.role)


# ------------------------- reviews ------------------------- #
@handles(actions.GetAllReviews)
def _get_all_reviews(ctx: Dispatcher, req: actions.GetAllReviews, caller: Caller):
    return ctx.library.reviews.list_all_with_book_info()


@handles(actions.GetReviewsByBookId)
def _get_reviews_by_book_id(ctx: Dispatcher, req: actions.GetReviewsByBookId, caller: Caller):
    return ctx.library.reviews.list_by_book(req.book_id)


@handles(actions.GetMyReview)
def _get_my_review(ctx: Dispatcher, req: actions.GetMyReview, caller: Caller):
    return ctx.library.reviews.get_by_book_and_user(req.book_id, caller.email)


@handles(actions.CreateOrUpdateReview)
def _create_or_update_review(ctx: Dispatcher, req: actions.CreateOrUpdateReview, caller: Caller):
    review = req.review
    return ctx.library.reviews.create_or_update(review.book_id, review.rating, review.comment, caller.email)


@handles(actions.DeleteReview)
def _delete_review(ctx: Dispatcher, req: actions.DeleteReview, caller: Caller):
    ctx.library.reviews.delete(req.id, caller.email, caller.role)
    return None


# ------------------------- external catalog ------------------------- #
@handles(actions.SearchExternalCatalog)
async def _search_external_catalog(ctx: Dispatcher, req: actions.SearchExternalCatalog, caller: Caller):
    return await ctx.catalog.search_volumes(req.query)


@handles(actions.GetExternalCatalogItem)
async def _get_external_catalog_item(ctx: Dispatcher, req: actions.GetExternalCatalogItem, caller: Caller):
    return await ctx.catalog.get_volume(req.volume_id)
