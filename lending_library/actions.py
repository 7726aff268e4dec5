"""Request variants accepted by the action endpoint.

Every body is `{"action": <name>, ...params}`. Each action is one pydantic
model whose `action` field is a single literal, so the set of variants is a
closed tagged union and the required parameters of each are declared here.
"""

from typing import Annotated, Any, Dict, List, Literal, Type, Union, get_args

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, StrictInt, StrictStr, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from lending_library.errors import ValidationError

NonEmptyStr = Annotated[StrictStr, Field(min_length=1)]

# Errors on a top-level parameter that mean "absent or wrong shape"
_SHAPE_ERRORS = {
    "missing", "string_type", "string_too_short", "dict_type", "model_type",
    "model_attributes_type", "list_type", "too_short",
}


class _Params(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class BookInput(_Params):
    """Client-supplied book fields. createdBy is never taken from the client."""

    title: str = ""
    isbn: str = ""
    authors: List[str] = Field(default_factory=list)
    publisher: str = ""
    published_date: str = ""
    image_url: str = ""
    google_books_id: str = Field("", validation_alias=AliasChoices("googleBooksId", "externalCatalogId", "google_books_id"))
    genre: str = ""
    title_kana: str = ""

    @field_validator(
        "title", "isbn", "publisher", "published_date", "image_url", "google_books_id", "genre", "title_kana",
        mode="before",
    )
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("authors", mode="before")
    @classmethod
    def _authors_list(cls, value: Any) -> Any:
        return value if isinstance(value, list) else []


class ReviewInput(_Params):
    book_id: NonEmptyStr
    rating: StrictInt = Field(ge=1, le=5)
    comment: str = ""


class GetMyRole(_Params):
    action: Literal["getMyRole"]


class GetBooks(_Params):
    action: Literal["getBooks"]


class GetBookById(_Params):
    action: Literal["getBookById"]
    id: NonEmptyStr


class SearchBooks(_Params):
    action: Literal["searchBooks"]
    query: NonEmptyStr


class CreateBook(_Params):
    action: Literal["createBook"]
    book: BookInput


class CreateBooks(_Params):
    action: Literal["createBooks"]
    books: Annotated[List[BookInput], Field(min_length=1)]


class DeleteBook(_Params):
    action: Literal["deleteBook"]
    id: NonEmptyStr


class GetLoans(_Params):
    action: Literal["getLoans"]


class GetLoanByBookId(_Params):
    action: Literal["getLoanByBookId"]
    book_id: NonEmptyStr


class BorrowBook(_Params):
    action: Literal["borrowBook"]
    book_id: NonEmptyStr


class ReturnBook(_Params):
    action: Literal["returnBook"]
    loan_id: NonEmptyStr


class GetAllReviews(_Params):
    action: Literal["getAllReviews"]


class GetReviewsByBookId(_Params):
    action: Literal["getReviewsByBookId"]
    book_id: NonEmptyStr


class GetMyReview(_Params):
    action: Literal["getMyReview"]
    book_id: NonEmptyStr


class CreateOrUpdateReview(_Params):
    action: Literal["createOrUpdateReview"]
    review: ReviewInput


class DeleteReview(_Params):
    action: Literal["deleteReview"]
    id: NonEmptyStr


class SearchExternalCatalog(_Params):
    action: Literal["searchExternalCatalog"]
    query: NonEmptyStr


class GetExternalCatalogItem(_Params):
    action: Literal["getExternalCatalogItem"]
    volume_id: NonEmptyStr


ActionRequest = Annotated[
    Union[
        GetMyRole, GetBooks, GetBookById, SearchBooks, CreateBook, CreateBooks, DeleteBook,
        GetLoans, GetLoanByBookId, BorrowBook, ReturnBook,
        GetAllReviews, GetReviewsByBookId, GetMyReview, CreateOrUpdateReview, DeleteReview,
        SearchExternalCatalog, GetExternalCatalogItem,
    ],
    Field(discriminator="action"),
]

ACTION_MODELS: Dict[str, Type[_Params]] = {
    get_args(model.model_fields["action"].annotation)[0]: model
    for model in get_args(get_args(ActionRequest)[0])
}


def _describe(error: PydanticValidationError) -> str:
    first = error.errors()[0]
    loc = [str(part) for part in first["loc"]]
    if not loc:
        return "Invalid request"
    if len(loc) == 1 and first["type"] in _SHAPE_ERRORS:
        return f"{loc[0]} is required"
    return f"Invalid {'.'.join(loc)}: {first['msg']}"


def parse_action(body: Any) -> _Params:
    """Validate a decoded JSON body into its action variant or raise ValidationError."""
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    action = body.get("action")
    if not isinstance(action, str) or not action:
        raise ValidationError("action is required")
    model = ACTION_MODELS.get(action)
    if model is None:
        raise ValidationError(f"Unknown action: {action}")
    try:
        return model.model_validate(body)
    except PydanticValidationError as e:
        raise ValidationError(_describe(e)) from e
