"""Business errors whose messages are safe to return to the client."""

from typing import Optional


class AppError(Exception):
    """Base error carrying a user-facing message and an HTTP status code."""

    status_code: int = 400

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(AppError):
    status_code = 400


class NotFoundError(AppError):
    status_code = 404


class ForbiddenError(AppError):
    status_code = 403


class DuplicateBookError(AppError):
    status_code = 400

    def __init__(self, title: str) -> None:
        super().__init__(f"This book is already registered: {title}")
        self.title = title


class AlreadyOnLoanError(AppError):
    status_code = 400

    def __init__(self) -> None:
        super().__init__("This book is already on loan")


class AuthenticationError(AppError):
    """Missing or unverifiable identity token."""

    status_code = 401

    def __init__(self, message: str, reason: str) -> None:
        super().__init__(message)
        self.reason = reason


class DomainNotAllowedError(AppError):
    """Verified identity whose email domain is outside the allow-list."""

    status_code = 401
