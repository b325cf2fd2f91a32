"""
Bookstore · Custom Exceptions
Each exception carries: message, error_code, http_status_code, optional detail dict.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

# ─────────────────────────────────────────────────────────────────────────────
# BASE
# ─────────────────────────────────────────────────────────────────────────────


class BookstoreError(Exception):
    """Root exception for all Bookstore errors."""

    http_status_code: int = 400
    error_code: str = "BOOKSTORE_ERROR"

    def __init__(self, message: str, detail: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.detail = detail or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "detail": self.detail,
        }


# ─────────────────────────────────────────────────────────────────────────────
# AUTHENTICATION & AUTHORIZATION
# ─────────────────────────────────────────────────────────────────────────────


class MissingTokenError(BookstoreError):
    http_status_code = 401
    error_code = "MISSING_TOKEN"

    def __init__(self) -> None:
        super().__init__(message="Access token required")


class InvalidTokenError(BookstoreError):
    http_status_code = 403
    error_code = "INVALID_TOKEN"

    def __init__(self, reason: str = "Invalid or expired token") -> None:
        self.reason = reason
        super().__init__(message="Invalid token", detail={"reason": reason})


class ForbiddenError(BookstoreError):
    http_status_code = 403
    error_code = "FORBIDDEN"

    def __init__(self, role: str, allowed_roles: List[str]) -> None:
        self.role = role
        self.allowed_roles = allowed_roles
        super().__init__(
            message=f"Role '{role}' is not permitted here",
            detail={"role": role, "allowed_roles": allowed_roles},
        )


class OwnershipError(BookstoreError):
    http_status_code = 403
    error_code = "NOT_OWNER"

    def __init__(self, book_id: int, user_id: int, action: str) -> None:
        self.book_id = book_id
        self.user_id = user_id
        self.action = action
        super().__init__(
            message=f"You can only {action} your own books",
            detail={"book_id": book_id, "user_id": user_id, "action": action},
        )


class InvalidCredentialsError(BookstoreError):
    http_status_code = 401
    error_code = "INVALID_CREDENTIALS"

    def __init__(self) -> None:
        super().__init__(message="Invalid email or password")


class EmailAlreadyInUseError(BookstoreError):
    http_status_code = 400
    error_code = "EMAIL_IN_USE"

    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__(message="Email already in use", detail={"email": email})


# ─────────────────────────────────────────────────────────────────────────────
# BOOKS
# ─────────────────────────────────────────────────────────────────────────────


class BookNotFoundError(BookstoreError):
    http_status_code = 404
    error_code = "BOOK_NOT_FOUND"

    def __init__(self, book_id: int) -> None:
        self.book_id = book_id
        super().__init__(message="Book not found", detail={"book_id": book_id})


class DuplicateBookError(BookstoreError):
    http_status_code = 400
    error_code = "DUPLICATE_BOOK"

    def __init__(self, title: str, author: str) -> None:
        self.title = title
        self.author = author
        super().__init__(
            message=f'The book "{title}" by "{author}" has already been uploaded',
            detail={"title": title, "author": author},
        )


class InvalidPriceError(BookstoreError):
    http_status_code = 400
    error_code = "INVALID_PRICE"

    def __init__(self, raw_value: Any, reason: str = "not a valid number") -> None:
        self.raw_value = raw_value
        self.reason = reason
        super().__init__(
            message=f"Invalid price {raw_value!r}: {reason}",
            detail={"price": str(raw_value), "reason": reason},
        )


# ─────────────────────────────────────────────────────────────────────────────
# BULK IMPORT
# ─────────────────────────────────────────────────────────────────────────────


class NoFileUploadedError(BookstoreError):
    http_status_code = 400
    error_code = "NO_FILE"

    def __init__(self) -> None:
        super().__init__(message="No file uploaded")


class InvalidUploadError(BookstoreError):
    http_status_code = 400
    error_code = "INVALID_UPLOAD"

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(message=f"Invalid upload: {reason}", detail={"reason": reason})


class NothingToImportError(BookstoreError):
    http_status_code = 400
    error_code = "NOTHING_TO_IMPORT"

    def __init__(self, rejections: Optional[List[Dict[str, Any]]] = None) -> None:
        self.rejections = rejections or []
        super().__init__(
            message="No new books to upload",
            detail={"rejected": self.rejections},
        )


class ImportRejectedError(BookstoreError):
    """Raised when the abort-on-rejection policy is on and any row was rejected."""

    http_status_code = 400
    error_code = "IMPORT_REJECTED"

    def __init__(self, rejections: List[Dict[str, Any]]) -> None:
        self.rejections = rejections
        super().__init__(
            message=f"Upload rejected: {len(rejections)} row(s) failed validation",
            detail={"rejected": rejections},
        )


class ImportConflictError(BookstoreError):
    """The storage uniqueness constraint caught a duplicate the snapshot missed."""

    http_status_code = 409
    error_code = "IMPORT_CONFLICT"

    def __init__(self, attempted: int) -> None:
        self.attempted = attempted
        super().__init__(
            message=(
                "One or more books were stored by another upload while this one "
                "was processing; nothing was imported"
            ),
            detail={"attempted": attempted},
        )


class PartialImportFailureError(BookstoreError):
    http_status_code = 500
    error_code = "PARTIAL_IMPORT_FAILURE"

    def __init__(self, attempted: int, stored: int) -> None:
        self.attempted = attempted
        self.stored = stored
        super().__init__(
            message=f"Bulk import stored {stored} of {attempted} rows; batch rolled back",
            detail={"attempted": attempted, "stored": stored},
        )


# ─────────────────────────────────────────────────────────────────────────────
# PERSISTENCE
# ─────────────────────────────────────────────────────────────────────────────


class StorageError(BookstoreError):
    http_status_code = 500
    error_code = "STORAGE_ERROR"

    def __init__(self, operation: str, reason: str = "") -> None:
        self.operation = operation
        self.reason = reason
        super().__init__(
            message=f"Error {operation}",
            detail={"operation": operation, "reason": reason},
        )
