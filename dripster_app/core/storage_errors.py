import asyncio

from sqlalchemy.exc import (
    DBAPIError,
    DisconnectionError,
    IntegrityError,
    InterfaceError,
    NoSuchTableError,
    OperationalError,
    ProgrammingError,
    StatementError,
    TimeoutError as PoolTimeoutError,
)

SCHEMA_MISSING_MARKERS = (
    "no such table",
    "does not exist",
    "undefinedtable",
    "could not find the table",
    "schema cache",
)
UNIQUE_MARKERS = (
    "unique constraint",
    "duplicate key",
    "uniqueviolation",
    "unique failed",
)


class StorageError(Exception):
    user_message = "Something went wrong on our end. Please try again."

    def __init__(self, message: str = "", *, cause: BaseException | None = None):
        super().__init__(message or self.user_message)
        self.cause = cause


class SchemaMissingError(StorageError):
    user_message = (
        "Database tables not found. Please run the database migrations "
        "before using chat."
    )


class AuthorizationDenied(StorageError):
    user_message = "You don't have permission to perform this action."


class DuplicateRowError(StorageError):
    user_message = "This record already exists."


class ConstraintViolationError(StorageError):
    user_message = "Invalid data received. Please check your input and try again."


class StorageUnavailableError(StorageError):
    user_message = "Temporary issue while accessing data. Please try again shortly."


def _text(exc: BaseException) -> str:
    parts = [str(exc), type(exc).__name__]
    orig = getattr(exc, "orig", None)
    if orig is not None:
        parts.extend([str(orig), type(orig).__name__])
    return " ".join(parts).lower()


def is_schema_missing(exc: BaseException) -> bool:
    if isinstance(exc, NoSuchTableError):
        return True
    text = _text(exc)
    return any(marker in text for marker in SCHEMA_MISSING_MARKERS)


def is_unique_violation(exc: BaseException) -> bool:
    return isinstance(exc, IntegrityError) and any(
        marker in _text(exc) for marker in UNIQUE_MARKERS
    )


def classify_error(exc: BaseException) -> StorageError:
    if isinstance(exc, StorageError):
        return exc

    if isinstance(exc, PermissionError):
        return AuthorizationDenied(str(exc), cause=exc)

    if isinstance(exc, IntegrityError):
        if is_unique_violation(exc):
            return DuplicateRowError(cause=exc)
        return ConstraintViolationError(cause=exc)

    if isinstance(exc, (NoSuchTableError, ProgrammingError, OperationalError)):
        if is_schema_missing(exc):
            return SchemaMissingError(cause=exc)

    if isinstance(exc, (LookupError, ValueError)):
        return ConstraintViolationError(str(exc), cause=exc)

    if isinstance(exc, StatementError) and isinstance(
        exc.orig, (LookupError, ValueError, TypeError)
    ):
        return ConstraintViolationError(str(exc.orig), cause=exc)

    if isinstance(
        exc,
        (
            OperationalError,
            InterfaceError,
            DisconnectionError,
            PoolTimeoutError,
            DBAPIError,
            ConnectionError,
            asyncio.TimeoutError,
            TimeoutError,
            OSError,
        ),
    ):
        return StorageUnavailableError(cause=exc)

    return StorageError(str(exc), cause=exc)


TRANSPORT_ERRORS = (
    OperationalError,
    InterfaceError,
    DisconnectionError,
    PoolTimeoutError,
    ConnectionError,
    asyncio.TimeoutError,
    TimeoutError,
    OSError,
)
