from fastapi import HTTPException

from .storage_errors import (
    AuthorizationDenied,
    ConstraintViolationError,
    DuplicateRowError,
    SchemaMissingError,
    StorageError,
    StorageUnavailableError,
    classify_error,
)

STATUS_CODES: dict[type[StorageError], int] = {
    SchemaMissingError: 503,
    StorageUnavailableError: 503,
    AuthorizationDenied: 403,
    DuplicateRowError: 409,
    ConstraintViolationError: 400,
}


def status_for(error: StorageError) -> int:
    for error_cls, status_code in STATUS_CODES.items():
        if isinstance(error, error_cls):
            return status_code
    return 500


def to_http_exception(
    error: BaseException | None,
    not_found: str = "Not found",
    write: bool = True,
) -> HTTPException:
    """HTTPException for a failed client call.

    No recorded error means the row was not found. A denied read is
    reported as not found too, so callers cannot probe for hidden rows.
    """
    if error is None:
        return HTTPException(status_code=404, detail=not_found)

    storage_error = classify_error(error)
    if isinstance(storage_error, AuthorizationDenied) and not write:
        return HTTPException(status_code=404, detail=not_found)

    return HTTPException(
        status_code=status_for(storage_error), detail=storage_error.user_message
    )
