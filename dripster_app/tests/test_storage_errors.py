import sqlite3

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from core.error_status import status_for, to_http_exception
from core.friendly_msg import get_friendly_message
from core.storage_errors import (
    AuthorizationDenied,
    ConstraintViolationError,
    DuplicateRowError,
    SchemaMissingError,
    StorageError,
    StorageUnavailableError,
    classify_error,
)


def _operational(message: str) -> OperationalError:
    return OperationalError("SELECT 1", {}, sqlite3.OperationalError(message))


def _integrity(message: str) -> IntegrityError:
    return IntegrityError("INSERT", {}, sqlite3.IntegrityError(message))


@pytest.mark.parametrize(
    "exc, expected",
    [
        (_operational("no such table: conversations"), SchemaMissingError),
        (_operational('relation "messages" does not exist'), SchemaMissingError),
        (_operational("database is locked"), StorageUnavailableError),
        (_integrity("UNIQUE constraint failed: conversations.item_id"), DuplicateRowError),
        (_integrity("FOREIGN KEY constraint failed"), ConstraintViolationError),
        (PermissionError("row level security"), AuthorizationDenied),
        (ValueError("'shout' is not a valid MessageType"), ConstraintViolationError),
        (ConnectionRefusedError("refused"), StorageUnavailableError),
        (RuntimeError("odd"), StorageError),
    ],
)
def test_classify_error(exc, expected):
    classified = classify_error(exc)

    assert type(classified) is expected
    assert classified.cause is exc


def test_classified_errors_pass_through():
    denied = AuthorizationDenied("nope")

    assert classify_error(denied) is denied


def test_schema_missing_message_points_to_migrations():
    error = classify_error(_operational("no such table: messages"))

    assert "migrations" in get_friendly_message(error)


def test_friendly_message_for_plain_exceptions():
    assert get_friendly_message(KeyError("x")) == "Some required information is missing."
    assert get_friendly_message(Exception("x")).startswith("Something went wrong")


def test_status_codes():
    assert status_for(SchemaMissingError()) == 503
    assert status_for(AuthorizationDenied()) == 403
    assert status_for(DuplicateRowError()) == 409
    assert status_for(StorageError()) == 500


def test_http_exception_mapping():
    assert to_http_exception(None, "Conversation not found").status_code == 404

    denied = AuthorizationDenied()
    assert to_http_exception(denied, write=False).status_code == 404
    assert to_http_exception(denied).status_code == 403

    unavailable = to_http_exception(_operational("no such table: messages"))
    assert unavailable.status_code == 503
    assert "migrations" in unavailable.detail
