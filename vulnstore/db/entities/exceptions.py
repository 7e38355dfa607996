"""
Exception handling utilities and functions.

Driver error classification for the supported dialects: PostgreSQL (by SQLSTATE code) and SQLite (by message, the
sqlite3 module does not expose error codes on older interpreters).

"""
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError

from vulnstore.subsys import logger

PG_UNIQUE_CONSTRAINT_VIOLATION_CODE = "23505"
PG_RELATION_NOT_FOUND_CODE = "42P01"

SQLITE_UNIQUE_CONSTRAINT_VIOLATION_MESSAGES = (
    "UNIQUE constraint failed",
    "PRIMARY KEY must be unique",
)
SQLITE_TABLE_NOT_FOUND_MESSAGE = "no such table"


def _get_pgcode_from_ex(ex):
    orig = getattr(ex, "orig", None)
    if orig is None:
        return None

    pgcode = getattr(orig, "pgcode", None)
    if not pgcode:
        # pg8000 style: ('ERROR', '23505', 'duplicate key value ...')
        args = getattr(orig, "args", ())
        if args and isinstance(args[0], dict):
            pgcode = args[0].get("C")
        elif len(args) > 2:
            pgcode = args[2]

    if not pgcode:
        logger.spew(
            "cannot extract PG code from driver exception - exception details: {}".format(
                ex
            )
        )

    return pgcode


def _orig_message(ex):
    return str(getattr(ex, "orig", ex))


def is_unique_violation(ex):
    """
    Is the exception an indication of a unique constraint violation or other

    :param ex: Exception object
    :return: Boolean
    """
    if not isinstance(ex, IntegrityError):
        return False

    if _get_pgcode_from_ex(ex) == PG_UNIQUE_CONSTRAINT_VIOLATION_CODE:
        return True

    message = _orig_message(ex)
    return any(m in message for m in SQLITE_UNIQUE_CONSTRAINT_VIOLATION_MESSAGES)


def is_table_not_found(ex):
    if not isinstance(ex, (OperationalError, ProgrammingError)):
        return False

    if _get_pgcode_from_ex(ex) == PG_RELATION_NOT_FOUND_CODE:
        return True

    return SQLITE_TABLE_NOT_FOUND_MESSAGE in _orig_message(ex)
