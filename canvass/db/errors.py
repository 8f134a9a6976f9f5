"""Error types of the database layer.

Constraint violations are not wrapped: they surface as
`sqlalchemy.exc.IntegrityError` from either engine. `is_unique_violation`
lets callers classify them without knowing which engine raised.
"""
from sqlalchemy.exc import IntegrityError

UNIQUE_VIOLATION_SQLSTATE = "23505"


class DatabaseError(Exception):
    """Base class for failures raised by the database layer itself."""


class DatabaseNotInitializedError(DatabaseError):
    """The adapter was used before startup built it, or after shutdown."""


class UnsupportedDatabaseURL(DatabaseError):
    pass


class SnapshotError(DatabaseError):
    """The embedded engine's snapshot file could not be loaded or written."""


def is_unique_violation(exc: BaseException, column: str | None = None) -> bool:
    if not isinstance(exc, IntegrityError):
        return False

    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    message = str(orig).lower()

    if sqlstate is not None:
        unique = sqlstate == UNIQUE_VIOLATION_SQLSTATE
    else:
        unique = "unique" in message
    if not unique:
        return False
    if column is None:
        return True
    # sqlite: "UNIQUE constraint failed: users.alias"; postgres: "... (alias)=(...) ..." or index name
    return column.lower() in message
