# db/session.py
from fastapi import Request

from canvass.db.base import StatementAdapter
from canvass.db.errors import DatabaseNotInitializedError


def get_db(request: Request) -> StatementAdapter:
    """FastAPI dependency returning the adapter built at startup."""
    db = getattr(request.app.state, "db", None)
    if db is None:
        raise DatabaseNotInitializedError("database adapter is not available; startup did not complete")
    return db
