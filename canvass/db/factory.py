"""Pick the storage engine from DATABASE_URL.

    sqlite:///./data/questionnaire.db      -> EmbeddedAdapter (snapshot file)
    sqlite+aiosqlite:///./data/app.db      -> PooledAdapter over aiosqlite
    postgresql://user:pw@host/db           -> PooledAdapter over psycopg
    postgres://user:pw@host/db             -> same
"""
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from canvass.app.core.config import Settings
from canvass.db.base import StatementAdapter
from canvass.db.embedded import EmbeddedAdapter
from canvass.db.errors import UnsupportedDatabaseURL
from canvass.db.pooled import PooledAdapter


def normalize_url(url: str) -> str:
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    if url.startswith("postgresql://"):
        url = "postgresql+psycopg://" + url[len("postgresql://"):]
    return url


def create_adapter(settings: Settings) -> StatementAdapter:
    url_text = normalize_url(settings.DATABASE_URL)
    try:
        url = make_url(url_text)
    except ArgumentError as e:
        raise UnsupportedDatabaseURL(f"cannot parse DATABASE_URL: {e}") from e

    backend, driver = url.get_backend_name(), url.get_driver_name()

    if backend == "sqlite" and driver == "pysqlite":
        if not url.database or url.database == ":memory:":
            raise UnsupportedDatabaseURL("the embedded engine needs a snapshot file path, e.g. sqlite:///./data/app.db")
        return EmbeddedAdapter(url.database)

    if backend in ("sqlite", "postgresql"):
        return PooledAdapter(
            url_text,
            pool_size=settings.DB_POOL_SIZE,
            pool_timeout=settings.DB_POOL_TIMEOUT,
            statement_timeout_ms=settings.DB_STATEMENT_TIMEOUT_MS,
        )

    raise UnsupportedDatabaseURL(f"unsupported database backend: {backend}+{driver}")
