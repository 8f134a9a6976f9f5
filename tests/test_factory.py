import pytest

from canvass.db.embedded import EmbeddedAdapter
from canvass.db.errors import UnsupportedDatabaseURL
from canvass.db.factory import create_adapter, normalize_url
from canvass.db.pooled import PooledAdapter

from conftest import make_settings


def test_plain_sqlite_url_selects_embedded_engine(tmp_path):
    db = create_adapter(make_settings(tmp_path))
    assert isinstance(db, EmbeddedAdapter)
    assert db.dialect == "sqlite"
    assert db.snapshot_path == tmp_path / "data" / "questionnaire.db"


def test_postgres_urls_select_pooled_engine(tmp_path):
    for url in ("postgres://u:pw@localhost/canvass", "postgresql://u:pw@localhost/canvass"):
        db = create_adapter(make_settings(tmp_path, DATABASE_URL=url, DB_POOL_SIZE=3))
        assert isinstance(db, PooledAdapter)
        assert db.dialect == "postgresql"
        assert db.url.get_driver_name() == "psycopg"
        assert db.pool_size == 3
        assert db.statement_timeout_ms == 15000


def test_async_sqlite_url_selects_pooled_engine(tmp_path):
    db = create_adapter(make_settings(tmp_path, DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'a.db'}"))
    assert isinstance(db, PooledAdapter)
    assert db.dialect == "sqlite"


def test_normalize_url_leaves_explicit_drivers_alone():
    assert normalize_url("postgres://h/db") == "postgresql+psycopg://h/db"
    assert normalize_url("postgresql+asyncpg://h/db") == "postgresql+asyncpg://h/db"
    assert normalize_url("sqlite:///x.db") == "sqlite:///x.db"


@pytest.mark.parametrize("url", ["sqlite://", "sqlite:///:memory:", "mysql://u@h/db", "not a url"])
def test_unsupported_urls(tmp_path, url):
    with pytest.raises(UnsupportedDatabaseURL):
        create_adapter(make_settings(tmp_path, DATABASE_URL=url))
