# db/lifecycle.py
import logging

from canvass.app.core.config import Settings
from canvass.db.base import StatementAdapter
from canvass.db.embedded import EmbeddedAdapter
from canvass.db.factory import create_adapter
from canvass.db.schema import initialize_schema
from canvass.db.seed import seed_default_admin

logger = logging.getLogger(__name__)


async def startup(settings: Settings) -> StatementAdapter:
    """Build the adapter, bring the schema up to date and seed the admin account.

    Any failure here propagates: the service must not run against a schema in
    an unknown state.
    """
    db = create_adapter(settings)
    await db.initialize()
    try:
        await initialize_schema(db)
        await db.checkpoint()
        await seed_default_admin(db, settings)
    except BaseException:
        logger.exception("Database startup failed, closing the %s engine", db.dialect)
        if isinstance(db, EmbeddedAdapter):
            # keep the snapshot as it was before this boot
            await db.shutdown(persist=False)
        else:
            await db.shutdown()
        raise

    if isinstance(db, EmbeddedAdapter):
        logger.warning(
            "Embedded engine: writes are persisted at checkpoints only (boot, admin seed, "
            "backup download, shutdown); changes since the last checkpoint are lost on a crash"
        )
    return db


async def shutdown(db: StatementAdapter | None) -> None:
    if db is None:
        return
    await db.shutdown()
