# db/seed.py
import logging
import os
import secrets
from pathlib import Path

from starlette.concurrency import run_in_threadpool

from canvass.app.core.config import Settings
from canvass.app.core.security import hash_password
from canvass.db.base import StatementAdapter

logger = logging.getLogger(__name__)


def _write_secret(path: Path, secret: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(secret + "\n")


async def seed_default_admin(db: StatementAdapter, settings: Settings) -> bool:
    """Make sure the reserved administrator account exists.

    Returns True when the account had to be created. The password comes from
    ADMIN_PASSWORD; without it a random one is written to ADMIN_PASSWORD_FILE
    (mode 0600) and only that path is logged.
    """
    existing = await db.prepare("SELECT id FROM users WHERE email = ?").get(settings.ADMIN_EMAIL)
    if existing:
        return False

    password = settings.ADMIN_PASSWORD
    generated = not password
    if generated:
        password = secrets.token_urlsafe(12)
    password_hash = await run_in_threadpool(hash_password, password)

    alias = settings.ADMIN_ALIAS or None
    if alias and await db.prepare("SELECT id FROM users WHERE alias = ?").get(alias):
        logger.warning("Alias %r is already taken, creating the admin account without an alias", alias)
        alias = None

    await db.prepare(
        "INSERT INTO users (email, password_hash, alias, is_admin, age_verified) VALUES (?, ?, ?, 1, 1)"
    ).run(settings.ADMIN_EMAIL, password_hash, alias)

    if generated:
        secret_path = Path(settings.ADMIN_PASSWORD_FILE)
        _write_secret(secret_path, password)
        logger.warning("Admin user created: %s (generated password stored in %s)", settings.ADMIN_EMAIL, secret_path)
    else:
        logger.info("Admin user created: %s (password from ADMIN_PASSWORD)", settings.ADMIN_EMAIL)

    await db.checkpoint()
    return True
