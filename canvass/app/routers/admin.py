# app/routers/admin.py
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse

from canvass.app.core.security import require_admin
from canvass.db.base import StatementAdapter
from canvass.db.embedded import EmbeddedAdapter
from canvass.db.session import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])


def _snapshot_adapter(db: StatementAdapter) -> EmbeddedAdapter:
    if not isinstance(db, EmbeddedAdapter):
        raise HTTPException(status_code=404, detail="Database backups are only available for the embedded engine")
    return db


@router.get("/backup/database")
async def download_backup(admin: dict = Depends(require_admin), db: StatementAdapter = Depends(get_db)):
    """Checkpoint the embedded database and download the snapshot file."""
    embedded = _snapshot_adapter(db)
    await embedded.checkpoint()

    timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S")
    filename = f"canvass-backup-{timestamp}.db"
    logger.info("Database backup downloaded by user %s", admin["id"])
    return FileResponse(embedded.snapshot_path, media_type="application/octet-stream", filename=filename)


@router.get("/backup/info")
async def backup_info(admin: dict = Depends(require_admin), db: StatementAdapter = Depends(get_db)):
    embedded = _snapshot_adapter(db)
    if not embedded.snapshot_path.exists():
        raise HTTPException(status_code=404, detail="Database file not found")

    stats = embedded.snapshot_path.stat()
    return {
        "size": stats.st_size,
        "size_formatted": f"{stats.st_size / 1024:.2f} KB",
        "last_modified": datetime.fromtimestamp(stats.st_mtime, tz=timezone.utc).isoformat(),
    }
