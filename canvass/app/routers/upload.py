# app/routers/upload.py
import base64
import binascii
import logging
import re
import secrets
import time
from pathlib import Path

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from canvass.app.core.config import Settings
from canvass.app.core.security import get_settings, require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/upload", tags=["upload"])

DATA_URL_RE = re.compile(r"^data:(image/[a-zA-Z0-9.+-]+);base64,(.+)$", re.DOTALL)
IMAGE_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/gif": "gif",
    "image/webp": "webp",
}
FILENAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


class ImageIn(BaseModel):
    image: str


def upload_dir(settings: Settings) -> Path:
    path = Path(settings.UPLOAD_DIR)
    path.mkdir(parents=True, exist_ok=True)
    return path


@router.post("/image")
async def upload_image(
    payload: ImageIn, admin: dict = Depends(require_admin), settings: Settings = Depends(get_settings)
):
    """Store a base64 data-URL image and return the URL it is served from."""
    match = DATA_URL_RE.match(payload.image)
    if not match:
        raise HTTPException(status_code=400, detail="Invalid image format")

    extension = IMAGE_EXTENSIONS.get(match.group(1).lower())
    if extension is None:
        raise HTTPException(status_code=400, detail="Unsupported image type")
    try:
        data = base64.b64decode(match.group(2), validate=True)
    except binascii.Error:
        raise HTTPException(status_code=400, detail="Invalid image format")
    if len(data) > settings.MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="Image too large")

    filename = f"{int(time.time() * 1000)}-{secrets.token_hex(4)}.{extension}"
    (upload_dir(settings) / filename).write_bytes(data)
    logger.info("Image uploaded by user %s: %s (%d bytes)", admin["id"], filename, len(data))
    return {"url": f"/uploads/{filename}", "filename": filename}


@router.delete("/image/{filename}")
async def delete_image(
    filename: str, admin: dict = Depends(require_admin), settings: Settings = Depends(get_settings)
):
    if not FILENAME_RE.match(filename):
        raise HTTPException(status_code=400, detail="Invalid filename")
    path = upload_dir(settings) / filename
    if path.exists():
        path.unlink()
        logger.info("Image deleted by user %s: %s", admin["id"], filename)
    return {"message": "Image deleted"}
