# app/main.py
import logging
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from canvass.app.core.config import Settings, settings as default_settings
from canvass.app.core.logging import configure_logging
from canvass.app.routers import admin, auth, questionnaires, responses, upload
from canvass.db import lifecycle
from canvass.db.errors import DatabaseNotInitializedError

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or default_settings
    configure_logging(settings)

    app = FastAPI(title=settings.APP_NAME, debug=settings.DEBUG)
    app.state.settings = settings
    app.state.db = None

    origins = [o.strip() for o in settings.BACKEND_CORS_ORIGINS.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
    app.mount("/uploads", StaticFiles(directory=settings.UPLOAD_DIR), name="uploads")

    app.include_router(auth.router)
    app.include_router(questionnaires.router)
    app.include_router(responses.router)
    app.include_router(upload.router)
    app.include_router(admin.router)

    @app.on_event("startup")
    async def on_startup():
        app.state.db = await lifecycle.startup(settings)

    @app.on_event("shutdown")
    async def on_shutdown():
        db, app.state.db = app.state.db, None
        await lifecycle.shutdown(db)

    @app.exception_handler(DatabaseNotInitializedError)
    async def database_unavailable(request: Request, exc: DatabaseNotInitializedError):
        logger.error("Request %s %s before the database was ready: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=503, content={"detail": "Service unavailable"})

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    @app.get("/api/health")
    def health():
        return {"status": "ok"}

    return app


def run():
    import uvicorn

    uvicorn.run(create_app(), host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8000")))
