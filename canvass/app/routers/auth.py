# app/routers/auth.py
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from starlette.concurrency import run_in_threadpool

from canvass.app.core.config import Settings
from canvass.app.core.security import create_access_token, current_user, get_settings, hash_password, verify_password
from canvass.app.schemas.user import AuthOut, LoginIn, RegisterIn, UserOut
from canvass.db.base import StatementAdapter
from canvass.db.errors import is_unique_violation
from canvass.db.session import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

USER_COLUMNS = "id, email, alias, is_admin, created_at"


@router.post("/register", response_model=AuthOut, status_code=status.HTTP_201_CREATED)
async def register(
    payload: RegisterIn,
    db: StatementAdapter = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Register with an alias (required) and optionally an email."""
    if not payload.age_verified:
        raise HTTPException(status_code=400, detail="You must confirm you are 18 years or older")

    if await db.prepare("SELECT id FROM users WHERE alias = ?").get(payload.alias):
        raise HTTPException(status_code=400, detail="Alias already taken")

    email = str(payload.email) if payload.email else None
    if email and await db.prepare("SELECT id FROM users WHERE email = ?").get(email):
        raise HTTPException(status_code=400, detail="Email already registered")

    password_hash = await run_in_threadpool(hash_password, payload.password)
    try:
        res = await db.prepare(
            "INSERT INTO users (email, password_hash, alias, age_verified) VALUES (?, ?, ?, 1)"
        ).run(email, password_hash, payload.alias)
    except IntegrityError as e:
        # lost a race with a concurrent registration
        if is_unique_violation(e, "alias"):
            raise HTTPException(status_code=400, detail="Alias already taken")
        if is_unique_violation(e, "email"):
            raise HTTPException(status_code=400, detail="Email already registered")
        raise

    user = await db.prepare(f"SELECT {USER_COLUMNS} FROM users WHERE id = ?").get(res.inserted_id)
    logger.info("User registered: id=%s alias=%s", user["id"], user["alias"])
    return {"user": user, "token": create_access_token(user, settings)}


@router.post("/login", response_model=AuthOut)
async def login(
    payload: LoginIn,
    db: StatementAdapter = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    if not (payload.email or payload.alias):
        raise HTTPException(status_code=400, detail="Email or alias and password are required")

    if payload.email:
        user = await db.prepare("SELECT * FROM users WHERE email = ?").get(payload.email)
    else:
        user = await db.prepare("SELECT * FROM users WHERE alias = ?").get(payload.alias)

    if not user or not await run_in_threadpool(verify_password, payload.password, user["password_hash"]):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    return {"user": user, "token": create_access_token(user, settings)}


@router.get("/me", response_model=UserOut)
async def me(user: dict = Depends(current_user), db: StatementAdapter = Depends(get_db)):
    row = await db.prepare(f"SELECT {USER_COLUMNS} FROM users WHERE id = ?").get(user["id"])
    if not row:
        raise HTTPException(status_code=404, detail="User not found")
    return row
