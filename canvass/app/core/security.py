# app/core/security.py
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

from canvass.app.core.config import Settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
ALGORITHM = "HS256"

bearer_scheme = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def new_share_token() -> str:
    return secrets.token_hex(16)


def create_access_token(user: dict[str, Any], settings: Settings, expires_minutes: int | None = None) -> str:
    expire_delta = expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES
    payload = {
        "sub": str(user["id"]),
        "email": user.get("email"),
        "alias": user.get("alias"),
        "is_admin": bool(user.get("is_admin")),
        "exp": datetime.now(tz=timezone.utc) + timedelta(minutes=expire_delta),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str, settings: Settings) -> dict[str, Any] | None:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
    if "sub" not in payload:
        return None
    return {
        "id": int(payload["sub"]),
        "email": payload.get("email"),
        "alias": payload.get("alias"),
        "is_admin": bool(payload.get("is_admin")),
    }


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any] | None:
    """Claims of the caller, or None for guests. A bad token is treated as a bad request, not as a guest."""
    if credentials is None:
        return None
    user = decode_access_token(credentials.credentials, settings)
    if user is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid or expired token")
    return user


def current_user(user: dict[str, Any] | None = Depends(optional_user)) -> dict[str, Any]:
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Access token required")
    return user


def require_admin(user: dict[str, Any] = Depends(current_user)) -> dict[str, Any]:
    if not user["is_admin"]:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user
