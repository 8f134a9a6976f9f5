from datetime import datetime

from pydantic import BaseModel, EmailStr, Field


class RegisterIn(BaseModel):
    alias: str = Field(min_length=2, max_length=30)
    password: str = Field(min_length=6)
    email: EmailStr | None = None
    age_verified: bool = False


class LoginIn(BaseModel):
    email: str | None = None
    alias: str | None = None
    password: str


class UserOut(BaseModel):
    id: int
    email: str | None = None
    alias: str | None = None
    is_admin: bool
    created_at: datetime | str | None = None


class AuthOut(BaseModel):
    user: UserOut
    token: str
