"""User profile model: identity, profile fields and AI provider configuration."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from pydantic import BaseModel, Field, field_validator

from riskvision.database import Base
from riskvision.utils.time import utc_naive_now


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    supabase_id: Mapped[Optional[str]] = mapped_column(String(64), unique=True, index=True, nullable=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    hashed_password: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    job_title: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    department: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    company: Mapped[Optional[str]] = mapped_column(String(150), nullable=True)
    phone_number: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    photo_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    role: Mapped[str] = mapped_column(String(20), default="user")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    ai_provider: Mapped[str] = mapped_column(String(30), default="riskvision")
    ai_api_key: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    ai_model: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_naive_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_naive_now, onupdate=utc_naive_now)


# ── Pydantic Schemas ─────────────────────────────────────────


def _normalize_email(value: str) -> str:
    value = (value or "").strip().lower()
    if "@" not in value or value.startswith("@") or value.endswith("@"):
        raise ValueError("A valid email address is required")
    return value


class UserRegister(BaseModel):
    email: str
    password: str = Field(min_length=8)
    display_name: str | None = None
    job_title: str | None = None
    department: str | None = None
    company: str | None = None
    phone_number: str | None = None

    _email = field_validator("email")(_normalize_email)


class UserLogin(BaseModel):
    email: str
    password: str

    _email = field_validator("email")(_normalize_email)


class ProfileUpdate(BaseModel):
    display_name: str | None = Field(default=None, max_length=100)
    job_title: str | None = Field(default=None, max_length=100)
    department: str | None = Field(default=None, max_length=100)
    company: str | None = Field(default=None, max_length=150)
    phone_number: str | None = Field(default=None, max_length=40)
    photo_url: str | None = Field(default=None, max_length=500)


class AIConfigUpdate(BaseModel):
    provider: str
    api_key: str | None = None
    model: str | None = None


class AIConfigResponse(BaseModel):
    provider: str
    model: str | None = None
    has_api_key: bool


class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(min_length=8)


class AccountDelete(BaseModel):
    password: str


class UserResponse(BaseModel):
    id: int
    email: str
    display_name: str | None = None
    job_title: str | None = None
    department: str | None = None
    company: str | None = None
    phone_number: str | None = None
    photo_url: str | None = None
    role: str
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse
