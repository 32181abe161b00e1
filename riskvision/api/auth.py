"""Authentication API: local password accounts or Supabase Auth.

When SUPABASE_URL is configured, JWT tokens from Supabase are validated and
mapped to a local User row (created on first sight). Otherwise the API issues
its own HS256 tokens from ``/register`` and ``/login``.
"""

from __future__ import annotations

import json
import logging
import time
from datetime import timedelta
from typing import Optional
from urllib import request as urllib_request
from urllib.error import URLError

from fastapi import APIRouter, Body, Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from riskvision.config import settings
from riskvision.database import get_session
from riskvision.models.user import TokenResponse, User, UserLogin, UserRegister, UserResponse
from riskvision.utils.time import utc_now

router = APIRouter(prefix="/api/auth", tags=["auth"])
logger = logging.getLogger("riskvision.auth")

security = HTTPBearer(auto_error=False)
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

_supabase_enabled = settings.supabase_enabled

_JWKS_CACHE: dict[str, object] = {"fetched_at": 0.0, "keys": []}
_JWKS_CACHE_TTL_SECONDS = 300


# ── Passwords & local tokens ──────────────────────────────────

def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: Optional[str]) -> bool:
    if not hashed:
        return False
    return pwd_context.verify(password, hashed)


def create_access_token(user: User) -> str:
    expires = utc_now() + timedelta(minutes=settings.jwt_expire_minutes)
    payload = {"sub": str(user.id), "email": user.email, "exp": expires}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def _token_response(user: User) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token(user),
        expires_in=settings.jwt_expire_minutes * 60,
        user=UserResponse.model_validate(user),
    )


# ── Supabase JWT verification ─────────────────────────────────

def _verify_supabase_jwt(token: str) -> dict:
    """Verify a Supabase-issued JWT and return its payload."""
    try:
        header = jwt.get_unverified_header(token)
        alg = str(header.get("alg") or "").upper()

        if alg == "HS256":
            secret = settings.supabase_jwt_secret or settings.jwt_secret
            payload = jwt.decode(token, secret, algorithms=["HS256"], options={"verify_aud": False})
        elif alg in {"RS256", "ES256", "EDDSA"}:
            kid = str(header.get("kid") or "").strip()
            if not kid:
                raise HTTPException(status_code=401, detail="Invalid token: missing key id")
            payload = jwt.decode(
                token,
                _get_supabase_jwk(kid),
                algorithms=[alg],
                options={"verify_aud": False},
            )
        else:
            raise HTTPException(status_code=401, detail=f"Invalid token: unsupported alg '{alg}'")

        iss = _safe_str(payload.get("iss"))
        expected_iss = f"{settings.supabase_url.rstrip('/')}/auth/v1"
        if iss and settings.supabase_url and iss.rstrip("/") != expected_iss:
            raise HTTPException(status_code=401, detail="Invalid token: issuer mismatch")

        return payload
    except JWTError as exc:
        raise HTTPException(status_code=401, detail=f"Invalid token: {exc}")


def _fetch_supabase_jwks() -> list[dict]:
    now = time.time()
    cached_at = float(_JWKS_CACHE.get("fetched_at") or 0.0)
    cached_keys = _JWKS_CACHE.get("keys")
    if isinstance(cached_keys, list) and cached_keys and now - cached_at < _JWKS_CACHE_TTL_SECONDS:
        return cached_keys

    jwks_url = f"{settings.supabase_url.rstrip('/')}/auth/v1/.well-known/jwks.json"
    try:
        with urllib_request.urlopen(jwks_url, timeout=5) as response:
            payload = json.loads(response.read().decode("utf-8"))
    except (URLError, TimeoutError, ValueError) as exc:
        raise HTTPException(status_code=401, detail=f"Invalid token: unable to fetch signing keys ({exc})")

    keys = payload.get("keys", []) if isinstance(payload, dict) else []
    if not isinstance(keys, list) or not keys:
        raise HTTPException(status_code=401, detail="Invalid token: signing keys unavailable")

    _JWKS_CACHE["keys"] = keys
    _JWKS_CACHE["fetched_at"] = now
    return keys


def _get_supabase_jwk(kid: str) -> dict:
    for key in _fetch_supabase_jwks():
        if isinstance(key, dict) and key.get("kid") == kid:
            return key
    raise HTTPException(status_code=401, detail="Invalid token: unknown signing key")


def _safe_str(value: object, fallback: str = "") -> str:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped if stripped else fallback
    return fallback


def _extract_supabase_identity(payload: dict) -> tuple[str, str, dict]:
    supabase_id = _safe_str(payload.get("sub"))
    email = _safe_str(payload.get("email")).lower()
    if not supabase_id or not email:
        raise HTTPException(status_code=401, detail="Invalid token payload")
    metadata = payload.get("user_metadata") if isinstance(payload.get("user_metadata"), dict) else {}
    return supabase_id, email, metadata


async def _provision_supabase_user(
    session: AsyncSession,
    supabase_id: str,
    email: str,
    profile: dict,
) -> User:
    """Link an existing email account or create a fresh profile for a Supabase identity."""
    result = await session.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user is None:
        user = User(
            email=email,
            display_name=_safe_str(profile.get("display_name"), email.split("@")[0]),
            job_title=_safe_str(profile.get("job_title")) or None,
            department=_safe_str(profile.get("department")) or None,
            company=_safe_str(profile.get("company")) or None,
            phone_number=_safe_str(profile.get("phone_number")) or None,
            ai_provider=settings.llm_provider,
        )
        session.add(user)
    user.supabase_id = supabase_id
    await session.commit()
    await session.refresh(user)
    logger.info("Provisioned user %s (supabase_id=%s)", email, supabase_id)
    return user


# ── Dependency: get current user ──────────────────────────────

async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    session: AsyncSession = Depends(get_session),
) -> Optional[User]:
    """Extract and validate the user from a bearer JWT (Supabase or local).

    Returns None if no token is provided.
    """
    if credentials is None:
        return None

    token = credentials.credentials

    if _supabase_enabled:
        payload = _verify_supabase_jwt(token)
        supabase_id, email, metadata = _extract_supabase_identity(payload)
        result = await session.execute(select(User).where(User.supabase_id == supabase_id))
        user = result.scalar_one_or_none()
        if user is None:
            user = await _provision_supabase_user(session, supabase_id, email, metadata)
        if not user.is_active:
            raise HTTPException(status_code=403, detail="Account is disabled")
        return user

    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
        user_id = int(payload.get("sub", 0))
        if not user_id:
            raise HTTPException(status_code=401, detail="Invalid token")
    except (JWTError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found or inactive")
    return user


async def require_auth(
    user: Optional[User] = Depends(get_current_user),
) -> User:
    """Strict auth dependency; rejects unauthenticated requests."""
    if user is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return user


# ── Endpoints ─────────────────────────────────────────────────

@router.post("/register", response_model=TokenResponse, status_code=201)
async def register(
    body: UserRegister,
    session: AsyncSession = Depends(get_session),
):
    """Create a local account and return an access token."""
    if _supabase_enabled:
        raise HTTPException(status_code=400, detail="Sign up through Supabase Auth, then call /api/auth/callback")

    existing = await session.execute(select(User).where(User.email == body.email))
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=409, detail="An account with this email already exists")

    user = User(
        email=body.email,
        hashed_password=hash_password(body.password),
        display_name=body.display_name or body.email.split("@")[0],
        job_title=body.job_title,
        department=body.department,
        company=body.company,
        phone_number=body.phone_number,
        ai_provider=settings.llm_provider,
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)
    logger.info("Registered user %s", user.email)
    return _token_response(user)


@router.post("/login", response_model=TokenResponse)
async def login(
    body: UserLogin,
    session: AsyncSession = Depends(get_session),
):
    if _supabase_enabled:
        raise HTTPException(status_code=400, detail="Sign in through Supabase Auth")

    result = await session.execute(select(User).where(User.email == body.email))
    user = result.scalar_one_or_none()
    if user is None or not verify_password(body.password, user.hashed_password):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account is disabled")
    return _token_response(user)


@router.post("/callback")
async def auth_callback(
    body: dict = Body(...),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    session: AsyncSession = Depends(get_session),
):
    """Called after a Supabase sign-up to create the local profile.

    Body: { display_name?, job_title?, department?, company?, phone_number? }
    """
    if not _supabase_enabled:
        raise HTTPException(status_code=400, detail="Supabase Auth is not configured")
    if credentials is None:
        raise HTTPException(status_code=401, detail="Authentication required")

    payload = _verify_supabase_jwt(credentials.credentials)
    supabase_id, email, metadata = _extract_supabase_identity(payload)

    body_email = _safe_str(body.get("email")).lower()
    if body_email and body_email != email:
        raise HTTPException(status_code=403, detail="email does not match auth token")

    existing = await session.execute(select(User).where(User.supabase_id == supabase_id))
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=409, detail="User already provisioned")

    profile = {**metadata, **{k: v for k, v in body.items() if isinstance(v, str)}}
    user = await _provision_supabase_user(session, supabase_id, email, profile)
    return {"user": UserResponse.model_validate(user).model_dump()}


@router.get("/me", response_model=UserResponse)
async def get_me(user: User = Depends(require_auth)):
    return user
