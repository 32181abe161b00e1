"""Profile API: personal details, AI provider configuration, password and account removal."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from riskvision.api.auth import hash_password, require_auth, verify_password
from riskvision.database import get_session
from riskvision.models.project import Project
from riskvision.models.user import (
    AccountDelete,
    AIConfigResponse,
    AIConfigUpdate,
    PasswordChange,
    ProfileUpdate,
    User,
    UserResponse,
)
from riskvision.services.llm import PROVIDERS

router = APIRouter(prefix="/api/profile", tags=["profile"])
logger = logging.getLogger("riskvision.profile")


def _ai_config(user: User) -> AIConfigResponse:
    return AIConfigResponse(
        provider=user.ai_provider,
        model=user.ai_model,
        has_api_key=bool(user.ai_api_key),
    )


@router.get("")
async def get_profile(user: User = Depends(require_auth)):
    return {
        "user": UserResponse.model_validate(user).model_dump(),
        "ai_config": _ai_config(user).model_dump(),
    }


@router.put("", response_model=UserResponse)
async def update_profile(
    body: ProfileUpdate,
    user: User = Depends(require_auth),
    session: AsyncSession = Depends(get_session),
):
    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(user, field, value.strip() if isinstance(value, str) else value)
    await session.commit()
    await session.refresh(user)
    return user


@router.put("/ai-config", response_model=AIConfigResponse)
async def update_ai_config(
    body: AIConfigUpdate,
    user: User = Depends(require_auth),
    session: AsyncSession = Depends(get_session),
):
    """Store the caller's AI provider. ``api_key`` omitted keeps the stored key, empty clears it."""
    provider = body.provider.strip().lower()
    if provider not in PROVIDERS:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported AI provider. Choose one of: {', '.join(sorted(PROVIDERS))}",
        )

    user.ai_provider = provider
    if body.api_key is not None:
        user.ai_api_key = body.api_key.strip() or None
    if body.model is not None:
        user.ai_model = body.model.strip() or None
    await session.commit()
    await session.refresh(user)
    logger.info("AI configuration updated for %s (provider=%s)", user.email, provider)
    return _ai_config(user)


@router.post("/password", status_code=204)
async def change_password(
    body: PasswordChange,
    user: User = Depends(require_auth),
    session: AsyncSession = Depends(get_session),
):
    if not user.hashed_password:
        raise HTTPException(status_code=400, detail="Password is managed by the external identity provider")
    if not verify_password(body.current_password, user.hashed_password):
        raise HTTPException(status_code=400, detail="Current password is incorrect")

    user.hashed_password = hash_password(body.new_password)
    await session.commit()
    return Response(status_code=204)


@router.delete("", status_code=204)
async def delete_account(
    body: AccountDelete,
    user: User = Depends(require_auth),
    session: AsyncSession = Depends(get_session),
):
    """Remove the account together with every project it owns."""
    if user.hashed_password and not verify_password(body.password, user.hashed_password):
        raise HTTPException(status_code=400, detail="Password is incorrect")

    owned = await session.execute(select(Project).where(Project.owner_id == user.id))
    for project in owned.scalars().all():
        await session.delete(project)
    await session.flush()
    await session.delete(user)
    await session.commit()
    logger.info("Deleted account %s", user.email)
    return Response(status_code=204)
