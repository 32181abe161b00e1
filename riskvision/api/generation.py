"""AI risk generation endpoints: run a batch, poll its progress, cancel it."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from riskvision.api.auth import require_auth
from riskvision.api.projects import load_project_for_member, require_manager
from riskvision.api.risks import LLMClientFactory, get_llm_client, llm_http_error
from riskvision.database import get_session
from riskvision.models.generation import GenerateRiskParams, GenerationProgress, GenerationResult
from riskvision.models.user import User
from riskvision.services import generator, llm

router = APIRouter(prefix="/api/projects/{project_id}/generate", tags=["generation"])


@router.post("", response_model=GenerationResult)
async def generate_risks(
    project_id: str,
    body: GenerateRiskParams,
    user: User = Depends(require_auth),
    session: AsyncSession = Depends(get_session),
    llm_client: LLMClientFactory = Depends(get_llm_client),
):
    """Generate risks with mitigation strategies and solutions, one risk at a time.

    The request completes when the batch does; poll ``/progress`` meanwhile.
    On failure the risks saved so far are kept and the error is returned.
    """
    project = await load_project_for_member(session, project_id, user)
    require_manager(project, user, "generate risks")
    client = llm_client()

    try:
        return await generator.generate_project_risks(session, project, body, client)
    except generator.GenerationInProgressError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except llm.LLMError as exc:
        raise llm_http_error(exc)


@router.get("/progress", response_model=GenerationProgress)
async def get_progress(
    project_id: str,
    user: User = Depends(require_auth),
    session: AsyncSession = Depends(get_session),
):
    await load_project_for_member(session, project_id, user)
    return generator.tracker.get(project_id)


@router.post("/cancel")
async def cancel_generation(
    project_id: str,
    user: User = Depends(require_auth),
    session: AsyncSession = Depends(get_session),
):
    """Ask a running batch to stop after its current step."""
    project = await load_project_for_member(session, project_id, user)
    require_manager(project, user, "cancel risk generation")
    return {"cancel_requested": generator.tracker.request_cancel(project_id)}
