"""Risk API: CRUD, status changes and AI mitigation/solution generation for a project's risks."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from riskvision.api.auth import require_auth
from riskvision.api.projects import is_manager, load_project_for_member, require_manager
from riskvision.database import get_session
from riskvision.models.project import Project
from riskvision.models.risk import (
    MitigationSave,
    Risk,
    RiskCreate,
    RiskResponse,
    RiskStatusChange,
    RiskUpdate,
)
from riskvision.models.user import User
from riskvision.risk.scoring import filter_risks, sort_risks
from riskvision.services import llm
from riskvision.utils.time import utc_naive_now

router = APIRouter(prefix="/api/projects/{project_id}/risks", tags=["risks"])
logger = logging.getLogger("riskvision.risks")


# ── Shared helpers ────────────────────────────────────────────

LLMClientFactory = Callable[[], llm.LLMClient]


def get_llm_client(user: User = Depends(require_auth)) -> LLMClientFactory:
    """Builds the caller's LLM client on demand, after the endpoint's role checks.

    Uses the caller's AI configuration, or the server default.
    """

    def build() -> llm.LLMClient:
        try:
            return llm.LLMClient(llm.LLMConfig.resolve(user))
        except llm.LLMConfigError as exc:
            raise HTTPException(status_code=400, detail=str(exc))

    return build


def llm_http_error(exc: llm.LLMError) -> HTTPException:
    if isinstance(exc, llm.LLMConfigError):
        return HTTPException(status_code=400, detail=str(exc))
    return HTTPException(status_code=502, detail=f"AI request failed: {exc}")


def find_risk(project: Project, risk_id: str) -> Risk:
    for risk in project.risks:
        if risk.id == risk_id:
            return risk
    raise HTTPException(status_code=404, detail="Risk not found")


def require_manager_or_assignee(project: Project, risk: Risk, user: User, action: str) -> None:
    if is_manager(project, user) or (risk.assigned_to and risk.assigned_to == user.email):
        return
    raise HTTPException(status_code=403, detail=f"Only project managers or the assignee can {action}")


def _check_assignee(project: Project, assignee: str) -> None:
    if assignee and project.member(assignee) is None:
        raise HTTPException(status_code=400, detail="Risks can only be assigned to team members")


def _touch(project: Project, risk: Risk) -> None:
    now = utc_naive_now()
    risk.updated_at = now
    project.updated_at = now


# ── CRUD ──────────────────────────────────────────────────────

@router.get("", response_model=list[RiskResponse])
async def list_risks(
    project_id: str,
    category: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    priority: Optional[str] = Query(None),
    assigned_to: Optional[str] = Query(None),
    sort: str = Query("priority"),
    direction: str = Query("desc"),
    user: User = Depends(require_auth),
    session: AsyncSession = Depends(get_session),
):
    """Filter by category/status/priority/assignee (``all`` disables a filter) and sort."""
    project = await load_project_for_member(session, project_id, user)
    risks = filter_risks(
        project.risks,
        category=category,
        status=status,
        priority=priority,
        assigned_to=assigned_to.lower() if assigned_to else assigned_to,
    )
    try:
        risks = sort_risks(risks, sort, direction)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return [RiskResponse.model_validate(r) for r in risks]


@router.post("", response_model=RiskResponse, status_code=201)
async def create_risk(
    project_id: str,
    body: RiskCreate,
    user: User = Depends(require_auth),
    session: AsyncSession = Depends(get_session),
):
    project = await load_project_for_member(session, project_id, user)
    require_manager(project, user, "create risks")
    _check_assignee(project, body.assigned_to)

    risk = Risk(
        title=body.title,
        description=body.description,
        category=body.category.value,
        probability=body.probability,
        impact=body.impact,
        status=body.status.value,
        assigned_to=body.assigned_to,
        tags=body.tags,
    )
    risk.rescore()
    project.risks.append(risk)
    project.updated_at = utc_naive_now()
    await session.commit()
    logger.info("Created risk '%s' (%s)", risk.title, risk.priority, extra={"project_id": project.id})
    return RiskResponse.model_validate(risk)


@router.get("/{risk_id}", response_model=RiskResponse)
async def get_risk(
    project_id: str,
    risk_id: str,
    user: User = Depends(require_auth),
    session: AsyncSession = Depends(get_session),
):
    project = await load_project_for_member(session, project_id, user)
    return RiskResponse.model_validate(find_risk(project, risk_id))


@router.put("/{risk_id}", response_model=RiskResponse)
async def update_risk(
    project_id: str,
    risk_id: str,
    body: RiskUpdate,
    user: User = Depends(require_auth),
    session: AsyncSession = Depends(get_session),
):
    project = await load_project_for_member(session, project_id, user)
    require_manager(project, user, "edit risks")
    risk = find_risk(project, risk_id)

    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    if "assigned_to" in changes:
        _check_assignee(project, changes["assigned_to"])
    if "title" in changes and not changes["title"].strip():
        raise HTTPException(status_code=400, detail="Risk title must not be blank")
    if "description" in changes and not changes["description"].strip():
        raise HTTPException(status_code=400, detail="Risk description must not be blank")

    for field, value in changes.items():
        setattr(risk, field, getattr(value, "value", value))
    risk.rescore()
    _touch(project, risk)
    await session.commit()
    return RiskResponse.model_validate(risk)


@router.delete("/{risk_id}", status_code=204)
async def delete_risk(
    project_id: str,
    risk_id: str,
    user: User = Depends(require_auth),
    session: AsyncSession = Depends(get_session),
):
    project = await load_project_for_member(session, project_id, user)
    require_manager(project, user, "delete risks")
    risk = find_risk(project, risk_id)

    project.risks.remove(risk)
    project.updated_at = utc_naive_now()
    await session.commit()
    logger.info("Deleted risk %s", risk_id, extra={"project_id": project.id})
    return Response(status_code=204)


@router.post("/{risk_id}/status", response_model=RiskResponse)
async def change_status(
    project_id: str,
    risk_id: str,
    body: RiskStatusChange,
    user: User = Depends(require_auth),
    session: AsyncSession = Depends(get_session),
):
    project = await load_project_for_member(session, project_id, user)
    risk = find_risk(project, risk_id)
    require_manager_or_assignee(project, risk, user, "change the status of this risk")

    risk.status = body.status.value
    _touch(project, risk)
    await session.commit()
    return RiskResponse.model_validate(risk)


# ── Mitigation & solutions ────────────────────────────────────

@router.post("/{risk_id}/mitigation", response_model=RiskResponse)
async def generate_mitigation(
    project_id: str,
    risk_id: str,
    user: User = Depends(require_auth),
    session: AsyncSession = Depends(get_session),
    llm_client: LLMClientFactory = Depends(get_llm_client),
):
    """Ask the model for a mitigation strategy and store it on the risk."""
    project = await load_project_for_member(session, project_id, user)
    risk = find_risk(project, risk_id)
    require_manager_or_assignee(project, risk, user, "generate a mitigation strategy")
    client = llm_client()

    try:
        strategy = await llm.generate_mitigation_strategy(client, risk, list(project.team_members))
    except llm.LLMError as exc:
        logger.warning("Mitigation generation failed: %s", exc, extra={"project_id": project.id})
        raise llm_http_error(exc)

    risk.mitigation_strategy = strategy
    _touch(project, risk)
    await session.commit()
    return RiskResponse.model_validate(risk)


@router.post("/{risk_id}/solutions", response_model=RiskResponse)
async def generate_solutions(
    project_id: str,
    risk_id: str,
    user: User = Depends(require_auth),
    session: AsyncSession = Depends(get_session),
    llm_client: LLMClientFactory = Depends(get_llm_client),
):
    project = await load_project_for_member(session, project_id, user)
    risk = find_risk(project, risk_id)
    require_manager_or_assignee(project, risk, user, "generate solutions")
    client = llm_client()

    try:
        solutions = await llm.generate_solutions(client, risk)
    except llm.LLMError as exc:
        logger.warning("Solution generation failed: %s", exc, extra={"project_id": project.id})
        raise llm_http_error(exc)

    risk.solutions = solutions
    _touch(project, risk)
    await session.commit()
    return RiskResponse.model_validate(risk)


@router.put("/{risk_id}/mitigation", response_model=RiskResponse)
async def save_mitigation(
    project_id: str,
    risk_id: str,
    body: MitigationSave,
    user: User = Depends(require_auth),
    session: AsyncSession = Depends(get_session),
):
    """Save an edited mitigation strategy and/or solution list; omitted fields stay as they are."""
    project = await load_project_for_member(session, project_id, user)
    risk = find_risk(project, risk_id)
    require_manager_or_assignee(project, risk, user, "edit the mitigation strategy")

    fields = body.model_fields_set
    if "mitigation_strategy" in fields:
        risk.mitigation_strategy = body.mitigation_strategy
    if "solutions" in fields:
        risk.solutions = body.solutions
    _touch(project, risk)
    await session.commit()
    return RiskResponse.model_validate(risk)
