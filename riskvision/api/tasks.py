"""Task view: risks assigned to the caller across every project they belong to."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from riskvision.api.auth import require_auth
from riskvision.database import get_session
from riskvision.models.project import Project, TeamMember
from riskvision.models.risk import Risk, RiskResponse, TaskListResponse, TaskResponse
from riskvision.models.user import User
from riskvision.risk.scoring import filter_risks, sort_risks, status_counts

router = APIRouter(prefix="/api/tasks", tags=["tasks"])

TASK_SORT_FIELDS = ("priority", "created_at")


@router.get("", response_model=TaskListResponse)
async def list_tasks(
    status: Optional[str] = Query(None),
    priority: Optional[str] = Query(None),
    sort: str = Query("priority"),
    direction: str = Query("desc"),
    user: User = Depends(require_auth),
    session: AsyncSession = Depends(get_session),
):
    """Assigned risks; ``status_counts`` covers all of them, before the status filter."""
    if sort not in TASK_SORT_FIELDS:
        raise HTTPException(status_code=400, detail=f"Tasks can be sorted by: {', '.join(TASK_SORT_FIELDS)}")

    result = await session.execute(
        select(Risk, Project.name)
        .join(Project, Project.id == Risk.project_id)
        .join(TeamMember, TeamMember.project_id == Project.id)
        .where(Risk.assigned_to == user.email, TeamMember.email == user.email)
    )
    tasks = [
        TaskResponse(**RiskResponse.model_validate(risk).model_dump(), project_name=project_name)
        for risk, project_name in result.all()
    ]

    counts = status_counts(tasks)
    tasks = filter_risks(tasks, status=status, priority=priority)
    try:
        tasks = sort_risks(tasks, sort, direction)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return TaskListResponse(tasks=tasks, status_counts=counts)
