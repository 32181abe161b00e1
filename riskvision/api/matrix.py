"""Risk matrix endpoints: point layout as JSON, a rendered SVG and hit testing."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from riskvision.api.auth import require_auth
from riskvision.api.projects import load_project_for_member
from riskvision.config import settings
from riskvision.database import get_session
from riskvision.models.user import User
from riskvision.risk.matrix import RiskMatrix

router = APIRouter(prefix="/api/projects/{project_id}", tags=["matrix"])


def _matrix_for(project_id: str) -> RiskMatrix:
    # Seeded by project so a project renders identically on every request.
    return RiskMatrix(size=settings.matrix_size, point_radius=settings.matrix_point_radius, seed=project_id)


@router.get("/matrix")
async def get_matrix(
    project_id: str,
    user: User = Depends(require_auth),
    session: AsyncSession = Depends(get_session),
):
    project = await load_project_for_member(session, project_id, user)
    return _matrix_for(project.id).layout(project.risks)


@router.get("/matrix.svg")
async def get_matrix_svg(
    project_id: str,
    user: User = Depends(require_auth),
    session: AsyncSession = Depends(get_session),
):
    project = await load_project_for_member(session, project_id, user)
    svg = _matrix_for(project.id).render_svg(project.risks, title=f"Risk Matrix: {project.name}")
    return Response(content=svg, media_type="image/svg+xml")


@router.get("/matrix/at")
async def risk_at_point(
    project_id: str,
    x: float = Query(...),
    y: float = Query(...),
    user: User = Depends(require_auth),
    session: AsyncSession = Depends(get_session),
):
    """The risk drawn under canvas coordinates (x, y), for hover tooltips."""
    project = await load_project_for_member(session, project_id, user)
    matrix = _matrix_for(project.id)
    point = matrix.risk_at(matrix.place(project.risks), x, y)
    if point is None:
        raise HTTPException(status_code=404, detail="No risk at this position")
    return point.as_dict()
