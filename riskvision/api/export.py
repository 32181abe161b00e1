"""Report downloads: CSV, HTML and PDF."""

from __future__ import annotations

import logging
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.ext.asyncio import AsyncSession

from riskvision.api.auth import require_auth
from riskvision.api.projects import load_project_for_member
from riskvision.database import get_session
from riskvision.models.user import User
from riskvision.services import exporter

router = APIRouter(prefix="/api/projects/{project_id}/export", tags=["export"])
logger = logging.getLogger("riskvision.export")

MEDIA_TYPES = {
    "csv": "text/csv; charset=utf-8",
    "html": "text/html; charset=utf-8",
    "pdf": "application/pdf",
}


@router.get("/{fmt}")
async def export_project(
    project_id: str,
    fmt: Literal["csv", "html", "pdf"],
    user: User = Depends(require_auth),
    session: AsyncSession = Depends(get_session),
):
    project = await load_project_for_member(session, project_id, user)
    risks = list(project.risks)

    if fmt == "csv":
        content: str | bytes = exporter.export_csv(risks)
    elif fmt == "html":
        content = exporter.export_html(project, risks)
    else:
        try:
            content = exporter.export_pdf(project, risks)
        except Exception:
            logger.exception("PDF rendering failed", extra={"project_id": project.id})
            raise HTTPException(status_code=500, detail="Failed to generate PDF report")

    filename = exporter.export_filename(project.name, fmt)
    logger.info("Exported %s report (%d risks)", fmt, len(risks), extra={"project_id": project.id})
    return Response(
        content=content,
        media_type=MEDIA_TYPES[fmt],
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
