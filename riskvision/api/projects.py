"""Project API: projects, team membership and per-user permissions.

Read access follows team membership: a project is visible only to users whose
email is on its team list. Anything that changes the project or its team is
reserved for team members holding the ``manager`` role; deleting the project is
reserved for its owner.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from riskvision.api.auth import require_auth
from riskvision.database import get_session
from riskvision.models.project import (
    Project,
    ProjectCreate,
    ProjectPermissions,
    ProjectSummary,
    ProjectUpdate,
    TeamMember,
    TeamMemberCreate,
    TeamMemberResponse,
    TeamMemberUpdate,
    TeamRole,
)
from riskvision.models.user import User
from riskvision.utils.time import utc_naive_now

router = APIRouter(prefix="/api/projects", tags=["projects"])
logger = logging.getLogger("riskvision.projects")


# ── Access helpers ────────────────────────────────────────────

async def load_project_for_member(session: AsyncSession, project_id: str, user: User) -> Project:
    """Fetch a project the user is on the team of; 404 otherwise so ids don't leak."""
    result = await session.execute(
        select(Project).where(Project.id == project_id).execution_options(populate_existing=True)
    )
    project = result.scalar_one_or_none()
    if project is None or project.member(user.email) is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


def is_manager(project: Project, user: User) -> bool:
    member = project.member(user.email)
    return bool(member and member.is_manager)


def require_manager(project: Project, user: User, action: str = "perform this action") -> None:
    if not is_manager(project, user):
        raise HTTPException(status_code=403, detail=f"Only project managers can {action}")


def permissions_for(project: Project, user: User) -> ProjectPermissions:
    member = project.member(user.email)
    manager = bool(member and member.is_manager)
    owner = project.owner_id == user.id
    return ProjectPermissions(
        is_owner=owner,
        is_manager=manager,
        role=member.role if member else "",
        can_edit_project=manager,
        can_delete_project=owner,
        can_manage_team=manager,
        can_create_risks=manager,
        can_edit_risks=manager,
        can_delete_risks=manager,
        can_change_status=manager,
        can_generate_risks=manager,
        can_export=member is not None,
    )


def project_summary(project: Project) -> ProjectSummary:
    return ProjectSummary(
        id=project.id,
        name=project.name,
        description=project.description,
        owner_id=project.owner_id,
        risk_count=len(project.risks),
        team_members=[TeamMemberResponse.model_validate(m) for m in project.team_members],
        created_at=project.created_at,
        updated_at=project.updated_at,
    )


async def _owner_of(session: AsyncSession, project: Project) -> User | None:
    result = await session.execute(select(User).where(User.id == project.owner_id))
    return result.scalar_one_or_none()


# ── Projects ──────────────────────────────────────────────────

@router.get("", response_model=list[ProjectSummary])
async def list_projects(
    user: User = Depends(require_auth),
    session: AsyncSession = Depends(get_session),
):
    """Projects whose team includes the caller, most recently updated first."""
    result = await session.execute(
        select(Project)
        .join(TeamMember, TeamMember.project_id == Project.id)
        .where(TeamMember.email == user.email)
        .order_by(Project.updated_at.desc())
        .execution_options(populate_existing=True)
    )
    return [project_summary(p) for p in result.scalars().unique().all()]


@router.post("", response_model=ProjectSummary, status_code=201)
async def create_project(
    body: ProjectCreate,
    user: User = Depends(require_auth),
    session: AsyncSession = Depends(get_session),
):
    """Create a project; the creator is always added first as a manager."""
    project = Project(owner_id=user.id, name=body.name, description=body.description)
    project.team_members.append(
        TeamMember(
            email=user.email,
            display_name=user.display_name,
            job_title=user.job_title,
            project_role="Project Owner",
            role=TeamRole.MANAGER.value,
        )
    )
    seen = {user.email}
    for member in body.team_members:
        if member.email in seen:
            continue
        seen.add(member.email)
        project.team_members.append(
            TeamMember(
                email=member.email,
                display_name=member.display_name,
                job_title=member.job_title,
                project_role=member.project_role,
                role=member.role.value,
            )
        )

    session.add(project)
    await session.commit()
    await session.refresh(project)
    logger.info("Created project '%s'", project.name, extra={"project_id": project.id})
    return project_summary(project)


@router.get("/{project_id}", response_model=ProjectSummary)
async def get_project(
    project_id: str,
    user: User = Depends(require_auth),
    session: AsyncSession = Depends(get_session),
):
    project = await load_project_for_member(session, project_id, user)
    return project_summary(project)


@router.put("/{project_id}", response_model=ProjectSummary)
async def update_project(
    project_id: str,
    body: ProjectUpdate,
    user: User = Depends(require_auth),
    session: AsyncSession = Depends(get_session),
):
    project = await load_project_for_member(session, project_id, user)
    require_manager(project, user, "edit project details")

    if body.name is not None:
        if not body.name.strip():
            raise HTTPException(status_code=400, detail="Project name must not be blank")
        project.name = body.name.strip()
    if body.description is not None:
        if not body.description.strip():
            raise HTTPException(status_code=400, detail="Project description must not be blank")
        project.description = body.description.strip()
    project.updated_at = utc_naive_now()
    await session.commit()
    return project_summary(project)


@router.delete("/{project_id}", status_code=204)
async def delete_project(
    project_id: str,
    user: User = Depends(require_auth),
    session: AsyncSession = Depends(get_session),
):
    project = await load_project_for_member(session, project_id, user)
    if project.owner_id != user.id:
        raise HTTPException(status_code=403, detail="Only the project owner can delete the project")

    await session.delete(project)
    await session.commit()
    logger.info("Deleted project", extra={"project_id": project_id})
    return Response(status_code=204)


@router.get("/{project_id}/permissions", response_model=ProjectPermissions)
async def get_permissions(
    project_id: str,
    user: User = Depends(require_auth),
    session: AsyncSession = Depends(get_session),
):
    project = await load_project_for_member(session, project_id, user)
    return permissions_for(project, user)


# ── Team ──────────────────────────────────────────────────────

@router.post("/{project_id}/members", response_model=TeamMemberResponse, status_code=201)
async def add_member(
    project_id: str,
    body: TeamMemberCreate,
    user: User = Depends(require_auth),
    session: AsyncSession = Depends(get_session),
):
    project = await load_project_for_member(session, project_id, user)
    require_manager(project, user, "manage the team")
    if project.member(body.email) is not None:
        raise HTTPException(status_code=409, detail="This person is already on the team")

    member = TeamMember(
        email=body.email,
        display_name=body.display_name,
        job_title=body.job_title,
        project_role=body.project_role,
        role=body.role.value,
    )
    project.team_members.append(member)
    project.updated_at = utc_naive_now()
    await session.commit()
    return TeamMemberResponse.model_validate(member)


@router.patch("/{project_id}/members/{email}", response_model=TeamMemberResponse)
async def update_member(
    project_id: str,
    email: str,
    body: TeamMemberUpdate,
    user: User = Depends(require_auth),
    session: AsyncSession = Depends(get_session),
):
    project = await load_project_for_member(session, project_id, user)
    require_manager(project, user, "manage the team")
    member = project.member(email)
    if member is None:
        raise HTTPException(status_code=404, detail="Team member not found")

    owner = await _owner_of(session, project)
    if (
        body.role is not None
        and body.role != TeamRole.MANAGER
        and owner is not None
        and owner.email == member.email
    ):
        raise HTTPException(status_code=400, detail="The project owner must stay a manager")

    for field, value in body.model_dump(exclude_unset=True).items():
        if field == "role" and value is not None:
            value = TeamRole(value).value
        setattr(member, field, value)
    project.updated_at = utc_naive_now()
    await session.commit()
    return TeamMemberResponse.model_validate(member)


@router.delete("/{project_id}/members/{email}", status_code=204)
async def remove_member(
    project_id: str,
    email: str,
    user: User = Depends(require_auth),
    session: AsyncSession = Depends(get_session),
):
    project = await load_project_for_member(session, project_id, user)
    require_manager(project, user, "manage the team")
    member = project.member(email)
    if member is None:
        raise HTTPException(status_code=404, detail="Team member not found")

    owner = await _owner_of(session, project)
    if owner is not None and owner.email == member.email:
        raise HTTPException(status_code=400, detail="The project owner cannot be removed from the team")

    project.team_members.remove(member)
    project.updated_at = utc_naive_now()
    await session.commit()
    return Response(status_code=204)
