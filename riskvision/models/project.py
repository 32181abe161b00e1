"""Project and team membership models."""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from pydantic import BaseModel, Field, field_validator

from riskvision.database import Base
from riskvision.utils.time import utc_naive_now

if TYPE_CHECKING:
    from riskvision.models.risk import Risk


class TeamRole(str, enum.Enum):
    MANAGER = "manager"
    MEMBER = "member"


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), index=True)
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_naive_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_naive_now, onupdate=utc_naive_now)

    team_members: Mapped[list["TeamMember"]] = relationship(
        back_populates="project",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="TeamMember.id",
    )
    risks: Mapped[list["Risk"]] = relationship(
        back_populates="project",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="Risk.created_at",
    )

    def member(self, email: str | None) -> Optional["TeamMember"]:
        if not email:
            return None
        email = email.lower()
        for member in self.team_members:
            if member.email == email:
                return member
        return None


class TeamMember(Base):
    __tablename__ = "team_members"
    __table_args__ = (UniqueConstraint("project_id", "email", name="uq_team_members_project_email"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("projects.id", ondelete="CASCADE"), index=True
    )
    email: Mapped[str] = mapped_column(String(255), index=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    job_title: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    project_role: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    role: Mapped[str] = mapped_column(String(20), default=TeamRole.MEMBER.value)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_naive_now)

    project: Mapped[Project] = relationship(back_populates="team_members")

    @property
    def is_manager(self) -> bool:
        return self.role == TeamRole.MANAGER.value


# ── Pydantic Schemas ─────────────────────────────────────────


class TeamMemberCreate(BaseModel):
    email: str
    display_name: str | None = None
    job_title: str | None = None
    project_role: str | None = None
    role: TeamRole = TeamRole.MEMBER

    @field_validator("email")
    @classmethod
    def _lower_email(cls, value: str) -> str:
        value = value.strip().lower()
        if "@" not in value:
            raise ValueError("A valid email address is required")
        return value


class TeamMemberUpdate(BaseModel):
    display_name: str | None = None
    job_title: str | None = None
    project_role: str | None = None
    role: TeamRole | None = None


class TeamMemberResponse(BaseModel):
    email: str
    display_name: str | None = None
    job_title: str | None = None
    project_role: str | None = None
    role: str

    model_config = {"from_attributes": True}


class ProjectCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1)
    team_members: list[TeamMemberCreate] = []

    @field_validator("name", "description")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value.strip()


class ProjectUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None


class ProjectSummary(BaseModel):
    id: str
    name: str
    description: str
    owner_id: int
    risk_count: int
    team_members: list[TeamMemberResponse]
    created_at: datetime
    updated_at: datetime


class ProjectPermissions(BaseModel):
    is_owner: bool
    is_manager: bool
    role: str
    can_edit_project: bool
    can_delete_project: bool
    can_manage_team: bool
    can_create_risks: bool
    can_edit_risks: bool
    can_delete_risks: bool
    can_change_status: bool
    can_generate_risks: bool
    can_export: bool
