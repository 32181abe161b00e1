"""Risk data model: project hazards scored by probability and impact."""

from __future__ import annotations

import json
import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from pydantic import BaseModel, Field, field_validator, model_validator

from riskvision.database import Base
from riskvision.models.project import Project
from riskvision.risk.scoring import RiskCategory, RiskPriority, RiskStatus, calculate_priority
from riskvision.utils.time import utc_naive_now


def _as_str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if isinstance(value, dict):
        value = list(value.values())
    if isinstance(value, (list, tuple)):
        items = []
        for item in value:
            if isinstance(item, dict):
                item = "; ".join(str(v) for v in item.values() if v not in (None, ""))
            text = str(item).strip() if item is not None else ""
            if text:
                items.append(text)
        return items
    return [str(value)]


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return " ".join(_as_str_list(value))
    return str(value).strip()


class ResponsibleRole(BaseModel):
    role: str = ""
    responsibilities: list[str] = []

    @model_validator(mode="before")
    @classmethod
    def _coerce(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"role": data, "responsibilities": []}
        if isinstance(data, dict):
            return {
                "role": _as_text(data.get("role") or data.get("title") or data.get("name")),
                "responsibilities": _as_str_list(data.get("responsibilities")),
            }
        return data


class TimelinePhase(BaseModel):
    phase: str = ""
    duration: str = ""
    activities: list[str] = []

    @model_validator(mode="before")
    @classmethod
    def _coerce(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"phase": data}
        if isinstance(data, dict):
            return {
                "phase": _as_text(data.get("phase") or data.get("name")),
                "duration": _as_text(data.get("duration")),
                "activities": _as_str_list(data.get("activities")),
            }
        return data


class ResourceRequirement(BaseModel):
    type: str = ""
    requirements: list[str] = []

    @model_validator(mode="before")
    @classmethod
    def _coerce(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"type": data}
        if isinstance(data, dict):
            return {
                "type": _as_text(data.get("type") or data.get("name")),
                "requirements": _as_str_list(data.get("requirements")),
            }
        return data


class CostItem(BaseModel):
    item: str = ""
    estimate: str = ""

    @model_validator(mode="before")
    @classmethod
    def _coerce(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"item": data}
        if isinstance(data, dict):
            return {"item": _as_text(data.get("item")), "estimate": _as_text(data.get("estimate"))}
        return data


class MitigationStrategy(BaseModel):
    """Structured remediation plan; lenient so free-form LLM output still fits."""

    overview: str = ""
    responsible_roles: list[ResponsibleRole] = []
    timeline: list[TimelinePhase] = []
    resources: list[ResourceRequirement] = []
    success_metrics: list[str] = []
    cost_implications: list[CostItem] = []
    implementation_challenges: list[str] = []

    @model_validator(mode="before")
    @classmethod
    def _coerce(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data

        def pick(*keys: str) -> Any:
            for key in keys:
                if key in data and data[key] is not None:
                    return data[key]
            return None

        def as_list(value: Any) -> list:
            if value is None:
                return []
            return list(value) if isinstance(value, (list, tuple)) else [value]

        return {
            "overview": _as_text(pick("overview")),
            "responsible_roles": as_list(pick("responsible_roles", "responsibleRoles")),
            "timeline": as_list(pick("timeline")),
            "resources": as_list(pick("resources")),
            "success_metrics": _as_str_list(pick("success_metrics", "successMetrics")),
            "cost_implications": as_list(pick("cost_implications", "costImplications")),
            "implementation_challenges": _as_str_list(
                pick("implementation_challenges", "implementationChallenges")
            ),
        }


class Risk(Base):
    __tablename__ = "risks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("projects.id", ondelete="CASCADE"), index=True
    )
    title: Mapped[str] = mapped_column(String(500))
    description: Mapped[str] = mapped_column(Text, default="")
    category: Mapped[str] = mapped_column(String(20), default=RiskCategory.TECHNICAL.value, index=True)
    probability: Mapped[int] = mapped_column(Integer)
    impact: Mapped[int] = mapped_column(Integer)
    priority: Mapped[str] = mapped_column(String(20), index=True)
    status: Mapped[str] = mapped_column(String(20), default=RiskStatus.OPEN.value, index=True)
    assigned_to: Mapped[str] = mapped_column(String(255), default="", index=True)
    tags_json: Mapped[str] = mapped_column(Text, default="[]")
    mitigation_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    solutions_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_naive_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_naive_now, onupdate=utc_naive_now)

    project: Mapped[Project] = relationship(back_populates="risks")

    def rescore(self) -> None:
        """Recompute priority; the only way priority is ever written."""
        self.priority = calculate_priority(self.probability, self.impact).value

    @property
    def tags(self) -> list[str]:
        return json.loads(self.tags_json or "[]")

    @tags.setter
    def tags(self, value: list[str]) -> None:
        self.tags_json = json.dumps(list(value or []))

    @property
    def mitigation_strategy(self) -> Optional[MitigationStrategy]:
        if not self.mitigation_json:
            return None
        return MitigationStrategy.model_validate(json.loads(self.mitigation_json))

    @mitigation_strategy.setter
    def mitigation_strategy(self, value: MitigationStrategy | dict | None) -> None:
        if value is None:
            self.mitigation_json = None
            return
        strategy = MitigationStrategy.model_validate(value)
        self.mitigation_json = strategy.model_dump_json()

    @property
    def solutions(self) -> Optional[list[str]]:
        if self.solutions_json is None:
            return None
        return json.loads(self.solutions_json)

    @solutions.setter
    def solutions(self, value: list[str] | None) -> None:
        self.solutions_json = None if value is None else json.dumps(_as_str_list(value))


# ── Pydantic Schemas ─────────────────────────────────────────


def _clean_tags(tags: list[str]) -> list[str]:
    seen: list[str] = []
    for tag in tags:
        tag = tag.strip()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


class RiskCreate(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    description: str = Field(min_length=1)
    category: RiskCategory = RiskCategory.TECHNICAL
    probability: int = Field(default=5, ge=1, le=10)
    impact: int = Field(default=5, ge=1, le=10)
    status: RiskStatus = RiskStatus.OPEN
    assigned_to: str = ""
    tags: list[str] = []

    @field_validator("title", "description")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value.strip()

    @field_validator("assigned_to")
    @classmethod
    def _lower_assignee(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("tags")
    @classmethod
    def _dedupe_tags(cls, value: list[str]) -> list[str]:
        return _clean_tags(value)


class RiskUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=500)
    description: str | None = None
    category: RiskCategory | None = None
    probability: int | None = Field(default=None, ge=1, le=10)
    impact: int | None = Field(default=None, ge=1, le=10)
    status: RiskStatus | None = None
    assigned_to: str | None = None
    tags: list[str] | None = None

    @field_validator("assigned_to")
    @classmethod
    def _lower_assignee(cls, value: str | None) -> str | None:
        return value.strip().lower() if value is not None else None

    @field_validator("tags")
    @classmethod
    def _dedupe_tags(cls, value: list[str] | None) -> list[str] | None:
        return _clean_tags(value) if value is not None else None


class RiskStatusChange(BaseModel):
    status: RiskStatus


class MitigationSave(BaseModel):
    mitigation_strategy: MitigationStrategy | None = None
    solutions: list[str] | None = None


class RiskResponse(BaseModel):
    id: str
    project_id: str
    title: str
    description: str
    category: str
    probability: int
    impact: int
    priority: RiskPriority
    status: str
    assigned_to: str
    tags: list[str]
    mitigation_strategy: MitigationStrategy | None = None
    solutions: list[str] | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class TaskResponse(RiskResponse):
    project_name: str


class TaskListResponse(BaseModel):
    tasks: list[TaskResponse]
    status_counts: dict[str, int]
