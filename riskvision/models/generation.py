"""Schemas for AI risk generation requests and progress reporting."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from riskvision.risk.scoring import RiskCategory

GenerationStatus = Literal["idle", "generating-risks", "generating-strategies", "generating-solutions"]


class GenerateRiskParams(BaseModel):
    industry: str | None = None
    project_type: str | None = None
    categories: list[RiskCategory] = []
    count: int | None = Field(default=None, ge=1)
    country: str | None = None
    budget: str | None = None
    timeline: str | None = None
    team_size: str | None = None
    stakeholders: str | None = None
    regulations: str | None = None


class GenerationProgress(BaseModel):
    status: GenerationStatus = "idle"
    current_item: int = 0
    total_items: int = 0
    message: str = ""
    error: str | None = None
    cancel_requested: bool = False


class GenerationResult(BaseModel):
    project_id: str
    generated: int
    cancelled: bool = False
    risk_ids: list[str] = []
