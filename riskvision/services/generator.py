"""AI risk generation: the sequential risk → mitigation → solutions loop.

One batch runs per project at a time. Every generated risk gets a mitigation
strategy and a solution list before it is persisted; the next risk is only
started after the previous one is saved, so a failure mid-batch keeps what
was already written and aborts the rest.
"""

from __future__ import annotations

import logging
from threading import Lock

from sqlalchemy.ext.asyncio import AsyncSession

from riskvision.config import settings
from riskvision.models.generation import GenerateRiskParams, GenerationProgress, GenerationResult
from riskvision.models.project import Project
from riskvision.models.risk import Risk
from riskvision.observability.metrics import metrics
from riskvision.risk.scoring import RiskStatus
from riskvision.services import llm
from riskvision.utils.time import utc_naive_now

logger = logging.getLogger("riskvision.generator")

STEPS_PER_RISK = 3


class GenerationInProgressError(Exception):
    pass


class GenerationTracker:
    """In-memory progress per project, polled by the UI while a batch runs."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._progress: dict[str, GenerationProgress] = {}

    def get(self, project_id: str) -> GenerationProgress:
        with self._lock:
            return self._progress.get(project_id, GenerationProgress()).model_copy()

    def is_running(self, project_id: str) -> bool:
        return self.get(project_id).status != "idle"

    def start(self, project_id: str, total_items: int) -> None:
        with self._lock:
            current = self._progress.get(project_id)
            if current is not None and current.status != "idle":
                raise GenerationInProgressError("Risk generation is already running for this project")
            self._progress[project_id] = GenerationProgress(
                status="generating-risks",
                current_item=0,
                total_items=total_items,
                message="Generating risks...",
            )

    def update(self, project_id: str, status: str, current_item: int, message: str) -> None:
        with self._lock:
            progress = self._progress.setdefault(project_id, GenerationProgress())
            progress.status = status  # type: ignore[assignment]
            progress.current_item = current_item
            progress.message = message

    def request_cancel(self, project_id: str) -> bool:
        with self._lock:
            progress = self._progress.get(project_id)
            if progress is None or progress.status == "idle":
                return False
            progress.cancel_requested = True
            return True

    def cancel_requested(self, project_id: str) -> bool:
        with self._lock:
            progress = self._progress.get(project_id)
            return bool(progress and progress.cancel_requested)

    def finish(self, project_id: str, error: str | None = None, message: str = "") -> None:
        with self._lock:
            self._progress[project_id] = GenerationProgress(error=error, message=message)


tracker = GenerationTracker()


def resolve_count(params: GenerateRiskParams) -> int:
    count = params.count or settings.generation_default_count
    return max(1, min(count, settings.generation_max_count))


async def generate_project_risks(
    session: AsyncSession,
    project: Project,
    params: GenerateRiskParams,
    client: llm.LLMClient,
    progress: GenerationTracker = tracker,
) -> GenerationResult:
    """Generate, enrich and persist AI-suggested risks for ``project``."""
    count = resolve_count(params)
    params = params.model_copy(update={"count": count})
    project_id = project.id
    team = list(project.team_members)
    progress.start(project_id, total_items=count * STEPS_PER_RISK)
    logger.info("Starting risk generation (count=%d)", count, extra={"project_id": project_id})

    created: list[str] = []
    cancelled = False
    try:
        suggestions = await llm.generate_risks(client, params, team)

        for index, suggestion in enumerate(suggestions):
            if progress.cancel_requested(project_id):
                cancelled = True
                break

            risk = Risk(
                title=suggestion["title"],
                description=suggestion["description"],
                category=suggestion["category"],
                probability=suggestion["probability"],
                impact=suggestion["impact"],
                status=RiskStatus.OPEN.value,
                assigned_to=suggestion["assigned_to"],
                tags=[],
            )
            risk.rescore()

            progress.update(
                project_id,
                "generating-strategies",
                index * STEPS_PER_RISK + 1,
                f"Generating strategy for risk: {risk.title}",
            )
            risk.mitigation_strategy = await llm.generate_mitigation_strategy(client, risk, team)

            if progress.cancel_requested(project_id):
                cancelled = True
                break

            progress.update(
                project_id,
                "generating-solutions",
                index * STEPS_PER_RISK + 2,
                f"Generating solutions for risk: {risk.title}",
            )
            risk.solutions = await llm.generate_solutions(client, risk)

            project.risks.append(risk)
            project.updated_at = utc_naive_now()
            await session.commit()
            created.append(risk.id)
            metrics.observe_risks_generated(1)

    except llm.LLMError as exc:
        progress.finish(project_id, error=str(exc), message="Failed to generate risks")
        logger.warning(
            "Risk generation aborted after %d risks: %s",
            len(created),
            exc,
            extra={"project_id": project_id},
        )
        raise
    except Exception:
        await session.rollback()
        progress.finish(project_id, error="Failed to generate risks", message="Failed to generate risks")
        logger.exception("Risk generation crashed", extra={"project_id": project_id})
        raise
    except BaseException:
        # Request task cancelled mid-step (client disconnect, proxy timeout).
        progress.finish(project_id, error="Generation interrupted", message="Generation interrupted")
        logger.warning(
            "Risk generation interrupted after %d risks",
            len(created),
            extra={"project_id": project_id},
        )
        raise

    progress.finish(
        project_id,
        message="Generation cancelled" if cancelled else f"Generated {len(created)} risks",
    )
    logger.info(
        "Risk generation finished (created=%d, cancelled=%s)",
        len(created),
        cancelled,
        extra={"project_id": project_id},
    )
    return GenerationResult(project_id=project_id, generated=len(created), cancelled=cancelled, risk_ids=created)
