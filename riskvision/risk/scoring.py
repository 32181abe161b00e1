"""Risk scoring: priority derivation, enums, and list filtering/sorting."""

from __future__ import annotations

import enum
from datetime import UTC, datetime
from typing import Any, Iterable, Sequence

MIN_SCORE = 1
MAX_SCORE = 10


class RiskCategory(str, enum.Enum):
    TECHNICAL = "technical"
    FINANCIAL = "financial"
    OPERATIONAL = "operational"
    SCHEDULE = "schedule"
    SCOPE = "scope"
    RESOURCE = "resource"
    STAKEHOLDER = "stakeholder"
    LEGAL = "legal"
    SECURITY = "security"
    QUALITY = "quality"
    CUSTOM = "custom"


class RiskStatus(str, enum.Enum):
    OPEN = "open"
    MITIGATED = "mitigated"
    CLOSED = "closed"


class RiskPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# Lower bound of probability × impact for each tier, checked top-down.
PRIORITY_THRESHOLDS: tuple[tuple[int, RiskPriority], ...] = (
    (64, RiskPriority.CRITICAL),
    (36, RiskPriority.HIGH),
    (16, RiskPriority.MEDIUM),
)

PRIORITY_ORDER: dict[str, int] = {
    RiskPriority.CRITICAL.value: 4,
    RiskPriority.HIGH.value: 3,
    RiskPriority.MEDIUM.value: 2,
    RiskPriority.LOW.value: 1,
}

SORTABLE_FIELDS = (
    "priority",
    "title",
    "category",
    "status",
    "probability",
    "impact",
    "assigned_to",
    "created_at",
    "updated_at",
)


def priority_for_score(score: int) -> RiskPriority:
    """Map a probability × impact product onto its tier."""
    for threshold, priority in PRIORITY_THRESHOLDS:
        if score >= threshold:
            return priority
    return RiskPriority.LOW


def calculate_priority(probability: int, impact: int) -> RiskPriority:
    """Derive risk priority from probability and impact (both 1-10).

    >>> calculate_priority(8, 8).value
    'critical'
    >>> calculate_priority(5, 3).value
    'low'
    """
    for name, value in (("probability", probability), ("impact", impact)):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"{name} must be an integer, got {value!r}")
        if not MIN_SCORE <= value <= MAX_SCORE:
            raise ValueError(f"{name} must be between {MIN_SCORE} and {MAX_SCORE}, got {value}")
    return priority_for_score(probability * impact)


def clamp_score(value: Any, default: int = 5) -> int:
    """Coerce loosely-typed input (LLM output, form strings) into 1-10."""
    try:
        number = int(round(float(value)))
    except (TypeError, ValueError):
        return default
    if number == 0:
        return default
    return max(MIN_SCORE, min(MAX_SCORE, number))


def risk_score(probability: int, impact: int) -> float:
    """Report-friendly score on a 0-10 scale (probability × impact / 10)."""
    return round(probability * impact / 10, 1)


def _get(risk: Any, field: str) -> Any:
    if isinstance(risk, dict):
        return risk.get(field)
    return getattr(risk, field, None)


def _enum_value(value: Any) -> Any:
    return value.value if isinstance(value, enum.Enum) else value


def filter_risks(
    risks: Iterable[Any],
    category: str | None = None,
    status: str | None = None,
    priority: str | None = None,
    assigned_to: str | None = None,
) -> list[Any]:
    """Keep risks matching every given filter; ``None`` or ``"all"`` disables one."""
    wanted = {
        "category": _enum_value(category),
        "status": _enum_value(status),
        "priority": _enum_value(priority),
        "assigned_to": assigned_to,
    }
    active = {k: v for k, v in wanted.items() if v not in (None, "", "all")}
    return [r for r in risks if all(_get(r, k) == v for k, v in active.items())]


def _sort_key(field: str):
    def key(risk: Any):
        value = _get(risk, field)
        if field == "priority":
            return PRIORITY_ORDER.get(_enum_value(value), 0)
        if value is None:
            return ""
        if isinstance(value, str):
            return value.lower()
        if isinstance(value, datetime):
            return (value if value.tzinfo else value.replace(tzinfo=UTC)).timestamp()
        return value

    return key


def sort_risks(risks: Sequence[Any], field: str = "priority", direction: str = "desc") -> list[Any]:
    """Sort risks by a field; priority sorts by severity rank, not alphabetically."""
    if field not in SORTABLE_FIELDS:
        raise ValueError(f"Cannot sort by '{field}'")
    if direction not in {"asc", "desc"}:
        raise ValueError(f"Sort direction must be 'asc' or 'desc', got '{direction}'")
    return sorted(risks, key=_sort_key(field), reverse=direction == "desc")


def status_counts(risks: Iterable[Any]) -> dict[str, int]:
    counts = {"all": 0, **{s.value: 0 for s in RiskStatus}}
    for risk in risks:
        counts["all"] += 1
        status = _enum_value(_get(risk, "status"))
        if status in counts:
            counts[status] += 1
    return counts


def priority_counts(risks: Iterable[Any]) -> dict[str, int]:
    counts = {p.value: 0 for p in RiskPriority}
    for risk in risks:
        priority = _enum_value(_get(risk, "priority"))
        if priority in counts:
            counts[priority] += 1
    return counts
