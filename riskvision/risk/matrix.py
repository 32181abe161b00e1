"""Probability/impact risk matrix: geometry, point placement and SVG rendering.

The matrix is a square canvas split into a 10×10 grid: impact grows left to
right, probability grows bottom to top. Every risk is drawn as a small circle
in the cell matching its (impact, probability) pair. Risks that share a cell
are spread out with a bounded best-effort search so they do not sit on top of
each other:

1. the first point in a cell goes to the cell centre;
2. each following point tries up to ``MAX_PLACEMENT_ATTEMPTS`` candidates:
   sub-grid positions of the cell first, then random polar offsets, and
   takes the first one farther than two radii from every point already in
   the cell;
3. if no candidate fits, the point gets a small random jitter around the
   centre and is flagged as a fallback placement.

Randomness is seeded per cell so the same project always renders the same.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass, field
from html import escape
from typing import Any, Iterable, Sequence

from riskvision.risk.scoring import MAX_SCORE, RiskPriority, priority_for_score

MAX_PLACEMENT_ATTEMPTS = 50
POLAR_OFFSET_RATIO = 0.4  # of the cell radius
GRID_SUBDIVISIONS = (3, 4)

POINT_COLORS: dict[str, str] = {
    RiskPriority.LOW.value: "#10B981",
    RiskPriority.MEDIUM.value: "#F59E0B",
    RiskPriority.HIGH.value: "#F97316",
    RiskPriority.CRITICAL.value: "#EF4444",
}
DEFAULT_POINT_COLOR = "#6B7280"

ZONE_COLORS: dict[str, str] = {
    RiskPriority.LOW.value: "rgba(220, 252, 231, 0.6)",
    RiskPriority.MEDIUM.value: "rgba(254, 249, 195, 0.6)",
    RiskPriority.HIGH.value: "rgba(254, 215, 170, 0.6)",
    RiskPriority.CRITICAL.value: "rgba(254, 202, 202, 0.6)",
}


@dataclass
class PlacedPoint:
    risk_id: str
    title: str
    initial: str
    impact: int
    probability: int
    priority: str
    color: str
    x: float
    y: float
    fallback: bool = False

    def as_dict(self) -> dict:
        return {
            "risk_id": self.risk_id,
            "title": self.title,
            "initial": self.initial,
            "impact": self.impact,
            "probability": self.probability,
            "priority": self.priority,
            "color": self.color,
            "x": round(self.x, 2),
            "y": round(self.y, 2),
            "fallback": self.fallback,
        }


@dataclass
class MatrixCell:
    impact: int
    probability: int
    zone: str
    color: str
    x: float
    y: float
    size: float
    risk_ids: list[str] = field(default_factory=list)


def _attr(risk: Any, name: str, default: Any = None) -> Any:
    if isinstance(risk, dict):
        return risk.get(name, default)
    return getattr(risk, name, default)


def _distance(ax: float, ay: float, bx: float, by: float) -> float:
    return math.hypot(ax - bx, ay - by)


class RiskMatrix:
    """Geometry of a square probability/impact matrix."""

    def __init__(
        self,
        size: float = 500,
        point_radius: float = 8,
        cells: int = MAX_SCORE,
        seed: str = "riskvision",
    ) -> None:
        if size <= 0 or cells <= 0:
            raise ValueError("Matrix size and cell count must be positive")
        self.size = float(size)
        self.cells = cells
        self.point_radius = float(point_radius)
        self.seed = seed

    @property
    def cell_size(self) -> float:
        return self.size / self.cells

    def cell_center(self, impact: int, probability: int) -> tuple[float, float]:
        x = impact * self.cell_size - self.cell_size / 2
        y = self.size - probability * self.cell_size + self.cell_size / 2
        return x, y

    def cell_for_point(self, x: float, y: float) -> tuple[int, int] | None:
        """Inverse of :meth:`cell_center`: (impact, probability) under a canvas point."""
        if not (0 <= x < self.size and 0 < y <= self.size):
            return None
        impact = int(x // self.cell_size) + 1
        probability = int((self.size - y) // self.cell_size) + 1
        return min(impact, self.cells), min(probability, self.cells)

    def zone(self, impact: int, probability: int) -> str:
        return priority_for_score(impact * probability).value

    def cells_grid(self) -> list[MatrixCell]:
        grid = []
        for probability in range(self.cells, 0, -1):
            for impact in range(1, self.cells + 1):
                zone = self.zone(impact, probability)
                grid.append(
                    MatrixCell(
                        impact=impact,
                        probability=probability,
                        zone=zone,
                        color=ZONE_COLORS[zone],
                        x=(impact - 1) * self.cell_size,
                        y=self.size - probability * self.cell_size,
                        size=self.cell_size,
                    )
                )
        return grid

    # ── Placement ────────────────────────────────────────────

    def _clamp_to_cell(self, impact: int, probability: int, x: float, y: float) -> tuple[float, float]:
        cx, cy = self.cell_center(impact, probability)
        limit = max(0.0, self.cell_size / 2 - self.point_radius)
        return (
            min(cx + limit, max(cx - limit, x)),
            min(cy + limit, max(cy - limit, y)),
        )

    def _grid_candidates(self, impact: int, probability: int) -> list[tuple[float, float]]:
        left = (impact - 1) * self.cell_size
        top = self.size - probability * self.cell_size
        cx, cy = self.cell_center(impact, probability)
        candidates: list[tuple[float, float]] = []
        for divisions in GRID_SUBDIVISIONS:
            step = self.cell_size / divisions
            for row in range(divisions):
                for col in range(divisions):
                    x = left + step * col + step / 2
                    y = top + step * row + step / 2
                    if math.isclose(x, cx) and math.isclose(y, cy):
                        continue
                    candidates.append(self._clamp_to_cell(impact, probability, x, y))
        return candidates

    def _polar_candidate(self, impact: int, probability: int, rng: random.Random) -> tuple[float, float]:
        cx, cy = self.cell_center(impact, probability)
        angle = rng.uniform(0, 2 * math.pi)
        distance = rng.uniform(0, (self.cell_size / 2) * POLAR_OFFSET_RATIO)
        return self._clamp_to_cell(
            impact, probability, cx + distance * math.cos(angle), cy + distance * math.sin(angle)
        )

    def _fits(self, x: float, y: float, placed: Sequence[tuple[float, float]]) -> bool:
        min_gap = 2 * self.point_radius
        return all(_distance(x, y, px, py) > min_gap for px, py in placed)

    def place_in_cell(
        self,
        impact: int,
        probability: int,
        count: int,
        rng: random.Random | None = None,
    ) -> list[tuple[float, float, bool]]:
        """Positions for ``count`` points sharing one cell as (x, y, fallback)."""
        if count <= 0:
            return []
        rng = rng or random.Random(f"{self.seed}:{impact}:{probability}")
        cx, cy = self.cell_center(impact, probability)
        positions: list[tuple[float, float, bool]] = [(cx, cy, False)]
        placed: list[tuple[float, float]] = [(cx, cy)]
        grid = self._grid_candidates(impact, probability)

        for _ in range(1, count):
            accepted = None
            for attempt in range(MAX_PLACEMENT_ATTEMPTS):
                if attempt < len(grid):
                    x, y = grid[attempt]
                else:
                    x, y = self._polar_candidate(impact, probability, rng)
                if self._fits(x, y, placed):
                    accepted = (x, y)
                    break

            if accepted is None:
                jitter = self.point_radius / 2
                x = cx + rng.uniform(-jitter, jitter)
                y = cy + rng.uniform(-jitter, jitter)
                positions.append((x, y, True))
            else:
                x, y = accepted
                positions.append((x, y, False))
            placed.append((x, y))

        return positions

    def place(self, risks: Iterable[Any]) -> list[PlacedPoint]:
        """Lay out every risk; input order decides who gets the cell centre."""
        by_cell: dict[tuple[int, int], list[Any]] = {}
        for risk in risks:
            key = (int(_attr(risk, "impact")), int(_attr(risk, "probability")))
            by_cell.setdefault(key, []).append(risk)

        points: list[PlacedPoint] = []
        for (impact, probability), cell_risks in by_cell.items():
            positions = self.place_in_cell(impact, probability, len(cell_risks))
            for risk, (x, y, fallback) in zip(cell_risks, positions):
                priority = _attr(risk, "priority") or self.zone(impact, probability)
                priority = getattr(priority, "value", priority)
                title = _attr(risk, "title") or ""
                points.append(
                    PlacedPoint(
                        risk_id=str(_attr(risk, "id", "")),
                        title=title,
                        initial=title[:1].upper(),
                        impact=impact,
                        probability=probability,
                        priority=priority,
                        color=POINT_COLORS.get(priority, DEFAULT_POINT_COLOR),
                        x=x,
                        y=y,
                        fallback=fallback,
                    )
                )
        return points

    def risk_at(self, points: Sequence[PlacedPoint], x: float, y: float) -> PlacedPoint | None:
        """Hit test: the last-drawn point whose circle contains (x, y)."""
        for point in reversed(points):
            if _distance(x, y, point.x, point.y) <= self.point_radius:
                return point
        return None

    # ── Output ───────────────────────────────────────────────

    def layout(self, risks: Iterable[Any]) -> dict:
        points = self.place(risks)
        cells = self.cells_grid()
        by_cell: dict[tuple[int, int], MatrixCell] = {(c.impact, c.probability): c for c in cells}
        for point in points:
            by_cell[(point.impact, point.probability)].risk_ids.append(point.risk_id)
        return {
            "size": self.size,
            "cells": self.cells,
            "cell_size": self.cell_size,
            "point_radius": self.point_radius,
            "zones": [
                {
                    "impact": c.impact,
                    "probability": c.probability,
                    "zone": c.zone,
                    "color": c.color,
                    "risk_count": len(c.risk_ids),
                }
                for c in cells
            ],
            "points": [p.as_dict() for p in points],
            "legend": {p.value: POINT_COLORS[p.value] for p in RiskPriority},
        }

    def render_svg(self, risks: Iterable[Any], title: str = "Risk Matrix") -> str:
        points = self.place(risks)
        size = self.size
        cell = self.cell_size
        parts = [
            f'<svg xmlns="http://www.w3.org/2000/svg" width="{size:g}" height="{size:g}" '
            f'viewBox="0 0 {size:g} {size:g}" font-family="system-ui, -apple-system, sans-serif">',
            f"<title>{escape(title)}</title>",
        ]

        for c in self.cells_grid():
            parts.append(
                f'<rect x="{c.x:.2f}" y="{c.y:.2f}" width="{cell:.2f}" height="{cell:.2f}" '
                f'fill="{c.color}" stroke="#e5e7eb" stroke-width="1"/>'
            )

        parts.append(
            f'<text x="{size / 2:.2f}" y="{size - 5:.2f}" font-size="12" fill="#374151" '
            f'text-anchor="middle">Impact</text>'
        )
        parts.append(
            f'<text x="10" y="{size / 2:.2f}" font-size="12" fill="#374151" text-anchor="middle" '
            f'transform="rotate(-90 10 {size / 2:.2f})">Probability</text>'
        )
        for i in range(1, self.cells + 1):
            parts.append(
                f'<text x="{i * cell - cell / 2:.2f}" y="{size - 10:.2f}" font-size="12" '
                f'fill="#374151" text-anchor="middle">{i}</text>'
            )
            parts.append(
                f'<text x="15" y="{size - i * cell + cell / 2 + 4:.2f}" font-size="12" '
                f'fill="#374151" text-anchor="middle">{i}</text>'
            )

        for p in points:
            parts.append(
                f'<g><title>{escape(p.title)} (P: {p.probability}/10, I: {p.impact}/10, {p.priority})</title>'
                f'<circle cx="{p.x:.2f}" cy="{p.y:.2f}" r="{self.point_radius:g}" fill="{p.color}" '
                f'stroke="#ffffff" stroke-width="2"/>'
                f'<text x="{p.x:.2f}" y="{p.y:.2f}" font-size="10" font-weight="bold" fill="#ffffff" '
                f'text-anchor="middle" dominant-baseline="middle">{escape(p.initial)}</text></g>'
            )

        parts.append('<g class="legend">')
        for row, priority in enumerate(reversed(RiskPriority)):
            y = 8 + row * 16
            parts.append(
                f'<rect x="{size - 80:.2f}" y="{y:.2f}" width="10" height="10" '
                f'fill="{POINT_COLORS[priority.value]}"/>'
                f'<text x="{size - 65:.2f}" y="{y + 9:.2f}" font-size="10" fill="#374151">'
                f"{priority.value.capitalize()}</text>"
            )
        parts.append("</g>")

        parts.append("</svg>")
        return "\n".join(parts)
