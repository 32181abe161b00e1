import itertools
import math
import random

import pytest

from riskvision.risk.matrix import MAX_PLACEMENT_ATTEMPTS, POINT_COLORS, RiskMatrix


def _risk(idx: int, impact: int, probability: int, priority: str = "high", title: str | None = None) -> dict:
    return {
        "id": f"r{idx}",
        "title": title or f"Risk {idx}",
        "impact": impact,
        "probability": probability,
        "priority": priority,
    }


def test_cell_geometry():
    matrix = RiskMatrix(size=500)
    assert matrix.cell_size == 50
    assert matrix.cell_center(1, 1) == (25, 475)
    assert matrix.cell_center(10, 10) == (475, 25)
    assert matrix.cell_for_point(25, 475) == (1, 1)
    assert matrix.cell_for_point(499, 1) == (10, 10)
    assert matrix.cell_for_point(-1, 10) is None


def test_zones_follow_priority_bands():
    matrix = RiskMatrix()
    assert matrix.zone(8, 8) == "critical"
    assert matrix.zone(6, 6) == "high"
    assert matrix.zone(4, 4) == "medium"
    assert matrix.zone(3, 5) == "low"
    assert len(matrix.cells_grid()) == 100


def test_first_point_goes_to_cell_centre():
    matrix = RiskMatrix()
    positions = matrix.place_in_cell(impact=4, probability=7, count=3)
    x, y, fallback = positions[0]
    assert (x, y) == matrix.cell_center(4, 7)
    assert fallback is False


@pytest.mark.parametrize("count", [2, 5, 9, 15, 40])
def test_accepted_points_keep_two_radii_apart(count):
    matrix = RiskMatrix(size=500, point_radius=8)
    positions = matrix.place_in_cell(impact=5, probability=5, count=count)
    assert len(positions) == count

    # Each accepted point was checked against every point placed before it.
    for a, b in itertools.combinations(positions, 2):
        if b[2]:
            continue
        assert math.hypot(a[0] - b[0], a[1] - b[1]) > 2 * matrix.point_radius


def test_accepted_points_stay_inside_their_cell():
    matrix = RiskMatrix()
    left, top = 4 * matrix.cell_size, matrix.size - 5 * matrix.cell_size
    for x, y, fallback in matrix.place_in_cell(impact=5, probability=5, count=9):
        assert not fallback
        assert left < x < left + matrix.cell_size
        assert top < y < top + matrix.cell_size


def test_crowded_cell_falls_back_to_jitter_near_centre():
    matrix = RiskMatrix()
    positions = matrix.place_in_cell(impact=2, probability=2, count=40)
    cx, cy = matrix.cell_center(2, 2)
    fallbacks = [p for p in positions if p[2]]
    assert fallbacks
    for x, y, _ in fallbacks:
        assert abs(x - cx) <= matrix.point_radius / 2
        assert abs(y - cy) <= matrix.point_radius / 2


def test_placement_is_deterministic_per_seed():
    risks = [_risk(i, 7, 7) for i in range(12)]
    first = [p.as_dict() for p in RiskMatrix(seed="project-1").place(risks)]
    second = [p.as_dict() for p in RiskMatrix(seed="project-1").place(risks)]
    assert first == second


def test_place_groups_by_cell_and_colours_by_priority():
    matrix = RiskMatrix()
    risks = [
        _risk(1, 8, 8, "critical", title="vendor"),
        _risk(2, 2, 3, "low"),
        _risk(3, 8, 8, "critical"),
    ]
    points = {p.risk_id: p for p in matrix.place(risks)}
    assert (points["r1"].x, points["r1"].y) == matrix.cell_center(8, 8)
    assert (points["r3"].x, points["r3"].y) != matrix.cell_center(8, 8)
    assert points["r1"].initial == "V"
    assert points["r2"].color == POINT_COLORS["low"]


def test_hit_testing_uses_point_radius():
    matrix = RiskMatrix()
    points = matrix.place([_risk(1, 3, 3)])
    cx, cy = matrix.cell_center(3, 3)
    assert matrix.risk_at(points, cx + 5, cy - 5).risk_id == "r1"
    assert matrix.risk_at(points, cx + 20, cy) is None


def test_layout_and_svg():
    matrix = RiskMatrix()
    risks = [_risk(1, 9, 9, "critical", title="<Breach>"), _risk(2, 9, 9, "critical")]

    layout = matrix.layout(risks)
    assert len(layout["zones"]) == 100
    assert len(layout["points"]) == 2
    cell = next(z for z in layout["zones"] if z["impact"] == 9 and z["probability"] == 9)
    assert cell["risk_count"] == 2
    assert set(layout["legend"]) == {"low", "medium", "high", "critical"}

    svg = matrix.render_svg(risks, title="Matrix")
    assert svg.startswith("<svg")
    assert svg.count("<circle") == 2
    assert "&lt;Breach&gt;" in svg
    assert "<Breach>" not in svg


def test_attempt_budget_constant():
    assert MAX_PLACEMENT_ATTEMPTS == 50


def test_polar_candidates_stay_within_forty_percent_of_cell_radius():
    matrix = RiskMatrix(size=500, point_radius=8)
    cx, cy = matrix.cell_center(5, 5)
    limit = (matrix.cell_size / 2) * 0.4
    rng = random.Random("polar")

    offsets = [math.hypot(x - cx, y - cy) for x, y in (matrix._polar_candidate(5, 5, rng) for _ in range(2000))]

    assert max(offsets) <= limit + 1e-9
    assert max(offsets) > limit / 2


def test_svg_includes_priority_legend():
    svg = RiskMatrix().render_svg([_risk(1, 2, 2, "low")])
    legend = svg[svg.index('<g class="legend">'):]
    for label in ("Critical", "High", "Medium", "Low"):
        assert f">{label}</text>" in legend
    assert POINT_COLORS["critical"] in legend
    assert svg.count("<circle") == 1
