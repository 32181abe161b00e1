"""Report export: CSV, HTML and PDF renderings of a project's risk register."""

from __future__ import annotations

import re
from datetime import datetime
from io import BytesIO
from pathlib import Path
from typing import Any, Iterable
from xml.sax.saxutils import escape as xml_escape

import jinja2
from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import PageBreak, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from riskvision.risk.scoring import priority_counts, risk_score, sort_risks
from riskvision.utils.time import date_stamp, utc_now

CSV_HEADER = (
    "Risk ID",
    "Title",
    "Priority",
    "Status",
    "Category",
    "Probability",
    "Impact",
    "Risk Score",
    "Assigned To",
    "Description",
    "Mitigation Strategy",
)

PRIORITY_LEVELS = (
    {"name": "critical", "label": "Critical", "color": "#dc2626"},
    {"name": "high", "label": "High", "color": "#ea580c"},
    {"name": "medium", "label": "Medium", "color": "#f59e0b"},
    {"name": "low", "label": "Low", "color": "#059669"},
)
PRIORITY_COLORS = {level["name"]: level["color"] for level in PRIORITY_LEVELS}

METHODOLOGY = (
    {"label": "Critical", "range": "64 - 100", "action": "Immediate action required", "background": "#fee2e2"},
    {"label": "High", "range": "36 - 63", "action": "Action plan within 30 days", "background": "#fed7aa"},
    {"label": "Medium", "range": "16 - 35", "action": "Monitor and plan", "background": "#fef3c7"},
    {"label": "Low", "range": "1 - 15", "action": "Periodic monitoring", "background": "#d1fae5"},
)

_TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"
_template_env = jinja2.Environment(
    loader=jinja2.FileSystemLoader(searchpath=str(_TEMPLATES_DIR)),
    autoescape=True,
)


def _attr(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _text(value: Any) -> str:
    value = getattr(value, "value", value)
    return "" if value is None else str(value)


def export_filename(project_name: str, kind: str, moment: datetime | None = None) -> str:
    """``my_project_risks_2024-05-01.csv`` / ``..._risk_assessment_report_2024-05-01.pdf``."""
    slug = re.sub(r"[^a-z0-9]", "_", project_name, flags=re.IGNORECASE).lower()
    stamp = date_stamp(moment)
    if kind == "csv":
        return f"{slug}_risks_{stamp}.csv"
    return f"{slug}_risk_assessment_report_{stamp}.{kind}"


# ── CSV ───────────────────────────────────────────────────────


def escape_csv_field(value: Any) -> str:
    """Commas become semicolons and line breaks become spaces so a field never splits a row."""
    text = _text(value).replace(",", ";")
    return re.sub(r"\s*[\r\n]+\s*", " ", text).strip()


def csv_row(risk: Any, index: int) -> list[str]:
    strategy = _attr(risk, "mitigation_strategy")
    probability = _attr(risk, "probability") or 0
    impact = _attr(risk, "impact") or 0
    return [
        _attr(risk, "id") or f"RISK-{index + 1:03d}",
        _attr(risk, "title"),
        _attr(risk, "priority"),
        _attr(risk, "status"),
        _attr(risk, "category"),
        probability,
        impact,
        f"{risk_score(probability, impact):.1f}",
        _attr(risk, "assigned_to"),
        _attr(risk, "description"),
        _attr(strategy, "overview") if strategy else "",
    ]


def export_csv(risks: Iterable[Any]) -> str:
    lines = [",".join(CSV_HEADER)]
    for index, risk in enumerate(risks):
        lines.append(",".join(escape_csv_field(field) for field in csv_row(risk, index)))
    return "\n".join(lines)


# ── HTML ──────────────────────────────────────────────────────


def _report_risk(risk: Any) -> dict:
    probability = _attr(risk, "probability") or 0
    impact = _attr(risk, "impact") or 0
    return {
        "id": _text(_attr(risk, "id")),
        "title": _text(_attr(risk, "title")),
        "description": _text(_attr(risk, "description")),
        "category": _text(_attr(risk, "category")),
        "priority": _text(_attr(risk, "priority")),
        "status": _text(_attr(risk, "status")),
        "probability": probability,
        "impact": impact,
        "score": f"{risk_score(probability, impact):.1f}",
        "assigned_to": _text(_attr(risk, "assigned_to")),
        "tags": list(_attr(risk, "tags") or []),
        "mitigation_strategy": _attr(risk, "mitigation_strategy"),
        "solutions": list(_attr(risk, "solutions") or []),
    }


def build_report_context(project: Any, risks: Iterable[Any], moment: datetime | None = None) -> dict:
    ordered = sort_risks(list(risks), "priority", "desc")
    return {
        "project": project,
        "risks": [_report_risk(r) for r in ordered],
        "counts": priority_counts(ordered),
        "generated_on": (moment or utc_now()).strftime("%B %d, %Y"),
        "priority_levels": PRIORITY_LEVELS,
        "methodology": METHODOLOGY,
        "colors": PRIORITY_COLORS,
    }


def export_html(project: Any, risks: Iterable[Any], moment: datetime | None = None) -> str:
    template = _template_env.get_template("report.html")
    return template.render(**build_report_context(project, risks, moment))


# ── PDF ───────────────────────────────────────────────────────

_ACCENT = colors.HexColor("#b45309")
_GRID = colors.HexColor("#dddddd")
_LABEL_BG = colors.HexColor("#f8f9fa")


def _styles() -> dict[str, ParagraphStyle]:
    base = getSampleStyleSheet()
    return {
        "title": ParagraphStyle("RVTitle", parent=base["Title"], textColor=_ACCENT, fontSize=26, leading=32),
        "subtitle": ParagraphStyle("RVSubtitle", parent=base["Heading2"], alignment=1, textColor=colors.grey),
        "h2": ParagraphStyle("RVH2", parent=base["Heading2"], textColor=_ACCENT),
        "h3": ParagraphStyle("RVH3", parent=base["Heading3"], textColor=_ACCENT),
        "body": base["BodyText"],
        "center": ParagraphStyle("RVCenter", parent=base["BodyText"], alignment=1),
        "bullet": ParagraphStyle("RVBullet", parent=base["BodyText"], leftIndent=12, bulletIndent=0),
    }


def _p(text: Any, style: ParagraphStyle) -> Paragraph:
    return Paragraph(xml_escape(_text(text)), style)


def _kv_table(rows: list[tuple[str, Any]], styles: dict[str, ParagraphStyle]) -> Table:
    data = [[_p(label, styles["body"]), _p(value, styles["body"])] for label, value in rows]
    table = Table(data, colWidths=[1.8 * inch, 4.7 * inch])
    table.setStyle(
        TableStyle(
            [
                ("GRID", (0, 0), (-1, -1), 0.5, _GRID),
                ("BACKGROUND", (0, 0), (0, -1), _LABEL_BG),
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
            ]
        )
    )
    return table


def _bullets(items: Iterable[Any], styles: dict[str, ParagraphStyle]) -> list[Paragraph]:
    return [Paragraph(xml_escape(_text(item)), styles["bullet"], bulletText="•") for item in items]


def _strategy_flowables(strategy: Any, styles: dict[str, ParagraphStyle]) -> list:
    if not strategy:
        return [_p("No mitigation strategy defined.", styles["body"])]

    flow: list = [_p(strategy.overview or "No overview provided.", styles["body"])]
    if strategy.responsible_roles:
        flow.append(_p("Responsible Roles", styles["h3"]))
        flow.extend(
            _bullets(
                (
                    f"{r.role}: {'; '.join(r.responsibilities)}" if r.responsibilities else r.role
                    for r in strategy.responsible_roles
                ),
                styles,
            )
        )
    if strategy.timeline:
        flow.append(_p("Timeline", styles["h3"]))
        flow.extend(
            _bullets(
                (f"{p.phase} ({p.duration}): {'; '.join(p.activities)}" for p in strategy.timeline),
                styles,
            )
        )
    if strategy.resources:
        flow.append(_p("Resources", styles["h3"]))
        flow.extend(_bullets((f"{r.type}: {'; '.join(r.requirements)}" for r in strategy.resources), styles))
    if strategy.success_metrics:
        flow.append(_p("Success Metrics", styles["h3"]))
        flow.extend(_bullets(strategy.success_metrics, styles))
    if strategy.cost_implications:
        flow.append(_p("Cost Implications", styles["h3"]))
        flow.extend(_bullets((f"{c.item}: {c.estimate}" for c in strategy.cost_implications), styles))
    if strategy.implementation_challenges:
        flow.append(_p("Implementation Challenges", styles["h3"]))
        flow.extend(_bullets(strategy.implementation_challenges, styles))
    return flow


def export_pdf(project: Any, risks: Iterable[Any], moment: datetime | None = None) -> bytes:
    """Render the report as a letter-size PDF and return its bytes."""
    context = build_report_context(project, risks, moment)
    styles = _styles()
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=letter,
        leftMargin=0.5 * inch,
        rightMargin=0.5 * inch,
        topMargin=0.5 * inch,
        bottomMargin=0.5 * inch,
        title=f"Risk Assessment Report - {_attr(project, 'name')}",
    )

    story: list = [
        Spacer(1, 1.5 * inch),
        _p("RISK ASSESSMENT REPORT", styles["title"]),
        _p(_attr(project, "name"), styles["subtitle"]),
        _p(f"Generated on {context['generated_on']}", styles["center"]),
        Spacer(1, 0.6 * inch),
        _p("Executive Summary", styles["h2"]),
    ]
    summary = Table(
        [
            [str(context["counts"][level["name"]]) for level in PRIORITY_LEVELS],
            [level["label"] for level in PRIORITY_LEVELS],
        ],
        colWidths=[1.6 * inch] * len(PRIORITY_LEVELS),
    )
    summary_style = [
        ("ALIGN", (0, 0), (-1, -1), "CENTER"),
        ("TEXTCOLOR", (0, 0), (-1, -1), colors.white),
        ("FONTSIZE", (0, 0), (-1, 0), 22),
        ("LEADING", (0, 0), (-1, 0), 26),
        ("TOPPADDING", (0, 0), (-1, -1), 10),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 10),
    ]
    for col, level in enumerate(PRIORITY_LEVELS):
        summary_style.append(("BACKGROUND", (col, 0), (col, -1), colors.HexColor(level["color"])))
    summary.setStyle(TableStyle(summary_style))
    story += [summary, PageBreak()]

    team = ", ".join(
        (m.display_name or m.email) + (" (manager)" if m.role == "manager" else "")
        for m in (_attr(project, "team_members") or [])
    )
    story += [
        _p("Project Information", styles["h2"]),
        _kv_table(
            [
                ("Project Name", _attr(project, "name")),
                ("Assessment Date", context["generated_on"]),
                ("Total Risks", len(context["risks"])),
                ("Team", team or "-"),
            ],
            styles,
        ),
        _p("Project Description", styles["h3"]),
        _p(_attr(project, "description"), styles["body"]),
        _p("Risk Assessment Methodology", styles["h3"]),
    ]
    methodology = Table(
        [["Risk Level", "Probability × Impact", "Action Required"]]
        + [[row["label"], row["range"], row["action"]] for row in METHODOLOGY],
        colWidths=[1.5 * inch, 1.8 * inch, 3.2 * inch],
    )
    methodology_style = [
        ("GRID", (0, 0), (-1, -1), 0.5, _GRID),
        ("BACKGROUND", (0, 0), (-1, 0), _ACCENT),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
    ]
    for row_idx, row in enumerate(METHODOLOGY, start=1):
        methodology_style.append(("BACKGROUND", (0, row_idx), (0, row_idx), colors.HexColor(row["background"])))
    methodology.setStyle(TableStyle(methodology_style))
    story += [methodology, PageBreak()]

    if not context["risks"]:
        story += [_p("Risks", styles["h2"]), _p("No risks have been recorded for this project yet.", styles["body"])]

    for risk in context["risks"]:
        banner = Table(
            [[_p(risk["title"], styles["h3"])], [f"{risk['id']} | {risk['category'].capitalize()} | Priority: {risk['priority'].upper()}"]],
            colWidths=[6.5 * inch],
        )
        banner.setStyle(
            TableStyle(
                [
                    ("BACKGROUND", (0, 0), (-1, -1), colors.HexColor(PRIORITY_COLORS.get(risk["priority"], "#6b7280"))),
                    ("TEXTCOLOR", (0, 0), (-1, -1), colors.white),
                ]
            )
        )
        story += [
            _p(f"Risk Details: {risk['title']}", styles["h2"]),
            banner,
            _p("Risk Description", styles["h3"]),
            _p(risk["description"], styles["body"]),
            _p("Risk Details", styles["h3"]),
            _kv_table(
                [
                    ("Category", risk["category"].capitalize()),
                    ("Priority", risk["priority"].capitalize()),
                    ("Status", risk["status"].capitalize()),
                    ("Probability", f"{risk['probability']}/10"),
                    ("Impact", f"{risk['impact']}/10"),
                    ("Risk Score", risk["score"]),
                    ("Assigned To", risk["assigned_to"] or "Unassigned"),
                ],
                styles,
            ),
            _p("Mitigation Strategy", styles["h3"]),
            *_strategy_flowables(risk["mitigation_strategy"], styles),
        ]
        if risk["solutions"]:
            story.append(_p("Potential Solutions", styles["h3"]))
            story.extend(_bullets(risk["solutions"], styles))
        story.append(PageBreak())

    doc.build(story)
    return buffer.getvalue()


__all__ = [
    "CSV_HEADER",
    "escape_csv_field",
    "export_csv",
    "export_filename",
    "export_html",
    "export_pdf",
]
