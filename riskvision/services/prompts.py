"""Prompt templates for risk, mitigation and solution generation."""

from __future__ import annotations

from typing import Any, Iterable, Sequence

NOT_SPECIFIED = "Not specified"


def _value(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def _enum_text(value: Any) -> str:
    return str(getattr(value, "value", value))


def format_team_members(team_members: Iterable[Any]) -> str:
    lines = []
    for member in team_members:
        name = _value(member, "display_name") or _value(member, "email") or "Unnamed member"
        job_title = _value(member, "job_title") or NOT_SPECIFIED
        project_role = _value(member, "project_role") or NOT_SPECIFIED
        email = _value(member, "email") or ""
        lines.append(f"- {name} <{email}> ({job_title})\n  Role in project: {project_role}")
    if not lines:
        return ""
    return "Available Team Members:\n" + "\n".join(lines)


RISKS_PROMPT = """\
Generate {count} potential project risks for a {project_type} project in the {industry} industry.

Project Context:
- Country/Region: {country}
- Budget: {budget}
- Timeline: {timeline}
- Team Size: {team_size}
- Key Stakeholders: {stakeholders}
- Regulatory Requirements: {regulations}

{team_members}
{team_hint}
{categories}

Consider:
1. Local regulations and compliance requirements
2. Regional market conditions and challenges
3. Industry-specific risks
4. Cultural and business environment factors
5. Economic and political stability
6. Infrastructure and resource availability
7. Team composition and expertise
8. Resource allocation and team member availability

IMPORTANT: Return a valid JSON array containing objects with the following structure. ALL property names MUST be enclosed in double quotes:
[
  {{
    "title": "Risk title here",
    "description": "Risk description here",
    "category": "One of: {allowed_categories}",
    "probability": 5,
    "impact": 5,
    "assignedTo": "team.member@email.com",
    "potentialSolutions": ["Solution 1", "Solution 2"]
  }}
]

The response MUST be a properly formatted JSON array that can be parsed by a JSON parser.
"""


MITIGATION_PROMPT = """\
Generate a detailed mitigation strategy for the following project risk:

Risk Title: {title}
Risk Description: {description}
Risk Category: {category}
Probability (1-10): {probability}
Impact (1-10): {impact}
Currently Assigned To: {assigned_to}

{team_members}

Provide a comprehensive mitigation strategy in JSON format with the following structure:
{{
  "overview": "Brief overview of the strategy",
  "responsibleRoles": [
    {{
      "role": "Role title (reference actual team members where applicable)",
      "responsibilities": ["List of specific responsibilities"]
    }}
  ],
  "timeline": [
    {{
      "phase": "Phase name",
      "duration": "Expected duration",
      "activities": ["List of activities"]
    }}
  ],
  "resources": [
    {{
      "type": "Resource type",
      "requirements": ["Specific requirements"]
    }}
  ],
  "successMetrics": ["List of measurable success criteria"],
  "costImplications": [
    {{
      "item": "Cost item",
      "estimate": "Estimated cost"
    }}
  ],
  "implementationChallenges": ["List of potential challenges"]
}}

The strategy should:
1. Be practical and specific to the available team members
2. Leverage team members' expertise and roles
3. Include clear responsibilities and ownership
4. Consider team capacity and availability
5. Be actionable with the current team composition
"""


SOLUTIONS_PROMPT = """\
Generate practical solutions for the following project risk:

Risk Title: {title}
Risk Description: {description}
Risk Category: {category}
Probability (1-10): {probability}
Impact (1-10): {impact}

Provide 3-5 detailed solutions that:
1. Address the root cause
2. Are practical to implement
3. Consider resource constraints
4. Include success criteria
5. Account for potential challenges

Format each solution as a complete paragraph with actionable steps.
Return the solutions as a JSON array of strings.
"""


def build_risks_prompt(params: Any, team_members: Sequence[Any], allowed_categories: Iterable[str]) -> str:
    categories = [_enum_text(c) for c in (_value(params, "categories") or [])]
    count = _value(params, "count")
    team_text = format_team_members(team_members)
    return RISKS_PROMPT.format(
        count=count or "comprehensive",
        project_type=_value(params, "project_type") or "general",
        industry=_value(params, "industry") or "general",
        country=_value(params, "country") or NOT_SPECIFIED,
        budget=_value(params, "budget") or NOT_SPECIFIED,
        timeline=_value(params, "timeline") or NOT_SPECIFIED,
        team_size=_value(params, "team_size") or NOT_SPECIFIED,
        stakeholders=_value(params, "stakeholders") or NOT_SPECIFIED,
        regulations=_value(params, "regulations") or NOT_SPECIFIED,
        team_members=team_text,
        team_hint=(
            "Consider team members' roles and expertise when assigning responsibilities and identifying risks. "
            "Only use the email addresses listed above for assignedTo."
            if team_text
            else ""
        ),
        categories=(
            f"Risk categories should be limited to the following: {', '.join(categories)}."
            if categories
            else ""
        ),
        allowed_categories=", ".join(allowed_categories),
    )


def build_mitigation_prompt(risk: Any, team_members: Sequence[Any]) -> str:
    return MITIGATION_PROMPT.format(
        title=_value(risk, "title"),
        description=_value(risk, "description"),
        category=_enum_text(_value(risk, "category")),
        probability=_value(risk, "probability"),
        impact=_value(risk, "impact"),
        assigned_to=_value(risk, "assigned_to") or "Not assigned",
        team_members=format_team_members(team_members),
    )


def build_solutions_prompt(risk: Any) -> str:
    return SOLUTIONS_PROMPT.format(
        title=_value(risk, "title"),
        description=_value(risk, "description"),
        category=_enum_text(_value(risk, "category")),
        probability=_value(risk, "probability"),
        impact=_value(risk, "impact"),
    )
