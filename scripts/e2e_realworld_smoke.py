#!/usr/bin/env python3
"""End-to-end smoke run against a live RiskVision API (local password auth mode).

Registers two users, builds a project with a manager and a member, records
risks, checks role gating, the matrix and every export format.
"""

from __future__ import annotations

import json
import sys
import uuid
from dataclasses import dataclass, field

import httpx

BASE_URL = "http://127.0.0.1:8000"
TIMEOUT = 30.0
PASSWORD = "smoke-test-password"


@dataclass
class SmokeState:
    project_id: str | None = None
    risk_ids: list[str] = field(default_factory=list)


def expect(condition: bool, message: str) -> None:
    if not condition:
        raise AssertionError(message)


def call(client: httpx.Client, method: str, path: str, expected: int = 200, **kwargs) -> httpx.Response:
    resp = client.request(method, f"{BASE_URL}{path}", **kwargs)
    expect(
        resp.status_code == expected,
        f"{method} {path} -> {resp.status_code} != {expected}; body={resp.text[:500]}",
    )
    return resp


def register(client: httpx.Client, email: str, name: str) -> dict:
    body = call(
        client,
        "POST",
        "/api/auth/register",
        expected=201,
        json={"email": email, "password": PASSWORD, "display_name": name},
    ).json()
    return {"Authorization": f"Bearer {body['access_token']}"}


def main() -> int:
    state = SmokeState()
    run = uuid.uuid4().hex[:8]
    manager_email = f"manager-{run}@example.com"
    member_email = f"member-{run}@example.com"

    with httpx.Client(timeout=TIMEOUT) as client:
        # 1) Health
        health = call(client, "GET", "/api/health").json()
        expect(health.get("status") == "healthy", "health status is not healthy")

        # 2) Accounts
        manager = register(client, manager_email, "Smoke Manager")
        member = register(client, member_email, "Smoke Member")
        me = call(client, "GET", "/api/auth/me", headers=manager).json()
        expect(me["email"] == manager_email, "auth/me returned the wrong user")

        # 3) Project with a member
        project = call(
            client,
            "POST",
            "/api/projects",
            expected=201,
            headers=manager,
            json={
                "name": f"Smoke Project {run}",
                "description": "Synthetic project for the smoke run",
                "team_members": [{"email": member_email, "display_name": "Smoke Member", "role": "member"}],
            },
        ).json()
        state.project_id = project["id"]
        base = f"/api/projects/{state.project_id}"
        expect(project["team_members"][0]["role"] == "manager", "creator was not added as manager")

        listed = call(client, "GET", "/api/projects", headers=member).json()
        expect(any(p["id"] == state.project_id for p in listed), "member cannot see the project")

        # 4) Risks, including a shared matrix cell
        for title, probability, impact in (
            ("Vendor delay", 8, 8),
            ("Budget overrun", 8, 8),
            ("Scope creep, late changes", 5, 4),
        ):
            risk = call(
                client,
                "POST",
                f"{base}/risks",
                expected=201,
                headers=manager,
                json={
                    "title": title,
                    "description": f"{title}\nraised during the smoke run",
                    "category": "schedule",
                    "probability": probability,
                    "impact": impact,
                    "priority": "low",
                    "assigned_to": member_email,
                },
            ).json()
            state.risk_ids.append(risk["id"])
        expect(risk["priority"] == "medium", "priority was not derived from probability and impact")

        # 5) Role gating
        call(client, "PUT", f"{base}/risks/{state.risk_ids[0]}", expected=403, headers=member, json={"impact": 1})
        changed = call(
            client,
            "POST",
            f"{base}/risks/{state.risk_ids[0]}/status",
            headers=member,
            json={"status": "mitigated"},
        ).json()
        expect(changed["status"] == "mitigated", "assignee could not change status")

        tasks = call(client, "GET", "/api/tasks", headers=member).json()
        expect(tasks["status_counts"]["all"] == 3, "task view is missing assigned risks")

        # 6) Matrix
        matrix = call(client, "GET", f"{base}/matrix", headers=member).json()
        expect(len(matrix["points"]) == 3, "matrix did not place every risk")
        svg = call(client, "GET", f"{base}/matrix.svg", headers=member)
        expect(svg.text.startswith("<svg"), "matrix svg is not an svg document")

        # 7) Exports
        csv_resp = call(client, "GET", f"{base}/export/csv", headers=member)
        expect(len(csv_resp.text.splitlines()) == 4, "csv export row count mismatch")
        html_resp = call(client, "GET", f"{base}/export/html", headers=member)
        expect("RISK ASSESSMENT REPORT" in html_resp.text, "html report missing title")
        pdf_resp = call(client, "GET", f"{base}/export/pdf", headers=member)
        expect(pdf_resp.content.startswith(b"%PDF"), "pdf export is not a pdf")

        # 8) Cleanup + negative checks
        call(client, "DELETE", base, expected=403, headers=member)
        call(client, "DELETE", base, expected=204, headers=manager)
        call(client, "GET", base, expected=404, headers=manager)

    print(json.dumps({"ok": True, "message": "RiskVision smoke passed"}))
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except Exception as exc:  # noqa: BLE001
        print(json.dumps({"ok": False, "error": str(exc)}))
        sys.exit(1)
