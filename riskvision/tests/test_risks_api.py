from __future__ import annotations

import json

import httpx
import pytest

from riskvision.api.risks import get_llm_client
from riskvision.services import llm


def _risk_body(**overrides) -> dict:
    body = {
        "title": "Vendor delay",
        "description": "Parts arrive late, blocking integration",
        "category": "schedule",
        "probability": 8,
        "impact": 8,
        "assigned_to": "dev@example.com",
        "tags": ["supply", "supply", " vendors "],
    }
    body.update(overrides)
    return body


async def _setup(client, team, new_project, **risk_overrides):
    project = await new_project(client, team.manager_h)
    base = f"/api/projects/{project['id']}/risks"
    created = await client.post(base, headers=team.manager_h, json=_risk_body(**risk_overrides))
    assert created.status_code == 201, created.text
    return project, base, created.json()


def _llm_override(api_app, handler):
    client = llm.LLMClient(
        llm.LLMConfig(provider="openai", api_key="sk-test", model="gpt-test"),
        transport=httpx.MockTransport(handler),
    )
    api_app.dependency_overrides[get_llm_client] = lambda: (lambda: client)


def _chat(content: str) -> httpx.Response:
    return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})


@pytest.mark.asyncio
async def test_priority_is_derived_and_client_value_ignored(api_app, client_for, team, new_project):
    async with client_for(api_app) as client:
        _, base, risk = await _setup(client, team, new_project, priority="low")
        assert risk["priority"] == "critical"
        assert risk["tags"] == ["supply", "vendors"]
        assert risk["status"] == "open"

        updated = await client.put(
            f"{base}/{risk['id']}", headers=team.manager_h, json={"probability": 2, "priority": "critical"}
        )
        assert updated.status_code == 200
        assert updated.json()["priority"] == "medium"


@pytest.mark.asyncio
async def test_invalid_scores_and_assignees_are_rejected(api_app, client_for, team, new_project):
    async with client_for(api_app) as client:
        _, base, _ = await _setup(client, team, new_project)
        too_high = await client.post(base, headers=team.manager_h, json=_risk_body(impact=11))
        stranger = await client.post(base, headers=team.manager_h, json=_risk_body(assigned_to="eve@example.com"))
        no_title = await client.post(base, headers=team.manager_h, json=_risk_body(title=" "))
    assert too_high.status_code == 422
    assert stranger.status_code == 400
    assert no_title.status_code == 422


@pytest.mark.asyncio
async def test_members_cannot_create_edit_or_delete(api_app, client_for, team, new_project):
    async with client_for(api_app) as client:
        _, base, risk = await _setup(client, team, new_project)
        url = f"{base}/{risk['id']}"

        assert (await client.post(base, headers=team.member_h, json=_risk_body())).status_code == 403
        assert (await client.put(url, headers=team.member_h, json={"impact": 1})).status_code == 403
        assert (await client.delete(url, headers=team.member_h)).status_code == 403
        assert (await client.get(url, headers=team.member_h)).status_code == 200
        assert (await client.get(url, headers=team.outsider_h)).status_code == 404

        assert (await client.delete(url, headers=team.manager_h)).status_code == 204
        assert (await client.get(url, headers=team.manager_h)).status_code == 404


@pytest.mark.asyncio
async def test_status_change_by_manager_or_assignee(api_app, client_for, team, new_project):
    async with client_for(api_app) as client:
        project, base, assigned = await _setup(client, team, new_project)
        unassigned = (
            await client.post(base, headers=team.manager_h, json=_risk_body(title="Scope creep", assigned_to=""))
        ).json()

        by_assignee = await client.post(
            f"{base}/{assigned['id']}/status", headers=team.member_h, json={"status": "mitigated"}
        )
        assert by_assignee.status_code == 200
        assert by_assignee.json()["status"] == "mitigated"

        not_theirs = await client.post(
            f"{base}/{unassigned['id']}/status", headers=team.member_h, json={"status": "closed"}
        )
        assert not_theirs.status_code == 403

        by_manager = await client.post(
            f"{base}/{unassigned['id']}/status", headers=team.manager_h, json={"status": "closed"}
        )
        assert by_manager.json()["status"] == "closed"

        invalid = await client.post(
            f"{base}/{unassigned['id']}/status", headers=team.manager_h, json={"status": "archived"}
        )
        assert invalid.status_code == 422


@pytest.mark.asyncio
async def test_list_filters_and_sorts(api_app, client_for, team, new_project):
    async with client_for(api_app) as client:
        _, base, _ = await _setup(client, team, new_project)
        await client.post(base, headers=team.manager_h, json=_risk_body(title="Audit gap", category="legal", probability=2, impact=2))
        await client.post(base, headers=team.manager_h, json=_risk_body(title="Cost spike", category="financial", probability=6, impact=6))

        default = (await client.get(base, headers=team.member_h)).json()
        assert [r["priority"] for r in default] == ["critical", "high", "low"]

        legal = (await client.get(base, headers=team.member_h, params={"category": "legal"})).json()
        assert [r["title"] for r in legal] == ["Audit gap"]

        everything = (await client.get(base, headers=team.member_h, params={"category": "all", "status": "all"})).json()
        assert len(everything) == 3

        by_title = (await client.get(base, headers=team.member_h, params={"sort": "title", "direction": "asc"})).json()
        assert [r["title"] for r in by_title] == ["Audit gap", "Cost spike", "Vendor delay"]

        bad_sort = await client.get(base, headers=team.member_h, params={"sort": "secret"})
        assert bad_sort.status_code == 400


@pytest.mark.asyncio
async def test_generate_mitigation_and_solutions_for_assignee(api_app, client_for, team, new_project):
    replies = iter(
        [
            _chat('Here you go: {"overview": "Dual source", "responsibleRoles": [{"role": "Buyer", "responsibilities": "Find vendor"}]}'),
            _chat('["Buffer stock", "Second vendor"]'),
        ]
    )
    _llm_override(api_app, lambda request: next(replies))

    async with client_for(api_app) as client:
        _, base, risk = await _setup(client, team, new_project)
        url = f"{base}/{risk['id']}"

        mitigation = await client.post(f"{url}/mitigation", headers=team.member_h)
        assert mitigation.status_code == 200
        strategy = mitigation.json()["mitigation_strategy"]
        assert strategy["overview"] == "Dual source"
        assert strategy["responsible_roles"] == [{"role": "Buyer", "responsibilities": ["Find vendor"]}]

        solutions = await client.post(f"{url}/solutions", headers=team.member_h)
        assert solutions.json()["solutions"] == ["Buffer stock", "Second vendor"]
        assert solutions.json()["mitigation_strategy"]["overview"] == "Dual source"


@pytest.mark.asyncio
async def test_llm_failure_maps_to_bad_gateway(api_app, client_for, team, new_project):
    _llm_override(api_app, lambda request: httpx.Response(500, text="upstream down"))

    async with client_for(api_app) as client:
        _, base, risk = await _setup(client, team, new_project)
        failed = await client.post(f"{base}/{risk['id']}/mitigation", headers=team.manager_h)

    assert failed.status_code == 502
    assert "status 500" in failed.json()["detail"]


@pytest.mark.asyncio
async def test_save_edited_mitigation(api_app, client_for, team, new_project):
    async with client_for(api_app) as client:
        _, base, risk = await _setup(client, team, new_project)
        url = f"{base}/{risk['id']}/mitigation"

        saved = await client.put(
            url,
            headers=team.member_h,
            json={"mitigation_strategy": {"overview": "Manual plan", "successMetrics": ["On time"]}, "solutions": ["A"]},
        )
        assert saved.status_code == 200
        assert saved.json()["mitigation_strategy"]["success_metrics"] == ["On time"]

        solutions_only = await client.put(url, headers=team.member_h, json={"solutions": ["B", "C"]})
        body = solutions_only.json()
        assert body["solutions"] == ["B", "C"]
        assert body["mitigation_strategy"]["overview"] == "Manual plan"

        outsider = await client.put(url, headers=team.outsider_h, json={"solutions": []})
        assert outsider.status_code == 404


# ── Matrix, export, tasks, generation ─────────────────────────


@pytest.mark.asyncio
async def test_matrix_endpoints(api_app, client_for, team, new_project):
    async with client_for(api_app) as client:
        project, base, _ = await _setup(client, team, new_project)
        await client.post(base, headers=team.manager_h, json=_risk_body(title="Second"))
        matrix_url = f"/api/projects/{project['id']}/matrix"

        layout = (await client.get(matrix_url, headers=team.member_h)).json()
        assert len(layout["points"]) == 2
        first, second = layout["points"]
        assert (first["x"], first["y"]) == (375.0, 125.0)
        assert (second["x"], second["y"]) != (375.0, 125.0)

        hit = await client.get(f"{matrix_url}/at", headers=team.member_h, params={"x": 375, "y": 125})
        assert hit.json()["title"] == "Vendor delay"

        svg = await client.get(f"{matrix_url}.svg", headers=team.member_h)
        assert svg.headers["content-type"].startswith("image/svg+xml")
        assert svg.text.count("<circle") == 2


@pytest.mark.asyncio
async def test_exports(api_app, client_for, team, new_project):
    async with client_for(api_app) as client:
        project, _, _ = await _setup(client, team, new_project)
        export_url = f"/api/projects/{project['id']}/export"

        csv_resp = await client.get(f"{export_url}/csv", headers=team.member_h)
        assert csv_resp.status_code == 200
        assert 'filename="apollo_launch_risks_' in csv_resp.headers["content-disposition"]
        lines = csv_resp.text.splitlines()
        assert lines[0].startswith("Risk ID,Title,Priority")
        assert "Parts arrive late; blocking integration" in lines[1]

        pdf = await client.get(f"{export_url}/pdf", headers=team.member_h)
        assert pdf.content.startswith(b"%PDF")
        assert "_risk_assessment_report_" in pdf.headers["content-disposition"]

        html = await client.get(f"{export_url}/html", headers=team.member_h)
        assert "Vendor delay" in html.text

        assert (await client.get(f"{export_url}/docx", headers=team.member_h)).status_code == 422
        assert (await client.get(f"{export_url}/csv", headers=team.outsider_h)).status_code == 404


@pytest.mark.asyncio
async def test_tasks_lists_assigned_risks_across_projects(api_app, client_for, team, new_project):
    async with client_for(api_app) as client:
        first, base, _ = await _setup(client, team, new_project)
        await client.post(base, headers=team.manager_h, json=_risk_body(title="Not mine", assigned_to=""))
        second = await new_project(client, team.manager_h, name="Borealis")
        other = f"/api/projects/{second['id']}/risks"
        closed = (
            await client.post(other, headers=team.manager_h, json=_risk_body(title="Low one", probability=1, impact=2))
        ).json()
        await client.post(f"{other}/{closed['id']}/status", headers=team.member_h, json={"status": "closed"})

        tasks = (await client.get("/api/tasks", headers=team.member_h)).json()
        assert [t["title"] for t in tasks["tasks"]] == ["Vendor delay", "Low one"]
        assert {t["project_name"] for t in tasks["tasks"]} == {"Apollo Launch", "Borealis"}
        assert tasks["status_counts"] == {"all": 2, "open": 1, "mitigated": 0, "closed": 1}

        open_only = (await client.get("/api/tasks", headers=team.member_h, params={"status": "open"})).json()
        assert [t["title"] for t in open_only["tasks"]] == ["Vendor delay"]
        assert open_only["status_counts"]["all"] == 2

        bad = await client.get("/api/tasks", headers=team.member_h, params={"sort": "title"})
        assert bad.status_code == 400


@pytest.mark.asyncio
async def test_generation_endpoint(api_app, client_for, team, new_project):
    reply = json.dumps(
        [
            {"title": "Grid outage", "description": "d", "category": "operational", "probability": 9, "impact": 8,
             "assignedTo": "dev@example.com"},
            {"title": "Permit delay", "description": "d", "category": "legal", "probability": 3, "impact": 3},
        ]
    )

    def handler(request: httpx.Request) -> httpx.Response:
        prompt = json.loads(request.content)["messages"][0]["content"]
        if prompt.startswith("Generate a detailed mitigation strategy"):
            return _chat('{"overview": "Plan"}')
        if prompt.startswith("Generate practical solutions"):
            return _chat('["Fix it"]')
        return _chat(reply)

    _llm_override(api_app, handler)

    async with client_for(api_app) as client:
        project = await new_project(client, team.manager_h)
        url = f"/api/projects/{project['id']}/generate"

        denied = await client.post(url, headers=team.member_h, json={"count": 2})
        assert denied.status_code == 403

        result = await client.post(url, headers=team.manager_h, json={"industry": "Energy", "count": 2})
        assert result.status_code == 200
        assert result.json()["generated"] == 2

        progress = (await client.get(f"{url}/progress", headers=team.member_h)).json()
        assert progress["status"] == "idle"

        risks = (await client.get(f"/api/projects/{project['id']}/risks", headers=team.member_h)).json()
        assert {r["title"]: r["priority"] for r in risks} == {"Grid outage": "critical", "Permit delay": "low"}
        assert all(r["solutions"] == ["Fix it"] for r in risks)
        assert next(r for r in risks if r["title"] == "Grid outage")["assigned_to"] == "dev@example.com"

        cancel = await client.post(f"{url}/cancel", headers=team.manager_h)
        assert cancel.json() == {"cancel_requested": False}


@pytest.mark.asyncio
async def test_role_checks_run_before_ai_configuration(api_app, client_for, team, new_project, monkeypatch):
    monkeypatch.setattr(llm.settings, "llm_api_key", "")

    async with client_for(api_app) as client:
        project, base, _ = await _setup(client, team, new_project)
        unassigned = (
            await client.post(base, headers=team.manager_h, json=_risk_body(title="Scope creep", assigned_to=""))
        ).json()
        url = f"{base}/{unassigned['id']}"
        generate_url = f"/api/projects/{project['id']}/generate"

        assert (await client.post(f"{url}/mitigation", headers=team.outsider_h)).status_code == 404
        assert (await client.post(f"{url}/solutions", headers=team.member_h)).status_code == 403
        assert (await client.post(generate_url, headers=team.member_h, json={"count": 1})).status_code == 403

        no_key = await client.post(f"{url}/mitigation", headers=team.manager_h)
        assert no_key.status_code == 400
        assert "No AI API key configured" in no_key.json()["detail"]
