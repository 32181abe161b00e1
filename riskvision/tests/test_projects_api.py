from __future__ import annotations

import pytest
from sqlalchemy import select

from riskvision.models.risk import Risk


@pytest.mark.asyncio
async def test_creator_is_added_first_as_manager(api_app, client_for, team, new_project):
    async with client_for(api_app) as client:
        project = await new_project(
            client,
            team.manager_h,
            team_members=[
                {"email": "DEV@example.com", "role": "member"},
                {"email": "lead@example.com", "role": "member"},
            ],
        )

    members = project["team_members"]
    assert [m["email"] for m in members] == ["lead@example.com", "dev@example.com"]
    assert members[0]["role"] == "manager"
    assert members[0]["display_name"] == "Lead"
    assert members[1]["role"] == "member"
    assert project["owner_id"] == team.manager.id
    assert project["risk_count"] == 0


@pytest.mark.asyncio
async def test_blank_name_is_rejected(api_app, client_for, team):
    async with client_for(api_app) as client:
        resp = await client.post("/api/projects", headers=team.manager_h, json={"name": "  ", "description": "x"})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_projects_are_visible_to_team_members_only(api_app, client_for, team, new_project):
    async with client_for(api_app) as client:
        project = await new_project(client, team.manager_h)

        member_list = await client.get("/api/projects", headers=team.member_h)
        outsider_list = await client.get("/api/projects", headers=team.outsider_h)
        outsider_get = await client.get(f"/api/projects/{project['id']}", headers=team.outsider_h)
        anonymous = await client.get("/api/projects")

    assert [p["id"] for p in member_list.json()] == [project["id"]]
    assert outsider_list.json() == []
    assert outsider_get.status_code == 404
    assert anonymous.status_code == 401


@pytest.mark.asyncio
async def test_only_managers_edit_and_only_owner_deletes(api_app, client_for, team, new_project, db_session):
    async with client_for(api_app) as client:
        project = await new_project(
            client,
            team.manager_h,
            team_members=[
                {"email": "dev@example.com", "role": "member"},
                {"email": "eve@example.com", "role": "manager"},
            ],
        )
        url = f"/api/projects/{project['id']}"

        by_member = await client.put(url, headers=team.member_h, json={"name": "Renamed"})
        by_co_manager = await client.put(url, headers=team.outsider_h, json={"name": "Renamed"})
        assert by_member.status_code == 403
        assert by_co_manager.status_code == 200
        assert by_co_manager.json()["name"] == "Renamed"

        await client.post(
            f"{url}/risks", headers=team.manager_h, json={"title": "Outage", "description": "Power loss"}
        )

        assert (await client.delete(url, headers=team.outsider_h)).status_code == 403
        assert (await client.delete(url, headers=team.manager_h)).status_code == 204
        assert (await client.get(url, headers=team.manager_h)).status_code == 404

    assert (await db_session.execute(select(Risk))).scalars().all() == []


@pytest.mark.asyncio
async def test_permissions_reflect_role(api_app, client_for, team, new_project):
    async with client_for(api_app) as client:
        project = await new_project(client, team.manager_h)
        url = f"/api/projects/{project['id']}/permissions"
        manager = (await client.get(url, headers=team.manager_h)).json()
        member = (await client.get(url, headers=team.member_h)).json()

    assert manager["is_owner"] and manager["is_manager"]
    assert manager["can_delete_project"] and manager["can_generate_risks"] and manager["can_edit_risks"]
    assert member["role"] == "member"
    assert not member["is_manager"]
    assert not member["can_edit_risks"] and not member["can_delete_risks"] and not member["can_manage_team"]
    assert member["can_export"]


@pytest.mark.asyncio
async def test_team_management(api_app, client_for, team, new_project):
    async with client_for(api_app) as client:
        project = await new_project(client, team.manager_h)
        members_url = f"/api/projects/{project['id']}/members"

        denied = await client.post(members_url, headers=team.member_h, json={"email": "eve@example.com"})
        assert denied.status_code == 403

        added = await client.post(
            members_url,
            headers=team.manager_h,
            json={"email": "Eve@Example.com", "job_title": "Auditor", "project_role": "QA lead"},
        )
        assert added.status_code == 201
        assert added.json()["email"] == "eve@example.com"
        assert added.json()["role"] == "member"

        duplicate = await client.post(members_url, headers=team.manager_h, json={"email": "eve@example.com"})
        assert duplicate.status_code == 409

        promoted = await client.patch(f"{members_url}/eve@example.com", headers=team.manager_h, json={"role": "manager"})
        assert promoted.json()["role"] == "manager"

        owner_demote = await client.patch(
            f"{members_url}/lead@example.com", headers=team.outsider_h, json={"role": "member"}
        )
        assert owner_demote.status_code == 400
        owner_remove = await client.delete(f"{members_url}/lead@example.com", headers=team.outsider_h)
        assert owner_remove.status_code == 400

        removed = await client.delete(f"{members_url}/dev@example.com", headers=team.manager_h)
        assert removed.status_code == 204
        missing = await client.delete(f"{members_url}/dev@example.com", headers=team.manager_h)
        assert missing.status_code == 404

        # A removed member loses access.
        gone = await client.get(f"/api/projects/{project['id']}", headers=team.member_h)
        assert gone.status_code == 404
