"""Shared test fixtures for RiskVision tests."""

from types import SimpleNamespace

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from riskvision.config import settings
from riskvision.database import Base, enable_sqlite_foreign_keys, get_session
from riskvision.models import project, risk, user  # noqa: F401
from riskvision.models.user import User


@pytest_asyncio.fixture
async def db_session():
    """Create a fresh in-memory database per test."""
    engine = create_async_engine("sqlite+aiosqlite://", echo=False)
    enable_sqlite_foreign_keys(engine.sync_engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with session_factory() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


def token_for(user: User) -> str:
    return jwt.encode({"sub": str(user.id)}, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def auth(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {token_for(user)}"}


@pytest.fixture
def make_user(db_session: AsyncSession):
    async def _make(email: str, display_name: str | None = None, **fields) -> User:
        user = User(email=email, display_name=display_name or email.split("@")[0], **fields)
        db_session.add(user)
        await db_session.commit()
        return user

    return _make


@pytest.fixture
def build_app(db_session: AsyncSession):
    """FastAPI app with the given routers and the test session wired in."""

    def _build(*routers) -> FastAPI:
        app = FastAPI()

        async def _override_session():
            yield db_session

        app.dependency_overrides[get_session] = _override_session
        for router in routers:
            app.include_router(router)
        return app

    return _build


@pytest.fixture
def client_for():
    def _client(app: FastAPI) -> AsyncClient:
        return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")

    return _client


@pytest.fixture
def auth_headers():
    return auth


@pytest.fixture
def api_app(build_app, monkeypatch):
    """Every RiskVision router, local JWT auth."""
    from riskvision.api import auth as auth_api
    from riskvision.api.auth import router as auth_router
    from riskvision.api.export import router as export_router
    from riskvision.api.generation import router as generation_router
    from riskvision.api.matrix import router as matrix_router
    from riskvision.api.profile import router as profile_router
    from riskvision.api.projects import router as projects_router
    from riskvision.api.risks import router as risks_router
    from riskvision.api.tasks import router as tasks_router

    monkeypatch.setattr(auth_api, "_supabase_enabled", False)
    return build_app(
        auth_router,
        profile_router,
        projects_router,
        risks_router,
        generation_router,
        matrix_router,
        export_router,
        tasks_router,
    )


@pytest_asyncio.fixture
async def team(make_user):
    """A manager (project owner), a regular member and someone outside the project."""
    manager = await make_user("lead@example.com", "Lead", job_title="PM")
    member = await make_user("dev@example.com", "Dev")
    outsider = await make_user("eve@example.com", "Eve")
    return SimpleNamespace(
        manager=manager,
        member=member,
        outsider=outsider,
        manager_h=auth(manager),
        member_h=auth(member),
        outsider_h=auth(outsider),
    )


async def create_project(client: AsyncClient, headers: dict, **overrides) -> dict:
    body = {
        "name": "Apollo Launch",
        "description": "Satellite ground station rollout",
        "team_members": [{"email": "dev@example.com", "display_name": "Dev", "role": "member"}],
    }
    body.update(overrides)
    resp = await client.post("/api/projects", headers=headers, json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()


@pytest.fixture
def new_project():
    return create_project
