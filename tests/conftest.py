"""
Pytest configuration and fixtures for backend testing
"""

import os

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    async_sessionmaker,
    AsyncSession,
)
from sqlalchemy.pool import NullPool

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test_coursetrack.db")

from coursetrack.db.config import get_session
from coursetrack.main import app as real_app
from coursetrack.models.hierarchy import Course, CourseList, Folder, Program
from coursetrack.models.persisted import Base as PersistedBase
from coursetrack.repositories.hierarchy_repo import HierarchyRepository
from coursetrack.services.hierarchy_store import HierarchyStore


@pytest.fixture
def sample_store() -> HierarchyStore:
    """
    Acme (1)
      Design (10): Intro (100) [1000, 1001], Advanced (101) [1002]
      Delivery (11): Rollout (102) [1003]
      Archive (12): no lists
    Globex (2): no folders
    """
    programs = [Program(id=1, name="Acme"), Program(id=2, name="Globex")]
    folders = [
        Folder(id=10, name="Design", program_id=1, position=0),
        Folder(id=11, name="Delivery", program_id=1, position=1),
        Folder(id=12, name="Archive", program_id=1, position=2),
    ]
    lists = [
        CourseList(id=100, name="Intro", folder_id=10, position=0),
        CourseList(id=101, name="Advanced", folder_id=10, position=1),
        CourseList(id=102, name="Rollout", folder_id=11, position=0),
    ]
    courses = [
        Course(id=1000, title="Welcome", list_id=100, priority="high", status="development"),
        Course(id=1001, title="Basics", list_id=100, status="storyboard"),
        Course(id=1002, title="Deep Dive", list_id=101, priority="critical"),
        Course(id=1003, title="Go Live", list_id=102, folder_id=11, program_id=1),
    ]
    return HierarchyStore.from_entities(programs, folders, lists, courses)


@pytest.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", future=True, poolclass=NullPool
    )
    async_session = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(PersistedBase.metadata.create_all)
    yield async_session
    await engine.dispose()


@pytest.fixture
async def repo(session_factory):
    async with session_factory() as session:
        yield HierarchyRepository(session)


@pytest.fixture
async def test_app(session_factory):
    async def override_session():
        async with session_factory() as session:
            yield session

    real_app.dependency_overrides[get_session] = override_session
    yield real_app
    real_app.dependency_overrides.clear()


@pytest.fixture
async def client(test_app):
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def build_tree(client: AsyncClient) -> dict:
    """Create Acme → Design/Delivery → Intro/Advanced/Rollout with four courses."""
    ids = {}
    r = await client.post("/api/v1/programs", json={"name": "Acme"})
    assert r.status_code == 201, r.text
    ids["program"] = r.json()["id"]
    for name in ("Design", "Delivery"):
        r = await client.post(f"/api/v1/programs/{ids['program']}/folders", json={"name": name})
        assert r.status_code == 201, r.text
        ids[name] = r.json()["id"]
    for folder, name in (("Design", "Intro"), ("Design", "Advanced"), ("Delivery", "Rollout")):
        r = await client.post(f"/api/v1/folders/{ids[folder]}/lists", json={"name": name})
        assert r.status_code == 201, r.text
        ids[name] = r.json()["id"]
    for list_name, title, priority in (
        ("Intro", "Welcome", "high"),
        ("Intro", "Basics", "medium"),
        ("Advanced", "Deep Dive", "critical"),
        ("Rollout", "Go Live", "low"),
    ):
        r = await client.post(
            "/api/v1/courses",
            json={"list_id": ids[list_name], "title": title, "priority": priority, "status": "development"},
        )
        assert r.status_code == 201, r.text
        ids[title] = r.json()["id"]
    return ids


def assert_response_success(response, expected_status=200):
    assert response.status_code == expected_status, f"Expected {expected_status}, got {response.status_code}: {response.text}"
