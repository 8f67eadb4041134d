import pytest
from httpx import AsyncClient

from conftest import assert_response_success, build_tree


@pytest.mark.asyncio
async def test_toggle_folder_cascades(client: AsyncClient):
    ids = await build_tree(client)
    r = await client.post(
        "/api/v1/selection/toggle",
        json={"selected": [], "node": {"kind": "folder", "id": ids["Design"]}},
    )
    assert_response_success(r)
    body = r.json()
    assert body["selected"] == sorted([ids["Welcome"], ids["Basics"], ids["Deep Dive"]])
    assert body["states"][f"folder:{ids['Design']}"] == "checked"
    assert body["states"][f"program:{ids['program']}"] == "indeterminate"
    assert body["states"][f"folder:{ids['Delivery']}"] == "unchecked"


@pytest.mark.asyncio
async def test_states_prune_deleted_courses(client: AsyncClient):
    ids = await build_tree(client)
    r = await client.post("/api/v1/selection/states", json={"selected": [ids["Go Live"], 9999]})
    assert_response_success(r)
    body = r.json()
    assert body["selected"] == [ids["Go Live"]]
    assert body["states"][f"list:{ids['Rollout']}"] == "checked"


@pytest.mark.asyncio
async def test_list_level_selection(client: AsyncClient):
    ids = await build_tree(client)
    r = await client.post(
        "/api/v1/selection/toggle",
        json={"selected": [], "leafKind": "list", "node": {"kind": "program", "id": ids["program"]}},
    )
    assert_response_success(r)
    body = r.json()
    assert body["selected"] == sorted([ids["Intro"], ids["Advanced"], ids["Rollout"]])
    assert len(body["selectedCourses"]) == 4

    r = await client.post(
        "/api/v1/selection/toggle",
        json={"selected": [], "leafKind": "list", "node": {"kind": "course", "id": ids["Welcome"]}},
    )
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_toggle_unknown_node(client: AsyncClient):
    await build_tree(client)
    r = await client.post(
        "/api/v1/selection/toggle",
        json={"selected": [], "node": {"kind": "folder", "id": 9999}},
    )
    assert r.status_code == 404
