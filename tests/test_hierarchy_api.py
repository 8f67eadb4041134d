import pytest
from httpx import AsyncClient

from conftest import assert_response_success, build_tree


@pytest.mark.asyncio
async def test_hierarchy_snapshot(client: AsyncClient):
    ids = await build_tree(client)
    r = await client.get("/api/v1/hierarchy")
    assert_response_success(r)
    body = r.json()
    assert [p["name"] for p in body["programs"]] == ["Acme"]
    assert [f["name"] for f in body["folders"]] == ["Design", "Delivery"]
    assert [f["position"] for f in body["folders"]] == [0, 1]
    assert len(body["courses"]) == 4
    go_live = next(c for c in body["courses"] if c["title"] == "Go Live")
    assert go_live["folder_id"] == ids["Delivery"]
    assert go_live["program_id"] == ids["program"]


@pytest.mark.asyncio
async def test_program_crud(client: AsyncClient):
    r = await client.post("/api/v1/programs", json={"name": "Globex", "type": "department"})
    assert_response_success(r, 201)
    pid = r.json()["id"]

    r = await client.patch(f"/api/v1/programs/{pid}", json={"status": "archived"})
    assert_response_success(r)
    assert r.json()["status"] == "archived"
    assert r.json()["name"] == "Globex"

    r = await client.get("/api/v1/programs")
    assert [p["id"] for p in r.json()] == [pid]

    r = await client.delete(f"/api/v1/programs/{pid}")
    assert r.status_code == 204
    r = await client.get(f"/api/v1/programs/{pid}")
    assert r.status_code == 404
    assert r.json()["success"] is False


@pytest.mark.asyncio
async def test_create_under_missing_parent(client: AsyncClient):
    r = await client.post("/api/v1/programs/999/folders", json={"name": "Nope"})
    assert r.status_code == 404
    r = await client.post("/api/v1/folders/999/lists", json={"name": "Nope"})
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_rename_folder_and_list(client: AsyncClient):
    ids = await build_tree(client)
    r = await client.patch(f"/api/v1/folders/{ids['Design']}", json={"name": "Build", "color": "#ff0000"})
    assert_response_success(r)
    assert r.json()["name"] == "Build"
    assert r.json()["color"] == "#ff0000"
    r = await client.patch(f"/api/v1/lists/{ids['Intro']}", json={"name": "Onboarding"})
    assert_response_success(r)
    assert r.json()["name"] == "Onboarding"


@pytest.mark.asyncio
async def test_move_folder_and_boundary(client: AsyncClient):
    ids = await build_tree(client)
    r = await client.post(f"/api/v1/folders/{ids['Delivery']}/move", json={"direction": "up"})
    assert_response_success(r)
    body = r.json()
    assert body["moved"] is True
    assert [(s["name"], s["position"]) for s in body["siblings"]] == [("Delivery", 0), ("Design", 1)]

    r = await client.post(f"/api/v1/folders/{ids['Delivery']}/move", json={"direction": "up"})
    assert_response_success(r)
    assert r.json()["moved"] is False
    assert [s["name"] for s in r.json()["siblings"]] == ["Delivery", "Design"]

    r = await client.get(f"/api/v1/programs/{ids['program']}/folders")
    assert [f["name"] for f in r.json()] == ["Delivery", "Design"]


@pytest.mark.asyncio
async def test_move_list_down(client: AsyncClient):
    ids = await build_tree(client)
    r = await client.post(f"/api/v1/lists/{ids['Intro']}/move", json={"direction": "down"})
    assert_response_success(r)
    assert [s["name"] for s in r.json()["siblings"]] == ["Advanced", "Intro"]
    r = await client.post(f"/api/v1/lists/{ids['Intro']}/move", json={"direction": "sideways"})
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_reorder_lists(client: AsyncClient):
    ids = await build_tree(client)
    url = f"/api/v1/folders/{ids['Design']}/lists/reorder"
    r = await client.post(url, json={"orderedIds": [ids["Advanced"], ids["Intro"]]})
    assert_response_success(r)
    assert [(l["name"], l["position"]) for l in r.json()] == [("Advanced", 0), ("Intro", 1)]

    r = await client.post(url, json={"orderedIds": [ids["Advanced"]]})
    assert r.status_code == 400
    r = await client.post(url, json={"orderedIds": [ids["Advanced"], ids["Rollout"]]})
    assert r.status_code == 400

    r = await client.get(f"/api/v1/folders/{ids['Design']}/lists")
    assert [l["name"] for l in r.json()] == ["Advanced", "Intro"]


@pytest.mark.asyncio
async def test_delete_folder_cascades_and_compacts(client: AsyncClient):
    ids = await build_tree(client)
    r = await client.post(f"/api/v1/programs/{ids['program']}/folders", json={"name": "Extra"})
    extra = r.json()["id"]
    assert r.json()["position"] == 2

    r = await client.delete(f"/api/v1/folders/{ids['Design']}")
    assert r.status_code == 204

    body = (await client.get("/api/v1/hierarchy")).json()
    assert [(f["id"], f["position"]) for f in body["folders"]] == [(ids["Delivery"], 0), (extra, 1)]
    assert [l["name"] for l in body["lists"]] == ["Rollout"]
    assert [c["title"] for c in body["courses"]] == ["Go Live"]


@pytest.mark.asyncio
async def test_delete_list_compacts_siblings(client: AsyncClient):
    ids = await build_tree(client)
    r = await client.delete(f"/api/v1/lists/{ids['Intro']}")
    assert r.status_code == 204
    r = await client.get(f"/api/v1/folders/{ids['Design']}/lists")
    assert [(l["name"], l["position"]) for l in r.json()] == [("Advanced", 0)]
    r = await client.get(f"/api/v1/courses/{ids['Welcome']}")
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_delete_program_removes_subtree(client: AsyncClient):
    ids = await build_tree(client)
    r = await client.delete(f"/api/v1/programs/{ids['program']}")
    assert r.status_code == 204
    body = (await client.get("/api/v1/hierarchy")).json()
    assert body == {"programs": [], "folders": [], "lists": [], "courses": []}


@pytest.mark.asyncio
async def test_vocabularies_are_seeded(client: AsyncClient):
    r = await client.get("/api/v1/vocabularies/statuses")
    assert_response_success(r)
    values = [s["value"] for s in r.json()]
    assert "development" in values and "archived" in values
    r = await client.get("/api/v1/vocabularies/priorities")
    assert [p["value"] for p in r.json()] == ["low", "medium", "high", "critical"]


@pytest.mark.asyncio
async def test_relocate_list_to_other_folder(client: AsyncClient):
    ids = await build_tree(client)
    r = await client.post(
        f"/api/v1/lists/{ids['Intro']}/relocate",
        json={"folderId": ids["Delivery"], "position": 0},
    )
    assert_response_success(r)
    assert r.json()["folder_id"] == ids["Delivery"]

    body = (await client.get("/api/v1/hierarchy")).json()
    positions = {l["name"]: (l["folder_id"], l["position"]) for l in body["lists"]}
    assert positions == {
        "Intro": (ids["Delivery"], 0),
        "Rollout": (ids["Delivery"], 1),
        "Advanced": (ids["Design"], 0),
    }
    welcome = next(c for c in body["courses"] if c["title"] == "Welcome")
    assert (welcome["list_id"], welcome["folder_id"]) == (ids["Intro"], ids["Delivery"])


@pytest.mark.asyncio
async def test_relocate_list_appends_and_reports_missing(client: AsyncClient):
    ids = await build_tree(client)
    r = await client.post(f"/api/v1/lists/{ids['Rollout']}/relocate", json={"folderId": ids["Design"]})
    assert_response_success(r)
    assert r.json()["position"] == 2

    r = await client.get(f"/api/v1/folders/{ids['Delivery']}/lists")
    assert r.json() == []

    r = await client.post(f"/api/v1/lists/{ids['Rollout']}/relocate", json={"folderId": 9999})
    assert r.status_code == 404
    r = await client.post(f"/api/v1/lists/{ids['Rollout']}/relocate", json={"folderId": ids["Design"], "position": -1})
    assert r.status_code == 422
