"""
tests/test_api_projects.py -- Integration tests for project and entity routes.

Coverage:
  - 401 on every protected route without a session
  - Project happy path: create 201, list, get, patch, stats, delete 204 then 404
  - Ownership isolation over HTTP: another user gets 403 on project and entity routes
  - Soft-deleted entities answer 404 to their owner
  - Delete refused (409) while entities remain
  - Entity search with type, tags and text filters

Fixtures used (from conftest.py):
  - api_client: (client, email_sender)
"""

from __future__ import annotations

import pytest
from conftest import login, register_and_verify


@pytest.fixture(scope="module")
def owners(api_client):
    """Bearer headers for two verified users: (owner, stranger)."""
    client, sender = api_client
    register_and_verify(client, sender, "quinn@example.com", "quinn")
    register_and_verify(client, sender, "rosa@example.com", "rosa")
    return login(client, "quinn@example.com"), login(client, "rosa@example.com")


def _create_project(client, headers, name="Eldoria", description=None) -> dict:
    resp = client.post("/api/v1/projects", json={"name": name, "description": description}, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


def _create_entity(client, headers, project_id, **fields) -> dict:
    payload = {"type": "CHARACTER", "name": "Aria"}
    payload.update(fields)
    resp = client.post(f"/api/v1/projects/{project_id}/entities", json=payload, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestAuthRequired:
    @pytest.mark.parametrize(
        "method,path",
        [
            ("get", "/api/v1/projects"),
            ("post", "/api/v1/projects"),
            ("get", "/api/v1/projects/1"),
            ("patch", "/api/v1/projects/1"),
            ("delete", "/api/v1/projects/1"),
            ("get", "/api/v1/projects/1/stats"),
            ("get", "/api/v1/projects/1/entities"),
            ("post", "/api/v1/projects/1/entities"),
            ("get", "/api/v1/entities/1"),
            ("patch", "/api/v1/entities/1"),
            ("delete", "/api/v1/entities/1"),
        ],
    )
    def test_no_session_is_401(self, api_client, method, path) -> None:
        client, _ = api_client
        client.cookies.clear()
        kwargs = {"json": {}} if method in ("post", "patch") else {}
        resp = getattr(client, method)(path, **kwargs)
        assert resp.status_code == 401


class TestProjects:
    def test_crud(self, api_client, owners) -> None:
        client, _ = api_client
        owner, _stranger = owners

        created = _create_project(client, owner, "Crud World", "first draft")
        pid = created["id"]
        assert created["description"] == "first draft"

        listed = client.get("/api/v1/projects", headers=owner).json()
        assert pid in [p["id"] for p in listed["items"]]

        resp = client.patch(f"/api/v1/projects/{pid}", json={"name": "Crud World II"}, headers=owner)
        assert resp.status_code == 200
        assert resp.json()["name"] == "Crud World II"
        assert resp.json()["description"] == "first draft"

        stats = client.get(f"/api/v1/projects/{pid}/stats", headers=owner).json()
        assert stats["entity_count"] == 0
        assert stats["entity_count_by_type"] == {}

        assert client.delete(f"/api/v1/projects/{pid}", headers=owner).status_code == 204
        resp = client.get(f"/api/v1/projects/{pid}", headers=owner)
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "not_found"

    def test_list_only_own_projects(self, api_client, owners) -> None:
        client, _ = api_client
        owner, stranger = owners
        mine = _create_project(client, owner, "Only Mine")
        theirs = client.get("/api/v1/projects", headers=stranger).json()
        assert mine["id"] not in [p["id"] for p in theirs["items"]]

    def test_stranger_gets_403(self, api_client, owners) -> None:
        client, _ = api_client
        owner, stranger = owners
        pid = _create_project(client, owner, "Private")["id"]

        for method, path, kwargs in (
            ("get", f"/api/v1/projects/{pid}", {}),
            ("patch", f"/api/v1/projects/{pid}", {"json": {"name": "Hijacked"}}),
            ("delete", f"/api/v1/projects/{pid}", {}),
            ("get", f"/api/v1/projects/{pid}/stats", {}),
            ("get", f"/api/v1/projects/{pid}/entities", {}),
            ("post", f"/api/v1/projects/{pid}/entities", {"json": {"type": "ITEM", "name": "Loot"}}),
        ):
            resp = getattr(client, method)(path, headers=stranger, **kwargs)
            assert resp.status_code == 403, f"{method} {path}: {resp.status_code}"
            assert resp.json()["error"]["code"] == "access_denied"

        assert client.get(f"/api/v1/projects/{pid}", headers=owner).json()["name"] == "Private"

    def test_delete_refused_with_entities(self, api_client, owners) -> None:
        client, _ = api_client
        owner, _stranger = owners
        pid = _create_project(client, owner, "Populated")["id"]
        eid = _create_entity(client, owner, pid)["id"]

        resp = client.delete(f"/api/v1/projects/{pid}", headers=owner)
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "project_has_entities"

        assert client.delete(f"/api/v1/entities/{eid}", headers=owner).status_code == 204
        assert client.delete(f"/api/v1/projects/{pid}", headers=owner).status_code == 204

    def test_create_validation(self, api_client, owners) -> None:
        client, _ = api_client
        owner, _stranger = owners
        resp = client.post("/api/v1/projects", json={"name": ""}, headers=owner)
        assert resp.status_code == 422


class TestEntities:
    def test_crud_and_soft_delete(self, api_client, owners) -> None:
        client, _ = api_client
        owner, _stranger = owners
        pid = _create_project(client, owner, "Entity World")["id"]

        entity = _create_entity(client, owner, pid, summary="A ranger", tags=["hero"], metadata='{"age": 31}')
        eid = entity["id"]
        assert entity["project_id"] == pid
        assert entity["tags"] == ["hero"]

        resp = client.patch(f"/api/v1/entities/{eid}", json={"name": "Aria Stormborn"}, headers=owner)
        assert resp.status_code == 200
        assert resp.json()["name"] == "Aria Stormborn"
        assert resp.json()["summary"] == "A ranger"

        assert client.delete(f"/api/v1/entities/{eid}", headers=owner).status_code == 204
        resp = client.get(f"/api/v1/entities/{eid}", headers=owner)
        assert resp.status_code == 404
        resp = client.patch(f"/api/v1/entities/{eid}", json={"name": "Back"}, headers=owner)
        assert resp.status_code == 404

    def test_stranger_gets_403_on_entity(self, api_client, owners) -> None:
        client, _ = api_client
        owner, stranger = owners
        pid = _create_project(client, owner, "Guarded")["id"]
        eid = _create_entity(client, owner, pid)["id"]
        assert client.get(f"/api/v1/entities/{eid}", headers=stranger).status_code == 403
        assert client.patch(f"/api/v1/entities/{eid}", json={"name": "X"}, headers=stranger).status_code == 403
        assert client.delete(f"/api/v1/entities/{eid}", headers=stranger).status_code == 403
        assert client.get(f"/api/v1/entities/{eid}", headers=owner).json()["name"] == "Aria"

    def test_invalid_type_is_422(self, api_client, owners) -> None:
        client, _ = api_client
        owner, _stranger = owners
        pid = _create_project(client, owner, "Typed")["id"]
        resp = client.post(f"/api/v1/projects/{pid}/entities", json={"type": "DRAGON", "name": "X"}, headers=owner)
        assert resp.status_code == 422

    def test_search(self, api_client, owners) -> None:
        client, _ = api_client
        owner, _stranger = owners
        pid = _create_project(client, owner, "Searchable")["id"]
        _create_entity(client, owner, pid, name="Aria", tags=["hero"])
        _create_entity(client, owner, pid, type="LOCATION", name="Stormwatch", summary="Northern keep")
        _create_entity(client, owner, pid, name="Brom", tags=["villain", "smith"])

        def names(**params):
            resp = client.get(f"/api/v1/projects/{pid}/entities", params=params, headers=owner)
            assert resp.status_code == 200, resp.text
            return {e["name"] for e in resp.json()["items"]}

        assert names() == {"Aria", "Stormwatch", "Brom"}
        assert names(type="LOCATION") == {"Stormwatch"}
        assert names(tags=["hero", "smith"]) == {"Aria", "Brom"}
        assert names(search="NORTH") == {"Stormwatch"}

        page = client.get(f"/api/v1/projects/{pid}/entities", params={"size": 2}, headers=owner).json()
        assert page["total"] == 3
        assert page["total_pages"] == 2
        assert len(page["items"]) == 2

        stats = client.get(f"/api/v1/projects/{pid}/stats", headers=owner).json()
        assert stats["entity_count"] == 3
        assert stats["entity_count_by_type"] == {"CHARACTER": 2, "LOCATION": 1}
