"""HTTP tests for the project catalog endpoints."""

from __future__ import annotations

import io
import json

from models import AuditLog, Project, Reaction
from utils import catalog


def _body(**overrides):
    body = {
        "projectname": "Rehabilitation of Farm-to-Market Road",
        "location": "Tuguegarao City",
        "latitude": 17.6132,
        "longitude": 121.727,
        "contractor": "North Star Construction / Valley Builders",
        "cost": 12500000,
        "fy": "2024",
        "region": "Region II (Cagayan Valley)",
    }
    body.update(overrides)
    return body


class TestReads:
    def test_list_and_filter(self, client, make_project):
        make_project(region="Region I", contractor="A Corp")
        make_project(region="Region II", contractor="B Corp")

        assert len(client.get("/api/projects").get_json()) == 2
        response = client.get("/api/projects?region=Region%20II")
        assert [p["region"] for p in response.get_json()] == ["Region II"]

    def test_invalid_filter(self, client):
        response = client.get("/api/projects?minCost=cheap")
        assert response.status_code == 400
        assert "minCost" in response.get_json()["details"]

    def test_detail(self, client, make_project):
        project = make_project()
        body = client.get(f"/api/projects/{project.id}").get_json()
        assert body["projectname"] == project.project_name
        assert body["fy"] == "2024"
        assert client.get("/api/projects/missing").status_code == 404

    def test_lookups(self, client, make_project):
        make_project(contractor="B Corp / A Corp", fiscal_year="2023")
        assert client.get("/api/contractors").get_json() == ["A Corp", "B Corp"]
        assert client.get("/api/fiscal-years").get_json() == ["2023"]
        assert "National Capital Region" in client.get("/api/regions").get_json()


class TestWritesRequireAdmin:
    def test_anonymous(self, client):
        assert client.post("/api/projects", json=_body()).status_code == 401

    def test_citizen_is_forbidden_and_audited(self, login_as, make_user):
        user = make_user()
        client = login_as(user)
        assert client.delete("/api/projects").status_code == 403
        entry = AuditLog.query.filter_by(user_id=user.id).one()
        assert entry.action_type == "UNAUTHORIZED_ACCESS"
        assert entry.context_entity == "DELETE /api/projects"


class TestAdminWrites:
    def test_create_update_delete(self, login_as, make_user):
        client = login_as(make_user(admin=True))
        created = client.post("/api/projects", json=_body())
        assert created.status_code == 201
        project_id = created.get_json()["id"]
        assert created.get_json()["status"] == "active"

        updated = client.put(f"/api/projects/{project_id}", json={"status": "completed"})
        assert updated.get_json()["status"] == "completed"

        deleted = client.delete(f"/api/projects/{project_id}")
        assert deleted.get_json() == {"message": "Project deleted successfully"}
        assert Project.query.count() == 0
        assert AuditLog.query.filter_by(action_type="PROJECT_DELETED").count() == 1

    def test_create_invalid(self, login_as, make_user):
        client = login_as(make_user(admin=True))
        response = client.post("/api/projects", json=_body(latitude="north"))
        assert response.status_code == 400
        assert response.get_json()["details"] == {"latitude": "Must be a number."}

    def test_missing_project(self, login_as, make_user):
        client = login_as(make_user(admin=True))
        assert client.put("/api/projects/nope", json={"cost": 1}).status_code == 404
        assert client.delete("/api/projects/nope").status_code == 404

    def test_bulk(self, login_as, make_user):
        client = login_as(make_user(admin=True))
        response = client.post("/api/projects/bulk", json=[_body(), _body(fy="2025")])
        assert response.status_code == 201
        assert response.get_json()["message"] == "Created 2 projects"

        bad = client.post("/api/projects/bulk", json=[_body(), _body(cost=None)])
        assert bad.status_code == 400
        assert Project.query.count() == 2

    def test_upload(self, login_as, make_user):
        client = login_as(make_user(admin=True))
        payload = json.dumps([_body(), _body(latitude=None)]).encode("utf-8")
        response = client.post(
            "/api/projects/upload",
            data={"file": (io.BytesIO(payload), "projects.json")},
            content_type="multipart/form-data",
        )
        body = response.get_json()
        assert response.status_code == 200
        assert body["skipped"] == 1
        assert len(body["projects"]) == 1
        assert body["message"].startswith("Successfully uploaded 1 projects")

    def test_upload_errors(self, login_as, make_user):
        client = login_as(make_user(admin=True))
        missing = client.post("/api/projects/upload", data={}, content_type="multipart/form-data")
        assert missing.get_json() == {"error": "No file uploaded"}
        garbage = client.post(
            "/api/projects/upload",
            data={"file": (io.BytesIO(b"{not json"), "projects.json")},
            content_type="multipart/form-data",
        )
        assert garbage.get_json() == {"error": "Invalid JSON file"}

    def test_load_url(self, login_as, make_user, monkeypatch):
        client = login_as(make_user(admin=True))

        class Response:
            def raise_for_status(self):
                return None

            def json(self):
                return [_body()]

        monkeypatch.setattr(catalog.requests, "get", lambda url, **kwargs: Response())
        response = client.post("/api/projects/load-url", json={"url": "https://data.example.org/p.json"})
        assert response.status_code == 200
        assert response.get_json()["message"] == "Successfully loaded 1 projects from URL"

    def test_load_url_requires_url(self, login_as, make_user):
        client = login_as(make_user(admin=True))
        response = client.post("/api/projects/load-url", json={})
        assert response.status_code == 400
        assert response.get_json()["details"]["url"] == "URL is required"

    def test_clear(self, login_as, make_user, make_project, make_reaction):
        admin = make_user(admin=True)
        make_reaction(admin, make_project(), "standard")
        client = login_as(admin)
        response = client.delete("/api/projects")
        assert response.get_json() == {"message": "All projects cleared successfully", "deleted": 1}
        assert Reaction.query.count() == 0
