"""Tests for catalog validation, bulk loading and lookups."""

from __future__ import annotations

import json

import pytest
import requests

from models import Project, Reaction
from utils import catalog
from utils.catalog import (
    CatalogError,
    ProjectNotFoundError,
    ProjectValidationError,
    clear_projects,
    create_project,
    distinct_contractors,
    distinct_fiscal_years,
    import_projects_from_url,
    load_initial_dataset,
    parse_upload_items,
    update_project,
    upload_message,
    validate_project_payload,
)


def _item(**overrides):
    item = {
        "projectname": "Slope Protection Along National Road",
        "location": "Baguio City",
        "latitude": 16.4023,
        "longitude": 120.596,
        "contractor": "Highland Works",
        "cost": "25,000,000.50",
        "fy": "2023",
        "region": "Cordillera Administrative Region",
        "start_date": "2023-02-01",
    }
    item.update(overrides)
    return item


class TestValidation:
    def test_valid_payload_maps_to_model_fields(self):
        values = validate_project_payload(_item(other_details="phase 2"))
        assert values["project_name"] == "Slope Protection Along National Road"
        assert values["fiscal_year"] == "2023"
        assert values["notes"] == "phase 2"
        assert str(values["cost"]) == "25000000.50"
        assert values["status"] == "active"

    def test_missing_and_bad_fields_are_reported_together(self):
        with pytest.raises(ProjectValidationError) as excinfo:
            validate_project_payload(_item(projectname="  ", latitude=120, cost="a lot", region=None))
        assert set(excinfo.value.errors) == {"projectname", "latitude", "cost", "region"}

    def test_partial_update_validates_only_supplied_keys(self):
        assert validate_project_payload({"cost": 10}, partial=True) == {"cost": 10}

    def test_non_object(self):
        with pytest.raises(ProjectValidationError):
            validate_project_payload(["not", "an", "object"])


class TestUploads:
    def test_items_without_coordinates_or_cost_are_skipped(self):
        payloads, skipped = parse_upload_items([_item(), _item(latitude=None), _item(cost=None)])
        assert len(payloads) == 1
        assert skipped == 2

    def test_single_object_is_accepted(self):
        payloads, skipped = parse_upload_items(_item())
        assert (len(payloads), skipped) == (1, 0)

    def test_errors_are_keyed_by_index(self):
        with pytest.raises(ProjectValidationError) as excinfo:
            parse_upload_items([_item(), _item(region="")])
        assert list(excinfo.value.errors) == ["1"]

    def test_messages(self):
        assert upload_message(3, 0) == "Successfully uploaded 3 projects"
        assert upload_message(2, 1, " from URL") == (
            "Successfully loaded 2 projects from URL (1 projects skipped due to missing coordinates or cost)"
        )


class TestPersistence:
    def test_create_and_update(self, app):
        project = create_project(_item())
        updated = update_project(project.id, {"status": "completed", "cost": 5})
        assert updated.status == "completed"
        assert float(updated.cost) == 5
        assert updated.project_name == "Slope Protection Along National Road"

    def test_update_missing_project(self, app):
        with pytest.raises(ProjectNotFoundError):
            update_project("nope", {"cost": 1})

    def test_clear_removes_reactions_too(self, make_user, make_project, make_reaction):
        make_reaction(make_user(), make_project(), "ghost")
        make_project()
        assert clear_projects() == 2
        assert Project.query.count() == 0
        assert Reaction.query.count() == 0

    def test_distinct_lookups(self, make_project):
        make_project(contractor="B Corp / A Corp", fiscal_year="2022")
        make_project(contractor="A Corp", fiscal_year="2024")
        make_project(contractor="C Corp", fiscal_year="2023")
        assert distinct_contractors() == ["A Corp", "B Corp", "C Corp"]
        assert distinct_fiscal_years() == ["2024", "2023", "2022"]


class TestInitialDataset:
    def test_loads_into_empty_catalog_only(self, app, tmp_path):
        path = tmp_path / "projects.json"
        path.write_text(json.dumps([_item(), _item(fy="2024"), _item(longitude=None)]), encoding="utf-8")

        assert load_initial_dataset(str(path)) == 2
        assert load_initial_dataset(str(path)) == 0
        assert load_initial_dataset(str(path), replace=True) == 2
        assert Project.query.count() == 2

    def test_unreadable_file(self, app, tmp_path):
        with pytest.raises(CatalogError):
            load_initial_dataset(str(tmp_path / "missing.json"))


class _FakeResponse:
    def __init__(self, payload, status=200):
        self._payload = payload
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self._payload


class TestUrlImport:
    def test_imports_usable_items(self, app, monkeypatch):
        calls = []

        def fake_get(url, **kwargs):
            calls.append(url)
            return _FakeResponse([_item(), _item(cost=None)])

        monkeypatch.setattr(catalog.requests, "get", fake_get)
        projects, skipped = import_projects_from_url("https://data.example.org/projects.json")
        assert calls == ["https://data.example.org/projects.json"]
        assert len(projects) == 1
        assert skipped == 1

    def test_http_failure(self, app, monkeypatch):
        monkeypatch.setattr(catalog.requests, "get", lambda url, **kwargs: _FakeResponse(None, status=502))
        with pytest.raises(CatalogError, match="Failed to fetch"):
            import_projects_from_url("https://data.example.org/projects.json")
        assert Project.query.count() == 0

    def test_rejects_non_http_scheme(self, app):
        with pytest.raises(ProjectValidationError):
            import_projects_from_url("file:///etc/passwd")
