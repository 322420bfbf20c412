"""Project catalog persistence: validation, bulk loading, imports and lookups."""
from __future__ import annotations

import json
import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List, Optional, Tuple

import requests

from extensions import db
from models import DEFAULT_PROJECT_STATUS, REGIONS, Project, Reaction
from utils.analytics import invalidate_analytics_cache
from utils.filters import ProjectFilters, apply_filters, split_contractors

logger = logging.getLogger(__name__)

# Wire key -> (model attribute, required)
STRING_FIELDS: Dict[str, Tuple[str, bool]] = {
    "projectname": ("project_name", True),
    "location": ("location", True),
    "contractor": ("contractor", True),
    "fy": ("fiscal_year", True),
    "region": ("region", True),
    "start_date": ("start_date", False),
    "completion_date": ("completion_date", False),
    "other_details": ("notes", False),
    "status": ("status", False),
}

NUMERIC_FIELDS: Dict[str, Tuple[float, float]] = {
    "latitude": (-90.0, 90.0),
    "longitude": (-180.0, 180.0),
    "cost": (0.0, float("inf")),
}

# Values that make an uploaded item unusable; such items are skipped, not rejected.
UPLOAD_REQUIRED_NUMERIC = ("latitude", "longitude", "cost")


class CatalogError(Exception):
    """Raised when a catalog operation cannot be completed."""


class ProjectValidationError(CatalogError):
    def __init__(self, errors: dict):
        super().__init__("Invalid project data")
        self.errors = errors


class ProjectNotFoundError(CatalogError):
    def __init__(self, project_id):
        super().__init__(f"Project {project_id} not found")
        self.project_id = project_id


def _parse_decimal(value) -> Optional[Decimal]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        value = str(value)
    if not isinstance(value, str):
        return None
    clean = re.sub(r"[,\s]", "", value)
    try:
        number = Decimal(clean)
    except InvalidOperation:
        return None
    return number if number.is_finite() else None


def validate_project_payload(data, partial: bool = False) -> dict:
    """Return model keyword arguments for a wire-format project payload.

    With ``partial`` only the supplied keys are validated, for updates.
    """
    if not isinstance(data, dict):
        raise ProjectValidationError({"_schema": "Expected a JSON object."})

    errors: Dict[str, str] = {}
    values: dict = {}

    for key, (attribute, required) in STRING_FIELDS.items():
        if key not in data:
            if required and not partial:
                errors[key] = "This field is required."
            continue
        raw = data[key]
        if raw is None:
            if required:
                errors[key] = "This field is required."
            else:
                values[attribute] = None
            continue
        if isinstance(raw, (dict, list)):
            errors[key] = "Must be a string."
            continue
        text = str(raw).strip()
        if required and not text:
            errors[key] = "This field is required."
            continue
        values[attribute] = text or None

    for key, (low, high) in NUMERIC_FIELDS.items():
        if key not in data:
            if not partial:
                errors[key] = "This field is required."
            continue
        number = _parse_decimal(data[key])
        if number is None:
            errors[key] = "Must be a number."
        elif not (low <= float(number) <= high):
            errors[key] = "Out of range."
        else:
            values[key] = number

    if errors:
        raise ProjectValidationError(errors)

    if "status" in values or not partial:
        values["status"] = values.get("status") or DEFAULT_PROJECT_STATUS
    if values.get("region") and values["region"] not in REGIONS:
        logger.info("unknown_region_accepted", extra={"region": values["region"]})
    return values


def parse_upload_items(items) -> Tuple[List[dict], int]:
    """Validate uploaded dataset items, skipping those without coordinates or cost."""
    if isinstance(items, dict):
        items = [items]
    if not isinstance(items, list):
        raise ProjectValidationError({"_schema": "Expected a JSON array of projects."})

    payloads: List[dict] = []
    skipped = 0
    errors: Dict[str, dict] = {}
    for index, item in enumerate(items):
        if isinstance(item, dict) and any(item.get(key) is None for key in UPLOAD_REQUIRED_NUMERIC):
            skipped += 1
            continue
        try:
            payloads.append(validate_project_payload(item))
        except ProjectValidationError as exc:
            errors[str(index)] = exc.errors
    if errors:
        raise ProjectValidationError(errors)
    return payloads, skipped


def upload_message(created: int, skipped: int, source: str = "") -> str:
    verb = "loaded" if source else "uploaded"
    message = f"Successfully {verb} {created} projects{source}"
    if skipped:
        message += f" ({skipped} projects skipped due to missing coordinates or cost)"
    return message


def get_project(project_id: str) -> Project:
    project = db.session.get(Project, project_id)
    if project is None:
        raise ProjectNotFoundError(project_id)
    return project


def list_projects(filters: Optional[ProjectFilters] = None) -> List[Project]:
    projects = Project.query.order_by(Project.created_at.desc()).all()
    return apply_filters(projects, filters)


def create_project(data) -> Project:
    project = Project(**validate_project_payload(data))
    db.session.add(project)
    db.session.commit()
    invalidate_analytics_cache()
    logger.info("project_created", extra={"project_id": project.id})
    return project


def create_projects(payloads: Iterable[dict]) -> List[Project]:
    """Insert already validated payloads in a single transaction."""
    projects = [Project(**values) for values in payloads]
    db.session.add_all(projects)
    db.session.commit()
    invalidate_analytics_cache()
    logger.info("projects_bulk_created", extra={"count": len(projects)})
    return projects


def validate_many(items) -> List[dict]:
    if not isinstance(items, list):
        raise ProjectValidationError({"_schema": "Expected a JSON array of projects."})
    payloads: List[dict] = []
    errors: Dict[str, dict] = {}
    for index, item in enumerate(items):
        try:
            payloads.append(validate_project_payload(item))
        except ProjectValidationError as exc:
            errors[str(index)] = exc.errors
    if errors:
        raise ProjectValidationError(errors)
    return payloads


def update_project(project_id: str, data) -> Project:
    project = get_project(project_id)
    for attribute, value in validate_project_payload(data, partial=True).items():
        setattr(project, attribute, value)
    db.session.commit()
    invalidate_analytics_cache()
    logger.info("project_updated", extra={"project_id": project.id})
    return project


def delete_project(project_id: str) -> None:
    project = get_project(project_id)
    db.session.delete(project)
    db.session.commit()
    invalidate_analytics_cache()
    logger.info("project_deleted", extra={"project_id": project_id})


def clear_projects() -> int:
    Reaction.query.delete(synchronize_session=False)
    count = Project.query.delete(synchronize_session=False)
    db.session.commit()
    invalidate_analytics_cache()
    logger.warning("projects_cleared", extra={"count": count})
    return count


def import_projects_from_url(url: str, timeout: int = 30) -> Tuple[List[Project], int]:
    """Fetch a JSON dataset over HTTP(S) and insert its usable items."""
    if not re.match(r"^https?://", url or "", re.IGNORECASE):
        raise ProjectValidationError({"url": "Must be an http(s) URL."})
    try:
        response = requests.get(url, timeout=timeout, headers={"Accept": "application/json"})
        response.raise_for_status()
        data = response.json()
    except requests.RequestException as exc:
        logger.warning("project_import_fetch_failed", extra={"url": url, "error": str(exc)})
        raise CatalogError("Failed to fetch data from URL") from exc
    except ValueError as exc:
        raise CatalogError("URL did not return valid JSON") from exc

    payloads, skipped = parse_upload_items(data)
    projects = create_projects(payloads)
    logger.info("projects_imported", extra={"url": url, "count": len(projects), "skipped": skipped})
    return projects, skipped


def distinct_contractors() -> List[str]:
    names = set()
    for (contractor,) in db.session.query(Project.contractor).distinct():
        names.update(split_contractors(contractor))
    return sorted(names)


def distinct_fiscal_years() -> List[str]:
    rows = db.session.query(Project.fiscal_year).distinct().all()
    return sorted((fy for (fy,) in rows if fy), reverse=True)


def load_initial_dataset(path: str, replace: bool = False) -> int:
    """Seed the catalog from a JSON dataset file; returns the number inserted."""
    if Project.query.count() and not replace:
        logger.info("initial_dataset_skipped", extra={"reason": "catalog not empty"})
        return 0
    try:
        with open(path, encoding="utf-8") as handle:
            data = json.load(handle)
    except OSError as exc:
        raise CatalogError(f"Cannot read dataset at {path}") from exc
    except ValueError as exc:
        raise CatalogError(f"Dataset at {path} is not valid JSON") from exc

    if replace:
        clear_projects()
    payloads, skipped = parse_upload_items(data)
    projects = create_projects(payloads)
    logger.info("initial_dataset_loaded", extra={"path": path, "count": len(projects), "skipped": skipped})
    return len(projects)
