"""Project catalog endpoints: filtered listings, lookups and admin writes."""
import json

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user
from flask_wtf import FlaskForm
from sqlalchemy.exc import SQLAlchemyError
from wtforms import StringField
from wtforms.validators import InputRequired, Length, URL

from extensions import db
from models import AuditLog, REGIONS
from utils.catalog import (
    CatalogError,
    ProjectNotFoundError,
    ProjectValidationError,
    clear_projects,
    create_project,
    create_projects,
    delete_project,
    distinct_contractors,
    distinct_fiscal_years,
    get_project,
    import_projects_from_url,
    list_projects,
    parse_upload_items,
    update_project,
    upload_message,
    validate_many,
)
from utils.decorators import admin_required
from utils.filters import FilterValidationError, ProjectFilters
from utils.forms import form_errors, form_from_json

project_bp = Blueprint("projects", __name__)


class UrlImportForm(FlaskForm):
    url = StringField("Dataset URL", validators=[InputRequired(message="URL is required"), URL(require_tld=False), Length(max=2048)])


def _audit(action: str, context: str) -> None:
    db.session.add(
        AuditLog(
            user_id=current_user.id,
            action_type=action,
            ip_address=request.remote_addr,
            user_agent=request.headers.get("User-Agent", "unknown"),
            context_entity=context[:120],
        )
    )
    db.session.commit()


def _store_failure(message: str):
    db.session.rollback()
    current_app.logger.exception(message)
    return jsonify({"error": message}), 500


@project_bp.route("/api/projects", methods=["GET"])
def list_all():
    try:
        filters = ProjectFilters.from_args(request.args)
    except FilterValidationError as exc:
        return jsonify({"error": "Invalid filters", "details": exc.errors}), 400
    return jsonify([p.to_payload() for p in list_projects(filters)])


@project_bp.route("/api/projects/<string:project_id>", methods=["GET"])
def detail(project_id):
    try:
        project = get_project(project_id)
    except ProjectNotFoundError:
        return jsonify({"error": "Project not found"}), 404
    return jsonify(project.to_payload())


@project_bp.route("/api/projects", methods=["POST"])
@admin_required
def create():
    try:
        project = create_project(request.get_json(silent=True))
    except ProjectValidationError as exc:
        return jsonify({"error": "Invalid project data", "details": exc.errors}), 400
    except SQLAlchemyError:
        return _store_failure("Failed to create project")
    current_app.logger.info("project_created", extra={"project_id": project.id, "user_id": current_user.id})
    return jsonify(project.to_payload()), 201


@project_bp.route("/api/projects/bulk", methods=["POST"])
@admin_required
def create_bulk():
    try:
        projects = create_projects(validate_many(request.get_json(silent=True)))
    except ProjectValidationError as exc:
        return jsonify({"error": "Invalid projects data", "details": exc.errors}), 400
    except SQLAlchemyError:
        return _store_failure("Failed to create projects")
    return jsonify({"message": f"Created {len(projects)} projects", "projects": [p.to_payload() for p in projects]}), 201


@project_bp.route("/api/projects/upload", methods=["POST"])
@admin_required
def upload():
    file = request.files.get("file")
    if file is None or not file.filename:
        return jsonify({"error": "No file uploaded"}), 400
    try:
        data = json.loads(file.read().decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return jsonify({"error": "Invalid JSON file"}), 400

    try:
        payloads, skipped = parse_upload_items(data)
        projects = create_projects(payloads)
    except ProjectValidationError as exc:
        return jsonify({"error": "Failed to process uploaded file", "details": exc.errors}), 400
    except SQLAlchemyError:
        return _store_failure("Failed to store uploaded projects")

    current_app.logger.info(
        "projects_uploaded",
        extra={"count": len(projects), "skipped": skipped, "upload_name": file.filename},
    )
    return jsonify(
        {
            "message": upload_message(len(projects), skipped),
            "skipped": skipped,
            "projects": [p.to_payload() for p in projects],
        }
    )


@project_bp.route("/api/projects/load-url", methods=["POST"])
@admin_required
def load_url():
    payload = request.get_json(silent=True)
    form = form_from_json(UrlImportForm, payload if isinstance(payload, dict) else {})
    if not form.validate():
        return jsonify({"error": "Invalid URL", "details": form_errors(form)}), 400

    try:
        projects, skipped = import_projects_from_url(form.url.data.strip(), int(current_app.config.get("PROJECT_IMPORT_TIMEOUT", 30)))
    except ProjectValidationError as exc:
        return jsonify({"error": "Failed to load data from URL", "details": exc.errors}), 400
    except CatalogError as exc:
        return jsonify({"error": str(exc)}), 400
    except SQLAlchemyError:
        return _store_failure("Failed to store imported projects")

    return jsonify(
        {
            "message": upload_message(len(projects), skipped, source=" from URL"),
            "skipped": skipped,
            "projects": [p.to_payload() for p in projects],
        }
    )


@project_bp.route("/api/projects/<string:project_id>", methods=["PUT"])
@admin_required
def update(project_id):
    try:
        project = update_project(project_id, request.get_json(silent=True))
    except ProjectNotFoundError:
        return jsonify({"error": "Project not found"}), 404
    except ProjectValidationError as exc:
        return jsonify({"error": "Invalid update data", "details": exc.errors}), 400
    except SQLAlchemyError:
        return _store_failure("Failed to update project")
    return jsonify(project.to_payload())


@project_bp.route("/api/projects/<string:project_id>", methods=["DELETE"])
@admin_required
def delete(project_id):
    try:
        delete_project(project_id)
        _audit("PROJECT_DELETED", f"project:{project_id}")
    except ProjectNotFoundError:
        return jsonify({"error": "Project not found"}), 404
    except SQLAlchemyError:
        return _store_failure("Failed to delete project")
    return jsonify({"message": "Project deleted successfully"})


@project_bp.route("/api/projects", methods=["DELETE"])
@admin_required
def clear():
    try:
        count = clear_projects()
        _audit("PROJECTS_CLEARED", f"projects:{count}")
    except SQLAlchemyError:
        return _store_failure("Failed to clear projects")
    return jsonify({"message": "All projects cleared successfully", "deleted": count})


@project_bp.route("/api/contractors", methods=["GET"])
def contractors():
    return jsonify(distinct_contractors())


@project_bp.route("/api/fiscal-years", methods=["GET"])
def fiscal_years():
    return jsonify(distinct_fiscal_years())


@project_bp.route("/api/regions", methods=["GET"])
def regions():
    return jsonify(list(REGIONS))
