"""Blueprint registration and service-level routes."""
from flask import Blueprint, current_app, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from .analytics import analytics_bp
from .auth import auth_bp
from .projects import project_bp
from .reactions import reactions_bp

main_bp = Blueprint("main", __name__)


@main_bp.route("/health", methods=["GET"])
def health():
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError:
        current_app.logger.exception("Health check database query failed")
        return jsonify({"status": "degraded", "database": "unavailable"}), 503
    return jsonify({"status": "ok", "database": "ok"})


__all__ = ["main_bp", "auth_bp", "project_bp", "reactions_bp", "analytics_bp"]
