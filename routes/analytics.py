"""Dashboard analytics, contractor rating rankings and the user leaderboard."""
from flask import Blueprint, current_app, jsonify, request

from models import Reaction
from utils.analytics import (
    CONTRACTOR_SORTS,
    DEFAULT_CACHE_MAX_ENTRIES,
    DEFAULT_CONTRACTOR_SORT,
    cached,
    compute_analytics,
    rank_contractors,
    rollup_contractors,
    rollup_project_reactions,
)
from utils.catalog import list_projects
from utils.filters import FilterValidationError, ProjectFilters
from utils.reactions import user_leaderboard

analytics_bp = Blueprint("analytics", __name__)


def _cached(namespace, key, builder):
    return cached(
        namespace,
        key,
        int(current_app.config.get("ANALYTICS_CACHE_SECONDS", 0)),
        builder,
        int(current_app.config.get("ANALYTICS_CACHE_MAX_ENTRIES", DEFAULT_CACHE_MAX_ENTRIES)),
    )


@analytics_bp.route("/api/analytics", methods=["GET"])
def dashboard_analytics():
    try:
        filters = ProjectFilters.from_args(request.args)
    except FilterValidationError as exc:
        return jsonify({"error": "Invalid filters", "details": exc.errors}), 400

    def build():
        projects = list_projects(filters)
        return compute_analytics(projects, Reaction.query.all(), filters).to_payload()

    payload = _cached("analytics", filters.cache_key(), build)
    current_app.logger.info(
        "analytics_served",
        extra={"total_projects": payload["totalProjects"], "region": filters.region},
    )
    return jsonify(payload)


@analytics_bp.route("/api/projects/by-reactions", methods=["GET"])
def projects_by_reactions():
    try:
        filters = ProjectFilters.from_args(request.args)
    except FilterValidationError as exc:
        return jsonify({"error": "Invalid filters", "details": exc.errors}), 400

    sort_by = request.args.get("sortBy") or DEFAULT_CONTRACTOR_SORT
    if sort_by not in CONTRACTOR_SORTS:
        current_app.logger.info("unknown_contractor_sort", extra={"sort_by": sort_by})
        sort_by = DEFAULT_CONTRACTOR_SORT

    def build():
        rollups = rollup_project_reactions(list_projects(filters), Reaction.query.all())
        ranked = rank_contractors(rollup_contractors(rollups.values()), sort_by)
        return [entry.to_payload() for entry in ranked]

    return jsonify(_cached("by-reactions", (sort_by, filters.cache_key()), build))


@analytics_bp.route("/api/users/leaderboard", methods=["GET"])
def leaderboard():
    limit = int(current_app.config.get("LEADERBOARD_LIMIT", 20))
    return jsonify(user_leaderboard(limit))
