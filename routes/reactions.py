"""Proximity-gated project reactions and user location endpoints."""
from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required
from flask_wtf import FlaskForm
from sqlalchemy.exc import SQLAlchemyError
from wtforms import FloatField, SelectField, StringField, TextAreaField
from wtforms.validators import DataRequired, InputRequired, Length, NumberRange, Optional, ValidationError

from extensions import db
from models import REACTION_RATINGS, Project
from utils.catalog import ProjectNotFoundError
from utils.forms import form_errors, form_from_json
from utils.reactions import (
    ProximityRejectedError,
    ReactionNotFoundError,
    ReactionServiceError,
    ReactionValidationError,
    list_for_project,
    list_for_user,
    record_user_location,
    reverify_reaction,
    submit_rating,
)

reactions_bp = Blueprint("reactions", __name__)


class ReactionForm(FlaskForm):
    rating = SelectField("Rating", choices=[(r, r) for r in REACTION_RATINGS], validators=[DataRequired()])
    comment = TextAreaField("Comment", validators=[Optional(), Length(max=1000)])
    latitude = FloatField("Latitude", validators=[Optional(), NumberRange(min=-90, max=90)])
    longitude = FloatField("Longitude", validators=[Optional(), NumberRange(min=-180, max=180)])

    def validate_latitude(self, field):
        if self.longitude.data is None:
            raise ValidationError("Latitude and longitude must be sent together.")

    def validate_longitude(self, field):
        if self.latitude.data is None:
            raise ValidationError("Latitude and longitude must be sent together.")


class LocationForm(FlaskForm):
    latitude = FloatField("Latitude", validators=[InputRequired(), NumberRange(min=-90, max=90)])
    longitude = FloatField("Longitude", validators=[InputRequired(), NumberRange(min=-180, max=180)])
    address = StringField("Address", validators=[Optional(), Length(max=255)])


def _radius() -> int:
    return int(current_app.config.get("PROXIMITY_RADIUS_METERS", 500))


def _flatten_reaction_body(payload: dict):
    flat = {"rating": payload.get("rating"), "comment": payload.get("comment")}
    location = payload.get("userLocation")
    if isinstance(location, dict):
        flat["latitude"] = location.get("latitude")
        flat["longitude"] = location.get("longitude")
    elif location is not None:
        return None
    return flat


@reactions_bp.route("/api/projects/<string:project_id>/reactions", methods=["GET"])
def project_reactions(project_id):
    if db.session.get(Project, project_id) is None:
        return jsonify({"error": "Project not found"}), 404
    return jsonify(list_for_project(project_id))


@reactions_bp.route("/api/projects/<string:project_id>/reactions", methods=["POST"])
@login_required
def submit_reaction(project_id):
    payload = request.get_json(silent=True)
    flat = _flatten_reaction_body(payload) if isinstance(payload, dict) else None
    if flat is None:
        return jsonify({"error": "Invalid reaction data", "details": {"_schema": "Expected a JSON object."}}), 400

    form = form_from_json(ReactionForm, flat)
    if not form.validate():
        return jsonify({"error": "Invalid reaction data", "details": form_errors(form)}), 400

    user = current_user._get_current_object()
    coords = None
    if form.latitude.data is not None and form.longitude.data is not None:
        coords = (form.latitude.data, form.longitude.data)

    try:
        reaction, outcome = submit_rating(
            user,
            project_id,
            form.rating.data,
            form.comment.data or None,
            coords,
            user.has_unrestricted_rating_rights,
            _radius(),
        )
    except ProjectNotFoundError:
        return jsonify({"error": "Project not found"}), 404
    except ReactionValidationError as exc:
        return jsonify({"error": "Invalid reaction data", "details": exc.errors}), 400
    except ProximityRejectedError as exc:
        current_app.logger.info(
            "reaction_rejected_proximity",
            extra={"user_id": user.id, "project_id": project_id, "distance_m": exc.outcome.rounded_distance},
        )
        return jsonify(exc.outcome.rejection_payload()), 400
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Database error while saving reaction", extra={"project_id": project_id})
        return jsonify({"error": "Failed to save reaction"}), 500

    body = reaction.to_payload()
    body.update(
        {
            "proximityVerified": outcome.verified,
            "locationCaptured": outcome.location_captured,
            "proximityDetails": outcome.details(),
            "isAdminBypass": outcome.admin_bypass,
        }
    )
    return jsonify(body)


@reactions_bp.route("/api/user/location", methods=["POST"])
@login_required
def update_location():
    payload = request.get_json(silent=True)
    form = form_from_json(LocationForm, payload if isinstance(payload, dict) else {})
    if not form.validate():
        return jsonify({"error": "Invalid location", "details": form_errors(form)}), 400
    try:
        location = record_user_location(
            current_user._get_current_object(),
            form.latitude.data,
            form.longitude.data,
            (form.address.data or "").strip() or None,
        )
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Database error while updating location")
        return jsonify({"error": "Failed to update location"}), 500
    return jsonify(location.to_payload())


@reactions_bp.route("/api/reactions/<string:reaction_id>/verify-proximity", methods=["POST"])
@login_required
def verify_proximity(reaction_id):
    try:
        reaction, outcome = reverify_reaction(current_user._get_current_object(), reaction_id, _radius())
    except ReactionNotFoundError:
        return jsonify({"error": "Reaction not found"}), 404
    except ReactionServiceError as exc:
        return jsonify({"error": str(exc)}), 400
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Database error while verifying proximity", extra={"reaction_id": reaction_id})
        return jsonify({"error": "Failed to verify proximity"}), 500

    return jsonify(
        {
            "verified": outcome.verified,
            "distance": outcome.rounded_distance,
            "proximityDetails": outcome.details(),
            "reaction": reaction.to_payload(),
        }
    )


@reactions_bp.route("/api/users/<string:user_id>/reactions", methods=["GET"])
def user_reactions(user_id):
    return jsonify(list_for_user(user_id))
