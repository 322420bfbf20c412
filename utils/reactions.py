"""Reaction ledger: one rating per user and project, plus location capture."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func, update
from sqlalchemy.dialects import postgresql, sqlite

from extensions import db
from models import REACTION_RATINGS, Project, Reaction, User, UserLocation, generate_uuid
from utils.analytics import invalidate_analytics_cache
from utils.catalog import ProjectNotFoundError
from utils.proximity import DEFAULT_RADIUS_METERS, VerificationOutcome, evaluate

logger = logging.getLogger(__name__)

_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class ReactionServiceError(Exception):
    """Base error for reaction ledger operations."""


class ReactionValidationError(ReactionServiceError):
    def __init__(self, errors: dict):
        super().__init__("Invalid reaction data")
        self.errors = errors


class ReactionNotFoundError(ReactionServiceError):
    pass


class ProximityRejectedError(ReactionServiceError):
    """The submitted location is outside the project's verification radius."""

    def __init__(self, outcome: VerificationOutcome):
        super().__init__("Proximity verification failed")
        self.outcome = outcome


def _upsert(model, values: dict, conflict_columns: List[str], update_columns: List[str]) -> None:
    """INSERT ... ON CONFLICT DO UPDATE where the dialect supports it."""
    insert = _UPSERT_INSERTS.get(db.engine.dialect.name)
    if insert is not None:
        stmt = insert(model).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=conflict_columns,
            set_={column: stmt.excluded[column] for column in update_columns},
        )
        db.session.execute(stmt)
        return

    existing = model.query.filter_by(**{c: values[c] for c in conflict_columns}).first()
    if existing is None:
        db.session.add(model(**values))
        return
    for column in update_columns:
        setattr(existing, column, values[column])


def validate_rating(rating) -> str:
    if rating not in REACTION_RATINGS:
        raise ReactionValidationError({"rating": f"Must be one of: {', '.join(REACTION_RATINGS)}."})
    return rating


def upsert_reaction(user_id: str, project_id: str, rating: str, comment: Optional[str], verified: bool) -> Reaction:
    """Create or overwrite the single reaction of ``user_id`` on ``project_id``."""
    validate_rating(rating)
    now = datetime.utcnow()
    _upsert(
        Reaction,
        {
            "id": generate_uuid(),
            "user_id": user_id,
            "project_id": project_id,
            "rating": rating,
            "comment": comment,
            "is_proximity_verified": bool(verified),
            "created_at": now,
            "updated_at": now,
        },
        conflict_columns=["user_id", "project_id"],
        update_columns=["rating", "comment", "is_proximity_verified", "updated_at"],
    )
    db.session.commit()
    invalidate_analytics_cache()
    return Reaction.query.filter_by(user_id=user_id, project_id=project_id).one()


def record_user_location(user: User, latitude: float, longitude: float, address: Optional[str] = None) -> UserLocation:
    """Overwrite the user's stored location and mark it verified."""
    now = datetime.utcnow()
    _upsert(
        UserLocation,
        {
            "id": generate_uuid(),
            "user_id": user.id,
            "latitude": latitude,
            "longitude": longitude,
            "address": address,
            "verified_at": now,
            "created_at": now,
        },
        conflict_columns=["user_id"],
        update_columns=["latitude", "longitude", "address", "verified_at"],
    )
    user.is_location_verified = True
    user.last_location_update = now
    db.session.commit()
    logger.info("user_location_recorded", extra={"user_id": user.id})
    return UserLocation.query.filter_by(user_id=user.id).one()


def submit_rating(
    user: User,
    project_id: str,
    rating: str,
    comment: Optional[str],
    user_location: Optional[Tuple[float, float]],
    has_unrestricted_rating_rights: bool,
    radius_meters: int = DEFAULT_RADIUS_METERS,
) -> Tuple[Reaction, VerificationOutcome]:
    """Run a rating submission through the proximity policy and the ledger.

    A submitted location is stored even when the rating is then rejected.
    """
    project = db.session.get(Project, project_id)
    if project is None:
        raise ProjectNotFoundError(project_id)
    validate_rating(rating)

    if user_location is not None:
        record_user_location(user, user_location[0], user_location[1])

    outcome = evaluate(project, user_location, has_unrestricted_rating_rights, radius_meters)
    if not outcome.accepted:
        raise ProximityRejectedError(outcome)

    reaction = upsert_reaction(user.id, project.id, rating, comment, outcome.verified)
    logger.info(
        "reaction_saved",
        extra={
            "user_id": user.id,
            "project_id": project.id,
            "verified": outcome.verified,
            "admin_bypass": outcome.admin_bypass,
        },
    )
    return reaction, outcome


def reverify_reaction(user: User, reaction_id: str, radius_meters: int = DEFAULT_RADIUS_METERS) -> Tuple[Reaction, VerificationOutcome]:
    """Re-check an existing reaction against the user's current stored location."""
    reaction = Reaction.query.filter_by(id=reaction_id, user_id=user.id).first()
    if reaction is None:
        raise ReactionNotFoundError(f"Reaction {reaction_id} not found")
    location = UserLocation.query.filter_by(user_id=user.id).first()
    if location is None:
        raise ReactionServiceError("No stored location to verify against")

    outcome = evaluate(
        reaction.project,
        (float(location.latitude), float(location.longitude)),
        user.has_unrestricted_rating_rights,
        radius_meters,
    )
    # Re-verification is not a new rating: updated_at is left as is.
    db.session.execute(
        update(Reaction)
        .where(Reaction.id == reaction.id)
        .values(is_proximity_verified=outcome.verified, updated_at=Reaction.updated_at)
    )
    db.session.commit()
    invalidate_analytics_cache()
    return reaction, outcome


def list_for_project(project_id: str) -> List[Dict]:
    rows = (
        db.session.query(Reaction, User)
        .outerjoin(User, Reaction.user_id == User.id)
        .filter(Reaction.project_id == project_id)
        .order_by(Reaction.created_at.desc())
        .all()
    )
    results = []
    for reaction, user in rows:
        payload = reaction.to_payload()
        payload["user"] = user.public_payload() if user else None
        results.append(payload)
    return results


def list_for_user(user_id: str) -> List[Dict]:
    rows = (
        db.session.query(Reaction, Project)
        .join(Project, Reaction.project_id == Project.id)
        .filter(Reaction.user_id == user_id)
        .order_by(Reaction.created_at.desc())
        .all()
    )
    results = []
    for reaction, project in rows:
        payload = reaction.to_payload()
        payload["project"] = project.summary_payload()
        results.append(payload)
    return results


def user_leaderboard(limit: int = 20) -> List[Dict]:
    reaction_count = func.count(Reaction.id).label("reaction_count")
    rows = (
        db.session.query(User, reaction_count)
        .join(Reaction, Reaction.user_id == User.id)
        .group_by(User.id)
        .order_by(reaction_count.desc(), User.created_at.asc())
        .limit(limit)
        .all()
    )
    return [
        {"user": dict(user.public_payload(), provider=user.provider), "reactionCount": count}
        for user, count in rows
    ]
