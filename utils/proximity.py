"""Proximity policy deciding whether a rating submission is accepted and verified."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from utils.geo import coerce_coordinates, haversine_meters

logger = logging.getLogger(__name__)

DEFAULT_RADIUS_METERS = 500

Coordinates = Tuple[float, float]


@dataclass(frozen=True)
class VerificationOutcome:
    """Result of evaluating one rating submission against the proximity radius.

    ``accepted`` False means the submission must not be stored. ``distance_meters``
    is None whenever either side lacked usable coordinates.
    """

    accepted: bool
    verified: bool
    radius_meters: int
    location_captured: bool
    admin_bypass: bool = False
    distance_meters: Optional[float] = None
    project_location: Optional[Coordinates] = None
    user_location: Optional[Coordinates] = None

    @property
    def rounded_distance(self) -> Optional[int]:
        if self.distance_meters is None:
            return None
        return int(round(self.distance_meters))

    def details(self) -> Optional[Dict]:
        if self.distance_meters is None:
            return None
        return {
            "distance": self.distance_meters,
            "required": self.radius_meters,
            "projectLocation": _point(self.project_location),
            "userLocation": _point(self.user_location),
        }

    def rejection_payload(self) -> Dict:
        distance = self.rounded_distance
        return {
            "error": "Proximity verification failed",
            "details": {
                "message": f"You must be within {self.radius_meters}m of the project to rate it",
                "distance": distance,
                "required": self.radius_meters,
                "actualDistance": f"{distance}m",
                "tooFar": True,
                "projectLocation": _point(self.project_location),
                "userLocation": _point(self.user_location),
            },
        }


def _point(coords: Optional[Coordinates]) -> Optional[Dict]:
    if coords is None:
        return None
    return {"lat": coords[0], "lng": coords[1]}


def evaluate(
    project,
    user_location: Optional[Coordinates],
    has_unrestricted_rating_rights: bool,
    radius_meters: int = DEFAULT_RADIUS_METERS,
) -> VerificationOutcome:
    """Decide verification and acceptance for a rating of ``project``.

    ``project`` only needs ``id``, ``latitude`` and ``longitude`` attributes.
    Accounts holding the unrestricted rating capability are always accepted and
    verified; the distance is still reported when it can be computed.
    """
    user_coords = coerce_coordinates(*user_location) if user_location is not None else None
    location_captured = user_coords is not None

    project_coords = coerce_coordinates(project.latitude, project.longitude)
    if project_coords is None and location_captured:
        logger.warning(
            "project_coordinates_malformed",
            extra={"project_id": getattr(project, "id", None), "latitude": str(project.latitude), "longitude": str(project.longitude)},
        )

    distance = None
    if user_coords is not None and project_coords is not None:
        distance = haversine_meters(project_coords[0], project_coords[1], user_coords[0], user_coords[1])

    within_radius = distance is not None and distance <= radius_meters

    if has_unrestricted_rating_rights:
        return VerificationOutcome(
            accepted=True,
            verified=True,
            radius_meters=radius_meters,
            location_captured=location_captured,
            # Inside the radius the distance alone verifies, so no bypass is reported.
            admin_bypass=not within_radius,
            distance_meters=distance,
            project_location=project_coords,
            user_location=user_coords,
        )

    if distance is None:
        # No usable location on one side: accept but leave unverified.
        return VerificationOutcome(
            accepted=True,
            verified=False,
            radius_meters=radius_meters,
            location_captured=location_captured,
            project_location=project_coords,
            user_location=user_coords,
        )

    if not within_radius:
        logger.info(
            "proximity_rejected",
            extra={"project_id": getattr(project, "id", None), "distance_m": round(distance), "radius_m": radius_meters},
        )
    return VerificationOutcome(
        accepted=within_radius,
        verified=within_radius,
        radius_meters=radius_meters,
        location_captured=location_captured,
        distance_meters=distance,
        project_location=project_coords,
        user_location=user_coords,
    )
