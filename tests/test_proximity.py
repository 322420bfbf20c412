"""Unit tests for the proximity policy."""

from __future__ import annotations

import logging
from types import SimpleNamespace

import pytest

from utils.proximity import evaluate

MANILA = (14.5995, 120.9842)
QUEZON_CITY = (14.7000, 121.0500)


def _project(lat=MANILA[0], lng=MANILA[1]):
    return SimpleNamespace(id="p-1", latitude=lat, longitude=lng)


class TestCitizenSubmissions:
    def test_identical_location_is_verified(self):
        outcome = evaluate(_project(), MANILA, has_unrestricted_rating_rights=False)
        assert outcome.accepted
        assert outcome.verified
        assert outcome.distance_meters == 0
        assert not outcome.admin_bypass

    def test_far_location_is_rejected(self):
        outcome = evaluate(_project(), QUEZON_CITY, has_unrestricted_rating_rights=False)
        assert not outcome.accepted
        assert not outcome.verified

        payload = outcome.rejection_payload()
        assert payload["error"] == "Proximity verification failed"
        details = payload["details"]
        assert details["tooFar"] is True
        assert details["required"] == 500
        assert 13_000 < details["distance"] < 13_600
        assert details["actualDistance"] == f"{details['distance']}m"
        assert details["projectLocation"] == {"lat": MANILA[0], "lng": MANILA[1]}
        assert details["userLocation"] == {"lat": QUEZON_CITY[0], "lng": QUEZON_CITY[1]}

    def test_boundary_is_inclusive(self):
        # ~0.0045 degrees of latitude is just under 500 m
        outcome = evaluate(_project(), (MANILA[0] + 0.0044, MANILA[1]), has_unrestricted_rating_rights=False)
        assert outcome.verified
        assert outcome.distance_meters < 500

    def test_no_location_is_accepted_unverified(self):
        outcome = evaluate(_project(), None, has_unrestricted_rating_rights=False)
        assert outcome.accepted
        assert not outcome.verified
        assert not outcome.location_captured
        assert outcome.details() is None

    def test_custom_radius(self):
        outcome = evaluate(_project(), QUEZON_CITY, has_unrestricted_rating_rights=False, radius_meters=20_000)
        assert outcome.verified
        assert outcome.details()["required"] == 20_000

    def test_malformed_project_coordinates_are_logged_not_rejected(self, caplog):
        with caplog.at_level(logging.WARNING, logger="utils.proximity"):
            outcome = evaluate(_project(lat="not-a-number"), MANILA, has_unrestricted_rating_rights=False)
        assert outcome.accepted
        assert not outcome.verified
        assert outcome.distance_meters is None
        assert "project_coordinates_malformed" in caplog.text


class TestUnrestrictedRatingRights:
    def test_admin_without_location_is_verified(self):
        outcome = evaluate(_project(), None, has_unrestricted_rating_rights=True)
        assert outcome.accepted
        assert outcome.verified
        assert outcome.admin_bypass

    def test_admin_beyond_radius_is_a_bypass_even_with_a_location(self):
        outcome = evaluate(_project(), QUEZON_CITY, has_unrestricted_rating_rights=True)
        assert outcome.accepted
        assert outcome.verified
        assert outcome.admin_bypass
        assert outcome.details()["distance"] == pytest.approx(outcome.distance_meters)

    def test_admin_within_radius_is_not_a_bypass(self):
        outcome = evaluate(_project(), MANILA, has_unrestricted_rating_rights=True)
        assert outcome.verified
        assert not outcome.admin_bypass
