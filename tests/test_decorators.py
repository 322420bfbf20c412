"""Tests for the capability checks guarding write endpoints."""

from __future__ import annotations

import pytest
from flask import jsonify

from models import AuditLog
from utils.decorators import capability_required


@pytest.fixture
def guarded_url(app):
    @capability_required("has_unrestricted_rating_rights")
    def unrestricted_only():
        return jsonify({"ok": True})

    app.add_url_rule("/test/unrestricted-only", "unrestricted_only", unrestricted_only)
    return "/test/unrestricted-only"


class TestCapabilityRequired:
    def test_anonymous_gets_json_401(self, client, guarded_url):
        response = client.get(guarded_url)
        assert response.status_code == 401
        assert response.get_json() == {"error": "Authentication required"}
        assert AuditLog.query.count() == 0

    def test_account_with_capability_passes(self, guarded_url, login_as, make_user):
        client = login_as(make_user(admin=True))
        response = client.get(guarded_url)
        assert response.status_code == 200
        assert response.get_json() == {"ok": True}

    def test_account_without_capability_is_audited(self, guarded_url, login_as, make_user):
        user = make_user()
        client = login_as(user)
        response = client.get(guarded_url)
        assert response.status_code == 403
        assert response.get_json() == {"error": "Forbidden"}
        entry = AuditLog.query.filter_by(user_id=user.id).one()
        assert entry.action_type == "UNAUTHORIZED_ACCESS"
        assert entry.context_entity == "GET /test/unrestricted-only"
