"""Pytest fixtures: application on in-memory SQLite, client and model factories."""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from flask import g

from app import create_app
from extensions import db
from models import Project, Reaction, Role, User, generate_uuid
from utils.analytics import invalidate_analytics_cache

MANILA = (14.5995, 120.9842)


@pytest.fixture
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.delenv("TEST_DATABASE_URL", raising=False)
    application = create_app("testing")
    invalidate_analytics_cache()
    with application.app_context():
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    """Create a user; ``admin=True`` grants the Admin role."""
    counter = {"n": 0}

    def _make(admin: bool = False, **overrides) -> User:
        counter["n"] += 1
        n = counter["n"]
        values = {
            "email": f"user{n}@example.org",
            "name": f"User {n}",
            "provider": "google",
            "provider_id": f"google-{n}",
            "role": Role.get_or_create("Admin" if admin else "Citizen"),
        }
        values.update(overrides)
        user = User(**values)
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture
def make_project(app):
    def _make(**overrides) -> Project:
        values = {
            "project_name": "Construction of Flood Control Structure",
            "location": "Tondo, Manila",
            "latitude": Decimal(str(MANILA[0])),
            "longitude": Decimal(str(MANILA[1])),
            "contractor": "Acme Builders",
            "cost": Decimal("1000000.00"),
            "fiscal_year": "2024",
            "region": "National Capital Region",
            "start_date": "2024-01-15",
            "completion_date": "2024-12-20",
            "status": "active",
        }
        values.update(overrides)
        project = Project(**values)
        db.session.add(project)
        db.session.commit()
        return project

    return _make


@pytest.fixture
def make_reaction(app):
    """Insert a reaction directly, bypassing the proximity policy."""

    def _make(user: User, project: Project, rating: str, minutes_ago: int = 0) -> Reaction:
        stamp = datetime.utcnow() - timedelta(minutes=minutes_ago)
        reaction = Reaction(
            id=generate_uuid(),
            user_id=user.id,
            project_id=project.id,
            rating=rating,
            created_at=stamp,
            updated_at=stamp,
        )
        db.session.add(reaction)
        db.session.commit()
        return reaction

    return _make


def login(client, user: User) -> None:
    with client.session_transaction() as sess:
        sess["_user_id"] = user.id
        sess["_fresh"] = True
    # Requests reuse the fixture's app context, so drop Flask-Login's cached user.
    g.pop("_login_user", None)


@pytest.fixture
def login_as(client):
    def _login(user: User):
        login(client, user)
        return client

    return _login
