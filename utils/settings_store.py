"""Key/value application settings persisted in the settings table."""
from __future__ import annotations

from typing import Dict

from extensions import db
from models import Setting

DEFAULT_SETTINGS = (
    ("facebook_login_enabled", True, "Enable Facebook OAuth authentication"),
    ("google_login_enabled", True, "Enable Google OAuth authentication"),
    ("twitter_login_enabled", True, "Enable X (formerly Twitter) OAuth authentication"),
)

AUTH_SETTING_KEYS = tuple(key for key, _, _ in DEFAULT_SETTINGS)


class SettingsError(Exception):
    pass


def ensure_default_settings() -> None:
    existing = {key for (key,) in db.session.query(Setting.key).all()}
    missing = [Setting(key=key, value=value, description=description) for key, value, description in DEFAULT_SETTINGS if key not in existing]
    if missing:
        db.session.add_all(missing)
        db.session.commit()


def auth_settings() -> Dict[str, object]:
    ensure_default_settings()
    rows = Setting.query.filter(Setting.key.in_(AUTH_SETTING_KEYS)).all()
    return {row.key: row.value for row in rows}


def provider_enabled(provider: str) -> bool:
    return bool(auth_settings().get(f"{provider}_login_enabled", False))


def update_setting(key: str, value) -> Setting:
    """Update a known setting; login toggles only accept booleans."""
    if key not in AUTH_SETTING_KEYS:
        raise SettingsError(f"Unknown setting '{key}'")
    if not isinstance(value, bool):
        raise SettingsError("Value must be a boolean")
    ensure_default_settings()
    setting = Setting.query.filter_by(key=key).one()
    setting.value = value
    db.session.commit()
    return setting
