"""OAuth sign-in, session and account settings blueprint."""
from datetime import datetime

from flask import Blueprint, abort, current_app, jsonify, redirect, request, session, url_for
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf import FlaskForm
from flask_wtf.csrf import generate_csrf
from sqlalchemy.exc import SQLAlchemyError
from wtforms import StringField
from wtforms.validators import Length, Optional, Regexp

from extensions import db
from models import AuditLog, User
from utils.decorators import admin_required
from utils.forms import form_errors, form_from_json
from utils.oauth import (
    OAuthError,
    UsernameTakenError,
    authorization_url,
    exchange_code,
    fetch_profile,
    get_provider,
    resolve_oauth_user,
    set_username,
)
from utils.security import generate_token, is_safe_redirect_url
from utils.settings_store import SettingsError, auth_settings, provider_enabled, update_setting

auth_bp = Blueprint("auth", __name__)


class UserSettingsForm(FlaskForm):
    username = StringField(
        "Username",
        validators=[
            Optional(),
            Length(min=3, max=20, message="Username must be between 3 and 20 characters"),
            Regexp(r"^[a-zA-Z0-9_]+$", message="Username may only contain letters, numbers and underscores"),
        ],
    )


def _enabled_provider_or_404(provider_name: str):
    provider = get_provider(provider_name, current_app.config)
    if provider is None or not provider_enabled(provider.name):
        abort(404)
    return provider


@auth_bp.route("/auth/<string:provider_name>")
def oauth_start(provider_name):
    provider = _enabled_provider_or_404(provider_name)
    state = generate_token(24)
    session["oauth_state"] = state
    next_page = request.args.get("next")
    if next_page and is_safe_redirect_url(next_page):
        session["oauth_next"] = next_page
    redirect_uri = url_for("auth.oauth_callback", provider_name=provider.name, _external=True)
    client_id = current_app.config[provider.client_id_key]
    return redirect(authorization_url(provider, client_id, redirect_uri, state))


@auth_bp.route("/auth/<string:provider_name>/callback")
def oauth_callback(provider_name):
    provider = _enabled_provider_or_404(provider_name)
    failure_url = f"/?error={provider.name}_auth_failed"

    expected_state = session.pop("oauth_state", None)
    if request.args.get("error") or not expected_state or request.args.get("state") != expected_state:
        current_app.logger.warning("oauth_callback_rejected", extra={"provider": provider.name})
        return redirect(failure_url)

    code = request.args.get("code")
    if not code:
        return redirect(failure_url)

    timeout = int(current_app.config.get("OAUTH_HTTP_TIMEOUT", 15))
    redirect_uri = url_for("auth.oauth_callback", provider_name=provider.name, _external=True)
    try:
        token = exchange_code(
            provider,
            code,
            redirect_uri,
            current_app.config[provider.client_id_key],
            current_app.config[provider.client_secret_key],
            timeout,
        )
        profile = fetch_profile(provider, token, timeout)
        user = resolve_oauth_user(profile, current_app.config.get("ADMIN_EMAILS", []))
    except OAuthError as exc:
        current_app.logger.warning("oauth_login_failed", extra={"provider": provider.name, "error": str(exc)})
        return redirect(failure_url)

    login_user(user, remember=True)
    session.permanent = True
    log_action("LOGIN", user, context=provider.name)
    db.session.commit()
    current_app.logger.info("oauth_login", extra={"user_id": user.id, "provider": provider.name})

    next_page = session.pop("oauth_next", None)
    if next_page and is_safe_redirect_url(next_page):
        return redirect(next_page)
    return redirect("/")


@auth_bp.route("/api/auth/logout", methods=["POST"])
@login_required
def logout():
    user = current_user._get_current_object()
    logout_user()
    session.clear()
    log_action("LOGOUT", user)
    db.session.commit()
    return jsonify({"success": True})


@auth_bp.route("/api/auth/user", methods=["GET"])
def current_account():
    if not current_user.is_authenticated:
        return jsonify({"error": "Not authenticated"}), 401
    return jsonify(current_user.account_payload())


@auth_bp.route("/api/auth/user/settings", methods=["PUT"])
@login_required
def update_account_settings():
    payload = request.get_json(silent=True)
    form = form_from_json(UserSettingsForm, payload if isinstance(payload, dict) else {})
    if not form.validate():
        return jsonify({"error": "Invalid settings", "details": form_errors(form)}), 400
    try:
        user = set_username(current_user._get_current_object(), form.username.data)
    except UsernameTakenError:
        return jsonify({"error": "Username is already taken"}), 409
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Database error while updating user settings")
        return jsonify({"error": "Failed to update settings"}), 500
    return jsonify(user.account_payload())


@auth_bp.route("/api/auth/settings", methods=["GET"])
def login_settings():
    return jsonify(auth_settings())


@auth_bp.route("/api/auth/settings/<string:key>", methods=["PUT"])
@admin_required
def change_login_setting(key):
    payload = request.get_json(silent=True)
    value = payload.get("value") if isinstance(payload, dict) else None
    try:
        setting = update_setting(key, value)
    except SettingsError as exc:
        return jsonify({"error": str(exc)}), 400
    log_action("SETTING_CHANGED", current_user, context=f"{key}={value}")
    db.session.commit()
    current_app.logger.info("setting_changed", extra={"key": key, "value": value, "user_id": current_user.id})
    return jsonify({setting.key: setting.value})


@auth_bp.route("/api/auth/csrf-token", methods=["GET"])
def csrf_token():
    return jsonify({"csrfToken": generate_csrf()})


def log_action(action: str, user: User | None, context: str | None = None):
    entry = AuditLog(
        user_id=user.id if user else None,
        action_type=action,
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent", "unknown"),
        context_entity=context,
        timestamp=datetime.utcnow(),
    )
    db.session.add(entry)
