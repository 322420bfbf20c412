"""OAuth 2 sign-in helpers for Google and Facebook, plus account resolution."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, Optional
from urllib.parse import urlencode

import requests
from sqlalchemy.exc import IntegrityError

from extensions import db
from models import Role, User

logger = logging.getLogger(__name__)

ROLE_DESCRIPTIONS: Dict[str, str] = {
    "Citizen": "Default role for signed-in citizens",
    "Admin": "Administrator with unrestricted rating rights and catalog access",
}


class OAuthError(Exception):
    """Raised when the provider handshake or account resolution fails."""


class UsernameTakenError(Exception):
    pass


@dataclass(frozen=True)
class OAuthProvider:
    name: str
    authorize_url: str
    token_url: str
    profile_url: str
    scope: str
    client_id_key: str
    client_secret_key: str


PROVIDERS: Dict[str, OAuthProvider] = {
    "google": OAuthProvider(
        name="google",
        authorize_url="https://accounts.google.com/o/oauth2/v2/auth",
        token_url="https://oauth2.googleapis.com/token",
        profile_url="https://openidconnect.googleapis.com/v1/userinfo",
        scope="openid email profile",
        client_id_key="GOOGLE_CLIENT_ID",
        client_secret_key="GOOGLE_CLIENT_SECRET",
    ),
    "facebook": OAuthProvider(
        name="facebook",
        authorize_url="https://www.facebook.com/v18.0/dialog/oauth",
        token_url="https://graph.facebook.com/v18.0/oauth/access_token",
        profile_url="https://graph.facebook.com/me",
        scope="email public_profile",
        client_id_key="FACEBOOK_APP_ID",
        client_secret_key="FACEBOOK_APP_SECRET",
    ),
}


@dataclass(frozen=True)
class OAuthProfile:
    provider: str
    provider_id: str
    email: Optional[str]
    name: Optional[str]
    avatar: Optional[str]


def get_provider(name: str, config) -> Optional[OAuthProvider]:
    """Return the provider when it is known and has client credentials configured."""
    provider = PROVIDERS.get((name or "").lower())
    if provider is None:
        return None
    if not config.get(provider.client_id_key) or not config.get(provider.client_secret_key):
        return None
    return provider


def authorization_url(provider: OAuthProvider, client_id: str, redirect_uri: str, state: str) -> str:
    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": provider.scope,
        "state": state,
    }
    return f"{provider.authorize_url}?{urlencode(params)}"


def exchange_code(provider: OAuthProvider, code: str, redirect_uri: str, client_id: str, client_secret: str, timeout: int = 15) -> str:
    data = {
        "code": code,
        "client_id": client_id,
        "client_secret": client_secret,
        "redirect_uri": redirect_uri,
        "grant_type": "authorization_code",
    }
    try:
        response = requests.post(provider.token_url, data=data, timeout=timeout, headers={"Accept": "application/json"})
        response.raise_for_status()
        payload = response.json()
    except (requests.RequestException, ValueError) as exc:
        logger.warning("oauth_token_exchange_failed", extra={"provider": provider.name, "error": str(exc)})
        raise OAuthError("Could not complete sign-in with the provider") from exc

    token = payload.get("access_token")
    if not token:
        raise OAuthError("Provider did not return an access token")
    return token


def fetch_profile(provider: OAuthProvider, access_token: str, timeout: int = 15) -> OAuthProfile:
    params = {"fields": "id,name,email,picture.type(large)"} if provider.name == "facebook" else None
    try:
        response = requests.get(
            provider.profile_url,
            params=params,
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=timeout,
        )
        response.raise_for_status()
        data = response.json()
    except (requests.RequestException, ValueError) as exc:
        logger.warning("oauth_profile_fetch_failed", extra={"provider": provider.name, "error": str(exc)})
        raise OAuthError("Could not load the provider profile") from exc
    return parse_profile(provider.name, data)


def parse_profile(provider_name: str, data: dict) -> OAuthProfile:
    if provider_name == "google":
        provider_id = data.get("sub") or data.get("id")
        avatar = data.get("picture")
    else:
        provider_id = data.get("id")
        avatar = ((data.get("picture") or {}).get("data") or {}).get("url")
    if not provider_id:
        raise OAuthError("Provider profile is missing an id")
    return OAuthProfile(
        provider=provider_name,
        provider_id=str(provider_id),
        email=data.get("email"),
        name=data.get("name"),
        avatar=avatar,
    )


def resolve_oauth_user(profile: OAuthProfile, admin_emails: Iterable[str] = ()) -> User:
    """Find or create the account behind a provider profile and sync its role."""
    email = (profile.email or "").strip().lower() or f"{profile.provider}-{profile.provider_id}@users.noreply.invalid"
    admin_emails = {e.lower() for e in admin_emails}
    role_name = "Admin" if email in admin_emails else "Citizen"
    role = Role.get_or_create(role_name, description=ROLE_DESCRIPTIONS[role_name])

    user = User.query.filter_by(provider=profile.provider, provider_id=profile.provider_id).first()
    if user is None:
        if User.query.filter_by(email=email).first():
            raise OAuthError("An account with this email already exists with another sign-in provider")
        user = User(
            email=email,
            name=profile.name or email.split("@")[0],
            avatar=profile.avatar,
            provider=profile.provider,
            provider_id=profile.provider_id,
        )
        db.session.add(user)
        logger.info("oauth_user_created", extra={"provider": profile.provider})
    else:
        if profile.name:
            user.name = profile.name
        if profile.avatar:
            user.avatar = profile.avatar

    user.role = role
    user.last_login_at = datetime.utcnow()
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise OAuthError("Unable to sign in with the provided account") from exc
    return user


def set_username(user: User, username: Optional[str]) -> User:
    """Set or clear the public username shown instead of the provider name."""
    username = (username or "").strip() or None
    if username and User.query.filter(User.username == username, User.id != user.id).first():
        raise UsernameTakenError(username)
    user.username = username
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise UsernameTakenError(username) from exc
    return user
