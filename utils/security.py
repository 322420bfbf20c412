"""Security helpers for response headers, redirects and OAuth state tokens."""
import secrets
from urllib.parse import urljoin, urlparse

from flask import request


def apply_security_headers(response, force_https: bool = False):
    """Apply security headers for a JSON API consumed by the dashboard front end."""
    csp = (
        "default-src 'self'; "
        "img-src 'self' data: https://*; "
        "connect-src 'self' https://tile.openstreetmap.org https://*.tile.openstreetmap.org; "
        "frame-ancestors 'self';"
    )
    response.headers.setdefault("Content-Security-Policy", csp)
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "SAMEORIGIN")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    # Rating submissions read the browser position
    response.headers.setdefault("Permissions-Policy", "geolocation=(self), microphone=(), camera=()")
    if force_https or request.is_secure:
        response.headers.setdefault("Strict-Transport-Security", "max-age=63072000; includeSubDomains; preload")
    return response


def is_safe_redirect_url(target: str) -> bool:
    """Validate redirect targets to prevent open redirect attacks."""
    if not target:
        return False
    ref_url = urlparse(request.host_url)
    test_url = urlparse(urljoin(request.host_url, target))
    return test_url.scheme in ("http", "https") and ref_url.netloc == test_url.netloc


def generate_token(length: int = 32) -> str:
    return secrets.token_urlsafe(length)
