"""Access checks for the catalog and settings write endpoints.

Each check names a capability flag on the User model (``is_admin``,
``has_unrestricted_rating_rights``). A signed-in account without the flag
gets a JSON 403. The attempt is logged with the missing capability and
stored as an ``UNAUTHORIZED_ACCESS`` audit row naming the request.
"""
from functools import wraps

from flask import abort, current_app, request
from flask_login import current_user, login_required

from extensions import db
from models import AuditLog


def record_forbidden_attempt(capability: str) -> None:
    current_app.logger.warning(
        "forbidden_request",
        extra={"user_id": current_user.id, "capability": capability, "path": request.path},
    )
    db.session.add(
        AuditLog(
            user_id=current_user.id,
            action_type="UNAUTHORIZED_ACCESS",
            ip_address=request.remote_addr,
            user_agent=request.headers.get("User-Agent", "unknown"),
            context_entity=f"{request.method} {request.path}"[:120],
        )
    )
    db.session.commit()


def capability_required(capability: str):
    def decorator(view_func):
        @wraps(view_func)
        @login_required
        def wrapped(*args, **kwargs):
            if getattr(current_user, capability, False):
                return view_func(*args, **kwargs)
            record_forbidden_attempt(capability)
            abort(403)

        return wrapped

    return decorator


# Catalog writes, imports and login settings.
admin_required = capability_required("is_admin")
