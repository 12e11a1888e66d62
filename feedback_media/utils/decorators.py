from functools import wraps
import hmac
from flask import current_app, request
from flask_login import current_user
from ..errors import UnauthorizedError, ForbiddenError


def role_required(role):
    def decorator(view):
        @wraps(view)
        def wrapped(*args, **kwargs):
            if not current_user.is_authenticated:
                raise UnauthorizedError("Unauthorized")
            if not current_user.has_role(role):
                raise ForbiddenError(f"Forbidden: {role} access required")
            return view(*args, **kwargs)
        return wrapped
    return decorator


def cron_secret_required(view):
    """Scheduler calls carry ``Authorization: Bearer $CRON_SECRET`` when one is configured."""
    @wraps(view)
    def wrapped(*args, **kwargs):
        secret = current_app.config.get("CRON_SECRET")
        if secret:
            header = request.headers.get("Authorization", "")
            if not hmac.compare_digest(header, f"Bearer {secret}"):
                raise UnauthorizedError("Unauthorized")
        return view(*args, **kwargs)
    return wrapped
