"""
Shared helpers for the proficiency platform: response shaping, formatting
and the role decorators used by the blueprints.
"""
from typing import Optional, Any
from datetime import datetime, UTC
from functools import wraps

from flask import jsonify
from flask_login import current_user

from errors import Unauthorized


def ok(data: Any = None, status: int = 200):
    """Success envelope used by every JSON endpoint."""
    return jsonify({'ok': True, 'data': data}), status


def title_case_name(value: Optional[str]) -> str:
    """Capitalise each whitespace-delimited token: '  jOHN   smith' -> 'John Smith'."""
    return ' '.join(w[:1].upper() + w[1:].lower() for w in (value or '').split())


def iso_utc(value: Optional[datetime]) -> Optional[str]:
    """ISO-8601 UTC with millisecond precision and a trailing Z.

    SQLite hands back naive datetimes; those are treated as UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def role_required(*roles):
    """Require an authenticated user holding one of `roles`; anything else is 401."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not current_user.is_authenticated or getattr(current_user, 'role', None) not in roles:
                raise Unauthorized()
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def candidate_required(f):
    """Decorator restricting a route to candidate accounts.

    Usage:
        @candidate_required
        def start():
            ...
    """
    from models import ROLE_CANDIDATE
    return role_required(ROLE_CANDIDATE)(f)


def admin_required(f):
    from models import ROLE_ADMIN
    return role_required(ROLE_ADMIN)(f)
