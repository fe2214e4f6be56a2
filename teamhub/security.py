# teamhub/security.py
from functools import wraps

from flask import abort
from flask_login import current_user

from .errors import AuthorizationDenied


def roles_required(*roles):
    """Gate a view on the caller's role in their active organization."""
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            if not current_user.is_authenticated:
                abort(401)
            if current_user.role not in roles:
                raise AuthorizationDenied(f"role {current_user.role or 'none'} cannot access this resource")
            return fn(*args, **kwargs)
        return wrapper
    return decorator


def require_member(user, organization_id, *roles):
    """Return the user's membership in ``organization_id``; optionally restrict roles."""
    m = user.membership_in(organization_id) if user is not None else None
    if m is None:
        raise AuthorizationDenied("not a member of this organization")
    if roles and m.role not in roles:
        raise AuthorizationDenied(f"role {m.role} cannot perform this action")
    return m
