# teamhub/blueprints/utils.py
from flask import request
from flask_login import current_user

from ..errors import ValidationFailed
from ..extensions import db
from ..models.organization import Organization


def body() -> dict:
    """JSON body of the request, or an empty dict."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def active_organization() -> Organization:
    org_id = current_user.active_organization_id
    org = db.session.get(Organization, org_id) if org_id else None
    if org is None:
        raise ValidationFailed("pick an organization first", fields={"organization": "required"})
    return org


def check_form(form):
    """Validate a FlaskForm fed from JSON or form data; raise with its field errors."""
    if not form.validate():
        fields = {name: "; ".join(errs) for name, errs in form.errors.items()}
        raise ValidationFailed("please check the highlighted fields", fields=fields)
    return form


def int_arg(name: str, default: int, lo: int = 1, hi: int = 500) -> int:
    try:
        val = int(request.args.get(name, default))
    except (TypeError, ValueError):
        val = default
    return max(lo, min(val, hi))
