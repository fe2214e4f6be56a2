from flask import Blueprint

presence_bp = Blueprint("presence", __name__)

from . import routes  # noqa: E402,F401
