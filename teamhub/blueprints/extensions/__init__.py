from flask import Blueprint

extensions_bp = Blueprint("extensions", __name__)

from . import routes  # noqa: E402,F401
