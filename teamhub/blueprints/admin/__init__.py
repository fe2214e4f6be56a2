from flask import Blueprint

admin_bp = Blueprint('admin', __name__)

# Import route modules to register their endpoints
from . import members   # noqa: E402,F401
from . import rewards   # noqa: E402,F401
