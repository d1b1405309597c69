"""
Requests blueprint — listing, resolving and cancelling device requests.
"""

from flask import Blueprint

bp = Blueprint("requests", __name__)

# Import routes after blueprint creation to avoid circular imports.
from app.blueprints.requests import routes  # noqa: E402, F401
