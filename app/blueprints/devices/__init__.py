"""
Devices blueprint — device registry and request submission.
"""

from flask import Blueprint

bp = Blueprint("devices", __name__)

# Import routes after blueprint creation to avoid circular imports.
from app.blueprints.devices import routes  # noqa: E402, F401
