"""
Flask extension instances.

Extensions are created here without binding to an application so that
the application factory can call ``init_app()`` on each one during
``create_app()``.  Models and services import ``db`` from here.
"""

from flask_login import LoginManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from flask_wtf.csrf import CSRFProtect

# -- Database ORM ----------------------------------------------------------
db = SQLAlchemy()

# -- Schema migrations (Alembic via Flask-Migrate) -------------------------
migrate = Migrate()

# -- Session-based authentication ------------------------------------------
# The API answers unauthenticated calls with a JSON 401 (see
# ``_register_extensions``) instead of redirecting to a login view.
login_manager = LoginManager()
login_manager.session_protection = "strong"

# -- CSRF protection for state-changing requests ---------------------------
# JSON clients send the token from ``/auth/csrf-token`` in the
# ``X-CSRFToken`` header.
csrf = CSRFProtect()
