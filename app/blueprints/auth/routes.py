"""
Routes for the auth blueprint — session login, logout and identity.

Authentication protocols (OAuth2, SSO) are handled outside this
service.  The ``/dev-login`` route establishes a session for a seeded
user without any external identity provider and is only available
when ``DEV_LOGIN_ENABLED`` is true (never in production).
"""

import logging

from flask import current_app, request
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf

from app.blueprints.auth import bp
from app.exceptions import AuthorizationError, NotFoundError, ValidationError
from app.services import audit_service, user_service

logger = logging.getLogger(__name__)


@bp.route("/dev-login", methods=["POST"])
def dev_login():
    """
    Development-only login bypass.

    JSON body: ``{"user_id": int}`` or ``{"email": str}``.  ``user_id``
    takes precedence when both are given.

    Returns the logged-in user's identity.
    """
    if not current_app.config.get("DEV_LOGIN_ENABLED"):
        logger.warning("Rejected dev login from %s: disabled", request.remote_addr)
        raise AuthorizationError("Development login is disabled.")

    data = request.get_json(silent=True) or {}
    user_id = data.get("user_id")
    email = data.get("email")

    if user_id is not None:
        try:
            user = user_service.get_user_by_id(int(user_id))
        except (TypeError, ValueError):
            raise ValidationError("user_id must be an integer.") from None
    elif email:
        user = user_service.get_user_by_email(email)
    else:
        raise ValidationError("Provide user_id or email.")

    if user is None or not user.is_active:
        raise NotFoundError("No active user matches those credentials.")

    login_user(user)
    user_service.record_login(user)
    audit_service.log_login(user.id)
    logger.info("Dev login: %s (%s)", user.email, user.role_name)
    return {"user": user.to_dict()}


@bp.route("/logout", methods=["POST"])
@login_required
def logout():
    """End the current session."""
    user_id = current_user.id
    audit_service.log_logout(user_id)
    logout_user()
    logger.info("User %d logged out", user_id)
    return {"status": "logged_out"}


@bp.route("/me")
@login_required
def me():
    """Return the identity the session resolves to."""
    return {"user": current_user.to_dict()}


@bp.route("/csrf-token")
def csrf_token():
    """Issue a CSRF token for JSON clients (send it as ``X-CSRFToken``)."""
    return {"csrf_token": generate_csrf()}
