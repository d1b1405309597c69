"""
Authorization decorators for route-level access control.

Used together with Flask-Login's ``@login_required``::

    @bp.route('/expiring')
    @login_required
    @role_required('admin', 'manager')
    def expiring_devices():
        ...

Services repeat the capability check for the operations that mutate
state, so these decorators are a first filter rather than the only one.
"""

import logging
from functools import wraps

from flask import request
from flask_login import current_user

from app.exceptions import AuthorizationError

logger = logging.getLogger(__name__)


def role_required(*role_names: str):
    """
    Decorator that restricts access to users with one of the specified roles.

    Args:
        role_names: One or more role name strings (e.g., 'admin', 'manager').

    Raises:
        AuthorizationError: Rendered as a JSON 403 by the app's error
                            handler.
    """

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            if not current_user.has_role(*role_names):
                logger.warning(
                    "Access denied: user %s (%s) with role '%s' "
                    "attempted %s %s (requires one of: %s)",
                    current_user.id,
                    current_user.email,
                    current_user.role_name,
                    request.method,
                    request.path,
                    ", ".join(role_names),
                )
                raise AuthorizationError(
                    "You do not have permission to access this resource."
                )
            return func(*args, **kwargs)

        return wrapper

    return decorator
