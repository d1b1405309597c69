"""
User service — user lookup, provisioning and role assignment.

Authentication happens outside this service; these functions manage
the local user records that store the role a session resolves to.
"""

import logging
from datetime import datetime, timezone

from app.exceptions import NotFoundError, ValidationError
from app.extensions import db
from app.models.user import ALL_ROLES, Role, User
from app.services import audit_service
from app.services.unit_of_work import unit_of_work

logger = logging.getLogger(__name__)

_ROLE_DESCRIPTIONS = {
    "admin": "Manages devices and resolves requests.",
    "manager": "Can view missing and stolen devices.",
    "user": "Borrows devices and submits requests.",
}


# -- User lookup -----------------------------------------------------------


def get_user_by_id(user_id: int) -> User | None:
    """Return a user by primary key, or None if not found."""
    return db.session.get(User, user_id)


def get_user_by_email(email: str) -> User | None:
    """Return a user by email address (case-insensitive)."""
    return User.query.filter(User.email.ilike(email)).first()


def require_user(user_id: int) -> User:
    """
    Return a user by primary key.

    Raises:
        NotFoundError: If no such user exists.
    """
    user = get_user_by_id(user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found.")
    return user


# -- Roles -----------------------------------------------------------------


def ensure_roles() -> list[Role]:
    """
    Create any of the built-in roles that are missing.

    Safe to call repeatedly; existing roles are left untouched.
    """
    roles = []
    with unit_of_work("ensure roles"):
        for role_name in ALL_ROLES:
            role = Role.query.filter_by(role_name=role_name).first()
            if role is None:
                role = Role(
                    role_name=role_name,
                    description=_ROLE_DESCRIPTIONS[role_name],
                )
                db.session.add(role)
                logger.info("Created role %s", role_name)
            roles.append(role)
    return roles


# -- User creation and provisioning ----------------------------------------


def provision_user(
    email: str,
    first_name: str,
    last_name: str,
    role_name: str = "user",
    provisioned_by: int | None = None,
) -> User:
    """
    Create a new user with the specified role.

    Args:
        email:          User's email address.
        first_name:     User's first name.
        last_name:      User's last name.
        role_name:      Role to assign (defaults to ``user``).
        provisioned_by: ID of the admin who created the user, or None.

    Returns:
        The newly created User record.

    Raises:
        ValidationError: If the role is unknown or the email is taken.
    """
    role = Role.query.filter_by(role_name=role_name).first()
    if role is None:
        raise ValidationError(f"Role '{role_name}' not found.")
    if get_user_by_email(email) is not None:
        raise ValidationError(f"A user with email {email} already exists.")

    with unit_of_work(f"provision user {email}"):
        user = User(
            email=email,
            first_name=first_name,
            last_name=last_name,
            role_id=role.id,
        )
        db.session.add(user)
        db.session.flush()  # Get the user ID for audit logging.

        audit_service.log_change(
            user_id=provisioned_by,
            action_type="CREATE",
            entity_type="app_user",
            entity_id=user.id,
            new_value={
                "email": email,
                "first_name": first_name,
                "last_name": last_name,
                "role": role_name,
            },
        )

    logger.info("Provisioned user %s with role %s", email, role_name)
    return user


def update_user_role(
    user_id: int,
    new_role_name: str,
    changed_by: int | None = None,
) -> User:
    """
    Change a user's role.

    Raises:
        NotFoundError:   If the user is not found.
        ValidationError: If the role is not found.
    """
    user = require_user(user_id)
    new_role = Role.query.filter_by(role_name=new_role_name).first()
    if new_role is None:
        raise ValidationError(f"Role '{new_role_name}' not found.")

    old_role_name = user.role_name
    with unit_of_work(f"change role of user {user_id}"):
        user.role_id = new_role.id
        user.role = new_role
        audit_service.log_change(
            user_id=changed_by,
            action_type="UPDATE",
            entity_type="app_user",
            entity_id=user.id,
            previous_value={"role": old_role_name},
            new_value={"role": new_role_name},
        )

    logger.info(
        "Changed role for user %s: %s -> %s",
        user.email,
        old_role_name,
        new_role_name,
    )
    return user


def record_login(user: User) -> None:
    """Update the user's last_login timestamp."""
    user.last_login = datetime.now(timezone.utc)
    db.session.commit()
