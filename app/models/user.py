"""
Authentication and authorization models.

Authentication itself is external to this service; these models store
the application-level identity a session resolves to and the role that
decides what the caller may do.

Role names are referenced in code, not by ID:
  - ``admin``:   manages devices and resolves requests.
  - ``manager``: read access to restricted (missing/stolen) devices.
  - ``user``:    borrows devices and submits requests.
"""

from datetime import datetime, timezone

from flask_login import UserMixin

from app.extensions import db

ROLE_ADMIN = "admin"
ROLE_MANAGER = "manager"
ROLE_USER = "user"
ALL_ROLES = (ROLE_ADMIN, ROLE_MANAGER, ROLE_USER)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(db.Model):
    """Application role assigned to users."""

    __tablename__ = "role"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    role_name = db.Column(db.String(50), unique=True, nullable=False)
    description = db.Column(db.String(200), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    # -- Relationships -----------------------------------------------------
    users = db.relationship("User", back_populates="role", lazy="dynamic")

    def __repr__(self) -> str:
        return f"<Role {self.role_name}>"


class User(UserMixin, db.Model):
    """
    Application user record.

    Inherits from ``UserMixin`` to satisfy Flask-Login requirements
    (``is_authenticated``, ``is_active``, ``get_id``).
    """

    # ``user`` is a reserved word on several backends.
    __tablename__ = "app_user"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    email = db.Column(db.String(200), unique=True, nullable=False)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    role_id = db.Column(db.Integer, db.ForeignKey("role.id"), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    last_login = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    # -- Relationships -----------------------------------------------------
    role = db.relationship("Role", back_populates="users", lazy="joined")

    # ---- Convenience properties ------------------------------------------

    @property
    def full_name(self) -> str:
        """Return the user's full display name."""
        return f"{self.first_name} {self.last_name}"

    @property
    def role_name(self) -> str:
        """Shortcut to the user's role name string."""
        return self.role.role_name if self.role else "unknown"

    @property
    def is_admin(self) -> bool:
        return self.role_name == ROLE_ADMIN

    @property
    def can_view_restricted(self) -> bool:
        """Admins and managers may see missing and stolen devices."""
        return self.role_name in (ROLE_ADMIN, ROLE_MANAGER)

    def has_role(self, *role_names: str) -> bool:
        """Check if the user has any of the given role names."""
        return self.role_name in role_names

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.full_name,
            "role": self.role_name,
            "is_admin": self.is_admin,
        }

    def __repr__(self) -> str:
        return f"<User {self.email} role={self.role_name}>"
