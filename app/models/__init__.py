"""
Model package — imports all models so Alembic and SQLAlchemy can
discover them automatically when ``flask db`` commands are run.

  - user.py    -> role, app_user
  - device.py  -> device
  - request.py -> device_request
  - audit.py   -> audit_log
  - enums.py   -> lifecycle vocabularies shared by models and services
"""

from app.models.user import Role, User  # noqa: F401
from app.models.device import Device  # noqa: F401
from app.models.request import DeviceRequest  # noqa: F401
from app.models.audit import AuditLog  # noqa: F401
