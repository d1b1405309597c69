"""
Closed vocabularies for device and request lifecycle fields.

Every status, type and report kind is an ``enum.Enum`` subclassing
``str`` so members compare equal to their stored string values and
serialize cleanly to JSON via ``.value``.  Columns store the *value*
(``"available"``, ``"C-Type"``), not the member name.
"""

import enum

from app.exceptions import ValidationError
from app.extensions import db


class DeviceStatus(str, enum.Enum):
    """Lifecycle state of a physical device."""

    AVAILABLE = "available"
    ASSIGNED = "assigned"
    MISSING = "missing"
    STOLEN = "stolen"
    DEAD = "dead"
    RETURNED = "returned"
    PENDING = "pending"


# Statuses hidden from users without the admin or manager role.
RESTRICTED_STATUSES = frozenset({DeviceStatus.MISSING, DeviceStatus.STOLEN})


class DeviceCategory(str, enum.Enum):
    """Primary device classification (the ``type`` column)."""

    SMARTPHONE = "Smartphone"
    TABLET = "Tablet"
    SMARTWATCH = "Smartwatch"
    BOX = "Box"
    PC = "PC"
    ACCESSORY = "Accessory"
    OTHER = "Other"


class DeviceType(str, enum.Enum):
    """Secondary hardware classification, independent of lifecycle."""

    C_TYPE = "C-Type"
    LUNCHBOX = "Lunchbox"


class RequestType(str, enum.Enum):
    ASSIGN = "assign"
    RELEASE = "release"
    REPORT = "report"
    RETURN = "return"


class RequestStatus(str, enum.Enum):
    """``PENDING`` is the only non-terminal status."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not RequestStatus.PENDING


# Outcomes an admin may choose when resolving a request.
DECISIONS = frozenset({RequestStatus.APPROVED, RequestStatus.REJECTED})


class ReportType(str, enum.Enum):
    MISSING = "missing"
    STOLEN = "stolen"
    DEAD = "dead"

    @property
    def device_status(self) -> DeviceStatus:
        """The device status an approved report of this kind produces."""
        return DeviceStatus(self.value)


def enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Return the stored string values of an enum, in declaration order."""
    return [member.value for member in enum_cls]


def enum_column(enum_cls: type[enum.Enum], name: str, length: int = 20):
    """
    Build a portable ``db.Enum`` column type for a str-valued enum.

    ``native_enum=False`` keeps the column a VARCHAR on every backend so
    partial indexes and CHECK constraints can reference the raw values.
    """
    return db.Enum(
        enum_cls,
        name=name,
        native_enum=False,
        length=length,
        values_callable=enum_values,
        validate_strings=True,
    )


def parse_enum(enum_cls, value, field_name: str):
    """
    Coerce ``value`` to a member of ``enum_cls``.

    Accepts a member or its string value.

    Raises:
        ValidationError: If the value is missing or not allowed.
    """
    if isinstance(value, enum_cls):
        return value
    if value is None or value == "":
        raise ValidationError(f"{field_name} is required.")
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(enum_values(enum_cls))
        raise ValidationError(
            f"Invalid {field_name}: {value!r}. Allowed values: {allowed}"
        ) from None
