"""
Device service — the device registry.

Authoritative store and mutator of ``Device`` records: create, direct
admin edits, delete, and the read paths used by dashboards (listing,
stats, ownership history, expiring rentals).

Workflow-driven status changes (assign, release, report, return) live
in ``request_service``; the direct edit here is the admin escape hatch
for corrections and does not check the one-pending-request invariant.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any

from sqlalchemy import func, or_

from app.exceptions import AuthorizationError, NotFoundError, ValidationError
from app.extensions import db
from app.models.device import Device
from app.models.enums import (
    RESTRICTED_STATUSES,
    DeviceCategory,
    DeviceStatus,
    DeviceType,
    RequestStatus,
    RequestType,
    parse_enum,
)
from app.models.request import DeviceRequest
from app.models.user import User
from app.services import audit_service
from app.services.unit_of_work import unit_of_work

logger = logging.getLogger(__name__)

# Fields accepted by ``create_device``.  Status always starts at
# ``available`` and assignment fields are set only by the workflow or
# by a later admin edit.
CREATE_FIELDS = frozenset(
    {
        "project",
        "project_group",
        "type",
        "device_type",
        "imei",
        "serial_number",
        "model_number",
        "received_date",
        "notes",
        "memo",
        "device_picture",
    }
)

# Fields accepted by ``update_device``.  Only the request workflow writes
# ``requested_by_id``.
UPDATE_FIELDS = CREATE_FIELDS | {
    "status",
    "assigned_to_id",
    "return_date",
    "expiration_date",
}

REQUIRED_FIELDS = ("project", "type", "project_group")

_DATE_FIELDS = frozenset({"received_date", "return_date", "expiration_date"})

# Lifecycle fields captured in audit snapshots.
_SNAPSHOT_FIELDS = (
    "project",
    "project_group",
    "type",
    "device_type",
    "imei",
    "serial_number",
    "model_number",
    "status",
    "assigned_to_id",
    "requested_by_id",
    "received_date",
    "return_date",
    "expiration_date",
    "notes",
    "memo",
)


# =========================================================================
# Read-side result types
# =========================================================================


@dataclass
class OwnershipEntry:
    """One custody period (or custody change) in a device's history."""

    request_id: int | None
    device_id: int
    user_id: int
    user_name: str
    assigned_at: datetime | None = None
    released_at: datetime | None = None
    released_by_id: int | None = None
    released_by_name: str | None = None
    release_reason: str | None = None

    def to_dict(self) -> dict:
        return {
            "request_id": self.request_id,
            "device_id": self.device_id,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "assigned_at": _iso(self.assigned_at),
            "released_at": _iso(self.released_at),
            "released_by_id": self.released_by_id,
            "released_by_name": self.released_by_name,
            "release_reason": self.release_reason,
        }


@dataclass
class ExpiringDevice:
    """An assigned device whose rental period has ended or is about to."""

    device: Device
    state: str  # "overdue" or "expiring_soon"
    days_until_expiry: int

    def to_dict(self) -> dict:
        holder = self.device.assigned_to
        return {
            "device_id": self.device.id,
            "project": self.device.project,
            "type": self.device.type.value,
            "expiration_date": _iso(self.device.expiration_date),
            "user_id": self.device.assigned_to_id,
            "user_name": holder.full_name if holder else None,
            "user_email": holder.email if holder else None,
            "state": self.state,
            "days_until_expiry": self.days_until_expiry,
        }


# =========================================================================
# Reads
# =========================================================================


def get_device(device_id: int, include_restricted: bool = True) -> Device:
    """
    Return a device by primary key.

    Args:
        device_id:          Primary key.
        include_restricted: When False, missing and stolen devices are
                            treated as off-limits for the caller.

    Raises:
        NotFoundError:      If the device does not exist.
        AuthorizationError: If the device is restricted and the caller
                            may not see restricted devices.
    """
    device = db.session.get(Device, device_id)
    if device is None:
        raise NotFoundError(f"Device {device_id} not found.")
    if not include_restricted and device.status in RESTRICTED_STATUSES:
        raise AuthorizationError("Access to this device is restricted.")
    return device


def list_devices(
    status: str | DeviceStatus | None = None,
    category: str | DeviceCategory | None = None,
    device_type: str | DeviceType | None = None,
    project: str | None = None,
    project_group: str | None = None,
    assigned_to_id: int | None = None,
    search: str | None = None,
    include_restricted: bool = True,
) -> list[Device]:
    """
    Return devices matching every supplied filter, ordered by id.

    ``project`` and ``project_group`` are case-insensitive substring
    matches; ``search`` matches project, serial number, IMEI or model
    number.  Users without the admin or manager role pass
    ``include_restricted=False`` so missing and stolen devices are
    hidden from them.

    Raises:
        ValidationError: If an enum filter has an unknown value.
    """
    query = Device.query.order_by(Device.id)

    if status:
        query = query.filter(Device.status == parse_enum(DeviceStatus, status, "status"))
    if category:
        query = query.filter(
            Device.type == parse_enum(DeviceCategory, category, "device category")
        )
    if device_type:
        query = query.filter(
            Device.device_type == parse_enum(DeviceType, device_type, "device type")
        )
    if project:
        query = query.filter(Device.project.ilike(f"%{project}%"))
    if project_group:
        query = query.filter(Device.project_group.ilike(f"%{project_group}%"))
    if assigned_to_id is not None:
        query = query.filter(Device.assigned_to_id == assigned_to_id)
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(
                Device.project.ilike(pattern),
                Device.serial_number.ilike(pattern),
                Device.imei.ilike(pattern),
                Device.model_number.ilike(pattern),
            )
        )
    if not include_restricted:
        query = query.filter(Device.status.notin_(list(RESTRICTED_STATUSES)))

    return query.all()


def get_device_stats(include_restricted: bool = True) -> dict[str, Any]:
    """
    Count devices by status and by category.

    Returns:
        ``{"total": int, "by_status": {status: count}, "by_type":
        {category: count}}``.  Every visible status appears in
        ``by_status``, zero-filled.
    """
    visible = [
        s for s in DeviceStatus if include_restricted or s not in RESTRICTED_STATUSES
    ]

    status_rows = (
        db.session.query(Device.status, func.count(Device.id))
        .filter(Device.status.in_(visible))
        .group_by(Device.status)
        .all()
    )
    type_rows = (
        db.session.query(Device.type, func.count(Device.id))
        .filter(Device.status.in_(visible))
        .group_by(Device.type)
        .all()
    )

    by_status = {s.value: 0 for s in visible}
    for status, count in status_rows:
        by_status[status.value] = count
    by_type = {category.value: count for category, count in type_rows}

    return {
        "total": sum(by_status.values()),
        "by_status": by_status,
        "by_type": by_type,
    }


def get_device_history(device_id: int) -> list[OwnershipEntry]:
    """
    Build a device's ownership history, newest first.

    Entries come from approved ``assign`` and ``release`` requests.  If
    the device is currently held by someone with no open entry in that
    list (e.g., an admin assigned it by direct edit), a synthetic entry
    for the current holder is placed first.

    Raises:
        NotFoundError: If the device does not exist.
    """
    device = get_device(device_id)

    rows = (
        DeviceRequest.query.filter(
            DeviceRequest.device_id == device.id,
            DeviceRequest.type.in_([RequestType.ASSIGN, RequestType.RELEASE]),
            DeviceRequest.status == RequestStatus.APPROVED,
        )
        .order_by(DeviceRequest.processed_at.desc(), DeviceRequest.id.desc())
        .all()
    )

    history = []
    for req in rows:
        is_release = req.type == RequestType.RELEASE
        history.append(
            OwnershipEntry(
                request_id=req.id,
                device_id=device.id,
                user_id=req.user_id,
                user_name=req.user.full_name if req.user else "Unknown User",
                assigned_at=None if is_release else req.processed_at,
                released_at=req.processed_at if is_release else None,
                released_by_id=req.processed_by_id if is_release else None,
                released_by_name=(
                    req.processed_by.full_name
                    if is_release and req.processed_by
                    else None
                ),
                release_reason=(req.reason or "User requested release")
                if is_release
                else None,
            )
        )

    if device.assigned_to_id is not None:
        has_open_entry = any(
            entry.user_id == device.assigned_to_id and entry.released_at is None
            for entry in history
        )
        if not has_open_entry:
            holder = device.assigned_to
            history.insert(
                0,
                OwnershipEntry(
                    request_id=None,
                    device_id=device.id,
                    user_id=device.assigned_to_id,
                    user_name=holder.full_name if holder else "Unknown User",
                    assigned_at=device.updated_at,
                ),
            )

    return history


def get_expiring_devices(
    within_days: int = 7,
    today: date | None = None,
) -> list[ExpiringDevice]:
    """
    Return assigned devices whose rental has expired or expires soon.

    Args:
        within_days: Size of the look-ahead window in days.
        today:       Reference date (defaults to the current UTC date).

    Returns:
        ``ExpiringDevice`` records ordered by expiration date, overdue
        devices first.

    Raises:
        ValidationError: If ``within_days`` is negative.
    """
    if within_days < 0:
        raise ValidationError("within_days must be zero or positive.")
    today = today or datetime.now(timezone.utc).date()
    cutoff = today + timedelta(days=within_days)

    devices = (
        Device.query.filter(
            Device.status == DeviceStatus.ASSIGNED,
            Device.expiration_date.isnot(None),
            Device.expiration_date <= cutoff,
        )
        .order_by(Device.expiration_date, Device.id)
        .all()
    )

    return [
        ExpiringDevice(
            device=device,
            state="overdue" if device.expiration_date < today else "expiring_soon",
            days_until_expiry=(device.expiration_date - today).days,
        )
        for device in devices
    ]


# =========================================================================
# Writes
# =========================================================================


def create_device(
    attrs: dict[str, Any],
    user_id: int | None = None,
    is_admin: bool = False,
) -> Device:
    """
    Register a new device.

    The device starts ``available`` with no assignment and no pending
    marker.

    Args:
        attrs:    Field values; ``project``, ``type`` and
                  ``project_group`` are required.
        user_id:  ID of the admin creating the device.
        is_admin: Whether the caller holds the admin role.

    Returns:
        The newly created Device.

    Raises:
        AuthorizationError: If the caller is not an admin.
        ValidationError:    If a required field is missing or a value
                            is invalid.
    """
    _require_admin(is_admin, user_id, "create devices")

    missing = [name for name in REQUIRED_FIELDS if not _has_text(attrs.get(name))]
    if missing:
        raise ValidationError(f"Required fields missing: {', '.join(missing)}")
    values = _clean_attrs(attrs, CREATE_FIELDS)
    values.setdefault("device_type", DeviceType.C_TYPE)

    with unit_of_work("create device"):
        device = Device(
            status=DeviceStatus.AVAILABLE,
            added_by_id=user_id,
            **values,
        )
        db.session.add(device)
        db.session.flush()

        audit_service.log_change(
            user_id=user_id,
            action_type="CREATE",
            entity_type="device",
            entity_id=device.id,
            new_value=device_snapshot(device),
        )

    logger.info("Created device %d (%s / %s)", device.id, device.project, device.type.value)
    return device


def update_device(
    device_id: int,
    attrs: dict[str, Any],
    user_id: int | None = None,
    is_admin: bool = False,
) -> Device:
    """
    Apply a direct admin edit to a device.

    Any editable field may be changed, including ``status`` and
    ``assigned_to_id``.  This bypasses workflow validation and does not
    enforce the one-pending-request invariant; callers composing it with
    the request workflow must preserve that themselves.

    When an edit takes an assigned device back to ``available`` and
    clears its holder, an auto-approved ``release`` request is recorded
    so the ownership history stays complete.

    Raises:
        AuthorizationError: If the caller is not an admin.
        NotFoundError:      If the device (or the new holder) is unknown.
        ValidationError:    If a field is unknown or a value is invalid.
    """
    _require_admin(is_admin, user_id, "edit devices")
    device = get_device(device_id)
    values = _clean_attrs(attrs, UPDATE_FIELDS)
    for name in REQUIRED_FIELDS:
        if name in values and not _has_text(values[name]):
            raise ValidationError(f"{name} cannot be empty.")

    previous = device_snapshot(device)
    previous_holder = (
        device.assigned_to_id if device.status == DeviceStatus.ASSIGNED else None
    )

    with unit_of_work(f"update device {device_id}"):
        for name, value in values.items():
            setattr(device, name, value)

        released = (
            previous_holder is not None
            and device.status == DeviceStatus.AVAILABLE
            and device.assigned_to_id is None
        )
        if released:
            _record_direct_release(device, previous_holder, user_id)

        current = device_snapshot(device)
        changed = {k: v for k, v in current.items() if previous.get(k) != v}
        audit_service.log_change(
            user_id=user_id,
            action_type="UPDATE",
            entity_type="device",
            entity_id=device.id,
            previous_value={k: previous.get(k) for k in changed},
            new_value=changed,
        )

    logger.info("Updated device %d fields: %s", device.id, ", ".join(sorted(values)))
    return device


def delete_device(
    device_id: int,
    user_id: int | None = None,
    is_admin: bool = False,
) -> None:
    """
    Permanently delete a device and its request history.

    Raises:
        AuthorizationError: If the caller is not an admin (checked
                            before the device is looked up).
        NotFoundError:      If the device does not exist.
    """
    _require_admin(is_admin, user_id, "delete devices")
    device = get_device(device_id)
    previous = device_snapshot(device)

    with unit_of_work(f"delete device {device_id}"):
        db.session.delete(device)
        audit_service.log_change(
            user_id=user_id,
            action_type="DELETE",
            entity_type="device",
            entity_id=device_id,
            previous_value=previous,
        )

    logger.info("Deleted device %d", device_id)


# =========================================================================
# Helpers
# =========================================================================


def device_snapshot(device: Device) -> dict[str, Any]:
    """Return the device's lifecycle and descriptive fields as plain values."""
    snapshot = {}
    for name in _SNAPSHOT_FIELDS:
        value = getattr(device, name)
        if isinstance(value, (DeviceStatus, DeviceCategory, DeviceType)):
            value = value.value
        elif isinstance(value, date):
            value = value.isoformat()
        snapshot[name] = value
    return snapshot


def _require_admin(is_admin: bool, user_id: int | None, action: str) -> None:
    if not is_admin:
        logger.warning("Access denied: user %s attempted to %s", user_id, action)
        raise AuthorizationError(f"Only administrators may {action}.")


def _record_direct_release(device: Device, holder_id: int, admin_id: int | None) -> None:
    """Insert an already-approved release request for a direct-edit release."""
    now = datetime.now(timezone.utc)
    db.session.add(
        DeviceRequest(
            device_id=device.id,
            user_id=holder_id,
            type=RequestType.RELEASE,
            status=RequestStatus.APPROVED,
            reason="Released by administrator",
            requested_at=now,
            processed_at=now,
            processed_by_id=admin_id,
        )
    )
    logger.info("Recorded direct release of device %d from user %d", device.id, holder_id)


def _has_text(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _clean_attrs(attrs: dict[str, Any], allowed: frozenset[str]) -> dict[str, Any]:
    """
    Validate and coerce a dict of device fields.

    Raises:
        ValidationError: For unknown fields or invalid values.
        NotFoundError:   If ``assigned_to_id`` names an unknown user.
    """
    unknown = sorted(set(attrs) - allowed)
    if unknown:
        raise ValidationError(f"Unknown or read-only field(s): {', '.join(unknown)}")

    values: dict[str, Any] = {}
    for name, raw in attrs.items():
        if name == "type":
            values[name] = parse_enum(DeviceCategory, raw, "device category")
        elif name == "device_type":
            values[name] = (
                parse_enum(DeviceType, raw, "device type") if raw else DeviceType.C_TYPE
            )
        elif name == "status":
            values[name] = parse_enum(DeviceStatus, raw, "status")
        elif name in _DATE_FIELDS:
            values[name] = parse_date(raw, name)
        elif name == "assigned_to_id":
            values[name] = _parse_user_id(raw)
        elif name in ("project", "project_group"):
            values[name] = raw.strip() if isinstance(raw, str) else raw
        else:
            values[name] = _optional_text(raw, name)
    return values


def _optional_text(value: Any, name: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string.")
    value = value.strip()
    return value or None


def _parse_user_id(value: Any) -> int | None:
    if value in (None, "", "null"):
        return None
    try:
        user_id = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid user id: {value!r}") from None
    if db.session.get(User, user_id) is None:
        raise NotFoundError(f"User {user_id} not found.")
    return user_id


def parse_date(value: Any, name: str) -> date | None:
    """
    Coerce an ISO date/datetime string, ``date`` or ``datetime`` to a date.

    Any time component is dropped.

    Raises:
        ValidationError: If the value cannot be parsed.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            pass
    raise ValidationError(f"Invalid date for {name}: {value!r} (expected YYYY-MM-DD).")


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None
