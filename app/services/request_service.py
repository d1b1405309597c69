"""
Request service — the request workflow engine.

Validates, creates and resolves ``DeviceRequest`` records and applies
the matching device mutation in the same transaction.  Each public
write runs inside one ``unit_of_work``: the request row, the device
row and the audit entry commit together or not at all.

Concurrency:
  - Submission locks the device row (``SELECT ... FOR UPDATE`` where
    the backend supports it).  The partial unique index on pending
    requests backs this up: a racing duplicate insert fails at flush
    with ``IntegrityError``, reported as ``DuplicateRequestError``.
  - Resolution and cancellation claim the request with a
    compare-and-set ``UPDATE ... WHERE status = 'pending'``.  Zero rows
    updated means another caller resolved it first.
"""

import logging
from collections.abc import Callable
from datetime import date, datetime, timedelta, timezone
from typing import Any

from sqlalchemy.exc import IntegrityError

from app import signals
from app.exceptions import (
    AuthorizationError,
    DuplicateRequestError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from app.extensions import db
from app.models.device import Device
from app.models.enums import (
    DECISIONS,
    DeviceStatus,
    ReportType,
    RequestStatus,
    RequestType,
    parse_enum,
)
from app.models.request import MAX_RENTAL_DAYS, MIN_RENTAL_DAYS, DeviceRequest
from app.services import audit_service
from app.services.device_service import device_snapshot, parse_date
from app.services.unit_of_work import unit_of_work

logger = logging.getLogger(__name__)

DUPLICATE_MESSAGE = "There is already a pending request for this device"
DEFAULT_RETURN_REASON = "Device returned to warehouse"
MIN_REPORT_REASON = 10
MAX_REASON = 500


# =========================================================================
# Reads
# =========================================================================


def get_request(request_id: int) -> DeviceRequest:
    """
    Return a request by primary key.

    Raises:
        NotFoundError: If the request does not exist.
    """
    req = db.session.get(DeviceRequest, request_id)
    if req is None:
        raise NotFoundError(f"Request {request_id} not found.")
    return req


def get_pending_request_for_device(device_id: int) -> DeviceRequest | None:
    """Return the device's pending request, or None."""
    return DeviceRequest.query.filter_by(
        device_id=device_id, status=RequestStatus.PENDING
    ).first()


def list_requests(
    status: str | RequestStatus | None = None,
    request_type: str | RequestType | None = None,
    device_id: int | None = None,
    user_id: int | None = None,
) -> list[DeviceRequest]:
    """
    Return requests matching every supplied filter, newest first.

    Raises:
        ValidationError: If an enum filter has an unknown value.
    """
    query = DeviceRequest.query.order_by(
        DeviceRequest.requested_at.desc(), DeviceRequest.id.desc()
    )
    if status:
        query = query.filter(
            DeviceRequest.status == parse_enum(RequestStatus, status, "status")
        )
    if request_type:
        query = query.filter(
            DeviceRequest.type == parse_enum(RequestType, request_type, "request type")
        )
    if device_id is not None:
        query = query.filter(DeviceRequest.device_id == device_id)
    if user_id is not None:
        query = query.filter(DeviceRequest.user_id == user_id)
    return query.all()


# =========================================================================
# Submission
# =========================================================================


def submit_request(
    device_id: int,
    user_id: int,
    request_type: str | RequestType,
    payload: dict[str, Any] | None = None,
    is_admin: bool = False,
) -> DeviceRequest:
    """
    Create a pending request against a device.

    Args:
        device_id:    Target device.
        user_id:      Requesting user.
        request_type: ``assign``, ``release``, ``report`` or ``return``.
        payload:      Optional ``reason``, ``report_type`` and
                      ``rental_period_days``.
        is_admin:     Whether the requester is an admin (lets an admin
                      release a device held by someone else).

    Returns:
        The new pending DeviceRequest.

    Raises:
        ValidationError:       Bad request type, report type, reason or
                               rental period.
        NotFoundError:         Unknown device.
        DuplicateRequestError: The device already has a pending request.
        InvalidStateError:     The device status does not allow this
                               request type.
        AuthorizationError:    A non-admin tried to release a device
                               they do not hold.
        StorageError:          The database failed; nothing was saved.
    """
    request_type = parse_enum(RequestType, request_type, "request type")
    payload = payload or {}

    with unit_of_work(f"submit {request_type.value} request for device {device_id}"):
        device = _lock_device(device_id)
        if get_pending_request_for_device(device.id) is not None:
            raise DuplicateRequestError(DUPLICATE_MESSAGE)

        report_type, reason, rental_days = _validate_submission(
            device, user_id, request_type, payload, is_admin
        )

        req = DeviceRequest(
            device_id=device.id,
            user_id=user_id,
            type=request_type,
            report_type=report_type,
            reason=reason,
            rental_period_days=rental_days,
            status=RequestStatus.PENDING,
            requested_at=datetime.now(timezone.utc),
        )
        db.session.add(req)
        try:
            db.session.flush()
        except IntegrityError:
            # The insert is the first write of this transaction.
            db.session.rollback()
            if _has_pending_request(device_id):
                logger.info(
                    "Concurrent submission won the pending slot on device %d",
                    device_id,
                )
                raise DuplicateRequestError(DUPLICATE_MESSAGE) from None
            raise

        device.requested_by_id = user_id
        if request_type == RequestType.ASSIGN:
            device.status = DeviceStatus.PENDING

        audit_service.log_change(
            user_id=user_id,
            action_type="SUBMIT",
            entity_type="device_request",
            entity_id=req.id,
            new_value=_request_snapshot(req),
        )

    logger.info(
        "User %s submitted %s request %d for device %d",
        user_id,
        request_type.value,
        req.id,
        device.id,
    )
    _notify(signals.request_submitted, req, device=device)
    return req


def _validate_submission(
    device: Device,
    user_id: int,
    request_type: RequestType,
    payload: dict[str, Any],
    is_admin: bool,
) -> tuple[ReportType | None, str | None, int | None]:
    """Apply the per-type rules; return report type, cleaned reason and rental days."""
    reason = payload.get("reason")
    if reason is not None:
        if not isinstance(reason, str):
            raise ValidationError("reason must be a string.")
        reason = reason.strip() or None
    if reason is not None and len(reason) > MAX_REASON:
        raise ValidationError(f"Reason must be at most {MAX_REASON} characters.")

    report_type = None
    rental_days = None

    if request_type == RequestType.ASSIGN:
        if device.status != DeviceStatus.AVAILABLE:
            raise InvalidStateError(
                f"Device {device.id} is {device.status.value} and cannot be assigned."
            )
        rental_days = _parse_rental_days(payload.get("rental_period_days"))

    elif request_type == RequestType.RELEASE:
        if device.status != DeviceStatus.ASSIGNED:
            raise InvalidStateError(
                f"Device {device.id} is {device.status.value}; only assigned "
                "devices can be released."
            )
        if device.assigned_to_id != user_id and not is_admin:
            logger.warning(
                "Access denied: user %s tried to release device %d held by %s",
                user_id,
                device.id,
                device.assigned_to_id,
            )
            raise AuthorizationError("You can only release devices assigned to you.")

    elif request_type == RequestType.REPORT:
        report_type = parse_enum(ReportType, payload.get("report_type"), "report type")
        if reason is None or len(reason) < MIN_REPORT_REASON:
            raise ValidationError(
                f"Reason must be between {MIN_REPORT_REASON} and {MAX_REASON} characters."
            )

    elif request_type == RequestType.RETURN:
        if device.status not in (DeviceStatus.AVAILABLE, DeviceStatus.DEAD):
            raise InvalidStateError(
                f"Device {device.id} is {device.status.value}; only available "
                "or dead devices can be returned."
            )
        reason = reason or DEFAULT_RETURN_REASON

    return report_type, reason, rental_days


def _parse_rental_days(value: Any) -> int | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError("rental_period_days must be a whole number of days.")
    if isinstance(value, int):
        days = value
    elif isinstance(value, str) and value.strip().isdigit():
        days = int(value)
    else:
        raise ValidationError("rental_period_days must be a whole number of days.")
    if not MIN_RENTAL_DAYS <= days <= MAX_RENTAL_DAYS:
        raise ValidationError(
            f"Rental period must be between {MIN_RENTAL_DAYS} and "
            f"{MAX_RENTAL_DAYS} days."
        )
    return days


# =========================================================================
# Resolution
# =========================================================================

# Each effect receives (device, request, resolution_date) and mutates the
# device.  Every resolution clears the pending marker.


def _approve_assign(device: Device, req: DeviceRequest, on: date) -> None:
    device.status = DeviceStatus.ASSIGNED
    device.assigned_to_id = req.user_id
    device.requested_by_id = None
    if req.rental_period_days:
        device.expiration_date = on + timedelta(days=req.rental_period_days)
    else:
        device.expiration_date = None


def _reject_assign(device: Device, req: DeviceRequest, on: date) -> None:
    device.status = DeviceStatus.AVAILABLE
    device.requested_by_id = None


def _approve_release(device: Device, req: DeviceRequest, on: date) -> None:
    device.status = DeviceStatus.AVAILABLE
    device.assigned_to_id = None
    device.expiration_date = None
    device.requested_by_id = None


def _approve_report(device: Device, req: DeviceRequest, on: date) -> None:
    device.status = req.report_type.device_status
    device.assigned_to_id = None
    device.requested_by_id = None


def _approve_return(device: Device, req: DeviceRequest, on: date) -> None:
    device.status = DeviceStatus.RETURNED
    device.return_date = on
    device.requested_by_id = None


def _reject_return(device: Device, req: DeviceRequest, on: date) -> None:
    device.status = DeviceStatus.AVAILABLE
    device.requested_by_id = None


def _clear_marker(device: Device, req: DeviceRequest, on: date) -> None:
    device.requested_by_id = None


_RESOLUTION_EFFECTS: dict[
    tuple[RequestType, RequestStatus], Callable[[Device, DeviceRequest, date], None]
] = {
    (RequestType.ASSIGN, RequestStatus.APPROVED): _approve_assign,
    (RequestType.ASSIGN, RequestStatus.REJECTED): _reject_assign,
    (RequestType.RELEASE, RequestStatus.APPROVED): _approve_release,
    (RequestType.RELEASE, RequestStatus.REJECTED): _clear_marker,
    (RequestType.REPORT, RequestStatus.APPROVED): _approve_report,
    (RequestType.REPORT, RequestStatus.REJECTED): _clear_marker,
    (RequestType.RETURN, RequestStatus.APPROVED): _approve_return,
    (RequestType.RETURN, RequestStatus.REJECTED): _reject_return,
}


def process_request(
    request_id: int,
    decision: str | RequestStatus,
    processed_by: int,
    is_admin: bool = False,
    resolution_date: str | date | datetime | None = None,
) -> tuple[Device, DeviceRequest]:
    """
    Approve or reject a pending request and apply its device effect.

    Args:
        request_id:      Request to resolve.
        decision:        ``approved`` or ``rejected``.
        processed_by:    ID of the resolving admin.
        is_admin:        Whether the caller holds the admin role.
        resolution_date: Date used for ``return_date`` and rental
                         expiry (defaults to today, UTC).

    Returns:
        ``(device, request)`` after the change.

    Raises:
        NotFoundError:      Unknown request.
        AuthorizationError: The caller is not an admin.
        InvalidStateError:  The request is no longer pending, including
                            when a concurrent resolution won.
        ValidationError:    The decision or date is invalid.
        StorageError:       The database failed; nothing was saved.
    """
    req = get_request(request_id)
    if not is_admin:
        logger.warning(
            "Access denied: user %s attempted to resolve request %d",
            processed_by,
            request_id,
        )
        raise AuthorizationError("Only administrators may resolve requests.")
    if not req.is_pending:
        raise InvalidStateError(
            f"Request {request_id} is already {req.status.value}."
        )

    decision = parse_enum(RequestStatus, decision, "decision")
    if decision not in DECISIONS:
        raise ValidationError("decision must be 'approved' or 'rejected'.")
    on = parse_date(resolution_date, "return_date") or datetime.now(timezone.utc).date()
    effect = _RESOLUTION_EFFECTS[(req.type, decision)]

    with unit_of_work(f"{decision.value} request {request_id}"):
        device = _lock_device(req.device_id)
        before = device_snapshot(device)

        _claim_request(req, decision, processed_by)
        effect(device, req, on)

        audit_service.log_change(
            user_id=processed_by,
            action_type="APPROVE" if decision == RequestStatus.APPROVED else "REJECT",
            entity_type="device_request",
            entity_id=req.id,
            previous_value={"request_status": RequestStatus.PENDING.value, "device": before},
            new_value={
                "request_status": decision.value,
                "device": device_snapshot(device),
            },
        )

    logger.info(
        "Request %d (%s, device %d) %s by user %s",
        req.id,
        req.type.value,
        device.id,
        decision.value,
        processed_by,
    )
    _notify(signals.request_processed, req, device=device, decision=decision)
    return device, req


# =========================================================================
# Cancellation
# =========================================================================


def cancel_request(
    request_id: int,
    caller_id: int,
    is_admin: bool = False,
) -> DeviceRequest:
    """
    Withdraw a pending request.

    Only the requester or an admin may cancel.  An ``assign`` request
    that put its device into ``pending`` reverts the device to
    ``available``; other device fields are left alone.

    Raises:
        NotFoundError:      Unknown request.
        AuthorizationError: Caller is neither the requester nor an admin.
        InvalidStateError:  The request is no longer pending.
        StorageError:       The database failed; nothing was saved.
    """
    req = get_request(request_id)
    if req.user_id != caller_id and not is_admin:
        logger.warning(
            "Access denied: user %s attempted to cancel request %d of user %s",
            caller_id,
            request_id,
            req.user_id,
        )
        raise AuthorizationError("You can only cancel your own requests.")
    if not req.is_pending:
        raise InvalidStateError(
            f"Request {request_id} is already {req.status.value}."
        )

    with unit_of_work(f"cancel request {request_id}"):
        device = _lock_device(req.device_id)
        _claim_request(req, RequestStatus.CANCELLED, caller_id)

        device.requested_by_id = None
        if req.type == RequestType.ASSIGN and device.status == DeviceStatus.PENDING:
            device.status = DeviceStatus.AVAILABLE

        audit_service.log_change(
            user_id=caller_id,
            action_type="CANCEL",
            entity_type="device_request",
            entity_id=req.id,
            previous_value={"request_status": RequestStatus.PENDING.value},
            new_value={"request_status": RequestStatus.CANCELLED.value},
        )

    logger.info("Request %d cancelled by user %s", req.id, caller_id)
    _notify(signals.request_cancelled, req, device=device)
    return req


# =========================================================================
# Consistency audit
# =========================================================================


def find_invariant_violations() -> list[str]:
    """
    Scan devices and pending requests for lifecycle inconsistencies.

    Read-only.  Direct admin edits can legitimately produce some of
    these; the list is meant for a human to review.

    Returns:
        Human-readable problem descriptions (empty when consistent).
    """
    pending_by_device: dict[int, list[DeviceRequest]] = {}
    for req in DeviceRequest.query.filter_by(status=RequestStatus.PENDING).all():
        pending_by_device.setdefault(req.device_id, []).append(req)

    problems = []
    for device in Device.query.order_by(Device.id).all():
        pending = pending_by_device.get(device.id, [])
        if len(pending) > 1:
            ids = ", ".join(str(r.id) for r in pending)
            problems.append(
                f"Device {device.id} has {len(pending)} pending requests ({ids})."
            )
        current = pending[0] if pending else None

        if device.status == DeviceStatus.PENDING and (
            current is None or current.type != RequestType.ASSIGN
        ):
            problems.append(
                f"Device {device.id} is pending but has no pending assign request."
            )
        if current is not None and current.type == RequestType.ASSIGN and (
            device.status != DeviceStatus.PENDING
        ):
            problems.append(
                f"Device {device.id} has pending assign request {current.id} "
                f"but status is {device.status.value}."
            )
        if device.requested_by_id is not None and current is None:
            problems.append(
                f"Device {device.id} is marked requested by user "
                f"{device.requested_by_id} without a pending request."
            )
        elif current is not None and device.requested_by_id != current.user_id:
            problems.append(
                f"Device {device.id} pending marker ({device.requested_by_id}) does "
                f"not match request {current.id} by user {current.user_id}."
            )

    return problems


# =========================================================================
# Helpers
# =========================================================================


def _lock_device(device_id: int) -> Device:
    """Load the device row for update, refreshing any stale identity-map copy."""
    stmt = (
        db.select(Device)
        .where(Device.id == device_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    device = db.session.execute(stmt).scalar_one_or_none()
    if device is None:
        raise NotFoundError(f"Device {device_id} not found.")
    return device


def _has_pending_request(device_id: int) -> bool:
    stmt = db.select(DeviceRequest.id).where(
        DeviceRequest.device_id == device_id,
        DeviceRequest.status == RequestStatus.PENDING,
    )
    return db.session.execute(stmt).first() is not None


def _claim_request(
    req: DeviceRequest, new_status: RequestStatus, processed_by: int
) -> None:
    """
    Move ``req`` out of pending with a compare-and-set update.

    Raises:
        InvalidStateError: If the row was no longer pending.
    """
    result = db.session.execute(
        db.update(DeviceRequest)
        .where(
            DeviceRequest.id == req.id,
            DeviceRequest.status == RequestStatus.PENDING,
        )
        .values(
            status=new_status,
            processed_at=datetime.now(timezone.utc),
            processed_by_id=processed_by,
        )
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount != 1:
        raise InvalidStateError(f"Request {req.id} was already resolved.")


def _request_snapshot(req: DeviceRequest) -> dict[str, Any]:
    return {
        "device_id": req.device_id,
        "user_id": req.user_id,
        "type": req.type.value,
        "report_type": req.report_type.value if req.report_type else None,
        "reason": req.reason,
        "rental_period_days": req.rental_period_days,
        "status": req.status.value,
    }


def _notify(signal, req: DeviceRequest, **kwargs) -> None:
    """Send a workflow signal; receiver failures never undo a committed change."""
    try:
        signal.send(req, **kwargs)
    except Exception:
        logger.exception("Receiver for %s failed on request %d", signal.name, req.id)
