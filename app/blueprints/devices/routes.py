"""
Routes for the devices blueprint.

Read endpoints are open to any signed-in user; users without the admin
or manager role never see missing or stolen devices.  Create, edit and
delete are admin-only, enforced by the device service.
"""

from flask import current_app, request
from flask_login import current_user, login_required

from app.blueprints.devices import bp
from app.decorators import role_required
from app.exceptions import ValidationError
from app.services import device_service, request_service


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object.")
    return data


# =========================================================================
# Registry reads
# =========================================================================


@bp.route("/")
@login_required
def list_devices():
    """
    List devices with optional filters.

    Query Parameters:
        status, category, device_type, project, project_group,
        assigned_to_id (int), search.
    """
    devices = device_service.list_devices(
        status=request.args.get("status"),
        category=request.args.get("category"),
        device_type=request.args.get("device_type"),
        project=request.args.get("project"),
        project_group=request.args.get("project_group"),
        assigned_to_id=request.args.get("assigned_to_id", type=int),
        search=request.args.get("search"),
        include_restricted=current_user.can_view_restricted,
    )
    return {"devices": [d.to_dict() for d in devices], "count": len(devices)}


@bp.route("/stats")
@login_required
def device_stats():
    """Device counts by status and category."""
    return device_service.get_device_stats(
        include_restricted=current_user.can_view_restricted
    )


@bp.route("/expiring")
@login_required
@role_required("admin", "manager")
def expiring_devices():
    """Assigned devices whose rental is overdue or ends within ``days``."""
    days = request.args.get(
        "days", current_app.config["EXPIRY_WARNING_DAYS"], type=int
    )
    entries = device_service.get_expiring_devices(within_days=days)
    return {"devices": [e.to_dict() for e in entries], "within_days": days}


@bp.route("/<int:device_id>")
@login_required
def get_device(device_id: int):
    device = device_service.get_device(
        device_id, include_restricted=current_user.can_view_restricted
    )
    return {"device": device.to_dict()}


@bp.route("/<int:device_id>/history")
@login_required
def device_history(device_id: int):
    """Ownership history, newest first."""
    device_service.get_device(
        device_id, include_restricted=current_user.can_view_restricted
    )
    history = device_service.get_device_history(device_id)
    return {"history": [entry.to_dict() for entry in history]}


# =========================================================================
# Registry writes (admin)
# =========================================================================


@bp.route("/", methods=["POST"])
@login_required
def create_device():
    device = device_service.create_device(
        _json_body(), user_id=current_user.id, is_admin=current_user.is_admin
    )
    return {"device": device.to_dict()}, 201


@bp.route("/<int:device_id>", methods=["PUT"])
@login_required
def update_device(device_id: int):
    device = device_service.update_device(
        device_id,
        _json_body(),
        user_id=current_user.id,
        is_admin=current_user.is_admin,
    )
    return {"device": device.to_dict()}


@bp.route("/<int:device_id>", methods=["DELETE"])
@login_required
def delete_device(device_id: int):
    device_service.delete_device(
        device_id, user_id=current_user.id, is_admin=current_user.is_admin
    )
    return "", 204


# =========================================================================
# Request submission
# =========================================================================


@bp.route("/<int:device_id>/requests", methods=["POST"])
@login_required
def submit_request(device_id: int):
    """
    Submit an assign, release, report or return request.

    JSON body: ``{"type": str, "reason"?: str, "report_type"?: str,
    "rental_period_days"?: int}``.
    """
    data = _json_body()
    req = request_service.submit_request(
        device_id,
        current_user.id,
        data.get("type"),
        payload=data,
        is_admin=current_user.is_admin,
    )
    return {"request": req.to_dict()}, 201
