"""
Routes for the requests blueprint.

Admins see and resolve every request; other users only see and cancel
their own.
"""

from flask import request
from flask_login import current_user, login_required

from app.blueprints.requests import bp
from app.exceptions import AuthorizationError, ValidationError
from app.services import request_service


@bp.route("/")
@login_required
def list_requests():
    """
    List requests, newest first.

    Query Parameters:
        status, type, device_id (int), user_id (int, admins only).
    """
    user_id = request.args.get("user_id", type=int)
    if not current_user.is_admin:
        user_id = current_user.id

    results = request_service.list_requests(
        status=request.args.get("status"),
        request_type=request.args.get("type"),
        device_id=request.args.get("device_id", type=int),
        user_id=user_id,
    )
    return {"requests": [r.to_dict() for r in results], "count": len(results)}


@bp.route("/<int:request_id>")
@login_required
def get_request(request_id: int):
    req = request_service.get_request(request_id)
    if req.user_id != current_user.id and not current_user.is_admin:
        raise AuthorizationError("You can only view your own requests.")
    return {"request": req.to_dict()}


@bp.route("/<int:request_id>", methods=["PUT"])
@login_required
def process_request(request_id: int):
    """
    Approve or reject a pending request.

    JSON body: ``{"status": "approved" | "rejected", "return_date"?: str}``.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object.")

    device, req = request_service.process_request(
        request_id,
        data.get("status"),
        processed_by=current_user.id,
        is_admin=current_user.is_admin,
        resolution_date=data.get("return_date"),
    )
    return {"request": req.to_dict(), "device": device.to_dict()}


@bp.route("/<int:request_id>/cancel", methods=["PUT"])
@login_required
def cancel_request(request_id: int):
    req = request_service.cancel_request(
        request_id, caller_id=current_user.id, is_admin=current_user.is_admin
    )
    return {"request": req.to_dict()}
