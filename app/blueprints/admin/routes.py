"""
Routes for the admin blueprint — audit log queries.

All routes require the 'admin' role.
"""

from flask import request
from flask_login import login_required

from app.blueprints.admin import bp
from app.decorators import role_required
from app.services import audit_service


@bp.route("/audit-logs")
@login_required
@role_required("admin")
def audit_logs():
    """
    Paginated audit log entries, newest first.

    Query Parameters:
        page, per_page, user_id, action_type, entity_type, entity_id.
    """
    page = request.args.get("page", 1, type=int)
    per_page = min(request.args.get("per_page", 50, type=int), 200)

    logs = audit_service.get_audit_logs(
        page=page,
        per_page=per_page,
        user_id=request.args.get("user_id", type=int),
        action_type=request.args.get("action_type"),
        entity_type=request.args.get("entity_type"),
        entity_id=request.args.get("entity_id", type=int),
    )

    return {
        "logs": [entry.to_dict() for entry in logs.items],
        "page": logs.page,
        "pages": logs.pages,
        "total": logs.total,
        "entity_types": audit_service.get_distinct_entity_types(),
    }
