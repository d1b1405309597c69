"""
Tests for the requests and admin blueprints.

Covers request visibility per role, resolution and cancellation over
HTTP, the storage-failure status code, and the audit log endpoint.
"""

from sqlalchemy.exc import OperationalError

from app.services import audit_service, request_service


def _submit(device, user, request_type="assign", payload=None):
    return request_service.submit_request(device.id, user.id, request_type, payload)


class TestListAndView:
    """GET /requests/ and /requests/<id>."""

    def test_user_sees_only_own_requests(self, client, login, make_user, make_device):
        alice = make_user()
        bob = make_user()
        mine = _submit(make_device(), alice)
        _submit(make_device(), bob)
        login(alice)

        # user_id is ignored for non-admins.
        body = client.get(f"/requests/?user_id={bob.id}").get_json()

        assert [r["id"] for r in body["requests"]] == [mine.id]

    def test_admin_sees_everything(self, client, login, admin, make_user, make_device):
        _submit(make_device(), make_user())
        _submit(make_device(), make_user())
        login(admin)

        assert client.get("/requests/").get_json()["count"] == 2

    def test_view_other_users_request(self, client, login, make_user, make_device):
        req = _submit(make_device(), make_user())
        login(make_user())

        assert client.get(f"/requests/{req.id}").status_code == 403

    def test_view_own_request(self, client, login, make_user, make_device):
        user = make_user()
        req = _submit(make_device(), user)
        login(user)

        response = client.get(f"/requests/{req.id}")

        assert response.status_code == 200
        assert response.get_json()["request"]["type"] == "assign"


class TestProcessRequest:
    """PUT /requests/<id>."""

    def test_admin_approves(self, client, login, admin, make_user, make_device):
        user = make_user()
        device = make_device()
        req = _submit(device, user)
        login(admin)

        response = client.put(f"/requests/{req.id}", json={"status": "approved"})

        assert response.status_code == 200
        body = response.get_json()
        assert body["request"]["status"] == "approved"
        assert body["device"]["status"] == "assigned"
        assert body["device"]["assigned_to_id"] == user.id

    def test_return_date_is_used(self, client, login, admin, make_user, make_device):
        req = _submit(make_device(status="dead"), make_user(), "return")
        login(admin)

        response = client.put(
            f"/requests/{req.id}",
            json={"status": "approved", "return_date": "2026-07-15"},
        )

        assert response.get_json()["device"]["return_date"] == "2026-07-15"

    def test_user_cannot_resolve(self, client, login, make_user, make_device):
        user = make_user()
        req = _submit(make_device(), user)
        login(user)

        response = client.put(f"/requests/{req.id}", json={"status": "approved"})

        assert response.status_code == 403

    def test_double_resolution_is_409(
        self, client, login, admin, make_user, make_device
    ):
        req = _submit(make_device(), make_user())
        login(admin)
        client.put(f"/requests/{req.id}", json={"status": "rejected"})

        response = client.put(f"/requests/{req.id}", json={"status": "approved"})

        assert response.status_code == 409
        assert response.get_json()["error"]["title"] == "Invalid State"

    def test_bad_decision_is_400(self, client, login, admin, make_user, make_device):
        req = _submit(make_device(), make_user())
        login(admin)
        response = client.put(f"/requests/{req.id}", json={"status": "maybe"})
        assert response.status_code == 400

    def test_unknown_request_is_404(self, client, login, admin):
        login(admin)
        response = client.put("/requests/999", json={"status": "approved"})
        assert response.status_code == 404

    def test_storage_failure_is_503(
        self, client, login, admin, make_user, make_device, monkeypatch
    ):
        req = _submit(make_device(), make_user())
        login(admin)

        def _fail(**kwargs):
            raise OperationalError("INSERT INTO audit_log", {}, Exception("gone"))

        monkeypatch.setattr(audit_service, "log_change", _fail)
        response = client.put(f"/requests/{req.id}", json={"status": "approved"})
        monkeypatch.undo()

        assert response.status_code == 503
        assert response.get_json()["error"]["title"] == "Storage Unavailable"
        assert request_service.get_request(req.id).is_pending


class TestCancelRequest:
    """PUT /requests/<id>/cancel."""

    def test_owner_cancels(self, client, login, make_user, make_device):
        user = make_user()
        device = make_device()
        req = _submit(device, user)
        login(user)

        response = client.put(f"/requests/{req.id}/cancel")

        assert response.status_code == 200
        assert response.get_json()["request"]["status"] == "cancelled"

    def test_stranger_cannot_cancel(self, client, login, make_user, make_device):
        req = _submit(make_device(), make_user())
        login(make_user())

        assert client.put(f"/requests/{req.id}/cancel").status_code == 403


class TestAuditLogs:
    """GET /admin/audit-logs."""

    def test_admin_reads_audit_log(self, client, login, admin, make_user, make_device):
        req = _submit(make_device(), make_user())
        login(admin)

        body = client.get(
            f"/admin/audit-logs?entity_type=device_request&entity_id={req.id}"
        ).get_json()

        assert body["total"] == 1
        assert body["logs"][0]["action_type"] == "SUBMIT"
        assert "device_request" in body["entity_types"]

    def test_regular_user_forbidden(self, client, login, make_user):
        login(make_user())
        assert client.get("/admin/audit-logs").status_code == 403
