"""
Tests for the devices blueprint.

Checks role visibility of restricted devices, the admin-only writes,
request submission over HTTP, and that each service error reaches the
client with its status code.
"""

import pytest

from app.models.enums import DeviceStatus


class TestDeviceReads:
    """Listing, detail, stats and history endpoints."""

    def test_regular_user_does_not_see_restricted(
        self, client, login, make_user, make_device
    ):
        make_device()
        stolen = make_device(status="stolen")
        login(make_user("user"))

        listed = client.get("/devices/").get_json()
        assert listed["count"] == 1

        response = client.get(f"/devices/{stolen.id}")
        assert response.status_code == 403

    def test_manager_sees_restricted(self, client, login, make_user, make_device):
        missing = make_device(status="missing")
        login(make_user("manager"))

        assert client.get("/devices/").get_json()["count"] == 1
        response = client.get(f"/devices/{missing.id}")
        assert response.status_code == 200
        assert response.get_json()["device"]["status"] == "missing"

    def test_list_filter_by_status(self, client, login, make_user, make_device):
        make_device()
        dead = make_device(status="dead")
        login(make_user())

        body = client.get("/devices/?status=dead").get_json()

        assert [d["id"] for d in body["devices"]] == [dead.id]

    def test_bad_filter_is_400(self, client, login, make_user):
        login(make_user())
        response = client.get("/devices/?status=lost")
        assert response.status_code == 400
        assert response.get_json()["error"]["title"] == "Validation Error"

    def test_unknown_device_is_404(self, client, login, make_user):
        login(make_user())
        assert client.get("/devices/999").status_code == 404

    def test_stats(self, client, login, make_user, make_device):
        make_device()
        make_device(status="dead")
        login(make_user())

        body = client.get("/devices/stats").get_json()

        assert body["total"] == 2
        assert body["by_status"]["dead"] == 1

    def test_history(self, client, login, make_user, make_device):
        holder = make_user()
        device = make_device(status="assigned", assigned_to_id=holder.id)
        login(holder)

        body = client.get(f"/devices/{device.id}/history").get_json()

        assert body["history"][0]["user_id"] == holder.id

    def test_expiring_requires_manager_or_admin(self, client, login, make_user):
        login(make_user("user"))
        assert client.get("/devices/expiring").status_code == 403

        login(make_user("manager"))
        response = client.get("/devices/expiring?days=14")
        assert response.status_code == 200
        assert response.get_json()["within_days"] == 14


class TestDeviceWrites:
    """Admin-only create, update and delete."""

    def test_admin_creates_device(self, client, login, admin):
        login(admin)
        response = client.post(
            "/devices/",
            json={"project": "Atlas", "project_group": "QA", "type": "Tablet"},
        )
        assert response.status_code == 201
        device = response.get_json()["device"]
        assert device["status"] == "available"
        assert device["device_type"] == "C-Type"

    def test_missing_fields_are_400(self, client, login, admin):
        login(admin)
        response = client.post("/devices/", json={"project": "Atlas"})
        assert response.status_code == 400

    def test_non_json_body_is_400(self, client, login, admin):
        login(admin)
        response = client.post("/devices/", data="project=Atlas")
        assert response.status_code == 400

    def test_user_cannot_create(self, client, login, make_user):
        login(make_user())
        response = client.post(
            "/devices/",
            json={"project": "Atlas", "project_group": "QA", "type": "Tablet"},
        )
        assert response.status_code == 403

    def test_admin_updates_device(self, client, login, admin, make_device):
        device = make_device()
        login(admin)

        response = client.put(f"/devices/{device.id}", json={"status": "dead"})

        assert response.status_code == 200
        assert response.get_json()["device"]["status"] == "dead"

    def test_delete(self, client, login, admin, make_user, make_device):
        device = make_device()
        login(make_user())
        assert client.delete(f"/devices/{device.id}").status_code == 403

        login(admin)
        assert client.delete(f"/devices/{device.id}").status_code == 204
        assert client.get(f"/devices/{device.id}").status_code == 404


class TestRequestSubmission:
    """POST /devices/<id>/requests."""

    def test_submit_assign(self, client, login, make_user, make_device):
        device = make_device()
        user = make_user()
        login(user)

        response = client.post(
            f"/devices/{device.id}/requests",
            json={"type": "assign", "rental_period_days": 30},
        )

        assert response.status_code == 201
        body = response.get_json()["request"]
        assert body["status"] == "pending"
        assert body["user_id"] == user.id
        assert body["rental_period_days"] == 30
        assert device.status == DeviceStatus.PENDING

    @pytest.mark.parametrize(
        "payload, status",
        [
            ({"type": "borrow"}, 400),
            ({"type": "assign", "rental_period_days": 2}, 400),
            ({"type": "release"}, 409),
            ({"type": "report", "report_type": "lost", "reason": "x" * 20}, 400),
        ],
    )
    def test_submission_errors(
        self, client, login, make_user, make_device, payload, status
    ):
        device = make_device()
        login(make_user())
        response = client.post(f"/devices/{device.id}/requests", json=payload)
        assert response.status_code == status

    def test_duplicate_is_409(self, client, login, make_user, make_device):
        device = make_device()
        login(make_user())
        client.post(f"/devices/{device.id}/requests", json={"type": "assign"})

        login(make_user())
        response = client.post(
            f"/devices/{device.id}/requests", json={"type": "assign"}
        )

        assert response.status_code == 409
        body = response.get_json()["error"]
        assert body["title"] == "Duplicate Request"
        assert body["detail"] == "There is already a pending request for this device"

    def test_unknown_device_is_404(self, client, login, make_user):
        login(make_user())
        response = client.post("/devices/999/requests", json={"type": "assign"})
        assert response.status_code == 404
