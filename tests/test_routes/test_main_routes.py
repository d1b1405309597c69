"""
Smoke tests for the main and auth blueprint routes.

These verify that the application starts up, the health check
responds, sessions can be established and ended, and errors use the
shared JSON envelope.
"""


class TestHealthCheck:
    """Tests for the health check endpoint."""

    def test_health_check_returns_200(self, client):
        """The health check should return HTTP 200 and report the database."""
        response = client.get("/health")
        assert response.status_code == 200
        assert response.get_json() == {"status": "healthy", "database": "connected"}


class TestErrorEnvelope:
    """Framework errors share the JSON error shape."""

    def test_unknown_path(self, client):
        response = client.get("/no-such-page")
        assert response.status_code == 404
        body = response.get_json()
        assert body["error"]["status"] == 404
        assert body["error"]["title"] == "Not Found"

    def test_unauthenticated_api_call(self, client):
        """Protected routes return a JSON 401, not a redirect."""
        response = client.get("/devices/")
        assert response.status_code == 401
        assert response.get_json()["error"]["title"] == "Unauthorized"


class TestAuth:
    """Tests for dev login, identity and logout."""

    def test_dev_login_and_me(self, client, login, make_user):
        user = make_user("manager")
        login(user)

        response = client.get("/auth/me")

        assert response.status_code == 200
        assert response.get_json()["user"]["role"] == "manager"

    def test_dev_login_by_email(self, client, make_user):
        user = make_user(email="someone@example.com")
        response = client.post("/auth/dev-login", json={"email": "someone@example.com"})
        assert response.status_code == 200
        assert response.get_json()["user"]["id"] == user.id

    def test_dev_login_unknown_user(self, client):
        response = client.post("/auth/dev-login", json={"user_id": 999})
        assert response.status_code == 404

    def test_dev_login_inactive_user(self, client, make_user):
        user = make_user(is_active=False)
        response = client.post("/auth/dev-login", json={"user_id": user.id})
        assert response.status_code == 404

    def test_dev_login_requires_identifier(self, client):
        response = client.post("/auth/dev-login", json={})
        assert response.status_code == 400

    def test_dev_login_disabled(self, app, client, make_user):
        app.config["DEV_LOGIN_ENABLED"] = False
        user = make_user()
        response = client.post("/auth/dev-login", json={"user_id": user.id})
        assert response.status_code == 403

    def test_logout(self, client, login, make_user):
        login(make_user())

        assert client.post("/auth/logout").status_code == 200
        assert client.get("/auth/me").status_code == 401

    def test_csrf_token(self, client):
        response = client.get("/auth/csrf-token")
        assert response.status_code == 200
        assert response.get_json()["csrf_token"]
