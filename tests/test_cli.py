"""
Tests for the custom Flask CLI commands.
"""

from app.models.user import User


class TestDbCheck:
    def test_db_check_passes_on_fresh_schema(self, app):
        result = app.test_cli_runner().invoke(args=["db-check"])
        assert result.exit_code == 0, result.output
        assert "All checks passed" in result.output


class TestCheckInvariants:
    def test_clean_database(self, app, make_device):
        make_device()
        result = app.test_cli_runner().invoke(args=["check-invariants"])
        assert result.exit_code == 0
        assert "No invariant violations" in result.output

    def test_reports_violations(self, app, make_device):
        make_device(status="pending")
        result = app.test_cli_runner().invoke(args=["check-invariants"])
        assert result.exit_code == 1
        assert "no pending assign request" in result.output


class TestSeedDevUsers:
    def test_creates_one_user_per_role(self, app):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["seed-dev-users", "--domain", "test.local"])

        assert result.exit_code == 0, result.output
        emails = {u.email: u.role_name for u in User.query.all()}
        assert emails == {
            "dev.admin@test.local": "admin",
            "dev.manager@test.local": "manager",
            "dev.user@test.local": "user",
        }

    def test_is_idempotent(self, app):
        runner = app.test_cli_runner()
        runner.invoke(args=["seed-dev-users"])

        result = runner.invoke(args=["seed-dev-users"])

        assert result.exit_code == 0, result.output
        assert User.query.count() == 3
