"""
Database connectivity, schema and seed data verification tests.

These tests confirm that:
  - The application can connect to the configured database.
  - Every application table exists after ``create_all()``.
  - The one-pending-request partial index and CHECK constraints are
    part of the schema.
  - The built-in roles are seeded.
"""

import pytest
from sqlalchemy import inspect
from sqlalchemy.exc import IntegrityError

from app.cli import EXPECTED_TABLES
from app.extensions import db
from app.models.enums import ReportType, RequestStatus, RequestType
from app.models.request import DeviceRequest
from app.models.user import ALL_ROLES, Role


class TestDatabaseConnectivity:
    """Verify that the app can talk to the database."""

    def test_basic_connection(self, app):
        """Execute a simple SELECT 1 to confirm the database is reachable."""
        row = db.session.execute(db.text("SELECT 1 AS connected")).fetchone()
        assert row is not None
        assert row[0] == 1


class TestSchemaExists:
    """Verify that the expected tables and indexes were created."""

    def test_application_tables_exist(self, app):
        tables = set(inspect(db.engine).get_table_names())
        assert set(EXPECTED_TABLES) <= tables

    def test_pending_request_index(self, app):
        indexes = {
            ix["name"]: ix for ix in inspect(db.engine).get_indexes("device_request")
        }
        assert indexes["uq_device_request_one_pending"]["unique"]


class TestConstraints:
    """CHECK constraints on device_request."""

    def test_rental_period_check(self, make_user, make_device):
        user = make_user()
        device = make_device()
        db.session.add(
            DeviceRequest(
                device_id=device.id,
                user_id=user.id,
                type=RequestType.ASSIGN,
                status=RequestStatus.REJECTED,
                rental_period_days=3,
            )
        )
        with pytest.raises(IntegrityError):
            db.session.flush()
        db.session.rollback()

    def test_report_type_only_on_reports(self, make_user, make_device):
        user = make_user()
        device = make_device()
        db.session.add(
            DeviceRequest(
                device_id=device.id,
                user_id=user.id,
                type=RequestType.RETURN,
                report_type=ReportType.DEAD,
                status=RequestStatus.REJECTED,
            )
        )
        with pytest.raises(IntegrityError):
            db.session.flush()
        db.session.rollback()


class TestSeedData:
    """Verify the built-in roles exist."""

    def test_roles_exist(self, app):
        names = {role.role_name for role in Role.query.all()}
        assert names == set(ALL_ROLES)
