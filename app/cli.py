"""
Custom Flask CLI commands.

These commands are registered with the app via ``register_commands()``
in the application factory. Run them with ``flask <command_name>``.

Usage::

    flask db-check          # Verify database connectivity and schema
    flask check-invariants  # Audit devices against pending requests
"""

import click
from flask import current_app
from flask.cli import with_appcontext
from sqlalchemy import inspect
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError

from app.extensions import db

# Tables the application expects after ``flask db upgrade``.
EXPECTED_TABLES = ("role", "app_user", "device", "device_request", "audit_log")


@click.command("db-check")
@with_appcontext
def db_check_command():
    """
    Verify database connectivity and confirm expected tables exist.

    Runs a simple query against the configured database, lists the
    application tables it finds and counts the seeded roles.  Exits
    with status 1 on the first failed step.
    """
    click.echo("=" * 60)
    click.echo("  DeviceHub — Database Connectivity Check")
    click.echo("=" * 60)

    # Show the connection string with any password masked.
    db_url = make_url(current_app.config["SQLALCHEMY_DATABASE_URI"])
    click.echo(f"\n  Connection string: {db_url.render_as_string(hide_password=True)}\n")

    # -- Step 1: Basic connectivity ----------------------------------------
    click.echo("[1/3] Testing connection...")
    try:
        row = db.session.execute(db.text("SELECT 1")).fetchone()
    except SQLAlchemyError as exc:
        click.secho(f"      ✗ Connection failed: {exc}", fg="red")
        click.echo("\n  Troubleshooting tips:")
        click.echo("    - Is the database server running?")
        click.echo("    - Does your DATABASE_URL match your server config?")
        raise SystemExit(1) from exc
    if not row or row[0] != 1:
        click.secho("      ✗ Unexpected result from test query.", fg="red")
        raise SystemExit(1)
    click.secho(
        f"      ✓ Connected ({db.engine.dialect.name}).", fg="green"
    )

    # -- Step 2: Tables ----------------------------------------------------
    click.echo("[2/3] Checking tables...")
    existing = set(inspect(db.engine).get_table_names())
    missing = [name for name in EXPECTED_TABLES if name not in existing]
    for name in EXPECTED_TABLES:
        mark = "✓" if name in existing else "✗"
        click.echo(f"      {mark} {name}")
    if missing:
        click.secho(
            f"      ✗ Missing tables: {', '.join(missing)}. Run 'flask db upgrade'.",
            fg="red",
        )
        raise SystemExit(1)

    # -- Step 3: Seed data -------------------------------------------------
    click.echo("[3/3] Checking seed data...")
    from app.models.user import ALL_ROLES, Role  # pylint: disable=import-outside-toplevel

    role_count = Role.query.filter(Role.role_name.in_(ALL_ROLES)).count()
    click.echo(f"      Seed data: {role_count}/{len(ALL_ROLES)} roles")
    if role_count == len(ALL_ROLES):
        click.secho("      ✓ Seed data looks good.", fg="green")
    else:
        click.secho(
            "      ⚠ Roles missing. Run 'flask seed-dev-users' to create them.",
            fg="yellow",
        )

    click.echo("\n" + "=" * 60)
    click.secho("  All checks passed. Database is ready.", fg="green", bold=True)
    click.echo("=" * 60)


@click.command("check-invariants")
@with_appcontext
def check_invariants_command():
    """
    Report devices whose status or pending marker disagrees with their
    pending requests.  Read-only; exits with status 1 if any are found.
    """
    from app.services import request_service  # pylint: disable=import-outside-toplevel

    problems = request_service.find_invariant_violations()
    if not problems:
        click.secho("No invariant violations found.", fg="green")
        return

    click.secho(f"{len(problems)} invariant violation(s):", fg="red")
    for problem in problems:
        click.echo(f"  - {problem}")
    raise SystemExit(1)


def register_commands(app):
    """Register all custom CLI commands with the Flask application."""
    app.cli.add_command(db_check_command)
    app.cli.add_command(check_invariants_command)
