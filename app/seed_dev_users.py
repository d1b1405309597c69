"""
Seed script — create development users for local testing.

Registers a ``flask seed-dev-users`` CLI command that creates the
built-in roles and one active user per role.  These users are used
with the ``/auth/dev-login`` route so you can exercise the request
workflow without an identity provider.

Usage::

    flask seed-dev-users                     # Defaults (@localhost)
    flask seed-dev-users --domain example.org
"""

import click
from flask.cli import with_appcontext

from app.extensions import db
from app.models.user import ALL_ROLES
from app.services import user_service

# (role, first name, last name) for each seeded user.
_DEV_USERS = (
    ("admin", "Dev", "Admin"),
    ("manager", "Dev", "Manager"),
    ("user", "Dev", "User"),
)


@click.command("seed-dev-users")
@click.option(
    "--domain",
    default="localhost",
    show_default=True,
    help="Email domain for the seeded users.",
)
@with_appcontext
def seed_dev_users_command(domain: str):
    """
    Create the built-in roles and one dev user per role.

    Existing users are reactivated and moved back to their seed role
    instead of being duplicated.
    """
    click.echo("=" * 60)
    click.echo("  DeviceHub — Seed Dev Users")
    click.echo("=" * 60)

    # -- Step 1: Roles -----------------------------------------------------
    click.echo("\n[1/2] Ensuring roles exist...")
    roles = user_service.ensure_roles()
    click.secho(
        f"      ✓ Roles: {', '.join(r.role_name for r in roles)}", fg="green"
    )

    # -- Step 2: Users -----------------------------------------------------
    click.echo("\n[2/2] Creating dev users...")
    for role_name, first_name, last_name in _DEV_USERS:
        email = f"dev.{role_name}@{domain}"
        user = user_service.get_user_by_email(email)

        if user is None:
            user = user_service.provision_user(
                email, first_name, last_name, role_name=role_name
            )
            click.secho(f"      ✓ Created {email} (id={user.id})", fg="green")
            continue

        if user.role_name != role_name:
            user_service.update_user_role(user.id, role_name)
            click.echo(f"      → Reset role of {email} to {role_name}.")
        if not user.is_active:
            user.is_active = True
            db.session.commit()
            click.echo(f"      → Reactivated {email}.")
        click.secho(f"      ✓ {email} is ready (id={user.id})", fg="green")

    # -- Summary -----------------------------------------------------------
    click.echo("\n" + "=" * 60)
    click.secho("  Dev users are ready.", fg="green", bold=True)
    click.echo(f"  Roles seeded: {len(ALL_ROLES)}")
    click.echo("=" * 60)
    click.echo("\n  → POST /auth/dev-login with {\"email\": \"dev.admin@"
               f"{domain}\"}} to sign in.\n")


def register_seed_commands(app):
    """Register seed-related CLI commands with the Flask application."""
    app.cli.add_command(seed_dev_users_command)
