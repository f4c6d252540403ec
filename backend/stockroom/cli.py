# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/stockroom/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init --admin-email admin@stockroom.local --admin-password "Password123!"
#   Idempotent bootstrap: creates tables and the first admin if no admin exists.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with role and active status.
# - python -m flask users create --email manager@stockroom.local --password "Password123!" --role manager
#   Create a user (prompts if options are omitted).
#
# Permission inspection:
# - python -m flask perms list [--role manager]
#   List permissions (optionally only those a role holds).
#
# Maintenance (schedule daily at 02:00 UTC):
# - python -m flask maintenance cleanup-role-requests [--retention-days 30]
#   Delete resolved role change requests and role notifications older than the window.
# - python -m flask maintenance process-credential-deletions [--limit 100]
#   Delete credentials of deleted users (safe to re-run).

import click
from flask.cli import with_appcontext

from .errors import StockroomError
from .extensions import db
from .models import User
from .permissions import (
    ROLES,
    ROLE_ADMIN,
    PermissionCategory,
    get_permissions_by_category,
    get_role_permissions,
)
from .services import auth_service
from .services import maintenance_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-email', default='admin@stockroom.local', show_default=True, help='Email of the first admin')
@click.option('--admin-password', default='Password123!', show_default=True, help='Password of the first admin')
@with_appcontext
def init_system(admin_email, admin_password):
    """
    Create all tables and the first admin account.

    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing Stockroom...")
    db.create_all()
    click.echo("PASS Schema ready")

    existing_admin = db.session.query(User).filter_by(role=ROLE_ADMIN).first()
    if existing_admin:
        click.echo(f"WARN  Admin already exists ({existing_admin.email}), skipping...")
        return

    try:
        user = auth_service.provision_user(
            email=admin_email,
            password=admin_password,
            role=ROLE_ADMIN,
            display_name="Administrator",
            created_by="system",
        )
    except StockroomError as e:
        click.echo(f"FAIL Failed to create admin '{admin_email}': {e.message}")
        raise SystemExit(1)

    click.echo(f"PASS Created admin: {user.email} (ID: {user.id})")
    click.echo("\nSECURITY Change the default password immediately in production!")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()
    click.echo("BUILD  Creating all tables...")
    db.create_all()
    click.echo("PASS Database reset. Run: python -m flask system init")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their role."""
    users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Email':<35} {'Role':<10} {'Active':<8} {'Pending request'}")
    click.echo("="*80)

    for user in users:
        latest = user.latest_role_request
        pending = latest.requested_role if latest is not None and latest.is_pending else "-"
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.email:<35} {user.role:<10} {active_str:<8} {pending}")

    click.echo("="*80 + "\n")


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address (login)')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(ROLES), default='viewer', show_default=True)
@click.option('--name', 'display_name', default=None, help='Display name')
@with_appcontext
def create_user_cli(email, password, role, display_name):
    """Create a user with an explicit role."""
    try:
        user = auth_service.provision_user(
            email=email,
            password=password,
            role=role,
            display_name=display_name,
            created_by="system",
        )
    except StockroomError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)
    click.echo(f"PASS Created user: {user.email} (ID: {user.id}) with role '{user.role}'")


@click.group('perms')
def perms_group():
    """Permission inspection commands."""


@perms_group.command('list')
@click.option('--role', type=click.Choice(ROLES), default=None, help='Only permissions this role holds')
def list_perms(role):
    """List permission codes by category."""
    granted = get_role_permissions(role) if role else None
    categories = (
        PermissionCategory.INVENTORY,
        PermissionCategory.SALES,
        PermissionCategory.USERS,
        PermissionCategory.ROLES,
    )
    for category in categories:
        for code, name, _description, _category in get_permissions_by_category(category):
            if granted is not None and code not in granted:
                continue
            click.echo(f"{category:<10} {code:<24} {name}")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-role-requests')
@click.option('--retention-days', type=int, default=None, help='Defaults to ROLE_REQUEST_RETENTION_DAYS (30)')
@with_appcontext
def cleanup_role_requests_cli(retention_days):
    """
    Cleanup resolved role change requests and role notifications.

    Intended schedule: daily at 02:00 UTC.
    """
    result = maintenance_service.cleanup_role_requests(retention_days=retention_days)
    click.echo(
        f"Deleted {result['deleted_requests']} role change requests and "
        f"{result['deleted_notifications']} notifications created before {result['cutoff'].isoformat()}."
    )
    if not result["notifications_cleaned"]:
        click.echo("WARN  Notification cleanup failed; see application log.")


@maintenance_group.command('process-credential-deletions')
@click.option('--limit', type=int, default=100, show_default=True)
@with_appcontext
def process_credential_deletions_cli(limit):
    """Delete credentials of deleted users. At-least-once; safe to re-run."""
    result = maintenance_service.process_credential_deletions(limit=limit)
    click.echo(f"Processed {result['processed']} credential deletions ({result['failed']} failed).")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(perms_group)
    app.cli.add_command(maintenance_group)
