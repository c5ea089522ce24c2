# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/stockledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--admin-password "Password123!"]
#   Idempotent bootstrap: creates tables and a default admin user.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with role and active status.
# - python -m flask users create --username clerk --password "Password123!" --role STAFF
#   Create a user (prompts if options are omitted).
#
# Ledger inspection:
# - python -m flask ledger reconcile
#   Replay the ledger and compare against every product's stock counter.
#   Exits non-zero when any product has drifted.

import click
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .models import User
from .models.auth import ROLES
from .services.auth_service import create_user
from .services import reporting_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-username', default='admin', help='Username of the default admin')
@click.option('--admin-password', default='Password123!', help='Password of the default admin')
@with_appcontext
def init_system(admin_username, admin_password):
    """
    Create all tables and a default ADMIN user if none exists.

    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing stock ledger...")

    db.create_all()
    click.echo("PASS Schema ready")

    existing = db.session.query(User).filter_by(username=admin_username).first()
    if existing:
        click.echo(f"WARN  User '{admin_username}' already exists, skipping...")
        return

    try:
        user = create_user(
            username=admin_username,
            password=admin_password,
            full_name="Administrator",
            role="ADMIN",
        )
    except LedgerError as e:
        raise click.ClickException(f"Failed to create user '{admin_username}': {e.message}")

    click.echo(f"PASS Created user: {user.username} with role '{user.role}'")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--full-name', default='', help='Display name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ROLES), case_sensitive=False), prompt=True, help='Role')
@with_appcontext
def create_user_cli(username, full_name, password, role):
    """
    Create a new user.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    try:
        user = create_user(username=username, password=password, full_name=full_name, role=role)
    except LedgerError as e:
        raise click.ClickException(f"Failed to create user: {e.message}")

    click.echo(f"PASS Created user: {user.username} with role '{user.role}'")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users."""
    users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'ID':<5} {'Username':<20} {'Name':<25} {'Role':<8} {'Active'}")
    click.echo("="*70)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.full_name:<25} {user.role:<8} {active_str}")

    click.echo("="*70 + "\n")


@click.group('ledger')
def ledger_group():
    """Ledger inspection commands."""


@ledger_group.command('reconcile')
@with_appcontext
def reconcile_cli():
    """Compare each product's stock with its replayed ledger."""
    report = reporting_service.reconcile_all()

    for row in report["drift"]:
        click.echo(
            f"DRIFT product {row['product_id']} ({row['sku']}): "
            f"stock={row['stock']} ledger={row['ledger_stock']}"
        )

    if not report["in_sync"]:
        raise click.ClickException(f"{len(report['drift'])} product(s) out of sync")

    click.echo(f"PASS {report['product_count']} product(s) in sync")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(ledger_group)
