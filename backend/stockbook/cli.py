# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/stockbook/cli.py
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
# Users:
# - python -m flask users list
# - python -m flask users create --username editor --email editor@stockbook.local --password "Password123!" --role editor
#
# Stock ledger:
# - python -m flask stock reconcile [--product-id 1]
#   Compare current_stock with the movement ledger; exits 1 on drift.
# - python -m flask stock correct 1 42 --notes "Annual count"
#   Book a counted quantity as a correction movement.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .permissions import ROLES, ROLE_ADMIN
from .services import stock_service
from .services.auth_service import create_user
from .services.errors import LedgerError
from .validation import ConflictError, ValidationError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-username', default='admin', help='Username of the default admin')
@click.option('--admin-email', default='admin@stockbook.local', help='Email of the default admin')
@click.option('--admin-password', default='Password123!', help='Password of the default admin')
@with_appcontext
def init_system(admin_username, admin_email, admin_password):
    """
    Create tables and a default admin user.

    SECURITY: Change the admin password immediately in production!
    """
    click.echo("START Initializing Stockbook...")

    db.create_all()
    click.echo("PASS Database tables ready")

    if db.session.query(User).filter_by(role=ROLE_ADMIN).first():
        click.echo("PASS Admin user already exists")
    else:
        user = create_user(admin_username, admin_email, admin_password, name="Administrator", role=ROLE_ADMIN)
        click.echo(f"PASS Created admin user: {user.username} ({user.email})")

    click.echo("DONE Initialization complete")


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

    click.echo("PASS Database reset complete")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@with_appcontext
def list_users_cli():
    users = db.session.query(User).order_by(User.username).all()
    if not users:
        click.echo("No users found")
        return
    for user in users:
        status = "BANNED" if user.banned else "active"
        click.echo(f"{user.id:>4}  {user.username:<20} {user.email:<32} {user.role:<8} {status}")


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ROLES)), prompt=True, help='Role')
@click.option('--name', default=None, help='Display name')
@with_appcontext
def create_user_cli(username, email, password, role, name):
    """Create a new user interactively."""
    try:
        user = create_user(username, email, password, name=name, role=role)
    except (ValidationError, ConflictError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created user {user.username} (ID: {user.id}, role: {user.role})")


@click.group('stock')
def stock_group():
    """Stock ledger inspection and maintenance."""


@stock_group.command('reconcile')
@click.option('--product-id', type=int, default=None, help='Check a single product')
@with_appcontext
def reconcile_cli(product_id):
    """
    Compare every product's current_stock with SUM(in) - SUM(out).

    Exits with status 1 if any product drifts.
    """
    try:
        reports = [stock_service.reconcile_product(product_id)] if product_id else stock_service.reconcile_all()
    except LedgerError as e:
        raise click.ClickException(str(e))

    drifted = 0
    for report in reports:
        if report["is_consistent"]:
            click.echo(f"PASS {report['sku']}: {report['current_stock']}")
        else:
            drifted += 1
            click.echo(
                f"FAIL {report['sku']}: stored {report['current_stock']}, "
                f"ledger {report['ledger_stock']} (drift {report['drift']:+d})"
            )

    click.echo(f"DONE {len(reports)} product(s) checked, {drifted} with drift")
    if drifted:
        raise SystemExit(1)


@stock_group.command('correct')
@click.argument('product_id', type=int)
@click.argument('counted_quantity', type=int)
@click.option('--notes', default=None, help='Reason for the correction')
@with_appcontext
def correct_cli(product_id, counted_quantity, notes):
    """Set a product's stock to a counted quantity via a correction movement."""
    try:
        tx = stock_service.correct_stock(product_id, counted_quantity, notes=notes)
    except LedgerError as e:
        raise click.ClickException(str(e))
    if tx is None:
        click.echo("PASS Stock already matches the count; nothing recorded")
    else:
        click.echo(f"PASS Recorded correction {tx.type} {tx.quantity} (transaction {tx.id})")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(stock_group)
