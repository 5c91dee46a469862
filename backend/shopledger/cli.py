# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/shopledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables, the walk-in customer, demo suppliers and customers.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system ping
#   Round-trip the database once through the persistence gateway.
# - python -m flask system health
#   Print the gateway health status (pool, consecutive failures, last error).
#
# Staff accounts:
# - python -m flask users create
#   Prompted: username, name, password (hidden, confirmed), role.
# - python -m flask users list

import json

import click
from flask.cli import with_appcontext

from .extensions import db, database
from .database import ConstraintViolation
from .models import Customer, Supplier, User, USER_ROLES
from .services.customer_service import ensure_walk_in_customer
from .services.user_service import create_user
from .validation import ValidationError


DEMO_SUPPLIERS = (
    {
        "company": "TechParts Inc",
        "contact": "John Doe",
        "email": "john@techparts.com",
        "phone": "+1234567890",
        "terms": "Net 30",
        "categories": "Electronics, Computer Hardware",
        "products": "Electronics, Computer Parts",
    },
    {
        "company": "Global Supplies Co",
        "contact": "Jane Smith",
        "email": "jane@globalsupplies.com",
        "phone": "+1234567891",
        "terms": "Net 60",
        "categories": "Office Supplies, Hardware",
        "products": "Office Supplies, Hardware",
    },
)

DEMO_CUSTOMERS = (
    {"name": "Alice Johnson", "email": "alice@email.com", "phone": "+1234567892", "address": "123 Main St, City"},
    {"name": "Bob Williams", "email": "bob@email.com", "phone": "+1234567893", "address": "456 Oak Ave, City"},
)


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize the shop: schema, walk-in customer, demo suppliers/customers.

    Safe to run repeatedly; existing rows are left alone.
    """
    click.echo("START Initializing shop ledger...")

    db.create_all()
    click.echo("PASS Schema ready")

    ensure_walk_in_customer()
    click.echo("PASS Walk-in customer (ID: 0) ready")

    if db.session.query(Supplier).count() == 0:
        for data in DEMO_SUPPLIERS:
            db.session.add(Supplier(**data))
        db.session.commit()
        click.echo(f"PASS Created {len(DEMO_SUPPLIERS)} demo suppliers")
    else:
        click.echo("WARN  Suppliers already exist, skipping...")

    created = 0
    for data in DEMO_CUSTOMERS:
        if db.session.query(Customer).filter_by(email=data["email"]).first():
            continue
        db.session.add(Customer(**data))
        created += 1
    db.session.commit()
    click.echo(f"PASS Created {created} demo customers")

    click.echo("DONE Shop ledger initialized")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to seed it.")


@system_group.command('ping')
@with_appcontext
def ping():
    """Exit non-zero when the database does not answer."""
    if database.ping():
        click.echo("PASS Database reachable")
        return
    click.echo(f"FAIL Database unreachable: {database.health_status()['last_error']}")
    raise SystemExit(1)


@system_group.command('health')
@with_appcontext
def health():
    click.echo(json.dumps(database.health_status(), indent=2))


@click.group('users')
def users_group():
    """Staff account commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--name', prompt=True, help='Display name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(USER_ROLES), default='admin', prompt=True, help='Role')
@with_appcontext
def create_user_cli(username, name, password, role):
    """Create a staff account (bootstraps the first administrator)."""
    try:
        user = create_user({"username": username.strip(), "name": name.strip(), "role": role}, password)
    except (ValidationError, ConstraintViolation) as e:
        click.echo(f"FAIL Failed to create user: {e}")
        raise SystemExit(1)

    click.echo(f"PASS Created user: {user.username} with role '{user.role}' (ID: {user.id})")
    click.echo("SECURITY Password securely hashed with bcrypt")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all staff accounts."""
    users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'ID':<5} {'Username':<20} {'Name':<30} {'Role'}")
    click.echo("="*70)

    for user in users:
        click.echo(f"{user.id:<5} {user.username:<20} {user.name:<30} {user.role}")

    click.echo("="*70 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
