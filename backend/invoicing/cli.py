# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/invoicing/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system seed
#   Idempotent: creates admin, john_doe, jane_smith and three sample invoices.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with role and session state.
# - python -m flask users create --username alice --email alice@example.com --password secret1 --role User
#   Create a user (prompts if options are omitted).
#
# Maintenance:
# - python -m flask tokens purge-expired
#   Clear refresh tokens whose expiry has passed.

from datetime import timedelta
from decimal import Decimal

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import ConflictError, ValidationError
from .extensions import db
from .models import Invoice, InvoiceItem, InvoiceStatus, Role, User
from .time_utils import utcnow, to_utc_z


def _token_service():
    return current_app.extensions["token_service"]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('seed')
@with_appcontext
def seed_system():
    """
    Seed default users and sample invoices.

    SECURITY: Change passwords immediately in production!
    """
    if db.session.query(User).first() is not None:
        click.echo("WARN  Database already has users, skipping seed.")
        return

    service = _token_service()
    admin = service.register("admin", "admin@invoicesystem.com", "admin123", Role.ADMIN)
    john = service.register("john_doe", "john@example.com", "user123", Role.USER)
    jane = service.register("jane_smith", "jane@example.com", "user123", Role.USER)
    click.echo(f"PASS Created users: {admin.username}, {john.username}, {jane.username}")

    now = utcnow()
    samples = [
        ("INV-2024-001", "Acme Corporation", -10, 20, InvoiceStatus.PENDING, john,
         [("Web Development Services", 40, "50.00"), ("Hosting Services (Annual)", 1, "500.00")]),
        ("INV-2024-002", "Tech Solutions Inc.", -5, 25, InvoiceStatus.PENDING, jane,
         [("Software Consultation", 10, "100.00")]),
        ("INV-2024-003", "Global Enterprises", -15, -5, InvoiceStatus.OVERDUE, john,
         [("Mobile App Development", 80, "75.00"), ("UI/UX Design", 20, "60.00")]),
    ]
    for number, customer, issued, due, status, assignee, lines in samples:
        items = [
            InvoiceItem(
                description=description,
                quantity=quantity,
                unit_price=Decimal(price),
                total_price=Decimal(price) * quantity,
            )
            for description, quantity, price in lines
        ]
        db.session.add(Invoice(
            invoice_number=number,
            customer_name=customer,
            issue_date=now + timedelta(days=issued),
            due_date=now + timedelta(days=due),
            total_amount=sum((item.total_price for item in items), Decimal("0.00")),
            status=status,
            assigned_user_id=assignee.id,
            created_by_admin_id=admin.id,
            items=items,
        ))
    db.session.commit()
    click.echo(f"PASS Created {len(samples)} sample invoices")

    click.echo("\nDefault Credentials (CHANGE IN PRODUCTION!):")
    click.echo("   admin      / admin123 (Admin)")
    click.echo("   john_doe   / user123  (User)")
    click.echo("   jane_smith / user123  (User)")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system seed' to add sample data.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their role and refresh-token state."""
    users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<30} {'Role':<7} {'Session until'}")
    click.echo("="*90)

    for user in users:
        session_str = to_utc_z(user.refresh_token_expires_at) if user.refresh_token_hash else "none"
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<30} {user.role.value:<7} {session_str}")

    click.echo("="*90 + "\n")


@users_group.command('create')
@click.option('--username', prompt=True)
@click.option('--email', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--role', type=click.Choice([r.value for r in Role]), default=Role.USER.value, show_default=True)
@with_appcontext
def create_user_command(username, email, password, role):
    """Create a user."""
    try:
        user = _token_service().register(username, email, password, role)
    except (ValidationError, ConflictError) as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created user: {user.username} ({user.email}) with role '{user.role.value}'")


@click.group('tokens')
def tokens_group():
    """Session token maintenance."""


@tokens_group.command('purge-expired')
@with_appcontext
def purge_expired_tokens():
    """Clear refresh tokens that are past their expiry."""
    cleared = _token_service().purge_expired_refresh_tokens()
    click.echo(f"PASS Cleared {cleared} expired refresh token(s)")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(tokens_group)
