# Overview: Flask CLI command groups for bootstrap, event setup and stock.

# backend/barpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates the admin user if missing.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
#   List all users with role and active status.
# - python -m flask users create --username ana --email ana@barpos.local --password "Password123!" --role CASHIER
#   Create a user (prompts if options are omitted).
#
# Events:
# - python -m flask events create --name "Fiesta" --bar "Main Bar" --bar "Terrace" --register "Caja 1"
#   Create an event with a warehouse, its bars and registers.
#
# Stock:
# - python -m flask stock receive --product-code RON --location-id 2 --quantity 48
#   Inbound stock into a location.
# - python -m flask stock low --event-id 1
#   List records at or below their low-stock threshold.

import click
from flask.cli import with_appcontext

from .errors import DomainError
from .extensions import db
from .models import Event, Product, Register, StockLocation, User
from .models.auth import ROLE_ADMIN, VALID_ROLES
from .models.events import LOCATION_KIND_BAR, LOCATION_KIND_WAREHOUSE
from .services.auth_service import create_user
from .services import inventory_service
from .time_utils import parse_iso_datetime, utcnow


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--username', default='admin', help='Admin username')
@click.option('--email', default='admin@barpos.local', help='Admin email')
@click.option('--password', default='Password123!', help='Admin password')
@with_appcontext
def init_system(username, email, password):
    """
    Create the first ADMIN account if it does not exist yet.

    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing BarPOS...")

    existing = db.session.query(User).filter_by(username=username).first()
    if existing:
        click.echo(f"WARN  User '{username}' already exists, skipping...")
        return

    try:
        user = create_user(username=username, email=email, password=password, role=ROLE_ADMIN, name="Administrator")
    except DomainError as e:
        raise click.ClickException(e.message)

    click.echo(f"PASS Created admin user: {user.username} ({user.email})")
    click.echo("\nSECURITY WARNING: change the admin password before going live.")


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
    """User inspection and bootstrap."""


@users_group.command('list')
@with_appcontext
def list_users():
    users = db.session.query(User).order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found.")
        return

    click.echo(f"\n{'ID':<5} {'Username':<20} {'Email':<30} {'Role':<12} {'Active':<6}")
    click.echo("-" * 76)
    for user in users:
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<30} {user.role:<12} {str(user.is_active):<6}")


@users_group.command('create')
@click.option('--username', prompt=True)
@click.option('--email', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--role', prompt=True, type=click.Choice(VALID_ROLES, case_sensitive=False))
@click.option('--name', default=None)
@with_appcontext
def create_user_command(username, email, password, role, name):
    """Create a staff account with a single role."""
    try:
        user = create_user(username=username, email=email, password=password, role=role.upper(), name=name)
    except DomainError as e:
        raise click.ClickException(e.message)

    click.echo(f"PASS Created user: {user.username} ({user.email}) with role '{user.role}'")


@click.group('events')
def events_group():
    """Event setup."""


@events_group.command('create')
@click.option('--name', required=True, help='Event name')
@click.option('--starts-at', default=None, help='ISO-8601 start (optional)')
@click.option('--ends-at', default=None, help='ISO-8601 end (optional)')
@click.option('--warehouse', default='Warehouse', help='Name of the back-of-house location')
@click.option('--bar', 'bars', multiple=True, help='Bar name (repeatable)')
@click.option('--register', 'registers', multiple=True, help='Register name (repeatable)')
@with_appcontext
def create_event_command(name, starts_at, ends_at, warehouse, bars, registers):
    """
    Create an event with a warehouse, bars and registers.

    Registers sell from the first bar (or the warehouse when no bar is
    given). Defaults to one bar and one register.
    """
    try:
        starts = parse_iso_datetime(starts_at) if starts_at else None
        ends = parse_iso_datetime(ends_at) if ends_at else None
    except ValueError as e:
        raise click.BadParameter(str(e))

    event = Event(name=name, starts_at=starts, ends_at=ends, is_active=True, created_at=utcnow())
    db.session.add(event)
    db.session.flush()

    warehouse_location = StockLocation(event_id=event.id, name=warehouse, kind=LOCATION_KIND_WAREHOUSE)
    db.session.add(warehouse_location)

    bar_locations = [
        StockLocation(event_id=event.id, name=bar_name, kind=LOCATION_KIND_BAR)
        for bar_name in (bars or ("Main Bar",))
    ]
    db.session.add_all(bar_locations)
    db.session.flush()

    sells_from = bar_locations[0] if bar_locations else warehouse_location
    created_registers = [
        Register(event_id=event.id, name=register_name, location_id=sells_from.id)
        for register_name in (registers or ("Register 1",))
    ]
    db.session.add_all(created_registers)
    db.session.commit()

    click.echo(f"PASS Created event: {event.name} (ID: {event.id})")
    click.echo(f"     Warehouse: {warehouse_location.name} (ID: {warehouse_location.id})")
    for bar in bar_locations:
        click.echo(f"     Bar: {bar.name} (ID: {bar.id})")
    for register in created_registers:
        click.echo(f"     Register: {register.name} (ID: {register.id}, sells from {sells_from.name})")


@click.group('stock')
def stock_group():
    """Stock receipts and alerts."""


@stock_group.command('receive')
@click.option('--product-code', required=True)
@click.option('--location-id', required=True, type=int)
@click.option('--quantity', required=True, type=int)
@click.option('--threshold', default=None, type=int, help='Low-stock threshold for a new record')
@click.option('--reason', default='Initial stock')
@with_appcontext
def receive_stock_command(product_code, location_id, quantity, threshold, reason):
    """INBOUND movement into a location."""
    product = db.session.query(Product).filter_by(code=product_code.strip().upper()).first()
    if not product:
        raise click.ClickException(f"Product {product_code} not found")

    try:
        record = inventory_service.receive_stock(
            product.id,
            location_id,
            quantity,
            low_stock_threshold=threshold,
            reason=reason,
        )
    except DomainError as e:
        raise click.ClickException(e.message)

    click.echo(
        f"PASS {product.code} at location {location_id}: "
        f"quantity={record.quantity} reserved={record.reserved} available={record.available}"
    )


@stock_group.command('low')
@click.option('--event-id', required=True, type=int)
@with_appcontext
def low_stock_command(event_id):
    records = inventory_service.list_low_stock(event_id)
    if not records:
        click.echo("PASS No low-stock records.")
        return

    click.echo(f"\n{'Location':<10} {'Code':<12} {'Product':<28} {'Avail':>6} {'Thresh':>6}")
    click.echo("-" * 66)
    for record in records:
        click.echo(
            f"{record.location_id:<10} {record.product.code:<12} {record.product.name:<28} "
            f"{record.available:>6} {record.low_stock_threshold:>6}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(events_group)
    app.cli.add_command(stock_group)
