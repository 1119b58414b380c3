# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/stockroom/cli.py
# Commands Legend (run from the backend directory):
# - flask --app stockroom system init
#   Create tables and the default admin user (idempotent).
# - flask --app stockroom system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - flask --app stockroom users list
# - flask --app stockroom users create --username jane --email jane@stockroom.local --password "Password123!" --role staff
# - flask --app stockroom stock verify [--product-id 1]
#   Replay stock history against product quantities; exits 1 on any mismatch.
# - flask --app stockroom catalog add-category "Hardware" [--description "..."]
# - flask --app stockroom catalog add-supplier "Acme Supply" [--contact-name ... --email ... --phone ...]
# - flask --app stockroom catalog list
#   Categories and suppliers have no HTTP API; products reference them by id.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User, ROLE_ADMIN, ROLES
from .services import products_service
from .services.auth_service import create_user, PasswordValidationError, UserExistsError
from .services.user_service import list_users
from .services.reporting_service import verify_stock_integrity

DEFAULT_ADMIN_USERNAME = "admin"
DEFAULT_ADMIN_EMAIL = "admin@stockroom.local"
DEFAULT_ADMIN_PASSWORD = "Password123!"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Create all tables and a default admin account.

    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing stockroom...")
    db.create_all()
    click.echo("PASS Tables ready")

    existing = db.session.query(User).filter_by(username=DEFAULT_ADMIN_USERNAME).first()
    if existing:
        click.echo(f"WARN  User '{DEFAULT_ADMIN_USERNAME}' already exists, skipping...")
        return

    user = create_user(
        username=DEFAULT_ADMIN_USERNAME,
        email=DEFAULT_ADMIN_EMAIL,
        password=DEFAULT_ADMIN_PASSWORD,
        role=ROLE_ADMIN,
        name="Administrator",
    )
    click.echo(f"PASS Created user: {user.username} ({user.email}) with role '{user.role}'")
    click.echo(f"\nDefault credentials (CHANGE IN PRODUCTION!): {DEFAULT_ADMIN_USERNAME} / {DEFAULT_ADMIN_PASSWORD}")


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
    click.echo("BUILD Creating all tables...")
    db.create_all()
    click.echo("PASS Database reset complete. Run 'flask system init' to create the admin user.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@with_appcontext
def list_users_cli():
    """List all users with role and active status."""
    users = list_users()
    if not users:
        click.echo("No users found.")
        return

    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<32} {'Role':<8} {'Active'}")
    for u in users:
        click.echo(f"{u.id:<5} {u.username:<20} {u.email:<32} {u.role:<8} {'Yes' if u.is_active else 'No'}")


@users_group.command('create')
@click.option('--username', prompt=True)
@click.option('--email', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--role', type=click.Choice(ROLES), default='staff', show_default=True)
@click.option('--name', default=None)
@with_appcontext
def create_user_cli(username, email, password, role, name):
    """Create a user (prompts if options are omitted)."""
    try:
        user = create_user(username=username, email=email, password=password, role=role, name=name)
    except (PasswordValidationError, UserExistsError, ValueError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created user: {user.username} ({user.email}) with role '{user.role}'")


@click.group('stock')
def stock_group():
    """Stock audit commands."""


@stock_group.command('verify')
@click.option('--product-id', type=int, default=None, help='Check a single product')
@with_appcontext
def verify_stock(product_id):
    """Replay stock history against current quantities."""
    report = verify_stock_integrity(product_id=product_id)

    for row in report["products"]:
        status = "PASS" if row["consistent"] else "FAIL"
        click.echo(
            f"{status} product={row['product_id']} sku={row['sku']} "
            f"quantity={row['quantity']} audited={row['audited_quantity']} "
            f"entries={row['entries']} breaks={len(row['chain_breaks'])}"
        )

    click.echo(f"\nChecked {report['checked']} product(s), {report['inconsistent']} inconsistent")
    if report["inconsistent"]:
        click.get_current_context().exit(1)


@click.group('catalog')
def catalog_group():
    """Category and supplier reference data."""


@catalog_group.command('add-category')
@click.argument('name')
@click.option('--description', default=None)
@with_appcontext
def add_category(name, description):
    try:
        category = products_service.create_category(name, description=description)
    except ValueError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created category {category.id}: {category.name}")


@catalog_group.command('add-supplier')
@click.argument('name')
@click.option('--contact-name', default=None)
@click.option('--email', default=None)
@click.option('--phone', default=None)
@with_appcontext
def add_supplier(name, contact_name, email, phone):
    try:
        supplier = products_service.create_supplier(
            name, contact_name=contact_name, email=email, phone=phone
        )
    except ValueError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created supplier {supplier.id}: {supplier.name}")


@catalog_group.command('list')
@with_appcontext
def list_catalog():
    """List categories and suppliers with their ids."""
    click.echo("Categories:")
    for c in products_service.list_categories():
        click.echo(f"  {c.id:<5} {c.name}")
    click.echo("Suppliers:")
    for s in products_service.list_suppliers():
        click.echo(f"  {s.id:<5} {s.name}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(catalog_group)
