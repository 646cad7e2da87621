# Overview: Flask CLI command groups for bootstrap, tab inspection, and maintenance.

# backend/comanda/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--company "Company Name"] [--code DEFAULT]
#   Idempotent bootstrap: creates the default company if none exists.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Tab inspection:
# - python -m flask tabs list --company-id 1
#   Print the monitor board (open tabs with status and total).
# - python -m flask tabs show --company-id 1 --type table --number 5
#   Print one tab with its merged history.
#
# Order maintenance:
# - python -m flask orders archive-completed --company-id 1
#   Archive every completed, non-archived order (clears the monitor board).
#
# Stock inspection:
# - python -m flask stock show --company-id 1 --product-id 3
#   Print quantity on hand and the latest movements for a product.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Company
from .services import stock_service, tab_service
from .services.catalog_service import get_product
from .services.order_store import order_store
from .validation import ValidationError, NotFoundError, to_amount


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--company', 'company_name', default='Default Company', help='Company name')
@click.option('--code', 'company_code', default='DEFAULT', help='Company code')
@with_appcontext
def init_system(company_name, company_code):
    """
    Create the default company (tenant root) if none exists.

    Products and stock are owned by the catalog and are not seeded here.
    """
    click.echo("START Initializing tab engine...")

    db.create_all()

    company = db.session.query(Company).first()
    if not company:
        company = Company(name=company_name, code=company_code, is_active=True)
        db.session.add(company)
        db.session.commit()
        click.echo(f"PASS Created default company: {company.name} (ID: {company.id}, Code: {company.code})")
    else:
        click.echo(f"PASS Using existing company: {company.name} (ID: {company.id})")

    click.echo("DONE System initialized")


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
    click.echo("PASS Database reset complete. Run 'flask system init' to bootstrap.")


@click.group('tabs')
def tabs_group():
    """Open tab inspection commands."""


@tabs_group.command('list')
@click.option('--company-id', type=int, required=True, help='Company ID')
@with_appcontext
def list_tabs(company_id):
    """Print the monitor board for a company."""
    tabs = tab_service.get_all_tabs(company_id)

    if not tabs:
        click.echo("No open tabs.")
        return

    click.echo("\n" + "="*72)
    click.echo(f"{'Type':<13} {'Number':<10} {'Status':<14} {'Orders':<8} {'Total':>10}  Customer")
    click.echo("="*72)

    for tab in tabs:
        click.echo(
            f"{tab.target_type.value:<13} {tab.target_number:<10} {tab.status.value:<14} "
            f"{tab.order_count:<8} {to_amount(tab.total_cents):>10.2f}  {tab.customer_name or '-'}"
        )

    click.echo("="*72 + "\n")


@tabs_group.command('show')
@click.option('--company-id', type=int, required=True, help='Company ID')
@click.option('--type', 'target_type', required=True, help='table, room, appointment')
@click.option('--number', 'target_number', required=True, help='Target number')
@with_appcontext
def show_tab(company_id, target_type, target_number):
    """Print one tab with its merged history."""
    try:
        tab = tab_service.get_tab(target_type, target_number, company_id)
    except ValidationError as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"\n{tab_service.target_label(tab.target_type, tab.target_number)} [{tab.status.value}]")
    if tab.is_empty:
        click.echo("  (empty)")
        return

    for line in tab.history:
        click.echo(
            f"  #{line.order_id:<6} {line.quantity:>4} x {line.product_name:<30} "
            f"{to_amount(line.line_total_cents):>10.2f}  {line.status}"
        )
    click.echo(f"  TOTAL {tab.total:.2f}\n")


@click.group('orders')
def orders_group():
    """Order maintenance commands."""


@orders_group.command('archive-completed')
@click.option('--company-id', type=int, required=True, help='Company ID')
@with_appcontext
def archive_completed(company_id):
    """Archive every completed order still on the board."""
    count = order_store.archive_completed_orders(company_id)
    click.echo(f"PASS Archived {count} completed order(s) for company {company_id}")


@click.group('stock')
def stock_group():
    """Stock ledger inspection commands."""


@stock_group.command('show')
@click.option('--company-id', type=int, required=True, help='Company ID')
@click.option('--product-id', type=int, required=True, help='Product ID')
@click.option('--limit', type=int, default=10, show_default=True)
@with_appcontext
def show_stock(company_id, product_id, limit):
    """Quantity on hand (sum of movements) and the latest movements."""
    try:
        product = get_product(company_id, product_id)
    except NotFoundError as e:
        click.echo(f"FAIL {e}")
        return

    on_hand = stock_service.get_stock_level(company_id, product_id)
    click.echo(f"{product.name} (SKU {product.sku}): {on_hand} on hand")

    for movement in stock_service.list_movements(company_id, product_id, limit=limit):
        click.echo(f"  {movement.delta:>+6}  {movement.reason}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(tabs_group)
    app.cli.add_command(orders_group)
    app.cli.add_command(stock_group)
