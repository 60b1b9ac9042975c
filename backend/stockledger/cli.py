# Overview: Flask CLI command groups for bootstrap, inspection, and stock maintenance.

# backend/stockledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent). Use `flask db upgrade` for migrations.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Product stock:
# - python -m flask products create --name "Rice 5kg" --price 1299 --cost 950 --stock 20 --threshold 5
#   Create a product; opening stock is booked through the ledger.
# - python -m flask products list [--all]
#   List products with stock, cost and price (use --all to include deleted).
# - python -m flask products low-stock
#   List products at or below their minimum stock threshold.
# - python -m flask products adjust 3 --delta 12 --type add --cost 700 --reason "Supplier delivery"
#   Apply a manual stock adjustment (add/remove) to a product.

import click
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .models import Product
from .services import ledger_service, reporting_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables ready.")


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

    click.echo("PASS Database reset complete.")


@click.group('products')
def products_group():
    """Product stock inspection and maintenance."""


def _print_products(products):
    click.echo("\n" + "=" * 96)
    click.echo(f"{'ID':<5} {'Name':<30} {'Unit':<6} {'Stock':>12} {'Min':>10} {'Cost':>10} {'Price':>10} {'Flags'}")
    click.echo("=" * 96)
    for p in products:
        flags = []
        if p.is_low_stock:
            flags.append("LOW")
        if p.is_deleted:
            flags.append("DELETED")
        click.echo(
            f"{p.id:<5} {p.name[:30]:<30} {p.unit:<6} {str(p.stock_quantity):>12} "
            f"{str(p.min_stock_threshold):>10} {p.cost_price_cents:>10} {p.selling_price_cents:>10} "
            f"{','.join(flags)}"
        )
    click.echo("=" * 96 + "\n")


@products_group.command('create')
@click.option('--name', prompt=True, help='Product name (unique)')
@click.option('--price', 'price_cents', type=int, prompt='Selling price (cents)', help='Selling price in cents')
@click.option('--cost', 'cost_cents', type=int, default=0, help='Unit cost in cents')
@click.option('--stock', default='0', help='Opening stock quantity')
@click.option('--threshold', default='5', help='Minimum stock threshold')
@click.option('--unit', default='piece', help='Unit (piece, kg, g, l, ml, m, box)')
@click.option('--barcode', default=None, help='Optional barcode')
@with_appcontext
def create_product_cli(name, price_cents, cost_cents, stock, threshold, unit, barcode):
    """
    Create a product.

    Example:
        flask products create --name "Rice 5kg" --price 1299 --cost 950 --stock 20
    """
    try:
        product = ledger_service.create_product(
            name,
            price_cents,
            cost_cents,
            stock_quantity=stock,
            min_stock_threshold=threshold,
            unit=unit,
            barcode=barcode,
        )
    except LedgerError as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Created product {product.id}: {product.name} (stock {product.stock_quantity})")


@products_group.command('list')
@click.option('--all', 'show_all', is_flag=True, help='Show deleted products too')
@with_appcontext
def list_products_cli(show_all):
    """List products with stock and pricing."""
    query = db.session.query(Product)
    if not show_all:
        query = query.filter_by(is_deleted=False)

    products = query.order_by(Product.name).all()
    if not products:
        click.echo("No products found.")
        return

    _print_products(products)
    click.echo(f"Total: {len(products)} product(s)")


@products_group.command('low-stock')
@with_appcontext
def low_stock_cli():
    """List products at or below their minimum stock threshold."""
    products = reporting_service.get_low_stock_products()
    if not products:
        click.echo("No products are low on stock.")
        return

    _print_products(products)
    click.echo(f"Total: {len(products)} product(s) low on stock")


@products_group.command('adjust')
@click.argument('product_id', type=int)
@click.option('--delta', required=True, help='Signed quantity (positive for add, negative for remove)')
@click.option('--type', 'adjustment_type', type=click.Choice(['add', 'remove']), required=True)
@click.option('--cost', 'cost_cents', type=int, default=None, help='Unit cost of received stock (add only)')
@click.option('--reason', default=None, help='Reason for the adjustment')
@click.option('--reference', default=None, help='External reference (PO number, count sheet, ...)')
@with_appcontext
def adjust_stock_cli(product_id, delta, adjustment_type, cost_cents, reason, reference):
    """
    Apply a manual stock adjustment.

    Example:
        flask products adjust 3 --delta 12 --type add --cost 700
        flask products adjust 3 --delta -2 --type remove --reason "Damaged"
    """
    try:
        adjustment = ledger_service.apply_stock_adjustment(
            product_id,
            delta,
            adjustment_type,
            new_cost_cents=cost_cents,
            reason=reason,
            reference=reference,
        )
    except LedgerError as e:
        raise click.ClickException(str(e))

    click.echo(
        f"PASS Product {product_id}: stock {adjustment.resulting_stock}, "
        f"cost {adjustment.resulting_cost_price_cents} cents"
    )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(products_group)
