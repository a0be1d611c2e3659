# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/pharmapos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Catalog:
# - python -m flask catalog seed
#   Load a small demo pharmacy catalog (skips SKUs that already exist).
# - python -m flask catalog expiring --days 30
#   List products expiring within the window.
#
# Inventory:
# - python -m flask inventory low-stock
#   List products at or below their reorder level.
# - python -m flask inventory adjust --product-id 1 --direction in --quantity 10 --notes "delivery"
#   Manual restock or write-off through the stock ledger.
# - python -m flask inventory reconcile [--product-id 1]
#   Replay stock movements and compare with live stock. Exit code 1 if any product is off.
#
# Orders:
# - python -m flask orders list --status completed --limit 20
#   List recent orders.
# - python -m flask orders set-status 12 completed
#   Drive the order state machine from the shell.

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import PharmaPosError
from .extensions import db
from .money import format_cents
from .models import Product
from .services import catalog_service, order_service, stock_service
from .time_utils import days_until

DEMO_CATALOG = [
    {"sku": "PCM-500", "name": "Paracetamol 500mg (20 tabs)", "category": "Pain Relief", "price_cents": 350, "cost_price_cents": 180, "stock_quantity": 120, "reorder_level": 30},
    {"sku": "IBU-200", "name": "Ibuprofen 200mg (24 tabs)", "category": "Pain Relief", "price_cents": 475, "cost_price_cents": 210, "stock_quantity": 80, "reorder_level": 25},
    {"sku": "AMX-250", "name": "Amoxicillin 250mg (21 caps)", "category": "Antibiotics", "price_cents": 1250, "cost_price_cents": 700, "stock_quantity": 15, "reorder_level": 20},
    {"sku": "CET-10", "name": "Cetirizine 10mg (30 tabs)", "category": "Allergy", "price_cents": 899, "cost_price_cents": 400, "stock_quantity": 45, "reorder_level": 15},
    {"sku": "ORS-SACH", "name": "Oral Rehydration Salts (10 sachets)", "category": "Digestive Health", "price_cents": 600, "cost_price_cents": 250, "stock_quantity": 8, "reorder_level": 10},
    {"sku": "VITC-1000", "name": "Vitamin C 1000mg (60 tabs)", "category": "Vitamins", "price_cents": 1599, "cost_price_cents": 820, "stock_quantity": 60, "reorder_level": 10},
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables."""
    db.create_all()
    click.echo("OK Tables created")


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
    click.echo("OK Database reset")


@click.group('catalog')
def catalog_group():
    """Catalog commands."""


@catalog_group.command('seed')
@with_appcontext
def seed_catalog():
    """Load the demo catalog; existing SKUs are left alone."""
    created = 0
    for entry in DEMO_CATALOG:
        if db.session.query(Product).filter_by(sku=entry["sku"]).first():
            click.echo(f"SKIP {entry['sku']} already exists")
            continue
        product = catalog_service.create_product(dict(entry))
        created += 1
        click.echo(f"ADD  {product.sku:<10} {product.name} (stock {product.stock_quantity})")
    click.echo(f"OK {created} product(s) created")


@catalog_group.command('expiring')
@click.option('--days', type=int, default=None, help='Window in days (default EXPIRY_WARNING_DAYS)')
@with_appcontext
def list_expiring(days):
    if days is None:
        days = current_app.config.get("EXPIRY_WARNING_DAYS", 30)
    products = catalog_service.get_expiring_products(within_days=days)
    if not products:
        click.echo(f"No products expire within {days} days")
        return
    for p in products:
        left = days_until(p.expiry_date)
        when = "EXPIRED" if left < 0 else f"{left:>3}d"
        click.echo(f"{p.expiry_date.isoformat()} {when:>7}  {p.sku:<10} {p.name} (stock {p.stock_quantity})")


@click.group('inventory')
def inventory_group():
    """Stock ledger inspection and adjustment."""


@inventory_group.command('low-stock')
@with_appcontext
def low_stock():
    products = stock_service.get_low_stock()
    if not products:
        click.echo("No products at or below reorder level")
        return
    for p in products:
        click.echo(f"{p.sku:<10} stock={p.stock_quantity:<5} reorder_level={p.reorder_level:<5} {p.name}")


@inventory_group.command('adjust')
@click.option('--product-id', type=int, required=True)
@click.option('--direction', type=click.Choice(['in', 'out']), required=True)
@click.option('--quantity', type=int, required=True)
@click.option('--notes', default=None)
@with_appcontext
def adjust(product_id, direction, quantity, notes):
    try:
        movement = stock_service.adjust_stock(
            product_id=product_id, direction=direction, quantity=quantity, notes=notes,
        )
    except PharmaPosError as e:
        raise click.ClickException(f"{e.kind}: {e}")
    product = db.session.get(Product, product_id)
    click.echo(f"OK movement #{movement.id} {direction} {quantity}; stock now {product.stock_quantity}")


@inventory_group.command('reconcile')
@click.option('--product-id', type=int, default=None)
@with_appcontext
def reconcile(product_id):
    """Exit code 1 when any product's movements do not replay to its stock."""
    try:
        reports = [stock_service.reconcile(product_id)] if product_id else stock_service.reconcile_all()
    except PharmaPosError as e:
        raise click.ClickException(f"{e.kind}: {e}")

    off = 0
    for r in reports:
        flag = "OK " if r["balanced"] else "OFF"
        if not r["balanced"]:
            off += 1
        click.echo(
            f"{flag} {r['sku']:<10} in={r['total_in']:<6} out={r['total_out']:<6} "
            f"expected={r['expected']:<6} actual={r['actual']}"
        )
    if off:
        raise SystemExit(1)


@click.group('orders')
def orders_group():
    """Order inspection and status commands."""


@orders_group.command('list')
@click.option('--status', default=None)
@click.option('--limit', type=int, default=20)
@with_appcontext
def list_orders(status, limit):
    try:
        orders = order_service.list_orders(status=status, limit=limit)
    except PharmaPosError as e:
        raise click.ClickException(str(e))
    currency = current_app.config.get("CURRENCY", "USD")
    for o in orders:
        customer = o.customer.name if o.customer else "Walk-in"
        click.echo(
            f"#{o.id:<6} {o.created_at:%Y-%m-%d %H:%M}  {o.status:<10} {o.payment_status:<9} "
            f"{format_cents(o.total_amount_cents, currency):>14}  {customer}"
        )


@orders_group.command('set-status')
@click.argument('order_id', type=int)
@click.argument('status')
@with_appcontext
def set_status(order_id, status):
    try:
        order = order_service.update_order_status(order_id, status)
    except PharmaPosError as e:
        raise click.ClickException(f"{e.kind}: {e}")
    click.echo(f"OK order #{order.id} is now {order.status}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(orders_group)
