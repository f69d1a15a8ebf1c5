# Overview: Flask CLI command groups for bootstrap, seeding and stock inspection.

# backend/stockkeeper/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to stockkeeper (PowerShell: $env:FLASK_APP="stockkeeper").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Catalog seeding:
# - python -m flask products create --name "Widget" --price 9.99 --sku W-1 --stock 100
#   Create a product with an opening stock quantity (recorded as opening_stock, no ledger entry).
# - python -m flask users create --username cashier --email cashier@example.com
#   Create an operator of record for sales.
#
# Stock inspection/correction:
# - python -m flask inventory adjust --product-id 1 --quantity -3 --notes "damaged"
#   Manual signed adjustment through the stock ledger.
# - python -m flask inventory movements --product-id 1 --limit 20
#   List recent ledger entries for a product.
# - python -m flask inventory audit
#   Compare every product's stock with its ledger balance.

import click
from flask.cli import with_appcontext

from .errors import StockError
from .extensions import db
from .models import Product, User
from .money import to_cents
from .services import stock_ledger_service
from .validation import MAX_STOCK_QUANTITY


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.echo("FAIL Refusing to reset without --yes")
        return
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@click.group('products')
def products_group():
    """Catalog seeding commands."""


@products_group.command('create')
@click.option('--name', required=True, help='Product name')
@click.option('--price', required=True, help='Unit price, e.g. 9.99')
@click.option('--sku', default=None, help='Optional unique SKU')
@click.option('--stock', default=0, type=click.IntRange(min=0, max=MAX_STOCK_QUANTITY), help='Opening stock quantity')
@click.option('--min-stock', default=0, type=click.IntRange(min=0), help='Low-stock threshold')
@with_appcontext
def create_product(name, price, sku, stock, min_stock):
    """Create a product; the opening stock is seeded directly, not through the ledger."""
    try:
        price_cents = to_cents(price, "price")
    except StockError as e:
        click.echo(f"FAIL {e}")
        return

    product = Product(
        name=name,
        sku=sku,
        price_cents=price_cents,
        stock_quantity=stock,
        min_stock_level=min_stock,
    )
    db.session.add(product)
    db.session.commit()
    click.echo(f"PASS Created product {product.id}: {product.name} (stock {product.stock_quantity})")


@click.group('users')
def users_group():
    """Operator seeding commands."""


@users_group.command('create')
@click.option('--username', required=True)
@click.option('--email', required=True)
@click.option('--role', default='employee', type=click.Choice(['admin', 'employee']))
@with_appcontext
def create_user(username, email, role):
    user = User(username=username, email=email, role=role)
    db.session.add(user)
    db.session.commit()
    click.echo(f"PASS Created user {user.id}: {user.username}")


@click.group('inventory')
def inventory_group():
    """Stock ledger inspection and correction commands."""


@inventory_group.command('adjust')
@click.option('--product-id', required=True, type=int)
@click.option('--quantity', required=True, type=int, help='Signed change, e.g. -3')
@click.option('--notes', default=None)
@with_appcontext
def adjust(product_id, quantity, notes):
    try:
        movement = stock_ledger_service.adjust_inventory(product_id, quantity, notes=notes)
    except StockError as e:
        click.echo(f"FAIL {e}")
        return
    stock = stock_ledger_service.get_stock_level(product_id)
    click.echo(f"PASS Movement {movement.id}: delta {movement.quantity:+d}, stock now {stock}")


@inventory_group.command('movements')
@click.option('--product-id', required=True, type=int)
@click.option('--limit', default=20, type=click.IntRange(min=1))
@with_appcontext
def movements(product_id, limit):
    try:
        rows = stock_ledger_service.list_movements(product_id=product_id, limit=limit)
    except StockError as e:
        click.echo(f"FAIL {e}")
        return

    if not rows:
        click.echo("No movements")
        return
    for row in rows:
        reference = f"{row.reference_type}:{row.reference_id}" if row.reference_type else "-"
        click.echo(
            f"{row.id:>6}  {row.created_at:%Y-%m-%d %H:%M:%S}  {row.movement_type:<10}  "
            f"{row.quantity:+6d}  {reference}  {row.notes or ''}"
        )


@inventory_group.command('audit')
@with_appcontext
def audit():
    """
    Compare stock_quantity with the ledger for every product.

    A product is consistent when stock_quantity == opening_stock + SUM(deltas).
    """
    problems = 0
    for product in db.session.query(Product).order_by(Product.id).all():
        report = stock_ledger_service.stock_consistency(product.id)
        status = "OK" if report["consistent"] else "MISMATCH"
        if not report["consistent"]:
            problems += 1
        click.echo(
            f"{status:<8} product {product.id} ({product.name}): "
            f"stock {report['stock_quantity']}, opening {report['opening_stock']}, "
            f"ledger {report['ledger_balance']:+d}"
        )
    if problems:
        click.echo(f"FAIL {problems} product(s) inconsistent")
        return
    click.echo("PASS Stock and ledger agree")


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(products_group)
    app.cli.add_command(users_group)
    app.cli.add_command(inventory_group)
