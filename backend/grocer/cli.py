# Overview: Flask CLI command groups for catalog maintenance and order inspection.

# backend/grocer/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Schema:
# - python -m flask db upgrade
#   Apply migrations (Flask-Migrate).
#
# Catalog:
# - python -m flask catalog fingerprint 507f1f77bcf86cd799439011
#   Print the mobile fingerprint (and alternate hashes) for a product id.
# - python -m flask catalog backfill-fingerprints --dry-run
#   Report products missing a fingerprint; drop --dry-run to assign them.
# - python -m flask catalog create-product --name "Rice 5kg" --price 289.50 --stock 40
#   Create a product; prints its id and fingerprint.
#
# Orders:
# - python -m flask orders show ORD482913
#   Print an order header and its items by order code.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Order
from .services import catalog_service
from .services.fingerprint_service import candidate_fingerprints
from .validation import ConflictError, ValidationError


@click.group('catalog')
def catalog_group():
    """Product catalog maintenance commands."""


@catalog_group.command('fingerprint')
@click.argument('product_id')
def fingerprint_cli(product_id):
    """Show the fingerprint variants for a product id."""
    for name, value in candidate_fingerprints(product_id).items():
        click.echo(f"{name:<10} {value}")


@catalog_group.command('backfill-fingerprints')
@click.option('--dry-run', is_flag=True, help='Report only, do not write')
@with_appcontext
def backfill_fingerprints_cli(dry_run):
    """
    Assign fingerprints to products that have none.

    Existing fingerprints are never rewritten; mismatches are listed so they
    can be investigated by hand.
    """
    report = catalog_service.backfill_fingerprints(dry_run=dry_run)

    verb = "Would assign" if dry_run else "Assigned"
    for row in report["assigned"]:
        click.echo(f"{verb} {row['fingerprint']:>11} -> {row['id']} ({row['name']})")
    for row in report["mismatched"]:
        click.echo(
            f"WARN  {row['id']} ({row['name']}): stored {row['stored']}, expected {row['expected']}"
        )

    click.echo(
        f"\nDONE {len(report['assigned'])} assigned, {len(report['mismatched'])} mismatched"
        + (" (dry run)" if dry_run else "")
    )


@catalog_group.command('create-product')
@click.option('--name', required=True, help='Product name')
@click.option('--price', type=float, required=True, help='Unit price')
@click.option('--stock', type=int, default=0, show_default=True)
@click.option('--category', help='Category label')
@click.option('--sku', help='SKU')
@with_appcontext
def create_product_cli(name, price, stock, category, sku):
    """Create a catalog product."""
    payload = {"name": name, "price": price, "stock": stock}
    if category:
        payload["category"] = category
    if sku:
        payload["sku"] = sku

    try:
        product = catalog_service.create_product(payload)
    except (ValidationError, ConflictError) as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Created product: {product.name} (ID: {product.id}, Fingerprint: {product.fingerprint})")


@click.group('orders')
def orders_group():
    """Order inspection commands."""


@orders_group.command('show')
@click.argument('order_code')
@with_appcontext
def show_order_cli(order_code):
    """Print an order and its items."""
    order = db.session.query(Order).filter_by(order_code=order_code).first()
    if not order:
        click.echo(f"FAIL Order {order_code} not found")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{order.order_code}  {order.status:<12} {order.payment:<6} {order.name}")
    click.echo(f"Total: {order.total_price}  Discount: {order.discount}  Net: {order.net_total}")
    click.echo(f"Device: {order.device_id or '-'}  Created: {order.created_at}")
    click.echo("="*80)

    if not order.items:
        click.echo("No items.")
    for item in order.items:
        click.echo(
            f"{item.quantity:>4} x {item.product_name:<40} {item.unit_price:>10} {item.total_price:>10}"
        )
    click.echo("="*80 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(catalog_group)
    app.cli.add_command(orders_group)
