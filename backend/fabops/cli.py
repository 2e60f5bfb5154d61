# Overview: Flask CLI command group for inventory bootstrap, reversal and inspection.

# backend/fabops/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask inventory <command> [options]
#
# - python -m flask inventory init-db [--reset --yes]
#   Create all tables (drop first with --reset).
# - python -m flask inventory seed-demo
#   Materials, an order with a manual component, a pending purchase.
# - python -m flask inventory reverse-job-card 3 [--delete]
#   Restore the materials consumed by a job card (and delete it).
# - python -m flask inventory complete-purchase 2
# - python -m flask inventory reverse-purchase 2
# - python -m flask inventory ledger 1 --limit 20
#   Ledger entries for a material, newest first.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import InventoryItem, Order, Purchase
from .services import inventory_service, job_card_service, order_service, purchase_service
from .services.job_card_service import JobCardNotFoundError, JobCardReversalError
from .services.purchase_service import PurchaseNotFoundError, PurchaseStateError


def _echo_result(result):
    status = "PASS" if result.success else "FAIL"
    click.echo(f"{status} {result.summary()}")
    for item in result.succeeded:
        flag = "  (degraded)" if item.get("degraded") else ""
        click.echo(f"  {item['name']:<30} {item['previous']:>12.4f} -> {item['new']:>12.4f} {item.get('unit', '')}{flag}")
    for error in result.errors:
        click.echo(f"  ERROR {error}")


@click.group('inventory')
def inventory_group():
    """Inventory bootstrap, reversal and inspection commands."""


@inventory_group.command('init-db')
@click.option('--reset', is_flag=True, help='Drop all tables first')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def init_db(reset, yes):
    """Create the schema. With --reset, DELETES ALL DATA first."""
    if reset:
        if not yes:
            click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)
        click.echo("DELETE  Dropping all tables...")
        db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()
    click.echo("PASS Database ready.")


@inventory_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """
    Idempotent demo data:
    - three materials with opening stock
    - order DEMO-ORD-1 (50 bags) with standard, linear and manual components
    - pending purchase DEMO-PO-1 with a transport charge
    """
    materials = {}
    for name, unit, quantity, conversion_rate in (
        ("Canvas 600D", "meter", 500.0, 0.4),
        ("Webbing 25mm", "meter", 1200.0, 0.05),
        ("Zipper #5", "meter", 300.0, 0.02),
    ):
        item = db.session.query(InventoryItem).filter_by(material_name=name).first()
        if item is None:
            item = inventory_service.create_inventory_item(
                material_name=name, unit=unit, quantity=quantity, conversion_rate=conversion_rate,
            )
            click.echo(f"PASS Created material: {name} (ID: {item.id})")
        materials[name] = item

    if db.session.query(Order).filter_by(order_number="DEMO-ORD-1").first() is None:
        order = order_service.create_order(
            order_number="DEMO-ORD-1",
            quantity=50,
            company_name="Demo Bags Ltd",
            components=[
                {"component_type": "part", "length": 40, "width": 20, "roll_width": 60,
                 "material_id": materials["Canvas 600D"].id, "material_rate": 180.0},
                {"component_type": "handle", "length": 24,
                 "material_id": materials["Webbing 25mm"].id, "material_rate": 12.0},
                {"component_type": "chain", "formula": "manual", "manual_value": "0.45",
                 "material_id": materials["Zipper #5"].id, "material_rate": 30.0},
            ],
        )
        click.echo(f"PASS Created order: {order.order_number} (ID: {order.id})")

    if db.session.query(Purchase).filter_by(purchase_number="DEMO-PO-1").first() is None:
        purchase = purchase_service.create_purchase(
            purchase_number="DEMO-PO-1",
            supplier_name="Demo Mills",
            transport_charge=400.0,
            items=[
                {"material_id": materials["Canvas 600D"].id, "quantity": 100, "unit_price": 170.0,
                 "actual_meter": 102.5},
                {"material_id": materials["Webbing 25mm"].id, "quantity": 500, "unit_price": 11.0},
            ],
        )
        click.echo(f"PASS Created purchase: {purchase.purchase_number} (ID: {purchase.id})")

    click.echo("PASS Demo data ready.")


@inventory_group.command('reverse-job-card')
@click.argument('job_card_id', type=int)
@click.option('--delete', 'delete_card', is_flag=True, help='Delete the job card after restoring')
@with_appcontext
def reverse_job_card_cli(job_card_id, delete_card):
    """Restore the materials a job card consumed."""
    try:
        if delete_card:
            result = job_card_service.delete_job_card(job_card_id)
        else:
            result = job_card_service.reverse_job_card_material_consumption(job_card_id)
    except JobCardNotFoundError as e:
        raise click.ClickException(str(e))
    except JobCardReversalError as e:
        _echo_result(e.result)
        raise click.ClickException("Job card kept: nothing could be restored")
    _echo_result(result)


@inventory_group.command('complete-purchase')
@click.argument('purchase_id', type=int)
@with_appcontext
def complete_purchase_cli(purchase_id):
    """Receive a purchase into inventory."""
    try:
        result = purchase_service.complete_purchase_with_actual_meter(purchase_id)
    except (PurchaseNotFoundError, PurchaseStateError) as e:
        raise click.ClickException(str(e))
    _echo_result(result)


@inventory_group.command('reverse-purchase')
@click.argument('purchase_id', type=int)
@with_appcontext
def reverse_purchase_cli(purchase_id):
    """Remove a completed purchase from inventory."""
    try:
        result = purchase_service.reverse_purchase_completion(purchase_id)
    except (PurchaseNotFoundError, PurchaseStateError) as e:
        raise click.ClickException(str(e))
    _echo_result(result)


@inventory_group.command('ledger')
@click.argument('material_id', type=int)
@click.option('--limit', type=int, default=50, show_default=True)
@with_appcontext
def ledger_cli(material_id, limit):
    """Ledger entries for a material, newest first."""
    try:
        item = inventory_service.get_inventory_item(material_id)
        entries = inventory_service.list_inventory_transactions(material_id=material_id, limit=limit)
    except inventory_service.InventoryItemNotFoundError as e:
        raise click.ClickException(str(e))

    click.echo(f"\n{item.material_name} (ID: {item.id}) on hand: {item.quantity} {item.unit}")
    click.echo("="*110)
    click.echo(f"{'Date':<22} {'Type':<20} {'Qty':>12} {'Previous':>12} {'New':>12}  Reference")
    click.echo("-"*110)
    for e in entries:
        ref = f"{e.reference_type} {e.reference_number or e.reference_id}" if e.reference_type else ""
        click.echo(
            f"{e.to_dict()['transaction_date'] or '':<22} {e.transaction_type:<20} "
            f"{e.quantity:>12.4f} {e.previous_quantity:>12.4f} {e.new_quantity:>12.4f}  {ref}"
        )
    click.echo("="*110 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(inventory_group)
