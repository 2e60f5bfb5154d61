# Overview: Service-layer operations for purchases; receipt into inventory and its reversal.

"""
Purchase Service

LIFECYCLE:
1. pending: created with items, inventory untouched
2. completed: each item adds to inventory (actual_meter when measured,
   otherwise quantity) and sets the material's purchase rate to the
   transport-adjusted unit price
3. back to pending: completion reversed, the same quantities removed
4. cancelled: never touches inventory

TRANSPORT DISTRIBUTION:
The purchase transport charge is spread across items by weight
(quantity * conversion_rate, kg):
    per_unit_transport = transport_charge / total_weight
    item_share         = item_weight * per_unit_transport
    transport_per_unit = item_share / item_quantity
    adjusted_price     = unit_price + transport_per_unit

Completion and reversal are best effort per item, like job-card reversal.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import InventoryItem, LedgerMetadata, Purchase, PurchaseItem
from fabops.time_utils import to_utc_z, utcnow
from . import inventory_service
from .inventory_service import InventoryError
from .ledger_service import REF_PURCHASE, TX_PURCHASE, TX_PURCHASE_REVERSAL
from .results import BatchResult

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"
STATUSES = {STATUS_PENDING, STATUS_COMPLETED, STATUS_CANCELLED}

ITEM_ERRORS = (InventoryError, SQLAlchemyError, ValueError)


class PurchaseNotFoundError(Exception):
    """Raised when a purchase is not found."""
    pass


class PurchaseValidationError(Exception):
    """Raised when purchase data fails validation."""
    pass


class PurchaseStateError(Exception):
    """Raised when an operation is invalid for the current purchase status."""
    pass


@dataclass(frozen=True)
class TransportShare:
    item_weight: float
    per_unit_transport: float
    item_share: float
    transport_per_unit: float
    adjusted_price: float


def distribute_transport_charge(items: list[dict], transport_charge: float) -> list[TransportShare]:
    """
    Split a transport charge across purchase lines by weight.

    `items` are dicts with quantity, unit_price and conversion_rate (missing
    or zero rate counts as 1). A non-positive charge or zero total weight
    leaves every price unadjusted.
    """
    weights = [
        (item.get("quantity") or 0.0) * (item.get("conversion_rate") or 1.0)
        for item in items
    ]
    total_weight = sum(weights)
    charge = transport_charge or 0.0

    if charge <= 0 or total_weight <= 0:
        return [
            TransportShare(
                item_weight=weight,
                per_unit_transport=0.0,
                item_share=0.0,
                transport_per_unit=0.0,
                adjusted_price=item.get("unit_price") or 0.0,
            )
            for item, weight in zip(items, weights)
        ]

    per_unit_transport = charge / total_weight
    shares = []
    for item, weight in zip(items, weights):
        quantity = item.get("quantity") or 0.0
        item_share = weight * per_unit_transport
        transport_per_unit = item_share / quantity if quantity else 0.0
        unit_price = item.get("unit_price") or 0.0
        if unit_price and transport_per_unit > unit_price * 0.5:
            logger.warning(
                "Transport adds %.2f%% to unit price %s; check conversion rates",
                transport_per_unit / unit_price * 100, unit_price,
            )
        shares.append(TransportShare(
            item_weight=weight,
            per_unit_transport=per_unit_transport,
            item_share=item_share,
            transport_per_unit=transport_per_unit,
            adjusted_price=unit_price + transport_per_unit,
        ))
    return shares


def get_purchase(purchase_id: int) -> Purchase:
    purchase = db.session.get(Purchase, purchase_id)
    if purchase is None:
        raise PurchaseNotFoundError(f"Purchase {purchase_id} not found")
    return purchase


def create_purchase(
    *,
    purchase_number: str,
    items: list[dict],
    transport_charge: float = 0.0,
    supplier_name: str | None = None,
    purchase_date=None,
) -> Purchase:
    """Create a pending purchase; line_total defaults to quantity * unit_price."""
    purchase_number = (purchase_number or "").strip()
    if not purchase_number:
        raise PurchaseValidationError("purchase_number is required")
    if not items:
        raise PurchaseValidationError("A purchase needs at least one item")
    if transport_charge is not None and transport_charge < 0:
        raise PurchaseValidationError("transport_charge must be >= 0")
    if db.session.query(Purchase).filter_by(purchase_number=purchase_number).first():
        raise PurchaseValidationError(f"Purchase number {purchase_number} already exists")

    purchase = Purchase(
        purchase_number=purchase_number,
        supplier_name=supplier_name,
        transport_charge=transport_charge or 0.0,
        status=STATUS_PENDING,
    )
    if purchase_date is not None:
        purchase.purchase_date = purchase_date

    for data in items:
        material_id = data.get("material_id")
        if material_id is None or db.session.get(InventoryItem, material_id) is None:
            raise PurchaseValidationError(f"Material {material_id} not found")
        quantity = data.get("quantity")
        if quantity is None or quantity <= 0:
            raise PurchaseValidationError("item quantity must be > 0")
        unit_price = data.get("unit_price") or 0.0
        if unit_price < 0:
            raise PurchaseValidationError("unit_price must be >= 0")
        actual_meter = data.get("actual_meter") or 0.0
        if actual_meter < 0:
            raise PurchaseValidationError("actual_meter must be >= 0")
        purchase.items.append(PurchaseItem(
            material_id=material_id,
            quantity=quantity,
            unit_price=unit_price,
            line_total=data.get("line_total") or quantity * unit_price,
            actual_meter=actual_meter,
        ))

    db.session.add(purchase)
    db.session.commit()
    return purchase


def _transport_shares(purchase: Purchase) -> dict[int, TransportShare]:
    """Shares keyed by purchase item id, using each material's current conversion rate."""
    rows = []
    for item in purchase.items:
        material = db.session.get(InventoryItem, item.material_id)
        rows.append({
            "quantity": item.quantity,
            "unit_price": item.unit_price,
            "conversion_rate": material.conversion_rate if material else None,
        })
    shares = distribute_transport_charge(rows, purchase.transport_charge)
    return {item.id: share for item, share in zip(purchase.items, shares)}


def complete_purchase_with_actual_meter(purchase_id: int) -> BatchResult:
    """
    Receive a purchase into inventory.

    success is True when at least one material was updated. The purchase is
    marked completed in that case.
    """
    purchase = get_purchase(purchase_id)
    if purchase.status == STATUS_COMPLETED:
        raise PurchaseStateError(f"Purchase {purchase.purchase_number} is already completed")
    if purchase.status == STATUS_CANCELLED:
        raise PurchaseStateError(f"Purchase {purchase.purchase_number} is cancelled")

    result = BatchResult(action="updated")
    shares = _transport_shares(purchase)
    purchase_date = to_utc_z(purchase.purchase_date)

    # Snapshot: commits inside the loop expire the ORM objects
    items = [
        (item.id, item.material_id, item.quantity, item.actual_meter, item.unit_price, item.inventory_quantity,
         item.material.material_name if item.material else "Unknown Material",
         item.material.unit if item.material else "")
        for item in purchase.items
    ]
    purchase_id, purchase_number, transport_charge = purchase.id, purchase.purchase_number, purchase.transport_charge

    for item_id, material_id, quantity, actual_meter, unit_price, inventory_quantity, material_name, unit in items:
        share = shares[item_id]
        used_actual = bool(actual_meter and actual_meter > 0)
        metadata = LedgerMetadata(
            material_name=material_name,
            unit=unit,
            extras={
                "main_quantity": quantity,
                "actual_meter": actual_meter,
                "used_quantity": inventory_quantity,
                "unit_price": unit_price,
                "adjusted_unit_price": share.adjusted_price,
                "transport_per_unit": share.transport_per_unit,
                "transport_charge": transport_charge,
                "purchase_id": purchase_id,
                "purchase_number": purchase_number,
                "purchase_date": purchase_date,
            },
        )
        try:
            change = inventory_service.adjust_quantity(
                material_id,
                inventory_quantity,
                transaction_type=TX_PURCHASE,
                metadata=metadata,
                reference_id=purchase_id,
                reference_type=REF_PURCHASE,
                reference_number=purchase_number,
                purchase_rate=share.adjusted_price,
                notes=(
                    f"Purchase completion - used actual_meter: "
                    f"{actual_meter if used_actual else 'N/A (fallback to quantity)'} - "
                    f"purchase_rate set to {share.adjusted_price}"
                ),
            )
        except ITEM_ERRORS as exc:
            logger.error("Failed to receive %s on purchase %s: %s", material_name, purchase_number, exc)
            result.errors.append(f"Failed to update inventory for {material_name}: {exc}")
            continue

        result.succeeded.append({
            "id": material_id,
            "name": material_name,
            "previous": change.previous,
            "new": change.new,
            "added": inventory_quantity,
            "unit": unit,
            "adjusted_price": share.adjusted_price,
        })

    result.success = result.succeeded_count > 0
    if result.success:
        purchase = get_purchase(purchase_id)
        purchase.status = STATUS_COMPLETED
        purchase.completed_at = utcnow()
        db.session.commit()

    logger.info(
        "Purchase %s completion: %s updated, %s errors",
        purchase_number, result.succeeded_count, result.error_count,
    )
    return result


def reverse_purchase_completion(purchase_id: int) -> BatchResult:
    """
    Remove a completed purchase's quantities from inventory.

    Stock is floored at zero; the ledger records the quantity actually
    removed. success is True when at least one material was reverted, and
    the purchase returns to pending in that case.
    """
    purchase = get_purchase(purchase_id)
    if purchase.status != STATUS_COMPLETED:
        raise PurchaseStateError(f"Purchase {purchase.purchase_number} is not completed")

    result = BatchResult(action="reverted")
    purchase_date = to_utc_z(purchase.purchase_date)
    items = [
        (item.material_id, item.quantity, item.actual_meter, item.inventory_quantity,
         item.material.material_name if item.material else "Unknown Material",
         item.material.unit if item.material else "")
        for item in purchase.items
    ]
    purchase_id, purchase_number = purchase.id, purchase.purchase_number

    for material_id, quantity, actual_meter, inventory_quantity, material_name, unit in items:
        used_actual = bool(actual_meter and actual_meter > 0)
        metadata = LedgerMetadata(
            material_name=material_name,
            unit=unit,
            extras={
                "main_quantity": quantity,
                "actual_meter": actual_meter,
                "removed_quantity": inventory_quantity,
                "purchase_id": purchase_id,
                "purchase_number": purchase_number,
                "purchase_date": purchase_date,
                "reversal": True,
            },
        )
        try:
            change = inventory_service.adjust_quantity(
                material_id,
                -inventory_quantity,
                transaction_type=TX_PURCHASE_REVERSAL,
                metadata=metadata,
                reference_id=purchase_id,
                reference_type=REF_PURCHASE,
                reference_number=purchase_number,
                floor_at_zero=True,
                notes=(
                    f"Purchase reversal - removed actual_meter: "
                    f"{actual_meter if used_actual else 'N/A (fallback to quantity)'}"
                ),
            )
        except ITEM_ERRORS as exc:
            logger.error("Failed to reverse %s on purchase %s: %s", material_name, purchase_number, exc)
            result.errors.append(f"Failed to reverse {material_name}: {exc}")
            continue

        result.succeeded.append({
            "id": material_id,
            "name": material_name,
            "previous": change.previous,
            "new": change.new,
            "removed": -change.applied,
            "unit": unit,
        })

    result.success = result.succeeded_count > 0
    if result.success:
        purchase = get_purchase(purchase_id)
        purchase.status = STATUS_PENDING
        purchase.completed_at = None
        db.session.commit()

    logger.info(
        "Purchase %s reversal: %s reverted, %s errors",
        purchase_number, result.succeeded_count, result.error_count,
    )
    return result


def delete_purchase(purchase_id: int) -> BatchResult | None:
    """
    Delete a purchase and its items, reversing inventory first if completed.

    Returns the reversal result (None when nothing had to be reversed).
    Raises PurchaseStateError if a completed purchase could not be reversed.
    """
    purchase = get_purchase(purchase_id)
    reversal = None
    if purchase.status == STATUS_COMPLETED:
        reversal = reverse_purchase_completion(purchase.id)
        if not reversal.success:
            raise PurchaseStateError(
                f"Could not reverse inventory for purchase {purchase.purchase_number}: {reversal.error}"
            )
        purchase = get_purchase(purchase_id)

    db.session.delete(purchase)
    db.session.commit()
    return reversal
