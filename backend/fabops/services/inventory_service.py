# Overview: Service-layer operations for inventory; owns every write to InventoryItem.quantity.

# backend/fabops/services/inventory_service.py

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..extensions import db
from ..models import InventoryItem, InventoryTransactionLog, LedgerMetadata
from fabops.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .ledger_service import TX_MANUAL_ADJUSTMENT, append_transaction_log
"""
Inventory Invariants (authoritative)

- InventoryItem.quantity is mutable shared state. It is changed ONLY through
  adjust_quantity() / set_inventory_quantity() in this module.
- Each change is read-modify-write under a row lock (FOR UPDATE where the
  database honors it) plus the version_id optimistic lock; conflicts roll
  back and retry from a fresh read.
- The quantity change and its ledger entry commit in one transaction: there
  is never an updated quantity without its audit row, or the reverse.
- Consumption may push on-hand negative unless ALLOW_NEGATIVE_INVENTORY is
  off. Reversal of a purchase is floored at zero instead.
"""


class InventoryError(Exception):
    """Raised when an inventory change is not allowed."""
    pass


class InventoryItemNotFoundError(InventoryError):
    """Raised when a material id does not exist."""
    pass


@dataclass(frozen=True)
class QuantityChange:
    material_id: int
    material_name: str
    unit: str
    previous: float
    new: float

    @property
    def applied(self) -> float:
        """Delta actually written (differs from the request when floored)."""
        return self.new - self.previous


def _get_item(material_id: int, *, lock: bool = False) -> InventoryItem:
    query = db.session.query(InventoryItem).filter_by(id=material_id)
    if lock:
        query = lock_for_update(query)
    item = query.first()
    if item is None:
        raise InventoryItemNotFoundError(f"Inventory item {material_id} not found")
    return item


def _adjust_quantity_inner(
    *,
    material_id: int,
    delta: float,
    floor_at_zero: bool = False,
    allow_negative: bool | None = None,
    purchase_rate: float | None = None,
) -> QuantityChange:
    """Core read-modify-write without retry or commit."""
    if allow_negative is None:
        allow_negative = current_app.config.get("ALLOW_NEGATIVE_INVENTORY", True)

    item = _get_item(material_id, lock=True)

    previous = item.quantity or 0.0
    new = previous + delta
    if floor_at_zero and new < 0:
        new = 0.0
    elif new < 0 and delta < 0 and not allow_negative:
        raise InventoryError(
            f"Adjustment would make on-hand negative for {item.material_name} "
            f"({previous} {item.unit} available, {abs(delta)} requested)"
        )

    item.quantity = new
    if purchase_rate is not None:
        item.purchase_rate = purchase_rate
    item.updated_at = utcnow()
    db.session.flush()

    return QuantityChange(
        material_id=item.id,
        material_name=item.material_name,
        unit=item.unit or "",
        previous=previous,
        new=new,
    )


def adjust_quantity(
    material_id: int,
    delta: float,
    *,
    transaction_type: str,
    metadata: LedgerMetadata | dict | None = None,
    reference_id: int | None = None,
    reference_type: str | None = None,
    reference_number: str | None = None,
    notes: str | None = None,
    floor_at_zero: bool = False,
    purchase_rate: float | None = None,
) -> QuantityChange:
    """
    Atomically add `delta` to a material's on-hand quantity and log it.

    The ledger entry records the delta actually applied, so
    new_quantity == previous_quantity + quantity always holds.

    Raises:
        InventoryItemNotFoundError: material does not exist
        InventoryError: negative stock disallowed by configuration
        OperationalError / StaleDataError: retries exhausted
    """
    def _op():
        change = _adjust_quantity_inner(
            material_id=material_id,
            delta=delta,
            floor_at_zero=floor_at_zero,
            purchase_rate=purchase_rate,
        )
        append_transaction_log(
            material_id=material_id,
            transaction_type=transaction_type,
            quantity=change.applied,
            previous_quantity=change.previous,
            new_quantity=change.new,
            metadata=metadata,
            reference_id=reference_id,
            reference_type=reference_type,
            reference_number=reference_number,
            notes=notes,
        )
        db.session.commit()
        return change

    try:
        return run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise


def set_inventory_quantity(
    material_id: int,
    new_quantity: float,
    *,
    notes: str | None = None,
) -> QuantityChange:
    """
    Manual stock correction: set on-hand to an absolute value.

    Negative values are accepted (stock taken before it was booked in);
    the ledger records the computed change.
    """
    def _op():
        item = _get_item(material_id, lock=True)
        delta = new_quantity - (item.quantity or 0.0)
        change = _adjust_quantity_inner(material_id=material_id, delta=delta, allow_negative=True)
        append_transaction_log(
            material_id=material_id,
            transaction_type=TX_MANUAL_ADJUSTMENT,
            quantity=change.applied,
            previous_quantity=change.previous,
            new_quantity=change.new,
            metadata=LedgerMetadata(material_name=change.material_name, unit=change.unit),
            notes=notes or "Manual stock correction",
        )
        db.session.commit()
        return change

    try:
        return run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise


def create_inventory_item(
    *,
    material_name: str,
    unit: str = "meter",
    quantity: float = 0.0,
    conversion_rate: float | None = 1.0,
    purchase_rate: float | None = None,
) -> InventoryItem:
    """Create a material; a non-zero opening stock is logged as a manual adjustment."""
    name = (material_name or "").strip()
    if not name:
        raise InventoryError("material_name is required")

    item = InventoryItem(
        material_name=name,
        unit=unit or "meter",
        quantity=0.0,
        conversion_rate=conversion_rate if conversion_rate is not None else 1.0,
        purchase_rate=purchase_rate,
    )
    db.session.add(item)
    db.session.flush()

    if quantity:
        item.quantity = quantity
        append_transaction_log(
            material_id=item.id,
            transaction_type=TX_MANUAL_ADJUSTMENT,
            quantity=quantity,
            previous_quantity=0.0,
            new_quantity=quantity,
            metadata=LedgerMetadata(material_name=item.material_name, unit=item.unit),
            notes="Opening stock",
        )

    db.session.commit()
    return item


def get_inventory_item(material_id: int) -> InventoryItem:
    return _get_item(material_id)


def list_inventory_items(*, search: str | None = None, limit: int = 200) -> list[InventoryItem]:
    q = db.session.query(InventoryItem)
    if search:
        q = q.filter(InventoryItem.material_name.ilike(f"%{search.strip()}%"))
    return q.order_by(InventoryItem.material_name.asc()).limit(limit).all()


def list_inventory_transactions(*, material_id: int, limit: int = 200) -> list[InventoryTransactionLog]:
    from .ledger_service import list_transactions

    _get_item(material_id)
    return list_transactions(material_id=material_id, limit=limit)
