# Overview: Service-layer operations for the inventory transaction log.

from __future__ import annotations

from datetime import datetime
from typing import Optional

from ..extensions import db
from ..models import InventoryTransactionLog, LedgerMetadata
"""
Inventory Ledger Invariants (authoritative)

- Append-only audit log of every change to InventoryItem.quantity.
- Entries are written inside the same DB transaction as the quantity change
  they record (callers flush/commit).
- quantity is signed: negative = deduction, positive = addition.
- new_quantity == previous_quantity + quantity at write time; this is not
  re-validated later.
- No update/delete API exists for entries.
"""

TX_CONSUMPTION = "consumption"
TX_PURCHASE = "purchase"
TX_JOB_CARD_REVERSAL = "job-card-reversal"
TX_PURCHASE_REVERSAL = "purchase-reversal"
TX_MANUAL_ADJUSTMENT = "manual-adjustment"

TRANSACTION_TYPES = {
    TX_CONSUMPTION,
    TX_PURCHASE,
    TX_JOB_CARD_REVERSAL,
    TX_PURCHASE_REVERSAL,
    TX_MANUAL_ADJUSTMENT,
}

REF_JOB_CARD = "JobCard"
REF_PURCHASE = "Purchase"

# Float noise from repeated meter arithmetic
_INVARIANT_TOLERANCE = 1e-6


def append_transaction_log(
    *,
    material_id: int,
    transaction_type: str,
    quantity: float,
    previous_quantity: float,
    new_quantity: float,
    metadata: LedgerMetadata | dict | None = None,
    reference_id: int | None = None,
    reference_type: str | None = None,
    reference_number: str | None = None,
    notes: str | None = None,
    transaction_date: Optional[datetime] = None,
) -> InventoryTransactionLog:
    """
    Append one ledger entry.

    - No domain logic here beyond the quantity invariant.
    - Does not commit; the caller owns the transaction.
    """
    if transaction_type not in TRANSACTION_TYPES:
        raise ValueError(f"Unknown transaction_type: {transaction_type}")

    if abs((previous_quantity + quantity) - new_quantity) > _INVARIANT_TOLERANCE:
        raise ValueError(
            f"Ledger invariant violated for material {material_id}: "
            f"{previous_quantity} + {quantity} != {new_quantity}"
        )

    if isinstance(metadata, LedgerMetadata):
        meta = metadata.to_dict()
    else:
        meta = dict(metadata or {})

    entry = InventoryTransactionLog(
        material_id=material_id,
        transaction_type=transaction_type,
        quantity=quantity,
        previous_quantity=previous_quantity,
        new_quantity=new_quantity,
        reference_id=reference_id,
        reference_type=reference_type,
        reference_number=reference_number,
        notes=notes,
        meta=meta,
    )
    if transaction_date is not None:
        entry.transaction_date = transaction_date
    db.session.add(entry)
    db.session.flush()
    return entry


def find_reference_entries(
    *,
    reference_id: int,
    reference_type: str,
    transaction_type: str,
) -> list[InventoryTransactionLog]:
    return (
        db.session.query(InventoryTransactionLog)
        .filter(
            InventoryTransactionLog.reference_id == reference_id,
            InventoryTransactionLog.reference_type == reference_type,
            InventoryTransactionLog.transaction_type == transaction_type,
        )
        .order_by(InventoryTransactionLog.id.asc())
        .all()
    )


def build_original_consumption_map(
    entries: list[InventoryTransactionLog],
) -> dict[tuple[int, str], float]:
    """
    Map (material_id, component key) -> originally deducted amount (abs).

    The component key is the component id when the entry recorded one,
    otherwise the component type. Later entries for the same key win.
    """
    originals: dict[tuple[int, str], float] = {}
    for entry in entries:
        if not entry.material_id or not entry.quantity:
            continue
        key = entry.ledger_metadata.lookup_key(entry.material_id)
        originals[key] = abs(entry.quantity)
    return originals


def list_transactions(*, material_id: int, limit: int = 200) -> list[InventoryTransactionLog]:
    return (
        db.session.query(InventoryTransactionLog)
        .filter(InventoryTransactionLog.material_id == material_id)
        .order_by(
            InventoryTransactionLog.transaction_date.desc(),
            InventoryTransactionLog.id.desc(),
        )
        .limit(limit)
        .all()
    )
