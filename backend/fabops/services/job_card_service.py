# Overview: Job card material consumption and its reversal on deletion.

"""
Job Card Material Consumption

Creating a job card deducts every component's consumption from inventory,
one "consumption" ledger entry per component (reference_type="JobCard",
metadata carries component_id and component_type).

Deleting a job card restores what was deducted. The amount restored is the
ORIGINAL logged quantity, not the component's current consumption: the
component may have been edited after the deduction. Lookup order:
1. (material_id, component_id) from the consumption entries
2. (material_id, component_type) for entries written without component_id
3. the component's current consumption - degraded, logged as a warning and
   flagged on the restored item

Both directions are best effort: each component is its own transaction, a
failure is collected and the loop continues.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import JobCard, LedgerMetadata, Order, OrderComponent
from ..models.inventory import ledger_lookup_key
from . import inventory_service
from .inventory_service import InventoryError
from .ledger_service import (
    REF_JOB_CARD,
    TX_CONSUMPTION,
    TX_JOB_CARD_REVERSAL,
    build_original_consumption_map,
    find_reference_entries,
)
from .results import BatchResult

logger = logging.getLogger(__name__)

ITEM_ERRORS = (InventoryError, SQLAlchemyError, ValueError)


class JobCardNotFoundError(Exception):
    """Raised when a job card is not found."""
    pass


class JobCardValidationError(Exception):
    """Raised when job card data fails validation."""
    pass


class JobCardReversalError(Exception):
    """Raised when a job card cannot be deleted because nothing could be restored."""

    def __init__(self, result: BatchResult):
        super().__init__(result.error or "Material reversal failed")
        self.result = result


def get_job_card(job_card_id: int) -> JobCard:
    job_card = db.session.get(JobCard, job_card_id)
    if job_card is None:
        raise JobCardNotFoundError(f"Job card {job_card_id} not found")
    return job_card


def _order_components(order_id: int) -> list[OrderComponent]:
    return (
        db.session.query(OrderComponent)
        .filter(OrderComponent.order_id == order_id)
        .order_by(OrderComponent.id.asc())
        .all()
    )


def create_job_card(*, order_id: int, job_number: str) -> tuple[JobCard, BatchResult]:
    """
    Create a job card and consume its order's materials.

    The card is committed before consumption is recorded so that each ledger
    entry can reference it.
    """
    job_number = (job_number or "").strip()
    if not job_number:
        raise JobCardValidationError("job_number is required")
    order = db.session.get(Order, order_id)
    if order is None:
        raise JobCardValidationError(f"Order {order_id} not found")
    if db.session.query(JobCard).filter_by(job_number=job_number).first():
        raise JobCardValidationError(f"Job number {job_number} already exists")

    job_card = JobCard(job_number=job_number, order_id=order.id)
    db.session.add(job_card)
    db.session.commit()

    result = record_job_card_consumption(job_card.id)
    return job_card, result


def record_job_card_consumption(job_card_id: int) -> BatchResult:
    """Deduct each component's consumption; success only when nothing failed."""
    job_card = get_job_card(job_card_id)
    order = job_card.order
    result = BatchResult(action="consumed")

    for component in _order_components(job_card.order_id):
        consumption = component.consumption or 0.0
        if not component.material_id or consumption <= 0:
            logger.debug("Skipping component %s: no material or consumption", component.component_type)
            continue

        material = component.material
        material_name = material.material_name if material else "Unknown Material"
        unit = material.unit if material else ""
        metadata = LedgerMetadata(
            material_name=material_name,
            unit=unit,
            component_type=component.component_type,
            component_id=component.id,
            extras={
                "consumption_quantity": consumption,
                "order_id": order.id,
                "order_number": order.order_number,
                "job_card_id": job_card.id,
                "job_number": job_card.job_number,
            },
        )
        try:
            change = inventory_service.adjust_quantity(
                component.material_id,
                -consumption,
                transaction_type=TX_CONSUMPTION,
                metadata=metadata,
                reference_id=job_card.id,
                reference_type=REF_JOB_CARD,
                reference_number=job_card.job_number,
                notes=(
                    f"Material consumption for job card {job_card.job_number} - "
                    f"{consumption} from {component.component_type} component "
                    f"(Order: {order.order_number})"
                ),
            )
        except ITEM_ERRORS as exc:
            logger.error("Failed to consume %s for %s: %s", material_name, component.component_type, exc)
            result.errors.append(f"Failed to consume {material_name} for {component.component_type}: {exc}")
            continue

        result.succeeded.append({
            "id": component.material_id,
            "name": material_name,
            "previous": change.previous,
            "new": change.new,
            "consumed": consumption,
            "unit": unit,
            "component_type": component.component_type,
            "component_id": component.id,
        })

    result.success = result.error_count == 0
    logger.info(
        "Job card %s consumption: %s recorded, %s errors",
        job_card.job_number, result.succeeded_count, result.error_count,
    )
    return result


def reverse_job_card_material_consumption(job_card_id: int) -> BatchResult:
    """
    Restore inventory consumed by a job card.

    success is True when at least one material was restored or nothing
    failed; `error` joins the per-item messages.
    """
    job_card = get_job_card(job_card_id)
    order = job_card.order
    order_number = order.order_number if order else "Unknown"
    result = BatchResult(action="restored")

    try:
        components = _order_components(job_card.order_id)
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Failed to fetch order components for job card %s: %s", job_card.job_number, exc)
        result.errors.append(f"Failed to fetch order components: {exc}")
        result.success = False
        return result

    if not components:
        logger.info("No components for job card %s, nothing to reverse", job_card.job_number)
        return result

    try:
        entries = find_reference_entries(
            reference_id=job_card.id,
            reference_type=REF_JOB_CARD,
            transaction_type=TX_CONSUMPTION,
        )
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Failed to fetch consumption entries for job card %s: %s", job_card.job_number, exc)
        result.errors.append(f"Failed to fetch original consumption logs: {exc}")
        entries = []
    originals = build_original_consumption_map(entries)

    for component in components:
        if not component.material_id:
            continue

        original = (
            originals.get(ledger_lookup_key(component.material_id, component_id=component.id))
            or originals.get(ledger_lookup_key(component.material_id, component_type=component.component_type))
        )
        degraded = not original
        restore_quantity = original if original else (component.consumption or 0.0)

        if restore_quantity <= 0:
            continue

        material = component.material
        material_name = material.material_name if material else "Unknown Material"
        unit = material.unit if material else ""

        if degraded:
            logger.warning(
                "No consumption entry for %s (%s) on job card %s; restoring current consumption %s instead",
                material_name, component.component_type, job_card.job_number, restore_quantity,
            )

        metadata = LedgerMetadata(
            material_name=material_name,
            unit=unit,
            component_type=component.component_type,
            component_id=component.id,
            extras={
                "consumption_quantity": restore_quantity,
                "order_id": job_card.order_id,
                "order_number": order_number,
                "reversal": True,
                "degraded": degraded,
                "job_card_id": job_card.id,
                "job_number": job_card.job_number,
            },
        )
        try:
            change = inventory_service.adjust_quantity(
                component.material_id,
                restore_quantity,
                transaction_type=TX_JOB_CARD_REVERSAL,
                metadata=metadata,
                reference_id=job_card.id,
                reference_type=REF_JOB_CARD,
                reference_number=job_card.job_number,
                notes=(
                    f"Material consumption reversal for job card deletion - restored "
                    f"{restore_quantity} units from {component.component_type} component "
                    f"(Order: {order_number})"
                ),
            )
        except ITEM_ERRORS as exc:
            logger.error("Failed to restore %s for %s: %s", material_name, component.component_type, exc)
            result.errors.append(f"Failed to restore {material_name} for {component.component_type}: {exc}")
            continue

        result.succeeded.append({
            "id": component.material_id,
            "name": material_name,
            "previous": change.previous,
            "new": change.new,
            "restored": restore_quantity,
            "unit": unit,
            "component_type": component.component_type,
            "component_id": component.id,
            "degraded": degraded,
        })

    result.success = result.succeeded_count > 0 or result.error_count == 0
    logger.info(
        "Job card %s reversal: %s restored (%s degraded), %s errors",
        job_card.job_number, result.succeeded_count, result.degraded_count, result.error_count,
    )
    return result


def validate_job_card_deletion(job_card_id: int) -> dict:
    """Warnings to show before deleting; deletion is never blocked here."""
    job_card = get_job_card(job_card_id)
    warnings: list[str] = []

    if job_card.status == "completed":
        warnings.append(f"Job card {job_card.job_number} is completed")

    entries = find_reference_entries(
        reference_id=job_card.id,
        reference_type=REF_JOB_CARD,
        transaction_type=TX_CONSUMPTION,
    )
    components = _order_components(job_card.order_id)
    with_material = [c for c in components if c.material_id]
    if with_material and not entries:
        warnings.append(
            "No consumption records found; current component consumption will be restored instead"
        )

    by_id = {c.id: c for c in components}
    for entry in entries:
        meta = entry.ledger_metadata
        if meta.component_id is None:
            continue
        component = by_id.get(meta.component_id)
        if component is None or component.material_id != entry.material_id:
            label = meta.component_type or f"component {meta.component_id}"
            warnings.append(
                f"Material for {label} changed since consumption was recorded; "
                f"{meta.material_name or f'material {entry.material_id}'} will not be restored"
            )

    return {"can_delete": True, "warnings": warnings}


def delete_job_card(job_card_id: int) -> BatchResult:
    """
    Reverse a job card's consumption, then delete it.

    The card is kept when the reversal restored nothing and reported errors,
    so it can be retried; the ledger entries that reference it are never
    deleted.
    """
    job_card = get_job_card(job_card_id)
    result = reverse_job_card_material_consumption(job_card.id)
    if not result.success:
        raise JobCardReversalError(result)

    db.session.delete(job_card)
    db.session.commit()
    return result
