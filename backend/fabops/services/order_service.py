# Overview: Service-layer operations for orders and their components.

"""
Order Service

LIFECYCLE:
1. draft: order and components created; consumption computed per component
   (manual components hold their per-unit value).
2. submitted: manual components scaled by the order quantity.

Re-submitting (e.g. after the order quantity changed) re-applies the scaling
from original_consumption, so it never double-multiplies.
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import InventoryItem, Order, OrderComponent
from fabops.time_utils import utcnow
from .consumption_service import (
    COMPONENT_TYPES,
    FORMULA_MANUAL,
    FORMULAS,
    calculate_consumption,
    component_cost,
    suggest_formula,
)
from .manual_formula_service import (
    is_manual_formula,
    process_order_components,
    validate_manual_formula_processing,
)

logger = logging.getLogger(__name__)

STATUS_DRAFT = "draft"
STATUS_SUBMITTED = "submitted"


class OrderNotFoundError(Exception):
    """Raised when an order is not found."""
    pass


class OrderValidationError(Exception):
    """Raised when order data fails validation."""
    pass


def _build_component(order: Order, data: dict) -> OrderComponent:
    component_type = (data.get("component_type") or "").strip().lower()
    if component_type not in COMPONENT_TYPES:
        raise OrderValidationError(
            f"component_type must be one of: {', '.join(sorted(COMPONENT_TYPES))}"
        )

    material_id = data.get("material_id")
    if material_id is not None and db.session.get(InventoryItem, material_id) is None:
        raise OrderValidationError(f"Material {material_id} not found")

    quantity = data.get("quantity") or order.quantity
    formula = data.get("formula") or suggest_formula(
        data.get("length"), data.get("width"), data.get("roll_width"), "standard"
    )
    if formula not in FORMULAS:
        raise OrderValidationError(f"formula must be one of: {', '.join(sorted(FORMULAS))}")

    manual_value = data.get("manual_value", data.get("consumption"))
    result = calculate_consumption(
        length=data.get("length"),
        width=data.get("width"),
        quantity=quantity,
        roll_width=data.get("roll_width"),
        formula=formula,
        material_rate=data.get("material_rate"),
        manual_value=manual_value,
    )
    if result.warning:
        logger.info("Component %s on order %s: %s", component_type, order.order_number, result.warning)

    return OrderComponent(
        component_type=component_type,
        length=data.get("length"),
        width=data.get("width"),
        roll_width=data.get("roll_width"),
        quantity=quantity,
        material_id=material_id,
        material_rate=data.get("material_rate"),
        formula=formula,
        is_manual_consumption=formula == FORMULA_MANUAL,
        consumption=result.consumption,
        component_cost=result.cost,
    )


def create_order(
    *,
    order_number: str,
    quantity: int,
    components: list[dict] | None = None,
    company_name: str | None = None,
) -> Order:
    """
    Create a draft order with its components.

    Raises:
        OrderValidationError: bad quantity, duplicate number, bad component
    """
    order_number = (order_number or "").strip()
    if not order_number:
        raise OrderValidationError("order_number is required")
    if quantity is None or quantity <= 0:
        raise OrderValidationError("quantity must be > 0")
    if db.session.query(Order).filter_by(order_number=order_number).first():
        raise OrderValidationError(f"Order number {order_number} already exists")

    order = Order(
        order_number=order_number,
        company_name=company_name,
        quantity=quantity,
        status=STATUS_DRAFT,
    )
    db.session.add(order)
    try:
        for data in components or []:
            order.components.append(_build_component(order, data))
        db.session.flush()
    except OrderValidationError:
        db.session.rollback()
        raise

    db.session.commit()
    return order


def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise OrderNotFoundError(f"Order {order_id} not found")
    return order


def _apply_order_quantity(order: Order, quantity: int) -> None:
    """
    Replace the order quantity on the order and on components that followed it.

    Standard and linear consumption is recomputed for the new component
    quantity; manual components are rescaled by the post-processor.
    """
    previous = order.quantity
    order.quantity = quantity
    for component in order.components:
        if component.quantity == previous:
            component.quantity = quantity
        if is_manual_formula(component):
            continue
        result = calculate_consumption(
            length=component.length,
            width=component.width,
            quantity=component.quantity,
            roll_width=component.roll_width,
            formula=component.formula,
            material_rate=component.material_rate,
        )
        component.consumption = result.consumption


def submit_order(order_id: int, *, quantity: int | None = None) -> Order:
    """
    Finalise an order: scale manual components by the order quantity.

    An optional new quantity replaces the order quantity first.
    """
    order = get_order(order_id)
    if quantity is not None:
        if quantity <= 0:
            raise OrderValidationError("quantity must be > 0")
        _apply_order_quantity(order, quantity)

    components = list(order.components)
    process_order_components(components, order.quantity)
    for component in components:
        component.component_cost = component_cost(component.consumption, component.material_rate)

    # Logged, never surfaced: a mismatch is a processing bug
    validate_manual_formula_processing(components, order.quantity)

    order.status = STATUS_SUBMITTED
    order.submitted_at = utcnow()
    db.session.commit()
    return order
