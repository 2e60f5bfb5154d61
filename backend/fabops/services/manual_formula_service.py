# Overview: Order-level processing of manually entered component consumption.

"""
Manual Formula Processing

A manual consumption value is entered PER UNIT, while standard and linear
formulas already include "× quantity". When the order is submitted, every
manual component is scaled by the order quantity.

original_consumption is the single source of truth for the per-unit figure:
- captured the first time a component is processed, never overwritten;
- the scaled consumption is always original_consumption * order_quantity,
  never derived from the already-scaled value.

Re-running with the same or a different order quantity is therefore safe.
"""

from __future__ import annotations

import logging

from .consumption_service import FORMULA_MANUAL

logger = logging.getLogger(__name__)

VALIDATION_TOLERANCE = 0.001


def _as_float(value) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def is_manual_formula(component) -> bool:
    if component is None:
        return False
    return (
        getattr(component, "formula", None) == FORMULA_MANUAL
        or getattr(component, "is_manual_consumption", False) is True
    )


def process_manual_formula_consumption(component, order_quantity: int):
    """Scale one manual component in place; other components are returned untouched."""
    if not is_manual_formula(component):
        return component

    if component.original_consumption is None:
        component.original_consumption = _as_float(component.consumption)

    component.consumption = component.original_consumption * order_quantity
    logger.debug(
        "Manual consumption for %s: %s per unit x %s = %s",
        component.component_type, component.original_consumption, order_quantity, component.consumption,
    )
    return component


def process_order_components(components: list, order_quantity: int) -> list:
    """
    Apply manual-formula scaling to every component of an order.

    A non-positive order quantity (or an empty list) is a no-op: the input is
    returned unchanged and a warning is logged.
    """
    if not components:
        return components

    if not order_quantity or order_quantity <= 0:
        logger.warning("Invalid order quantity for manual formula processing: %r", order_quantity)
        return components

    for component in components:
        process_manual_formula_consumption(component, order_quantity)

    manual = get_manual_formula_components(components)
    logger.info(
        "Manual formula processing complete: %s components, %s manual (order quantity %s)",
        len(components), len(manual), order_quantity,
    )
    return components


def validate_manual_formula_processing(components: list, order_quantity: int) -> bool:
    """
    Check consumption == original_consumption * order_quantity for manual components.

    A mismatch means the processing step is broken, not that the operator
    did something wrong: it is logged as an internal assertion failure and
    reported as False. Nothing is raised.
    """
    passed = True
    for component in components:
        if not is_manual_formula(component):
            continue
        expected = _as_float(component.original_consumption) * order_quantity
        actual = _as_float(component.consumption)
        if abs(expected - actual) > VALIDATION_TOLERANCE:
            logger.error(
                "Internal assertion failed: manual consumption for %s is %s, expected %s "
                "(original %s x order quantity %s)",
                component.component_type, actual, expected,
                component.original_consumption, order_quantity,
            )
            passed = False
    return passed


def get_manual_formula_components(components: list) -> list:
    return [c for c in components if is_manual_formula(c)]


def get_total_manual_formula_consumption(components: list) -> float:
    return sum(_as_float(c.consumption) for c in get_manual_formula_components(components))
