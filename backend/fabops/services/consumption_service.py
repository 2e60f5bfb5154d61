# Overview: Material consumption calculation for order components.

"""
Consumption Calculator

Consumption is the linear length of material (meters) needed for a
component across the whole order line.

FORMULAS:
- standard: ((length * width) / roll_width) / 39.37 * quantity
  Area per unit in square inches, laid across the usable roll width,
  converted to meters and scaled by quantity.
- linear:   (length * quantity) / 39.37
  Continuous trims (piping, runners) with no width constraint.
- manual:   the value the operator typed, PER UNIT. It is not multiplied by
  quantity here; the order-level post-processor does that on submit.

Results are rounded to 4 decimals. Missing inputs never raise: the result is
0 with a warning for the form to show.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)

INCHES_PER_METER = 39.37

FORMULA_STANDARD = "standard"
FORMULA_LINEAR = "linear"
FORMULA_MANUAL = "manual"
FORMULAS = {FORMULA_STANDARD, FORMULA_LINEAR, FORMULA_MANUAL}

COMPONENT_TYPES = {"part", "border", "handle", "chain", "runner", "piping", "custom"}

_FORMULA_EXPLANATIONS = {
    FORMULA_STANDARD: "((length × width) ÷ roll width) ÷ 39.37 × quantity",
    FORMULA_LINEAR: "(length × quantity) ÷ 39.37",
    FORMULA_MANUAL: "Manually entered consumption per unit",
}


@dataclass(frozen=True)
class ConsumptionResult:
    consumption: float
    formula: str
    cost: float | None = None
    warning: str | None = None


def _positive(value) -> float:
    """Coerce a form value to a float; anything missing or non-positive is 0."""
    if value is None or value == "":
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if number > 0 else 0.0


def parse_manual_value(raw) -> float | None:
    """Parse operator input like "2.5" or " 3 ". Returns None when unparsable."""
    if raw is None:
        return None
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return float(raw)
    text = str(raw).strip()
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def component_cost(consumption: float, material_rate) -> float | None:
    """consumption * rate per meter, or None when no rate is set."""
    rate = _positive(material_rate)
    if not rate:
        return None
    return consumption * rate


def explain_formula(formula: str) -> str:
    return _FORMULA_EXPLANATIONS.get(formula, "")


def calculate_standard(length, width, roll_width, quantity) -> tuple[float, str | None]:
    length, width, roll_width, quantity = (
        _positive(length), _positive(width), _positive(roll_width), _positive(quantity)
    )
    if not width:
        return 0.0, "Width required"
    if not roll_width:
        return 0.0, "Roll width required"
    if not length:
        return 0.0, "Length required"
    if not quantity:
        return 0.0, "Quantity required"
    return round(((length * width) / roll_width) / INCHES_PER_METER * quantity, 4), None


def calculate_linear(length, quantity) -> tuple[float, str | None]:
    length, quantity = _positive(length), _positive(quantity)
    if not length:
        return 0.0, "Length required"
    if not quantity:
        return 0.0, "Quantity required"
    return round((length * quantity) / INCHES_PER_METER, 4), None


def calculate_consumption(
    *,
    length=None,
    width=None,
    quantity=None,
    roll_width=None,
    formula: str = FORMULA_STANDARD,
    material_rate=None,
    manual_value=None,
) -> ConsumptionResult:
    """Compute consumption (and cost when a rate is given) for one component."""
    if formula not in FORMULAS:
        raise ValueError(f"Unknown formula: {formula}")

    if formula == FORMULA_MANUAL:
        parsed = parse_manual_value(manual_value)
        if parsed is None:
            consumption, warning = 0.0, "Enter a manual consumption value"
        elif parsed < 0:
            consumption, warning = 0.0, "Manual consumption cannot be negative"
        else:
            consumption, warning = parsed, None
    elif formula == FORMULA_LINEAR:
        consumption, warning = calculate_linear(length, quantity)
    else:
        consumption, warning = calculate_standard(length, width, roll_width, quantity)

    return ConsumptionResult(
        consumption=consumption,
        formula=formula,
        cost=component_cost(consumption, material_rate),
        warning=warning,
    )


def suggest_formula(length, width, roll_width, current: str) -> str:
    """
    Pick a formula from which dimensions are filled in.

    length + width + roll_width -> standard; length only -> linear;
    anything else keeps the current choice.
    """
    has_length, has_width, has_roll = _positive(length) > 0, _positive(width) > 0, _positive(roll_width) > 0
    if has_length and has_width and has_roll:
        return FORMULA_STANDARD
    if has_length and not has_width and not has_roll:
        return FORMULA_LINEAR
    return current


class ConsumptionCalculator:
    """
    Form-session state for one component's consumption field.

    Mirrors how the order form behaves:
    - While not manual and no formula is pinned, the formula follows the
      dimensions (see suggest_formula).
    - A pinned formula (record loaded for edit) or manual mode switches the
      auto-selection off; a saved choice is never overridden on load.
    - set_manual(True) seeds the manual value with the last calculated
      consumption and remembers the base formula for display.
    - set_manual(False) recomputes with the base formula and emits at once.

    `on_change(consumption, cost)` is called whenever the value is emitted.
    """

    def __init__(
        self,
        *,
        length=None,
        width=None,
        quantity=None,
        roll_width=None,
        material_rate=None,
        formula: str | None = None,
        manual_value=None,
        on_change: Optional[Callable[[float, Optional[float]], None]] = None,
    ):
        self.length = length
        self.width = width
        self.quantity = quantity
        self.roll_width = roll_width
        self.material_rate = material_rate
        self.on_change = on_change

        self.formula_pinned = formula is not None
        self.is_manual = formula == FORMULA_MANUAL
        self.base_formula = (
            formula if formula in (FORMULA_STANDARD, FORMULA_LINEAR)
            else suggest_formula(length, width, roll_width, FORMULA_STANDARD)
        )
        self.manual_value = manual_value
        self.last_calculated = 0.0
        self.result = self._recalculate()

    @property
    def formula(self) -> str:
        return FORMULA_MANUAL if self.is_manual else self.base_formula

    @property
    def consumption(self) -> float:
        return self.result.consumption

    @property
    def cost(self) -> float | None:
        return self.result.cost

    @property
    def warning(self) -> str | None:
        return self.result.warning

    def explanation(self) -> str:
        if self.is_manual:
            return f"{explain_formula(FORMULA_MANUAL)} (base formula: {explain_formula(self.base_formula)})"
        return explain_formula(self.base_formula)

    def _calculated(self) -> ConsumptionResult:
        result = calculate_consumption(
            length=self.length,
            width=self.width,
            quantity=self.quantity,
            roll_width=self.roll_width,
            formula=self.base_formula,
            material_rate=self.material_rate,
        )
        self.last_calculated = result.consumption
        return result

    def _recalculate(self) -> ConsumptionResult:
        calculated = self._calculated()
        if not self.is_manual:
            return calculated
        return calculate_consumption(
            formula=FORMULA_MANUAL,
            manual_value=self.manual_value,
            material_rate=self.material_rate,
        )

    def _emit(self) -> None:
        if self.on_change is not None:
            self.on_change(self.result.consumption, self.result.cost)

    def update(self, **dimensions) -> ConsumptionResult:
        """Apply changed inputs (length, width, quantity, roll_width, material_rate)."""
        unknown = set(dimensions) - {"length", "width", "quantity", "roll_width", "material_rate"}
        if unknown:
            raise ValueError(f"Unknown inputs: {', '.join(sorted(unknown))}")
        for name in ("length", "width", "quantity", "roll_width", "material_rate"):
            if name in dimensions:
                setattr(self, name, dimensions[name])

        if not self.is_manual and not self.formula_pinned:
            self.base_formula = suggest_formula(self.length, self.width, self.roll_width, self.base_formula)

        self.result = self._recalculate()
        self._emit()
        return self.result

    def select_formula(self, formula: str) -> ConsumptionResult:
        """Explicit operator choice; pins the formula against auto-selection."""
        if formula not in FORMULAS:
            raise ValueError(f"Unknown formula: {formula}")
        if formula == FORMULA_MANUAL:
            return self.set_manual(True)
        self.formula_pinned = True
        self.is_manual = False
        self.base_formula = formula
        self.result = self._recalculate()
        self._emit()
        return self.result

    def set_manual(self, enabled: bool) -> ConsumptionResult:
        if enabled and not self.is_manual:
            calculated = self._calculated()
            self.manual_value = calculated.consumption
            self.is_manual = True
            logger.debug(
                "Manual consumption enabled; seeded with %s from %s formula",
                calculated.consumption, self.base_formula,
            )
        elif not enabled and self.is_manual:
            self.is_manual = False
        self.result = self._recalculate()
        self._emit()
        return self.result

    def set_manual_value(self, raw) -> ConsumptionResult:
        if not self.is_manual:
            raise ValueError("Manual value can only be set in manual mode")
        self.manual_value = raw
        self.result = self._recalculate()
        self._emit()
        return self.result
