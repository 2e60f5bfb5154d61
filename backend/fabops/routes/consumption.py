# Overview: Flask API route for the consumption calculator; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..services.consumption_service import (
    FORMULAS,
    FORMULA_MANUAL,
    ConsumptionCalculator,
    explain_formula,
)
from ..validation import ValidationError, coerce_float


consumption_bp = Blueprint("consumption", __name__, url_prefix="/api/consumption")

_DIMENSIONS = ("length", "width", "quantity", "roll_width", "material_rate")


@consumption_bp.post("/calculate")
def calculate_route():
    """
    Calculate material consumption for one component.

    Request body:
    {
        "length": 40, "width": 20, "roll_width": 60,   // inches
        "quantity": 10,
        "material_rate": 120.5,     // optional, price per meter
        "formula": "standard",      // optional; omitted -> chosen from dimensions
        "manual_value": "2.5"       // used when formula is "manual"
    }

    Returns:
        {consumption, cost, formula, warning, explanation}
    """
    data = request.get_json(silent=True) or {}

    formula = data.get("formula")
    if formula is not None and formula not in FORMULAS:
        return jsonify({"error": f"formula must be one of: {', '.join(sorted(FORMULAS))}"}), 400

    try:
        dims = {name: coerce_float(name, data.get(name)) for name in _DIMENSIONS}
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        calculator = ConsumptionCalculator(
            formula=formula,
            manual_value=data.get("manual_value"),
            **dims,
        )
        return jsonify({
            "consumption": calculator.consumption,
            "cost": calculator.cost,
            "formula": calculator.formula,
            "base_formula": calculator.base_formula if calculator.formula == FORMULA_MANUAL else None,
            "warning": calculator.warning,
            "explanation": calculator.explanation() or explain_formula(calculator.formula),
        }), 200
    except Exception:
        current_app.logger.exception("Failed to calculate consumption")
        return jsonify({"error": "Internal server error"}), 500
