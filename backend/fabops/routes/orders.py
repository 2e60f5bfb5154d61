# Overview: Flask API routes for orders; parses input and returns JSON responses.

"""
Order Routes

Components are created with the order; consumption is computed per
component on create. Submitting applies manual-formula scaling.
"""

from flask import Blueprint, request, jsonify, current_app

from ..models import Order, OrderComponent
from ..services import order_service
from ..services.order_service import OrderNotFoundError, OrderValidationError
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    validate_payload,
    enforce_rules_order,
    enforce_rules_order_component,
)


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")

ORDER_POLICY = ModelValidationPolicy(
    writable_fields={"order_number", "company_name", "quantity"},
    required_on_create={"order_number", "quantity"},
)

COMPONENT_POLICY = ModelValidationPolicy(
    writable_fields={
        "component_type",
        "length",
        "width",
        "roll_width",
        "quantity",
        "material_id",
        "material_rate",
        "formula",
        "consumption",
    },
    required_on_create={"component_type"},
)


@orders_bp.post("")
def create_order_route():
    """
    Create a draft order with components.

    Request body:
    {
        "order_number": "ORD-1001",
        "quantity": 50,
        "company_name": "...",      // optional
        "components": [
            {"component_type": "part", "length": 40, "width": 20, "roll_width": 60,
             "material_id": 1, "material_rate": 120.0},
            {"component_type": "handle", "formula": "manual", "manual_value": "0.75",
             "material_id": 2}
        ]
    }
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(
            model=Order,
            payload=payload,
            policy=ORDER_POLICY,
            partial=False,
            extra_fields={"components"},
        )
        enforce_rules_order(patch)
        components = []
        for raw in patch.get("components") or []:
            if not isinstance(raw, dict):
                raise ValidationError("each component must be an object")
            component = validate_payload(
                model=OrderComponent,
                payload=raw,
                policy=COMPONENT_POLICY,
                partial=False,
                extra_fields={"manual_value"},
            )
            enforce_rules_order_component(component)
            components.append(component)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        order = order_service.create_order(
            order_number=patch["order_number"],
            quantity=patch["quantity"],
            company_name=patch.get("company_name"),
            components=components,
        )
        return jsonify(order.to_dict()), 201
    except OrderValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id)
        return jsonify(order.to_dict())
    except OrderNotFoundError:
        return jsonify({"error": "Order not found"}), 404


@orders_bp.post("/<int:order_id>/submit")
def submit_order_route(order_id: int):
    """
    Submit an order; manual components are multiplied by the order quantity.

    Request body (optional):
    {"quantity": 60}    // replaces the order quantity first
    """
    data = request.get_json(silent=True) or {}

    quantity = data.get("quantity")
    if quantity is not None and (isinstance(quantity, bool) or not isinstance(quantity, int)):
        return jsonify({"error": "quantity must be an integer"}), 400

    try:
        order = order_service.submit_order(order_id, quantity=quantity)
        return jsonify(order.to_dict())
    except OrderNotFoundError:
        return jsonify({"error": "Order not found"}), 404
    except OrderValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to submit order")
        return jsonify({"error": "Internal server error"}), 500
