# Overview: Flask API routes for purchases; parses input and returns JSON responses.

"""
Purchase Routes

Completing a purchase receives its items into inventory (actual_meter
when measured) at the transport-adjusted price; reversing removes them
again. Both answer with the batch summary.
"""

from flask import Blueprint, request, jsonify, current_app

from ..models import Purchase, PurchaseItem
from ..services import purchase_service
from ..services.purchase_service import (
    PurchaseNotFoundError,
    PurchaseStateError,
    PurchaseValidationError,
)
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    validate_payload,
    enforce_rules_purchase,
    enforce_rules_purchase_item,
)


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")

PURCHASE_POLICY = ModelValidationPolicy(
    writable_fields={"purchase_number", "supplier_name", "purchase_date", "transport_charge"},
    required_on_create={"purchase_number", "items"},
)

PURCHASE_ITEM_POLICY = ModelValidationPolicy(
    writable_fields={"material_id", "quantity", "unit_price", "line_total", "actual_meter"},
    required_on_create={"material_id", "quantity"},
)


@purchases_bp.post("")
def create_purchase_route():
    """
    Create a pending purchase.

    Request body:
    {
        "purchase_number": "PO-2024-001",
        "supplier_name": "...",          // optional
        "purchase_date": "2024-03-01",   // optional
        "transport_charge": 400,         // optional
        "items": [
            {"material_id": 1, "quantity": 10, "unit_price": 50, "actual_meter": 10.4}
        ]
    }
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(
            model=Purchase,
            payload=payload,
            policy=PURCHASE_POLICY,
            partial=False,
            extra_fields={"items"},
        )
        enforce_rules_purchase(patch)
        items = []
        for raw in patch["items"]:
            if not isinstance(raw, dict):
                raise ValidationError("each item must be an object")
            item = validate_payload(
                model=PurchaseItem,
                payload=raw,
                policy=PURCHASE_ITEM_POLICY,
                partial=False,
            )
            enforce_rules_purchase_item(item)
            items.append(item)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        purchase = purchase_service.create_purchase(
            purchase_number=patch["purchase_number"],
            supplier_name=patch.get("supplier_name"),
            purchase_date=patch.get("purchase_date"),
            transport_charge=patch.get("transport_charge") or 0.0,
            items=items,
        )
        return jsonify(purchase.to_dict()), 201
    except PurchaseValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.get("/<int:purchase_id>")
def get_purchase_route(purchase_id: int):
    try:
        return jsonify(purchase_service.get_purchase(purchase_id).to_dict())
    except PurchaseNotFoundError:
        return jsonify({"error": "Purchase not found"}), 404


def _batch_response(result, purchase_id: int):
    purchase = purchase_service.get_purchase(purchase_id)
    body = result.to_dict()
    body["purchase"] = purchase.to_dict(include_items=False)
    return jsonify(body), 200 if result.success else 409


@purchases_bp.post("/<int:purchase_id>/complete")
def complete_purchase_route(purchase_id: int):
    """Receive the purchase into inventory."""
    try:
        result = purchase_service.complete_purchase_with_actual_meter(purchase_id)
        return _batch_response(result, purchase_id)
    except PurchaseNotFoundError:
        return jsonify({"error": "Purchase not found"}), 404
    except PurchaseStateError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to complete purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.post("/<int:purchase_id>/reverse")
def reverse_purchase_route(purchase_id: int):
    """Remove a completed purchase's quantities from inventory."""
    try:
        result = purchase_service.reverse_purchase_completion(purchase_id)
        return _batch_response(result, purchase_id)
    except PurchaseNotFoundError:
        return jsonify({"error": "Purchase not found"}), 404
    except PurchaseStateError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to reverse purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.delete("/<int:purchase_id>")
def delete_purchase_route(purchase_id: int):
    """Delete a purchase; a completed one is reversed first."""
    try:
        reversal = purchase_service.delete_purchase(purchase_id)
        body = {"message": "Purchase deleted"}
        if reversal is not None:
            body["reversal"] = reversal.to_dict()
        return jsonify(body), 200
    except PurchaseNotFoundError:
        return jsonify({"error": "Purchase not found"}), 404
    except PurchaseStateError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to delete purchase")
        return jsonify({"error": "Internal server error"}), 500
