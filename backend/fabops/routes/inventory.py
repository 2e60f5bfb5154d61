# backend/fabops/routes/inventory.py
"""
Inventory routes.

On-hand quantity is never patched directly: creation logs the opening
stock and set-quantity is a logged manual adjustment.
"""
from flask import Blueprint, request, jsonify, current_app

from ..models import InventoryItem
from ..services import inventory_service
from ..services.inventory_service import InventoryError, InventoryItemNotFoundError
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    coerce_float,
    validate_payload,
    enforce_rules_inventory_item,
)


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

INVENTORY_ITEM_POLICY = ModelValidationPolicy(
    writable_fields={"material_name", "unit", "quantity", "conversion_rate", "purchase_rate"},
    required_on_create={"material_name"},
)


@inventory_bp.get("")
def list_inventory_route():
    search = request.args.get("search")
    limit = request.args.get("limit", 200, type=int)
    limit = max(1, min(limit, 500))

    items = inventory_service.list_inventory_items(search=search, limit=limit)
    return jsonify({"items": [i.to_dict() for i in items], "count": len(items)})


@inventory_bp.post("")
def create_inventory_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(
            model=InventoryItem,
            payload=payload,
            policy=INVENTORY_ITEM_POLICY,
            partial=False,
        )
        enforce_rules_inventory_item(patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        item = inventory_service.create_inventory_item(
            material_name=patch["material_name"],
            unit=patch.get("unit") or "meter",
            quantity=patch.get("quantity") or 0.0,
            conversion_rate=patch.get("conversion_rate"),
            purchase_rate=patch.get("purchase_rate"),
        )
        return jsonify(item.to_dict()), 201
    except InventoryError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create inventory item")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/<int:material_id>")
def get_inventory_route(material_id: int):
    try:
        return jsonify(inventory_service.get_inventory_item(material_id).to_dict())
    except InventoryItemNotFoundError:
        return jsonify({"error": "Inventory item not found"}), 404


@inventory_bp.post("/<int:material_id>/set-quantity")
def set_quantity_route(material_id: int):
    """
    Manual stock correction.

    Request body:
    {"quantity": 120.5, "notes": "Stock take"}
    """
    data = request.get_json(silent=True) or {}

    try:
        quantity = coerce_float("quantity", data.get("quantity"))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    if quantity is None:
        return jsonify({"error": "quantity is required"}), 400

    try:
        change = inventory_service.set_inventory_quantity(material_id, quantity, notes=data.get("notes"))
        return jsonify({
            "id": change.material_id,
            "material_name": change.material_name,
            "previous": change.previous,
            "new": change.new,
            "applied": change.applied,
            "unit": change.unit,
        }), 200
    except InventoryItemNotFoundError:
        return jsonify({"error": "Inventory item not found"}), 404
    except Exception:
        current_app.logger.exception("Failed to set inventory quantity")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/<int:material_id>/transactions")
def list_transactions_route(material_id: int):
    limit = request.args.get("limit", 200, type=int)
    limit = max(1, min(limit, 500))

    try:
        entries = inventory_service.list_inventory_transactions(material_id=material_id, limit=limit)
    except InventoryItemNotFoundError:
        return jsonify({"error": "Inventory item not found"}), 404
    return jsonify({"items": [e.to_dict() for e in entries], "count": len(entries)})
