# backend/shopledger/routes/inventory.py
"""
Inventory management routes.

Stock levels change through sales (see sales routes), restocks and edits.
"""
from flask import Blueprint, request, current_app

from ..models import InventoryItem
from ..services import inventory_service
from ..time_utils import parse_iso_date
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_inventory,
    pagination_params,
    paginated_response,
    ValidationError,
)
from ..decorators import json_errors, error_response


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

INVENTORY_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "name", "category", "quantity", "cost_price", "price",
        "reorder_level", "supplier", "last_restock",
    },
    required_on_create={
        "sku", "name", "category", "quantity", "cost_price", "price", "reorder_level", "supplier",
    },
    aliases={
        "costPrice": "cost_price",
        "reorderLevel": "reorder_level",
        "lastRestock": "last_restock",
    },
    non_negative={"quantity", "cost_price", "price", "reorder_level"},
)


def _page_args():
    return pagination_params(
        request.args,
        default_limit=current_app.config["DEFAULT_PAGE_SIZE"],
        max_limit=current_app.config["MAX_PAGE_SIZE"],
    )


@inventory_bp.get("")
@json_errors("Failed to fetch inventory")
def list_inventory():
    """Query params: page, limit (see pagination_params)."""
    page, limit, offset = _page_args()
    items, total = inventory_service.list_items(limit=limit, offset=offset)
    return paginated_response([i.to_dict() for i in items], total, page, limit)


@inventory_bp.get("/low-stock")
@json_errors("Failed to fetch low stock items")
def low_stock():
    items = inventory_service.list_low_stock()
    return {"success": True, "items": [i.to_dict() for i in items]}


@inventory_bp.get("/<int:item_id>")
@json_errors("Failed to fetch inventory item")
def get_inventory_item(item_id: int):
    item = inventory_service.get_item(item_id)
    if item is None:
        return error_response("Inventory item not found", 404)
    return item.to_dict()


@inventory_bp.post("")
@json_errors("Failed to create inventory item")
def create_inventory_item():
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=InventoryItem, payload=payload, policy=INVENTORY_POLICY, partial=False)
    enforce_rules_inventory(patch)
    item = inventory_service.create_item(patch)
    return {"id": item.id, "success": True}, 201


@inventory_bp.put("/<int:item_id>")
@json_errors("Failed to update inventory item")
def update_inventory_item(item_id: int):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=InventoryItem, payload=payload, policy=INVENTORY_POLICY, partial=True)
    enforce_rules_inventory(patch)
    inventory_service.update_item(item_id, patch)
    return {"success": True}


@inventory_bp.delete("/<int:item_id>")
@json_errors("Failed to delete inventory item")
def delete_inventory_item(item_id: int):
    inventory_service.delete_item(item_id)
    return {"success": True}


@inventory_bp.post("/<int:item_id>/restock")
@json_errors("Failed to restock inventory item")
def restock_inventory_item(item_id: int):
    """
    Request body:
    {
        "quantity": 25,
        "date": "2026-01-15"  (optional, default: today)
    }
    """
    payload = request.get_json(silent=True) or {}
    try:
        restock_date = parse_iso_date(payload.get("date"))
    except ValueError:
        raise ValidationError("date must be an ISO-8601 date")
    item = inventory_service.restock_item(item_id, payload.get("quantity"), restock_date)
    return {"success": True, "item": item.to_dict()}
