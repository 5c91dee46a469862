# backend/shopledger/routes/returns.py
"""
Return Processing API Routes

DESIGN:
- One return per sale invoice (duplicate -> 400)
- New returns are always pending
- PUT /api/returns/<id> approves or rejects; approval adjusts the sale and
  customer value, rejection removes the held items
- Returned items live in their own holding area (/api/returned-items)
"""

from flask import Blueprint, request, current_app

from ..models import ReturnedItem
from ..models.returns import format_return_id
from ..services import return_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_returned_item,
    pagination_params,
    paginated_response,
)
from ..decorators import json_errors, error_response


returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")
returned_items_bp = Blueprint("returned_items", __name__, url_prefix="/api/returned-items")

RETURNED_ITEM_POLICY = ModelValidationPolicy(
    writable_fields={
        "return_id", "sku", "name", "category", "quantity", "original_price",
        "condition", "return_date", "customer_name", "return_reason",
    },
    required_on_create={"return_id", "sku", "name", "quantity", "original_price", "return_date"},
    aliases={
        "returnId": "return_id",
        "originalPrice": "original_price",
        "returnDate": "return_date",
        "customerName": "customer_name",
        "returnReason": "return_reason",
    },
    non_negative={"original_price"},
)


def _page_args():
    return pagination_params(
        request.args,
        default_limit=current_app.config["DEFAULT_PAGE_SIZE"],
        max_limit=current_app.config["MAX_PAGE_SIZE"],
    )


# =============================================================================
# RETURNS
# =============================================================================

@returns_bp.get("")
@json_errors("Failed to fetch returns")
def list_returns():
    """Query params: page, limit, status (pending|approved|rejected)."""
    page, limit, offset = _page_args()
    status = request.args.get("status") or None
    returns, total = return_service.list_returns(limit=limit, offset=offset, status=status)
    return paginated_response([r.to_dict() for r in returns], total, page, limit)


@returns_bp.get("/<int:return_id>")
@json_errors("Failed to fetch return")
def get_return(return_id: int):
    return_doc = return_service.get_return(return_id)
    if return_doc is None:
        return error_response("Return not found", 404)
    return return_doc.to_dict()


@returns_bp.post("")
@json_errors("Failed to create return")
def create_return():
    """
    Create a return (status: pending).

    Request body:
    {
        "invoiceNumber": "TRN-00042",
        "invoiceId": 42,
        "date": "2026-01-20",
        "customerName": "Ada",
        "customerId": 7,
        "amount": 150.0,
        "reason": "Damaged on arrival",
        "items": [{"sku": "SKU-A", "name": "Widget", "category": "Tools", "quantity": 1, "price": 150.0}]
    }

    Returns:
        201: {id, displayId, success: true}
        400: invalid input or a return already exists for the invoice
    """
    payload = request.get_json(silent=True)
    return_id = return_service.create_return(payload if payload is not None else {})
    return {"id": return_id, "displayId": format_return_id(return_id), "success": True}, 201


@returns_bp.put("/<int:return_id>")
@json_errors("Failed to update return")
def update_return(return_id: int):
    """
    Request body:
    {
        "status": "approved" | "rejected" | "pending",
        "approvedBy": "...", "approvedDate": "YYYY-MM-DD",
        "rejectedBy": "...", "rejectedDate": "YYYY-MM-DD", "rejectionReason": "..."
    }

    Returns:
        200: {success: true}
        404: return not found
        409: return already decided the other way
    """
    payload = request.get_json(silent=True)
    return return_service.update_return_status(return_id, payload if payload is not None else {})


@returns_bp.get("/<int:return_id>/items")
@json_errors("Failed to fetch returned items")
def list_items_for_return(return_id: int):
    items = return_service.items_for_return(return_id)
    return {"success": True, "items": [i.to_dict() for i in items]}


# =============================================================================
# RETURNED ITEMS
# =============================================================================

@returned_items_bp.get("")
@json_errors("Failed to fetch returned items")
def list_returned_items():
    page, limit, offset = _page_args()
    items, total = return_service.list_returned_items(limit=limit, offset=offset)
    return paginated_response([i.to_dict() for i in items], total, page, limit)


@returned_items_bp.get("/<int:item_id>")
@json_errors("Failed to fetch returned item")
def get_returned_item(item_id: int):
    item = return_service.get_returned_item(item_id)
    if item is None:
        return error_response("Returned item not found", 404)
    return item.to_dict()


@returned_items_bp.post("")
@json_errors("Failed to create returned item")
def create_returned_item():
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=ReturnedItem, payload=payload, policy=RETURNED_ITEM_POLICY, partial=False)
    enforce_rules_returned_item(patch)
    item = return_service.create_returned_item(patch)
    return {"id": item.id, "success": True}, 201


@returned_items_bp.put("/<int:item_id>")
@json_errors("Failed to update returned item")
def update_returned_item(item_id: int):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=ReturnedItem, payload=payload, policy=RETURNED_ITEM_POLICY, partial=True)
    patch.pop("return_id", None)
    enforce_rules_returned_item(patch)
    return_service.update_returned_item(item_id, patch)
    return {"success": True}


@returned_items_bp.delete("/<int:item_id>")
@json_errors("Failed to delete returned item")
def delete_returned_item(item_id: int):
    return_service.delete_returned_item(item_id)
    return {"success": True}
