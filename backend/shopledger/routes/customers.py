# backend/shopledger/routes/customers.py
"""
Customer routes.

Purchase statistics (totalPurchases, lifetimeValue, lastPurchase) are
maintained by the sale and return ledger and are not client-writable.
"""
from flask import Blueprint, request, current_app

from ..models import Customer
from ..services import customer_service
from ..validation import ModelValidationPolicy, validate_payload, pagination_params, paginated_response
from ..decorators import json_errors, error_response


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "email", "phone", "address"},
    required_on_create={"name", "email", "phone"},
)


@customers_bp.get("")
@json_errors("Failed to fetch customers")
def list_customers():
    page, limit, offset = pagination_params(
        request.args,
        default_limit=current_app.config["DEFAULT_PAGE_SIZE"],
        max_limit=current_app.config["MAX_PAGE_SIZE"],
    )
    customers, total = customer_service.list_customers(limit=limit, offset=offset)
    return paginated_response([c.to_dict() for c in customers], total, page, limit)


@customers_bp.get("/<int:customer_id>")
@json_errors("Failed to fetch customer")
def get_customer(customer_id: int):
    customer = customer_service.get_customer(customer_id)
    if customer is None:
        return error_response("Customer not found", 404)
    return customer.to_dict()


@customers_bp.post("")
@json_errors("Failed to create customer")
def create_customer():
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
    customer = customer_service.create_customer(patch)
    return {"id": customer.id, "success": True}, 201


@customers_bp.put("/<int:customer_id>")
@json_errors("Failed to update customer")
def update_customer(customer_id: int):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
    customer_service.update_customer(customer_id, patch)
    return {"success": True}


@customers_bp.delete("/<int:customer_id>")
@json_errors("Failed to delete customer")
def delete_customer(customer_id: int):
    customer_service.delete_customer(customer_id)
    return {"success": True}
