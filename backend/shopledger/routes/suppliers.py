# backend/shopledger/routes/suppliers.py
from flask import Blueprint, request, current_app

from ..models import Supplier
from ..services import supplier_service
from ..validation import ModelValidationPolicy, validate_payload, pagination_params, paginated_response
from ..decorators import json_errors, error_response


suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")

SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields={"company", "contact", "email", "phone", "terms", "categories", "products"},
    required_on_create={"company", "contact", "email", "phone", "terms", "categories", "products"},
)


@suppliers_bp.get("")
@json_errors("Failed to fetch suppliers")
def list_suppliers():
    page, limit, offset = pagination_params(
        request.args,
        default_limit=current_app.config["DEFAULT_PAGE_SIZE"],
        max_limit=current_app.config["MAX_PAGE_SIZE"],
    )
    suppliers, total = supplier_service.list_suppliers(limit=limit, offset=offset)
    return paginated_response([s.to_dict() for s in suppliers], total, page, limit)


@suppliers_bp.get("/<int:supplier_id>")
@json_errors("Failed to fetch supplier")
def get_supplier(supplier_id: int):
    supplier = supplier_service.get_supplier(supplier_id)
    if supplier is None:
        return error_response("Supplier not found", 404)
    return supplier.to_dict()


@suppliers_bp.post("")
@json_errors("Failed to create supplier")
def create_supplier():
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=False)
    supplier = supplier_service.create_supplier(patch)
    return {"id": supplier.id, "success": True}, 201


@suppliers_bp.put("/<int:supplier_id>")
@json_errors("Failed to update supplier")
def update_supplier(supplier_id: int):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=True)
    supplier_service.update_supplier(supplier_id, patch)
    return {"success": True}


@suppliers_bp.delete("/<int:supplier_id>")
@json_errors("Failed to delete supplier")
def delete_supplier(supplier_id: int):
    supplier_service.delete_supplier(supplier_id)
    return {"success": True}
