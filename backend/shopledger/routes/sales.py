# backend/shopledger/routes/sales.py
"""
Sales routes.

POST /api/sales runs the whole sale (stock check, pricing, stock deduction,
invoice number) as one transaction; see services/sales_service.py.
"""
from flask import Blueprint, request, current_app

from ..services import sales_service
from ..validation import date_arg, int_arg, pagination_params, paginated_response
from ..decorators import json_errors, error_response


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("")
@json_errors("Failed to fetch sales")
def list_sales():
    """
    Query params:
    - page, limit
    - date: exact business date (YYYY-MM-DD), or startDate / endDate range
    - sellerId
    """
    page, limit, offset = pagination_params(
        request.args,
        default_limit=current_app.config["DEFAULT_PAGE_SIZE"],
        max_limit=current_app.config["MAX_PAGE_SIZE"],
    )
    sales, total = sales_service.list_sales(
        limit=limit,
        offset=offset,
        on_date=date_arg(request.args, "date"),
        start_date=date_arg(request.args, "startDate"),
        end_date=date_arg(request.args, "endDate"),
        seller_id=int_arg(request.args, "sellerId"),
    )
    return paginated_response([s.to_dict() for s in sales], total, page, limit)


@sales_bp.get("/<int:sale_id>")
@json_errors("Failed to fetch sale")
def get_sale(sale_id: int):
    sale = sales_service.get_sale(sale_id)
    if sale is None:
        return error_response("Sale not found", 404)
    return sale.to_dict()


@sales_bp.post("")
@json_errors("Failed to create sale")
def create_sale():
    """
    Request body:
    {
        "date": "2026-01-15",
        "customerId": 0,  (0 = walk-in)
        "customerName": "Walk-in Customer",
        "sellerId": 2,
        "sellerName": "Dana",
        "items": [{"itemId": 1, "quantity": 3, "price": 150.0, "actualPrice": 140.0}],
        "total": 420.0,  (optional; must match the line items)
        "paymentMethod": "cash",
        "status": "completed"
    }

    Returns:
        201: {id, invoiceNumber, total, totalCost, totalDiscount, profit}
        400: invalid input or insufficient stock
        404: unknown inventory item
    """
    payload = request.get_json(silent=True)
    result = sales_service.create_sale(payload if payload is not None else {})
    return result.to_dict(), 201
