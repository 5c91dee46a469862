# backend/shopledger/routes/reports.py
from flask import Blueprint, request

from ..services import reporting_service
from ..validation import date_arg, int_arg
from ..decorators import json_errors


reports_bp = Blueprint("reports", __name__, url_prefix="/api/dashboard")


@reports_bp.get("/profits")
@json_errors("Failed to fetch profit data")
def dashboard_profits():
    """
    Profit summary and top-10 items by profit over completed sales.

    Query params: startDate, endDate (YYYY-MM-DD, inclusive), sellerId
    """
    return reporting_service.dashboard_profits(
        start_date=date_arg(request.args, "startDate"),
        end_date=date_arg(request.args, "endDate"),
        seller_id=int_arg(request.args, "sellerId"),
    )
