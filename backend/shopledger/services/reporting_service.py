# Overview: Read-only profit aggregation over completed sales.

from __future__ import annotations

from datetime import date
from decimal import Decimal

from flask import current_app
from sqlalchemy import func, select

from ..extensions import database
from ..line_items import decode_line_items, money, money_out
from ..models import Sale
from ..models.sales import SALE_STATUS_COMPLETED


TOP_ITEMS_LIMIT = 10
ALL_TIME = "All time"


class ReportError(Exception):
    """Raised when report generation fails."""
    pass


def _ratio(numerator: Decimal, denominator, *, scale: int = 1) -> Decimal:
    if not denominator:
        return Decimal("0.00")
    return money(Decimal(numerator) * scale / Decimal(denominator))


def _filters(start_date: date | None, end_date: date | None, seller_id: int | None) -> list:
    clauses = [Sale.status == SALE_STATUS_COMPLETED]
    if start_date is not None:
        clauses.append(Sale.date >= start_date)
    if end_date is not None:
        clauses.append(Sale.date <= end_date)
    if seller_id is not None:
        clauses.append(Sale.seller_id == seller_id)
    return clauses


def profit_summary(
    *,
    start_date: date | None = None,
    end_date: date | None = None,
    seller_id: int | None = None,
) -> dict:
    """Summary figures are summed by the database, not in Python."""
    if start_date and end_date and start_date > end_date:
        raise ReportError("startDate must be on or before endDate")

    stmt = select(
        func.count(Sale.id).label("total_sales"),
        func.coalesce(func.sum(Sale.total), 0).label("total_revenue"),
        func.coalesce(func.sum(Sale.total_cost), 0).label("total_cost"),
        func.coalesce(func.sum(Sale.profit), 0).label("total_profit"),
        func.coalesce(func.sum(Sale.total_discount), 0).label("total_discount"),
    ).where(*_filters(start_date, end_date, seller_id))
    row = database.get(stmt)

    total_sales = int(row["total_sales"] or 0)
    total_revenue = money(row["total_revenue"])
    total_profit = money(row["total_profit"])

    return {
        "totalSales": total_sales,
        "totalRevenue": money_out(total_revenue),
        "totalCost": money_out(row["total_cost"]),
        "totalProfit": money_out(total_profit),
        "totalDiscount": money_out(row["total_discount"]),
        "profitMargin": money_out(_ratio(total_profit, total_revenue, scale=100)),
        "averageOrderValue": money_out(_ratio(total_revenue, total_sales)),
        "averageProfit": money_out(_ratio(total_profit, total_sales)),
    }


def top_selling_items(
    *,
    start_date: date | None = None,
    end_date: date | None = None,
    seller_id: int | None = None,
    limit: int = TOP_ITEMS_LIMIT,
) -> list[dict]:
    """
    Rank items by profit across matching sales' line-item snapshots.

    Without a date filter only the most recent PROFIT_SCAN_LIMIT sales are
    scanned.
    """
    stmt = (
        select(Sale.items)
        .where(*_filters(start_date, end_date, seller_id))
        .order_by(Sale.date.desc(), Sale.id.desc())
    )
    if start_date is None and end_date is None:
        stmt = stmt.limit(current_app.config.get("PROFIT_SCAN_LIMIT", 1000))

    totals: dict[int, dict] = {}
    for row in database.all(stmt):
        for line in decode_line_items(row["items"], "sale", strict=False):
            entry = totals.setdefault(line.item_id, {
                "id": line.item_id,
                "name": line.name,
                "sku": line.sku,
                "quantitySold": 0,
                "revenue": Decimal("0.00"),
                "profit": Decimal("0.00"),
            })
            entry["quantitySold"] += line.quantity
            entry["revenue"] += line.revenue
            entry["profit"] += line.profit

    ranked = sorted(totals.values(), key=lambda e: (-e["profit"], e["id"]))[:limit]
    for entry in ranked:
        entry["revenue"] = money_out(entry["revenue"])
        entry["profit"] = money_out(entry["profit"])
    return ranked


def dashboard_profits(
    *,
    start_date: date | None = None,
    end_date: date | None = None,
    seller_id: int | None = None,
) -> dict:
    return {
        "summary": profit_summary(start_date=start_date, end_date=end_date, seller_id=seller_id),
        "topSellingItems": top_selling_items(start_date=start_date, end_date=end_date, seller_id=seller_id),
        "period": {
            "startDate": start_date.isoformat() if start_date else ALL_TIME,
            "endDate": end_date.isoformat() if end_date else ALL_TIME,
        },
    }
