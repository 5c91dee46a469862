"""
Sale Transaction Processor

WHY: A sale must deduct stock, price every line and write the sale row as
one unit. Two cashiers selling the last units of the same SKU must never
both succeed.

FLOW (one gateway transaction):
1. Lock each inventory row (FOR UPDATE / BEGIN IMMEDIATE on SQLite)
2. Pre-check stock; fail the whole sale on the first short or missing item
3. Snapshot systemPrice / actualPrice / discount / costPrice per line
4. Decrement stock under the lock
5. Insert the sale with a placeholder invoice number, then set TRN-##### from its id
6. Update registered customer stats

Any exception rolls everything back: no partial deduction, no orphan sale.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from flask import current_app

from ..extensions import db, database
from ..line_items import SaleLineItem, SaleLineRequest, encode_line_items, money, money_out
from ..models import Sale
from ..models.customers import WALK_IN_CUSTOMER_ID
from ..models.sales import SALE_STATUS_CANCELLED, SALE_STATUS_COMPLETED, format_invoice_number
from ..time_utils import parse_iso_date
from ..validation import ValidationError
from .inventory_service import decrement_stock, lock_item


class SaleError(Exception):
    """Raised for sale operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ItemNotFound(SaleError):
    """A line references an inventory item that does not exist."""


class InsufficientStock(SaleError):
    """A line asks for more units than are on hand."""


CREATABLE_STATUSES = (SALE_STATUS_COMPLETED, SALE_STATUS_CANCELLED)


def _pick(payload: dict, camel: str, snake: str, default=None):
    if camel in payload:
        return payload[camel]
    return payload.get(snake, default)


def _optional_int(value, name: str, default: int | None = None) -> int | None:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer")


def _required_text(value, name: str) -> str:
    text_value = str(value or "").strip()
    if not text_value:
        raise ValidationError(f"{name} is required")
    return text_value


@dataclass(frozen=True)
class SaleRequest:
    date: date
    customer_id: int
    customer_name: str
    seller_id: int
    seller_name: str
    lines: tuple
    payment_method: str
    status: str = SALE_STATUS_COMPLETED
    client_total: Decimal | None = None

    @property
    def derived_total(self) -> Decimal:
        return money(sum((line.subtotal for line in self.lines), Decimal("0")))

    @classmethod
    def from_payload(cls, payload: dict) -> "SaleRequest":
        """
        Parse a POST /sales body. camelCase keys are canonical; snake_case
        is accepted for older clients.
        """
        if not isinstance(payload, dict):
            raise ValidationError("Invalid JSON payload")

        try:
            sale_date = parse_iso_date(payload.get("date"))
        except ValueError:
            raise ValidationError("date must be an ISO-8601 date")
        if sale_date is None:
            raise ValidationError("date is required")

        raw_items = payload.get("items")
        if not isinstance(raw_items, list) or not raw_items:
            raise ValidationError("items must be a non-empty array")
        lines = tuple(SaleLineRequest.from_dict(entry) for entry in raw_items)

        status = str(payload.get("status") or SALE_STATUS_COMPLETED).strip()
        if status not in CREATABLE_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(CREATABLE_STATUSES)}")

        seller_id = _optional_int(_pick(payload, "sellerId", "seller_id"), "sellerId")
        if seller_id is None:
            raise ValidationError("sellerId is required")

        raw_total = payload.get("total")
        return cls(
            date=sale_date,
            customer_id=_optional_int(
                _pick(payload, "customerId", "customer_id"), "customerId", default=WALK_IN_CUSTOMER_ID
            ),
            customer_name=str(_pick(payload, "customerName", "customer_name") or "Walk-in Customer").strip(),
            seller_id=seller_id,
            seller_name=_required_text(_pick(payload, "sellerName", "seller_name"), "sellerName"),
            lines=lines,
            payment_method=_required_text(_pick(payload, "paymentMethod", "payment_method"), "paymentMethod"),
            status=status,
            client_total=None if raw_total is None else money(raw_total),
        )


@dataclass(frozen=True)
class SaleResult:
    id: int
    invoice_number: str
    total: Decimal
    total_cost: Decimal
    total_discount: Decimal
    profit: Decimal

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoiceNumber": self.invoice_number,
            "total": money_out(self.total),
            "totalCost": money_out(self.total_cost),
            "totalDiscount": money_out(self.total_discount),
            "profit": money_out(self.profit),
        }


def _check_total(request: SaleRequest) -> Decimal:
    """Server-derived total; a client total is only accepted within tolerance."""
    total = request.derived_total
    if request.client_total is not None:
        tolerance = Decimal(str(current_app.config.get("SALE_TOTAL_TOLERANCE", "0.01")))
        if abs(request.client_total - total) > tolerance:
            raise ValidationError(
                f"Sale total {request.client_total} does not match line items ({total})"
            )
    return total


def _lock_items(tx, lines) -> dict:
    """
    Lock every inventory row the sale touches, lowest id first.

    Concurrent sales over overlapping items then always queue on the same
    row first instead of deadlocking on PostgreSQL.
    """
    rows = {}
    for item_id in sorted({line.item_id for line in lines}):
        row = lock_item(tx, item_id)
        if row is None:
            raise ItemNotFound(
                f"Inventory item {item_id} not found",
                details={"item_id": item_id},
            )
        rows[item_id] = row
    return rows


def _price_line(tx, line: SaleLineRequest, row, remaining: dict) -> SaleLineItem:
    available = remaining[line.item_id]
    if available < line.quantity:
        raise InsufficientStock(
            f"Insufficient stock for {row['name']}. Available: {available}, Requested: {line.quantity}",
            details={"item_id": line.item_id, "requested": line.quantity, "available": available},
        )

    system_price = money(row["price"])
    if not decrement_stock(tx, line.item_id, line.quantity):
        # Lock held and pre-check passed; only a missing lock could get here
        raise InsufficientStock(
            f"Insufficient stock for {row['name']}",
            details={"item_id": line.item_id, "requested": line.quantity},
        )
    remaining[line.item_id] = available - line.quantity

    return SaleLineItem(
        item_id=line.item_id,
        sku=row["sku"],
        name=row["name"],
        quantity=line.quantity,
        system_price=system_price,
        actual_price=line.actual_price,
        discount=money((system_price - line.actual_price) * line.quantity),
        cost_price=money(row["cost_price"]),
    )


def _create_sale_tx(tx, request: SaleRequest, total: Decimal) -> SaleResult:
    rows = _lock_items(tx, request.lines)
    remaining = {item_id: int(row["quantity"]) for item_id, row in rows.items()}
    items = [_price_line(tx, line, rows[line.item_id], remaining) for line in request.lines]

    total_cost = sum((item.cost for item in items), Decimal("0.00"))
    total_discount = sum((item.discount for item in items), Decimal("0.00"))
    profit = total - total_cost

    # Placeholder must be unique too: the column is UNIQUE and rows are only renamed after insert
    placeholder = f"PENDING-{uuid.uuid4().hex[:24]}"
    inserted = tx.run(
        "INSERT INTO sales (invoice_number, date, customer_id, customer_name, seller_id, seller_name, "
        "items, total, total_cost, total_discount, profit, payment_method, status) "
        "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
        [
            placeholder, request.date, request.customer_id, request.customer_name,
            request.seller_id, request.seller_name, encode_line_items(items),
            total, total_cost, total_discount, profit,
            request.payment_method, request.status,
        ],
    )
    sale_id = inserted.last_insert_id
    invoice_number = format_invoice_number(sale_id)
    tx.run("UPDATE sales SET invoice_number = ? WHERE id = ?", [invoice_number, sale_id])

    if request.customer_id != WALK_IN_CUSTOMER_ID:
        updated = tx.run(
            "UPDATE customers SET total_purchases = total_purchases + 1, "
            "lifetime_value = lifetime_value + ?, last_purchase = ? WHERE id = ?",
            [total, request.date, request.customer_id],
        )
        if not updated.changes:
            current_app.logger.info(
                "Sale %s references unknown customer %s; customer stats not updated",
                invoice_number, request.customer_id,
            )

    return SaleResult(
        id=sale_id,
        invoice_number=invoice_number,
        total=total,
        total_cost=total_cost,
        total_discount=total_discount,
        profit=profit,
    )


def create_sale(request: SaleRequest | dict) -> SaleResult:
    """
    Record a sale atomically.

    Raises:
        ValidationError: malformed request or client total mismatch (before any DB work)
        ItemNotFound / InsufficientStock: the whole sale is rolled back
        TransientConnectionError: the database stayed unreachable through all retries
    """
    if isinstance(request, dict):
        request = SaleRequest.from_payload(request)
    total = _check_total(request)

    try:
        result = database.transaction(_create_sale_tx, request, total)
    except SaleError as e:
        current_app.logger.info("Sale rejected: %s", e)
        raise

    current_app.logger.info(
        "Sale %s recorded: total=%s cost=%s profit=%s",
        result.invoice_number, result.total, result.total_cost, result.profit,
    )
    return result


# =============================================================================
# QUERIES
# =============================================================================

def get_sale(sale_id: int) -> Sale | None:
    return db.session.get(Sale, sale_id)


def get_sale_by_invoice(invoice_number: str) -> Sale | None:
    return db.session.query(Sale).filter_by(invoice_number=invoice_number).first()


def list_sales(
    *,
    limit: int,
    offset: int,
    on_date: date | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    seller_id: int | None = None,
) -> tuple[list[Sale], int]:
    """Newest first. An exact `on_date` wins over a start/end range."""
    query = db.session.query(Sale)
    if on_date is not None:
        query = query.filter(Sale.date == on_date)
    else:
        if start_date is not None:
            query = query.filter(Sale.date >= start_date)
        if end_date is not None:
            query = query.filter(Sale.date <= end_date)
    if seller_id is not None:
        query = query.filter(Sale.seller_id == seller_id)

    total = query.count()
    sales = query.order_by(Sale.date.desc(), Sale.id.desc()).limit(limit).offset(offset).all()
    return sales, total
