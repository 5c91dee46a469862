"""
Return State Machine

WHY: A return reverses part of a sale's financial effect. Approving the
same return twice must not subtract the sale totals twice, and a sale can
carry at most one return.

LIFECYCLE:
1. create_return -> PENDING; submitted items land in returned_items (condition 'returned')
2. update_return_status(approved) -> returned_items flipped to 'approved';
   sale total/total_cost/profit reduced and status 'returned'; customer
   lifetime_value reduced by the return amount
3. update_return_status(rejected) -> returned_items deleted; sale untouched

POLICY: approval does NOT restock sellable inventory. Approved goods stay in
the returned-items holding area until someone inspects them.

Transitions out of a terminal state raise InvalidReturnTransition; repeating
the current status is a no-op for the financials (fields are still written).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from flask import current_app

from ..extensions import db, database
from ..database import ConstraintViolation
from ..line_items import ReturnLineItem, decode_line_items, encode_line_items, money
from ..models import Return, ReturnedItem
from ..models.customers import WALK_IN_CUSTOMER_ID
from ..models.returns import (
    ITEM_CONDITION_APPROVED,
    ITEM_CONDITION_RETURNED,
    RETURN_STATUSES,
    RETURN_STATUS_APPROVED,
    RETURN_STATUS_PENDING,
    RETURN_STATUS_REJECTED,
)
from ..models.sales import SALE_STATUS_RETURNED
from ..time_utils import parse_iso_date
from ..validation import ValidationError


class ReturnError(Exception):
    """Raised for return operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class DuplicateReturn(ReturnError):
    """A return already exists for the invoice."""


class ReturnNotFound(ReturnError):
    pass


class InvalidReturnTransition(ReturnError):
    """Status change out of a terminal state."""


# =============================================================================
# PAYLOAD PARSING
# =============================================================================

def _pick(payload: dict, camel: str, snake: str, default=None):
    if camel in payload:
        return payload[camel]
    return payload.get(snake, default)


def _parse_date(value, name: str, *, required: bool) -> date | None:
    try:
        parsed = parse_iso_date(value)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date")
    if parsed is None and required:
        raise ValidationError(f"{name} is required")
    return parsed


def _text(value, name: str, *, required: bool) -> str | None:
    cleaned = str(value).strip() if value is not None else ""
    if not cleaned:
        if required:
            raise ValidationError(f"{name} is required")
        return None
    return cleaned


def _int(value, name: str, *, minimum: int) -> int:
    if isinstance(value, bool) or value is None or value == "":
        raise ValidationError(f"{name} must be an integer")
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer")
    if parsed < minimum:
        raise ValidationError(f"{name} must be >= {minimum}")
    return parsed


@dataclass(frozen=True)
class ReturnRequest:
    invoice_number: str
    invoice_id: int
    date: date
    customer_name: str
    customer_id: int
    amount: Decimal
    reason: str
    items: tuple

    @classmethod
    def from_payload(cls, payload: dict) -> "ReturnRequest":
        if not isinstance(payload, dict):
            raise ValidationError("Invalid JSON payload")

        # New returns always start pending; decisions go through update_return_status
        status = payload.get("status")
        if status not in (None, "", RETURN_STATUS_PENDING):
            raise ValidationError("New returns must have status 'pending'")

        raw_items = payload.get("items")
        if not isinstance(raw_items, list) or not raw_items:
            raise ValidationError("items must be a non-empty array")

        amount = money(payload.get("amount"))
        if amount < 0:
            raise ValidationError("amount must be >= 0")

        return cls(
            invoice_number=_text(_pick(payload, "invoiceNumber", "invoice_number"), "invoiceNumber", required=True),
            invoice_id=_int(_pick(payload, "invoiceId", "invoice_id"), "invoiceId", minimum=1),
            date=_parse_date(payload.get("date"), "date", required=True),
            customer_name=_text(_pick(payload, "customerName", "customer_name"), "customerName", required=True),
            customer_id=_int(
                _pick(payload, "customerId", "customer_id", WALK_IN_CUSTOMER_ID), "customerId", minimum=0
            ),
            amount=amount,
            reason=_text(payload.get("reason"), "reason", required=True),
            items=tuple(ReturnLineItem.from_dict(entry) for entry in raw_items),
        )


@dataclass(frozen=True)
class StatusUpdate:
    status: str
    approved_by: str | None = None
    approved_date: date | None = None
    rejected_by: str | None = None
    rejected_date: date | None = None
    rejection_reason: str | None = None

    @classmethod
    def from_payload(cls, payload: dict) -> "StatusUpdate":
        if not isinstance(payload, dict):
            raise ValidationError("Invalid JSON payload")
        status = payload.get("status")
        if status not in RETURN_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(RETURN_STATUSES)}")
        return cls(
            status=status,
            approved_by=_text(_pick(payload, "approvedBy", "approved_by"), "approvedBy", required=False),
            approved_date=_parse_date(_pick(payload, "approvedDate", "approved_date"), "approvedDate", required=False),
            rejected_by=_text(_pick(payload, "rejectedBy", "rejected_by"), "rejectedBy", required=False),
            rejected_date=_parse_date(_pick(payload, "rejectedDate", "rejected_date"), "rejectedDate", required=False),
            rejection_reason=_text(
                _pick(payload, "rejectionReason", "rejection_reason"), "rejectionReason", required=False
            ),
        )


# =============================================================================
# RETURN CREATION
# =============================================================================

def _create_return_tx(tx, request: ReturnRequest) -> int:
    existing = tx.get("SELECT id FROM returns WHERE invoice_number = ?", [request.invoice_number])
    if existing is not None:
        raise DuplicateReturn(
            f"A return already exists for invoice {request.invoice_number}. Only one return is allowed per sale.",
            details={"invoice_number": request.invoice_number, "return_id": existing["id"]},
        )

    inserted = tx.run(
        "INSERT INTO returns (invoice_number, invoice_id, date, customer_name, customer_id, amount, reason, status, items) "
        "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
        [
            request.invoice_number, request.invoice_id, request.date, request.customer_name,
            request.customer_id, request.amount, request.reason, RETURN_STATUS_PENDING,
            encode_line_items(request.items),
        ],
    )
    return_id = inserted.last_insert_id

    for item in request.items:
        tx.run(
            "INSERT INTO returned_items (return_id, sku, name, category, quantity, original_price, condition, "
            "return_date, customer_name, return_reason) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            [
                return_id, item.sku, item.name, item.category, item.quantity, item.price,
                ITEM_CONDITION_RETURNED, request.date, request.customer_name, request.reason,
            ],
        )
    return return_id


def create_return(request: ReturnRequest | dict) -> int:
    """
    Create a pending return and its returned_items rows in one transaction.

    Raises:
        ValidationError: malformed request
        DuplicateReturn: the invoice already has a return (whatever its status)
    """
    if isinstance(request, dict):
        request = ReturnRequest.from_payload(request)

    try:
        return_id = database.transaction(_create_return_tx, request)
    except DuplicateReturn as e:
        current_app.logger.info("Return rejected: %s", e)
        raise
    except ConstraintViolation as e:
        # Lost the race to a concurrent create for the same invoice
        if e.is_unique and "invoice_number" in (e.constraint or str(e)):
            raise DuplicateReturn(
                f"A return already exists for invoice {request.invoice_number}. Only one return is allowed per sale.",
                details={"invoice_number": request.invoice_number},
            ) from e
        raise

    current_app.logger.info("Return %s created for invoice %s", return_id, request.invoice_number)
    return return_id


# =============================================================================
# APPROVAL / REJECTION
# =============================================================================

def _returned_cost(return_items: list, sale_items: list) -> Decimal:
    """Cost of the returned units at the cost recorded on the original sale (first SKU match)."""
    cost = Decimal("0.00")
    for returned in return_items:
        original = next((line for line in sale_items if line.sku == returned.sku), None)
        if original is not None:
            cost += money(original.cost_price * returned.quantity)
    return cost


def _apply_approval(tx, ret: dict) -> None:
    tx.run(
        "UPDATE returned_items SET condition = ? WHERE return_id = ?",
        [ITEM_CONDITION_APPROVED, ret["id"]],
    )

    sale = tx.get(
        "SELECT id, customer_id, items, total, total_cost FROM sales WHERE invoice_number = ?",
        [ret["invoice_number"]],
        for_update=True,
    )
    if sale is None:
        current_app.logger.warning(
            "Approved return %s references unknown invoice %s; no sale adjusted",
            ret["id"], ret["invoice_number"],
        )
        return

    amount = money(ret["amount"])
    returned_cost = _returned_cost(
        decode_line_items(ret["items"], "return"),
        decode_line_items(sale["items"], "sale"),
    )
    new_total = money(sale["total"]) - amount
    new_total_cost = money(sale["total_cost"]) - returned_cost
    new_profit = new_total - new_total_cost

    tx.run(
        "UPDATE sales SET total = ?, total_cost = ?, profit = ?, status = ? WHERE id = ?",
        [new_total, new_total_cost, new_profit, SALE_STATUS_RETURNED, sale["id"]],
    )

    customer_id = sale["customer_id"]
    if customer_id and customer_id != WALK_IN_CUSTOMER_ID:
        tx.run(
            "UPDATE customers SET lifetime_value = lifetime_value - ? WHERE id = ?",
            [amount, customer_id],
        )


def _update_status_tx(tx, return_id: int, update: StatusUpdate) -> str:
    ret = tx.get(
        "SELECT id, invoice_number, amount, status, items FROM returns WHERE id = ?",
        [return_id],
        for_update=True,
    )
    if ret is None:
        raise ReturnNotFound(f"Return {return_id} not found", details={"return_id": return_id})

    current = ret["status"]
    if current != update.status and current != RETURN_STATUS_PENDING:
        raise InvalidReturnTransition(
            f"Return {return_id} is already {current}; cannot change it to {update.status}",
            details={"return_id": return_id, "current": current, "requested": update.status},
        )

    if update.status == RETURN_STATUS_APPROVED and current != RETURN_STATUS_APPROVED:
        _apply_approval(tx, ret)

    if update.status == RETURN_STATUS_REJECTED and current != RETURN_STATUS_REJECTED:
        tx.run("DELETE FROM returned_items WHERE return_id = ?", [return_id])

    tx.run(
        "UPDATE returns SET status = ?, approved_by = ?, approved_date = ?, rejected_by = ?, "
        "rejected_date = ?, rejection_reason = ? WHERE id = ?",
        [
            update.status, update.approved_by, update.approved_date, update.rejected_by,
            update.rejected_date, update.rejection_reason, return_id,
        ],
    )
    return current


def update_return_status(return_id: int, update: StatusUpdate | dict) -> dict:
    """
    Move a return to `update.status`.

    The return row is locked before its status is read, and the parent sale
    before its totals are read, so concurrent approvals serialize and the
    reversal is applied exactly once.

    Raises:
        ReturnNotFound, InvalidReturnTransition, ValidationError
    """
    if isinstance(update, dict):
        update = StatusUpdate.from_payload(update)

    try:
        previous = database.transaction(_update_status_tx, return_id, update)
    except ReturnError as e:
        current_app.logger.info("Return status change rejected: %s", e)
        raise

    if previous != update.status:
        current_app.logger.info("Return %s moved %s -> %s", return_id, previous, update.status)
    return {"success": True}


# =============================================================================
# QUERIES
# =============================================================================

def get_return(return_id: int) -> Return | None:
    return db.session.get(Return, return_id)


def list_returns(*, limit: int, offset: int, status: str | None = None) -> tuple[list[Return], int]:
    query = db.session.query(Return)
    if status is not None:
        if status not in RETURN_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(RETURN_STATUSES)}")
        query = query.filter(Return.status == status)
    total = query.count()
    returns = query.order_by(Return.id.desc()).limit(limit).offset(offset).all()
    return returns, total


# =============================================================================
# RETURNED ITEMS (holding area)
# =============================================================================

def list_returned_items(*, limit: int, offset: int) -> tuple[list[ReturnedItem], int]:
    query = db.session.query(ReturnedItem)
    total = query.count()
    items = (
        query.order_by(ReturnedItem.return_date.desc(), ReturnedItem.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )
    return items, total


def items_for_return(return_id: int) -> list[ReturnedItem]:
    return (
        db.session.query(ReturnedItem)
        .filter(ReturnedItem.return_id == return_id)
        .order_by(ReturnedItem.id.asc())
        .all()
    )


def get_returned_item(item_id: int) -> ReturnedItem | None:
    return db.session.get(ReturnedItem, item_id)


def create_returned_item(patch: dict) -> ReturnedItem:
    if db.session.get(Return, patch["return_id"]) is None:
        raise ReturnNotFound(f"Return {patch['return_id']} not found")
    item = ReturnedItem(**patch)
    db.session.add(item)
    db.session.commit()
    return item


def update_returned_item(item_id: int, patch: dict) -> ReturnedItem:
    item = db.session.get(ReturnedItem, item_id)
    if item is None:
        raise ReturnNotFound(f"Returned item {item_id} not found")
    for key, value in patch.items():
        setattr(item, key, value)
    db.session.commit()
    return item


def delete_returned_item(item_id: int) -> None:
    item = db.session.get(ReturnedItem, item_id)
    if item is None:
        raise ReturnNotFound(f"Returned item {item_id} not found")
    db.session.delete(item)
    db.session.commit()
