from __future__ import annotations

from ..extensions import db
from ..line_items import decode_line_items, money_out
from shopledger.time_utils import to_iso_date, to_utc_z


RETURN_STATUS_PENDING = "pending"
RETURN_STATUS_APPROVED = "approved"
RETURN_STATUS_REJECTED = "rejected"

RETURN_STATUSES = (RETURN_STATUS_PENDING, RETURN_STATUS_APPROVED, RETURN_STATUS_REJECTED)

ITEM_CONDITION_RETURNED = "returned"
ITEM_CONDITION_APPROVED = "approved"


def format_return_id(return_id: int) -> str:
    return f"RET-{return_id:05d}"


class Return(db.Model):
    """
    Return request against one sale (at most one per invoice number).

    LIFECYCLE: pending -> approved | rejected. Both outcomes are terminal.
    """
    __tablename__ = "returns"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    # Unique: one return per sale
    invoice_number = db.Column(db.String(32), nullable=False, unique=True)
    invoice_id = db.Column(db.Integer, nullable=False)

    date = db.Column(db.Date, nullable=False)
    customer_name = db.Column(db.String(255), nullable=False)
    customer_id = db.Column(db.Integer, nullable=False, default=0, index=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    reason = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(16), nullable=False, default=RETURN_STATUS_PENDING, index=True)

    # Canonical JSON list of ReturnLineItem (snapshot submitted with the request)
    items = db.Column(db.Text, nullable=False)

    # Decision audit
    approved_by = db.Column(db.String(255), nullable=True)
    approved_date = db.Column(db.Date, nullable=True)
    rejected_by = db.Column(db.String(255), nullable=True)
    rejected_date = db.Column(db.Date, nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    returned_items = db.relationship(
        "ReturnedItem",
        backref=db.backref("return_doc", lazy=True),
        lazy=True,
        order_by="ReturnedItem.id",
    )

    def line_items(self, *, strict: bool = False) -> list:
        return decode_line_items(self.items, "return", strict=strict)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "displayId": format_return_id(self.id),
            "invoiceNumber": self.invoice_number,
            "invoiceId": self.invoice_id,
            "date": to_iso_date(self.date),
            "customerName": self.customer_name,
            "customerId": self.customer_id,
            "amount": money_out(self.amount),
            "reason": self.reason,
            "status": self.status,
            "items": [item.to_json() for item in self.line_items()],
            "approvedBy": self.approved_by,
            "approvedDate": to_iso_date(self.approved_date),
            "rejectedBy": self.rejected_by,
            "rejectedDate": to_iso_date(self.rejected_date),
            "rejectionReason": self.rejection_reason,
            "createdAt": to_utc_z(self.created_at),
        }


class ReturnedItem(db.Model):
    """
    Returned-goods holding area.

    Rows are created with the return (condition 'returned'), flipped to
    'approved' when the return is approved, and deleted when it is rejected.
    Approved items stay here; they are NOT put back into sellable inventory.
    """
    __tablename__ = "returned_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    return_id = db.Column(db.Integer, db.ForeignKey("returns.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(128), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    original_price = db.Column(db.Numeric(12, 2), nullable=False)
    condition = db.Column(db.String(16), nullable=False, default=ITEM_CONDITION_RETURNED, index=True)

    return_date = db.Column(db.Date, nullable=False)
    customer_name = db.Column(db.String(255), nullable=True)
    return_reason = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "returnId": self.return_id,
            "sku": self.sku,
            "name": self.name,
            "category": self.category,
            "quantity": self.quantity,
            "originalPrice": money_out(self.original_price),
            "condition": self.condition,
            "returnDate": to_iso_date(self.return_date),
            "customerName": self.customer_name,
            "returnReason": self.return_reason,
        }
