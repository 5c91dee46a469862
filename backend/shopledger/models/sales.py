from __future__ import annotations

from ..extensions import db
from ..line_items import decode_line_items, money_out
from shopledger.time_utils import to_iso_date, to_utc_z


SALE_STATUS_COMPLETED = "completed"
SALE_STATUS_CANCELLED = "cancelled"
SALE_STATUS_RETURNED = "returned"

INVOICE_PREFIX = "TRN-"


def format_invoice_number(sale_id: int) -> str:
    """TRN-00001 style invoice number derived from the row id."""
    return f"{INVOICE_PREFIX}{sale_id:05d}"


class Sale(db.Model):
    """
    Sale record with its priced line items embedded as a JSON snapshot.

    WHY: Totals are written once by the sale transaction and afterwards only
    by an approved return (never by direct edit). profit == total - total_cost
    holds after both.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_status_date", "status", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable invoice number (e.g., "TRN-00042"), derived from id after insert
    invoice_number = db.Column(db.String(32), nullable=False, unique=True)

    date = db.Column(db.Date, nullable=False, index=True)
    customer_id = db.Column(db.Integer, nullable=False, default=0, index=True)
    customer_name = db.Column(db.String(255), nullable=False)
    seller_id = db.Column(db.Integer, nullable=False, index=True)
    seller_name = db.Column(db.String(255), nullable=False)

    # Canonical JSON list of SaleLineItem (see line_items.py)
    items = db.Column(db.Text, nullable=False)

    total = db.Column(db.Numeric(12, 2), nullable=False)
    total_cost = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_discount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    profit = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    payment_method = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=SALE_STATUS_COMPLETED, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def line_items(self, *, strict: bool = False) -> list:
        return decode_line_items(self.items, "sale", strict=strict)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoiceNumber": self.invoice_number,
            "date": to_iso_date(self.date),
            "customerId": self.customer_id,
            "customerName": self.customer_name,
            "sellerId": self.seller_id,
            "sellerName": self.seller_name,
            "items": [item.to_json() for item in self.line_items()],
            "total": money_out(self.total),
            "totalCost": money_out(self.total_cost),
            "totalDiscount": money_out(self.total_discount),
            "profit": money_out(self.profit),
            "paymentMethod": self.payment_method,
            "status": self.status,
            "createdAt": to_utc_z(self.created_at),
        }
