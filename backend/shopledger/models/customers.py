from __future__ import annotations

from ..extensions import db
from ..line_items import money_out
from shopledger.time_utils import to_iso_date


# Sales without a registered customer carry customer_id 0
WALK_IN_CUSTOMER_ID = 0


class Customer(db.Model):
    """
    Customer master data for tracking purchases.

    WHY: lifetime_value follows the ledger: it grows with each sale total and
    shrinks by the amount of every approved return, inside the same
    transaction as the sale/return.
    """
    __tablename__ = "customers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    phone = db.Column(db.String(32), nullable=False)
    address = db.Column(db.String(500), nullable=True)

    total_purchases = db.Column(db.Integer, nullable=False, default=0)
    lifetime_value = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    last_purchase = db.Column(db.Date, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "totalPurchases": self.total_purchases,
            "lifetimeValue": money_out(self.lifetime_value),
            "lastPurchase": to_iso_date(self.last_purchase),
        }
