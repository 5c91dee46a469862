from __future__ import annotations

from ..extensions import db
from ..line_items import money_out
from shopledger.time_utils import to_iso_date


class InventoryItem(db.Model):
    """
    Sellable stock for one SKU.

    WHY: quantity is a stored, mutable level (not ledger-derived). It is only
    ever changed by a sale transaction holding the row lock, by a manual
    restock, or by an edit through the inventory API. It never goes negative.
    """
    __tablename__ = "inventory"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_inventory_quantity_non_negative"),
        db.Index("ix_inventory_category_name", "category", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(128), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=0, index=True)
    cost_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    price = db.Column(db.Numeric(12, 2), nullable=False)
    reorder_level = db.Column(db.Integer, nullable=False, default=0)

    supplier = db.Column(db.String(255), nullable=False)
    last_restock = db.Column(db.Date, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "category": self.category,
            "quantity": self.quantity,
            "costPrice": money_out(self.cost_price),
            "price": money_out(self.price),
            "reorderLevel": self.reorder_level,
            "supplier": self.supplier,
            "lastRestock": to_iso_date(self.last_restock),
        }


class Supplier(db.Model):
    """Supplier directory entry (free-text terms and product categories)."""
    __tablename__ = "suppliers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    company = db.Column(db.String(255), nullable=False)
    contact = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=False)
    terms = db.Column(db.String(128), nullable=False)
    categories = db.Column(db.Text, nullable=False)
    products = db.Column(db.Text, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company": self.company,
            "contact": self.contact,
            "email": self.email,
            "phone": self.phone,
            "terms": self.terms,
            "categories": self.categories,
            "products": self.products,
        }
