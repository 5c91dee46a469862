# Overview: Typed line-item snapshots stored as JSON on sales and returns, plus money arithmetic helpers.

"""
Line items are denormalized snapshots: a sale keeps the price and cost it
was made at even if the catalog changes later. They are stored as one
canonical JSON document per row and validated when read back.

Serialization contract (camelCase keys, money as decimal strings):

    SaleLineItem   {"itemId", "sku", "name", "quantity", "systemPrice",
                    "actualPrice", "discount", "costPrice"}
    ReturnLineItem {"itemId", "sku", "name", "category", "quantity", "price"}
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from flask import current_app

from .validation import ValidationError


CENT = Decimal("0.01")


def money(value: Any) -> Decimal:
    """Coerce to a Decimal rounded to cents (half-up). None counts as zero."""
    if value is None:
        return Decimal("0.00")
    if isinstance(value, bool):
        raise ValidationError("Amount must be a number")
    if isinstance(value, float):
        value = repr(value)
    try:
        return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"Invalid amount: {value!r}")


def money_out(value: Any) -> float:
    """JSON representation of a money value."""
    return float(money(value))


def _require_int(data: dict, key: str, *, minimum: int = 1) -> int:
    value = data.get(key)
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        value = int(value.strip())
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int):
        raise ValidationError(f"{key} must be an integer")
    if value < minimum:
        raise ValidationError(f"{key} must be >= {minimum}")
    return value


def _require_money(data: dict, key: str, *, allow_negative: bool = False, default=None) -> Decimal:
    raw = data.get(key, default)
    if raw is None:
        raise ValidationError(f"{key} is required")
    value = money(raw)
    if not allow_negative and value < 0:
        raise ValidationError(f"{key} must be >= 0")
    return value


def _item_ref(data: dict) -> int | None:
    raw = data.get("itemId", data.get("id"))
    if raw is None or raw == "":
        return None
    if isinstance(raw, bool):
        raise ValidationError("itemId must be an integer")
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValidationError("itemId must be an integer")


@dataclass(frozen=True)
class SaleLineRequest:
    """One requested line of a sale before pricing against inventory."""
    item_id: int
    quantity: int
    price: Decimal
    actual_price: Decimal

    @property
    def subtotal(self) -> Decimal:
        return money(self.actual_price * self.quantity)

    @classmethod
    def from_dict(cls, data: dict) -> "SaleLineRequest":
        if not isinstance(data, dict):
            raise ValidationError("Each sale item must be an object")
        item_id = _item_ref(data)
        if item_id is None:
            raise ValidationError("Each sale item requires itemId")
        price = _require_money(data, "price")
        # actualPrice is what the cashier charged; defaults to the requested price
        actual = data.get("actualPrice")
        actual_price = price if actual is None else _require_money(data, "actualPrice")
        return cls(
            item_id=item_id,
            quantity=_require_int(data, "quantity"),
            price=price,
            actual_price=actual_price,
        )


@dataclass(frozen=True)
class SaleLineItem:
    item_id: int
    sku: str
    name: str
    quantity: int
    system_price: Decimal
    actual_price: Decimal
    discount: Decimal
    cost_price: Decimal

    @property
    def revenue(self) -> Decimal:
        return money(self.actual_price * self.quantity)

    @property
    def cost(self) -> Decimal:
        return money(self.cost_price * self.quantity)

    @property
    def profit(self) -> Decimal:
        return self.revenue - self.cost

    def to_dict(self) -> dict:
        return {
            "itemId": self.item_id,
            "sku": self.sku,
            "name": self.name,
            "quantity": self.quantity,
            "systemPrice": str(self.system_price),
            "actualPrice": str(self.actual_price),
            "discount": str(self.discount),
            "costPrice": str(self.cost_price),
        }

    def to_json(self) -> dict:
        """API representation (numbers instead of decimal strings)."""
        d = self.to_dict()
        for key in ("systemPrice", "actualPrice", "discount", "costPrice"):
            d[key] = float(d[key])
        return d

    @classmethod
    def from_dict(cls, data: dict) -> "SaleLineItem":
        if not isinstance(data, dict):
            raise ValidationError("Sale line item must be an object")
        item_id = _item_ref(data)
        if item_id is None:
            raise ValidationError("Sale line item requires itemId")
        quantity = _require_int(data, "quantity")
        system_price = _require_money(data, "systemPrice")
        actual_price = _require_money(data, "actualPrice")
        discount = _require_money(data, "discount", allow_negative=True)
        if discount != money((system_price - actual_price) * quantity):
            raise ValidationError(f"Sale line item {item_id} has an inconsistent discount")
        return cls(
            item_id=item_id,
            sku=str(data.get("sku") or ""),
            name=str(data.get("name") or ""),
            quantity=quantity,
            system_price=system_price,
            actual_price=actual_price,
            discount=discount,
            cost_price=_require_money(data, "costPrice", default=0),
        )


@dataclass(frozen=True)
class ReturnLineItem:
    item_id: int | None
    sku: str
    name: str
    category: str
    quantity: int
    price: Decimal

    def to_dict(self) -> dict:
        return {
            "itemId": self.item_id,
            "sku": self.sku,
            "name": self.name,
            "category": self.category,
            "quantity": self.quantity,
            "price": str(self.price),
        }

    def to_json(self) -> dict:
        d = self.to_dict()
        d["price"] = float(d["price"])
        return d

    @classmethod
    def from_dict(cls, data: dict) -> "ReturnLineItem":
        if not isinstance(data, dict):
            raise ValidationError("Return item must be an object")
        sku = str(data.get("sku") or "").strip()
        if not sku:
            raise ValidationError("Return item requires sku")
        name = str(data.get("name") or "").strip()
        if not name:
            raise ValidationError("Return item requires name")
        # Older clients send original_price instead of price
        price_key = "price" if data.get("price") is not None else "original_price"
        return cls(
            item_id=_item_ref(data),
            sku=sku,
            name=name,
            category=str(data.get("category") or ""),
            quantity=_require_int(data, "quantity"),
            price=_require_money(data, price_key, default=0),
        )


_KINDS = {"sale": SaleLineItem, "return": ReturnLineItem}


def encode_line_items(items) -> str:
    return json.dumps([item.to_dict() for item in items], separators=(",", ":"), sort_keys=True)


def decode_line_items(raw, kind: str, *, strict: bool = True) -> list:
    """
    Parse a stored JSON blob into typed line items.

    strict=False is for read endpoints: a corrupt blob is logged and read
    as an empty list instead of failing the whole listing.
    """
    cls = _KINDS[kind]
    try:
        data = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
        if not isinstance(data, list):
            raise ValidationError(f"Stored {kind} items must be a list")
        return [cls.from_dict(entry) for entry in data]
    except (ValueError, TypeError) as exc:
        if strict:
            if isinstance(exc, ValidationError):
                raise
            raise ValidationError(f"Stored {kind} items are not valid JSON") from exc
        current_app.logger.error("Could not decode %s items: %s", kind, exc)
        return []
