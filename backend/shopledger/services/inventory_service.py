# Overview: Service-layer operations for inventory; stock-level ledger helpers plus catalog CRUD.

# backend/shopledger/services/inventory_service.py
"""
Inventory Ledger

Invariants (authoritative):
- inventory.quantity is a stored, mutable stock level and never goes negative
  (pre-checked under the row lock, and guarded by a CHECK constraint).
- Inside a ledger transaction the item row is always locked before its
  quantity is read for a decision (lock_item), then written (decrement/increment).
- Approved returns do NOT restock; only restock_item() and edits add stock.

Ledger helpers take a TransactionHandle from database.transaction(); the
catalog CRUD below works through the ORM session.
"""

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..database import ConstraintViolation
from ..models import InventoryItem
from ..time_utils import today
from ..validation import ValidationError
from .concurrency import run_orm_with_retry


class InventoryError(Exception):
    """Raised when an inventory item cannot be found or changed."""
    pass


_ITEM_COLUMNS = "id, sku, name, category, quantity, cost_price, price, reorder_level"


# =============================================================================
# LEDGER HELPERS (transaction-scoped)
# =============================================================================

def lock_item(tx, item_id: int) -> dict | None:
    """Fetch one inventory row with a row lock held until the transaction ends."""
    return tx.get(
        f"SELECT {_ITEM_COLUMNS} FROM inventory WHERE id = ?",
        [item_id],
        for_update=True,
    )


def decrement_stock(tx, item_id: int, quantity: int) -> int:
    """
    Remove `quantity` units from an item locked by lock_item().

    The WHERE guard makes the write itself refuse to go below zero, so a
    caller that skipped the pre-check still cannot oversell.
    """
    result = tx.run(
        "UPDATE inventory SET quantity = quantity - ? WHERE id = ? AND quantity >= ?",
        [quantity, item_id, quantity],
    )
    return result.changes


def increment_stock(tx, item_id: int, quantity: int) -> int:
    result = tx.run(
        "UPDATE inventory SET quantity = quantity + ? WHERE id = ?",
        [quantity, item_id],
    )
    return result.changes


# =============================================================================
# CATALOG CRUD
# =============================================================================

def _write(op):
    """Run add/modify + commit as one retryable unit; map SKU collisions."""
    try:
        return run_orm_with_retry(db.session, op)
    except IntegrityError as exc:
        db.session.rollback()
        if "sku" in str(exc.orig).lower():
            raise ConstraintViolation("SKU already exists", constraint="inventory.sku", is_unique=True) from exc
        raise ConstraintViolation(f"Inventory constraint failed: {exc.orig}") from exc


def list_items(*, limit: int, offset: int) -> tuple[list[InventoryItem], int]:
    query = db.session.query(InventoryItem)
    total = query.count()
    items = query.order_by(InventoryItem.id.asc()).limit(limit).offset(offset).all()
    return items, total


def get_item(item_id: int) -> InventoryItem | None:
    return db.session.get(InventoryItem, item_id)


def create_item(patch: dict) -> InventoryItem:
    def _op():
        item = InventoryItem(**patch)
        db.session.add(item)
        db.session.commit()
        return item
    return _write(_op)


def update_item(item_id: int, patch: dict) -> InventoryItem:
    def _op():
        item = db.session.get(InventoryItem, item_id)
        if item is None:
            raise InventoryError(f"Inventory item {item_id} not found")
        for key, value in patch.items():
            setattr(item, key, value)
        db.session.commit()
        return item
    return _write(_op)


def delete_item(item_id: int) -> None:
    item = db.session.get(InventoryItem, item_id)
    if item is None:
        raise InventoryError(f"Inventory item {item_id} not found")
    db.session.delete(item)
    db.session.commit()


def list_low_stock() -> list[InventoryItem]:
    """Items at or below their reorder level, emptiest first."""
    return (
        db.session.query(InventoryItem)
        .filter(InventoryItem.quantity <= InventoryItem.reorder_level)
        .order_by(InventoryItem.quantity.asc(), InventoryItem.id.asc())
        .all()
    )


def restock_item(item_id: int, quantity: int, restock_date=None) -> InventoryItem:
    """
    Add received units to an item and stamp last_restock.

    Uses an atomic SQL increment so it cannot lose a concurrent sale's
    decrement.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise ValidationError("quantity must be a positive integer")

    def _apply():
        changed = (
            db.session.query(InventoryItem)
            .filter(InventoryItem.id == item_id)
            .update(
                {
                    InventoryItem.quantity: InventoryItem.quantity + quantity,
                    InventoryItem.last_restock: restock_date or today(),
                },
                synchronize_session=False,
            )
        )
        if not changed:
            db.session.rollback()
            raise InventoryError(f"Inventory item {item_id} not found")
        db.session.commit()

    run_orm_with_retry(db.session, _apply)
    item = db.session.get(InventoryItem, item_id)
    db.session.refresh(item)
    return item
