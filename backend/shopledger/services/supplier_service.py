# Overview: Service-layer operations for suppliers.

from ..extensions import db
from ..models import Supplier
from .concurrency import run_orm_with_retry


class SupplierError(Exception):
    pass


def list_suppliers(*, limit: int, offset: int) -> tuple[list[Supplier], int]:
    query = db.session.query(Supplier)
    total = query.count()
    suppliers = query.order_by(Supplier.company.asc(), Supplier.id.asc()).limit(limit).offset(offset).all()
    return suppliers, total


def get_supplier(supplier_id: int) -> Supplier | None:
    return db.session.get(Supplier, supplier_id)


def create_supplier(patch: dict) -> Supplier:
    def _op():
        supplier = Supplier(**patch)
        db.session.add(supplier)
        db.session.commit()
        return supplier
    return run_orm_with_retry(db.session, _op)


def update_supplier(supplier_id: int, patch: dict) -> Supplier:
    def _op():
        supplier = db.session.get(Supplier, supplier_id)
        if supplier is None:
            raise SupplierError(f"Supplier {supplier_id} not found")
        for key, value in patch.items():
            setattr(supplier, key, value)
        db.session.commit()
        return supplier
    return run_orm_with_retry(db.session, _op)


def delete_supplier(supplier_id: int) -> None:
    supplier = db.session.get(Supplier, supplier_id)
    if supplier is None:
        raise SupplierError(f"Supplier {supplier_id} not found")
    db.session.delete(supplier)
    db.session.commit()
