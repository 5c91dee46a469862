# Overview: Service-layer operations for customers; CRUD through the ORM session.

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..database import ConstraintViolation
from ..models import Customer
from ..models.customers import WALK_IN_CUSTOMER_ID
from .concurrency import run_orm_with_retry


class CustomerError(Exception):
    """Raised when a customer cannot be found or changed."""
    pass


def _write(op):
    """Run add/modify + commit as one retryable unit; map email collisions."""
    try:
        return run_orm_with_retry(db.session, op)
    except IntegrityError as exc:
        db.session.rollback()
        raise ConstraintViolation("Email already exists", constraint="customers.email", is_unique=True) from exc


def list_customers(*, limit: int, offset: int) -> tuple[list[Customer], int]:
    query = db.session.query(Customer)
    total = query.count()
    customers = query.order_by(Customer.id.asc()).limit(limit).offset(offset).all()
    return customers, total


def get_customer(customer_id: int) -> Customer | None:
    return db.session.get(Customer, customer_id)


def create_customer(patch: dict) -> Customer:
    def _op():
        customer = Customer(**patch)
        db.session.add(customer)
        db.session.commit()
        return customer
    return _write(_op)


def update_customer(customer_id: int, patch: dict) -> Customer:
    def _op():
        customer = db.session.get(Customer, customer_id)
        if customer is None:
            raise CustomerError(f"Customer {customer_id} not found")
        for key, value in patch.items():
            setattr(customer, key, value)
        db.session.commit()
        return customer
    return _write(_op)


def delete_customer(customer_id: int) -> None:
    if customer_id == WALK_IN_CUSTOMER_ID:
        raise CustomerError("The walk-in customer cannot be deleted")
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise CustomerError(f"Customer {customer_id} not found")
    db.session.delete(customer)
    db.session.commit()


def ensure_walk_in_customer() -> Customer:
    """Idempotently create the id-0 sentinel used by anonymous sales."""
    customer = db.session.get(Customer, WALK_IN_CUSTOMER_ID)
    if customer is None:
        customer = Customer(
            id=WALK_IN_CUSTOMER_ID,
            name="Walk-in Customer",
            email="walkin@shopledger.local",
            phone="N/A",
        )
        db.session.add(customer)
        db.session.commit()
    return customer
