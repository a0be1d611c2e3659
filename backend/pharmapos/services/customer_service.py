# Overview: Service-layer operations for the customer directory.

from __future__ import annotations

from sqlalchemy import or_

from ..errors import ConflictError, NotFound
from ..extensions import db
from ..models import Customer, Order
from ..validation import CUSTOMER_POLICY, validate_payload
from .concurrency import run_with_retry
from pharmapos.time_utils import utcnow


def list_customers() -> list[Customer]:
    return db.session.query(Customer).order_by(Customer.name.asc(), Customer.id.asc()).all()


def get_customer(customer_id: int) -> Customer:
    customer = db.session.query(Customer).filter_by(id=customer_id).first()
    if customer is None:
        raise NotFound(f"Customer {customer_id} not found", details={"customer_id": customer_id})
    return customer


def search_customers(query: str, limit: int = 20) -> list[Customer]:
    """Case-insensitive match on name, phone or email."""
    term = (query or "").strip()
    if not term:
        return []
    pattern = f"%{term}%"
    return (
        db.session.query(Customer)
        .filter(or_(
            Customer.name.ilike(pattern),
            Customer.phone.ilike(pattern),
            Customer.email.ilike(pattern),
        ))
        .order_by(Customer.name.asc(), Customer.id.asc())
        .limit(limit)
        .all()
    )


def create_customer(payload: dict) -> Customer:
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)

    def _op():
        customer = Customer(**patch)
        db.session.add(customer)
        db.session.commit()
        return customer

    return run_with_retry(_op)


def update_customer(customer_id: int, payload: dict) -> Customer:
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)

    def _op():
        customer = get_customer(customer_id)
        for k, v in patch.items():
            setattr(customer, k, v)
        db.session.commit()
        return customer

    return run_with_retry(_op)


def delete_customer(customer_id: int) -> None:
    def _op():
        customer = get_customer(customer_id)
        if db.session.query(Order.id).filter_by(customer_id=customer.id).first() is not None:
            raise ConflictError(
                "Customer has orders and cannot be deleted",
                details={"customer_id": customer.id},
            )
        db.session.delete(customer)
        db.session.commit()

    run_with_retry(_op)


def record_visit(customer: Customer, amount_cents: int) -> None:
    """Checkout rollup. Joins the caller's transaction; does not commit."""
    customer.total_visits = (customer.total_visits or 0) + 1
    customer.total_spent_cents = (customer.total_spent_cents or 0) + amount_cents
    customer.last_visit_at = utcnow()


def reverse_spend(customer: Customer, amount_cents: int) -> None:
    """Cancellation rollup; the visit itself still happened."""
    customer.total_spent_cents = max((customer.total_spent_cents or 0) - amount_cents, 0)
