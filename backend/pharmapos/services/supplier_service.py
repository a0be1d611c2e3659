# Overview: Service-layer operations for the supplier directory.

"""
Supplier Service

Suppliers are where products are bought from. A product references at most
one supplier; deleting a supplier is refused while any product points at it
(reassign or clear Product.supplier_id first).
"""
from __future__ import annotations

import logging

from ..errors import ConflictError, NotFound
from ..extensions import db
from ..models import Product, Supplier
from ..validation import SUPPLIER_POLICY, validate_payload
from .concurrency import run_with_retry

logger = logging.getLogger(__name__)


def list_suppliers() -> list[Supplier]:
    """Newest first."""
    return db.session.query(Supplier).order_by(Supplier.created_at.desc(), Supplier.id.desc()).all()


def get_supplier(supplier_id: int) -> Supplier:
    supplier = db.session.query(Supplier).filter_by(id=supplier_id).first()
    if supplier is None:
        raise NotFound(f"Supplier {supplier_id} not found", details={"supplier_id": supplier_id})
    return supplier


def create_supplier(payload: dict) -> Supplier:
    patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=False)

    def _op():
        supplier = Supplier(**patch)
        db.session.add(supplier)
        db.session.commit()
        logger.info("Created supplier %s (%s)", supplier.id, supplier.name)
        return supplier

    return run_with_retry(_op)


def update_supplier(supplier_id: int, payload: dict) -> Supplier:
    patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=True)

    def _op():
        supplier = get_supplier(supplier_id)
        for k, v in patch.items():
            setattr(supplier, k, v)
        db.session.commit()
        return supplier

    return run_with_retry(_op)


def delete_supplier(supplier_id: int) -> None:
    def _op():
        supplier = get_supplier(supplier_id)
        in_use = db.session.query(Product.id).filter_by(supplier_id=supplier.id).count()
        if in_use:
            raise ConflictError(
                "Supplier is still assigned to products",
                details={"supplier_id": supplier.id, "product_count": in_use},
            )
        db.session.delete(supplier)
        db.session.commit()
        logger.info("Deleted supplier %s", supplier_id)

    run_with_retry(_op)
