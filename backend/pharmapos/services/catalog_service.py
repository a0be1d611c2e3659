# backend/pharmapos/services/catalog_service.py
"""
Catalog Service

Product master data. Stock is owned by the stock ledger: opening stock given
on create is written through it, and stock_quantity is not patchable here.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import or_

from ..errors import ConflictError, NotFound
from ..extensions import db
from ..models import OrderItem, Product, StockMovement, Supplier
from ..validation import PRODUCT_CREATE_POLICY, PRODUCT_UPDATE_POLICY, validate_payload
from . import stock_service
from .concurrency import run_with_retry
from pharmapos.time_utils import expiry_cutoff


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_UPDATE_POLICY.writable_fields:
            continue
        setattr(p, k, v)


def list_products(
    search: str | None = None,
    category: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Product listing with optional search and pagination.

    Args:
        search: case-insensitive match on name or SKU
        category: exact category match
        page: Page number (1-indexed). If None, returns all items.
        per_page: Items per page (default 20, max 100)

    Returns:
        Dict with 'items', 'count', and pagination metadata if paginated.
    """
    base_query = db.session.query(Product)
    if search:
        pattern = f"%{search.strip()}%"
        base_query = base_query.filter(or_(Product.name.ilike(pattern), Product.sku.ilike(pattern)))
    if category:
        base_query = base_query.filter(Product.category == category)
    base_query = base_query.order_by(Product.name.asc(), Product.id.asc())

    # If no pagination requested, return all items
    if page is None:
        products = base_query.all()
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    # Pagination logic
    per_page = min(per_page or 20, 100)  # Default 20, max 100
    page = max(page, 1)  # Ensure page >= 1

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def list_categories() -> list[str]:
    rows = (
        db.session.query(Product.category)
        .filter(Product.category.isnot(None))
        .distinct()
        .order_by(Product.category.asc())
        .all()
    )
    return [category for (category,) in rows]


def count_products() -> int:
    return db.session.query(Product).count()


def get_product(product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id).first()
    if product is None:
        raise NotFound(f"Product {product_id} not found", details={"product_id": product_id})
    return product


def _ensure_unique_sku(sku: str, exclude_id: int | None = None) -> None:
    query = db.session.query(Product).filter(Product.sku == sku)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first() is not None:
        raise ConflictError("SKU already exists.", details={"sku": sku})


def _ensure_supplier(supplier_id: int | None) -> None:
    if supplier_id is None:
        return
    if db.session.query(Supplier.id).filter_by(id=supplier_id).first() is None:
        raise NotFound(f"Supplier {supplier_id} not found", details={"supplier_id": supplier_id})


def create_product(payload: dict) -> Product:
    """
    Create a product from a raw payload.

    Raises:
        ValidationError: payload fails the product create policy
        NotFound: supplier_id names no supplier
        ConflictError: If SKU already exists
    """
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_CREATE_POLICY, partial=False)
    opening_stock = patch.pop("stock_quantity", None) or 0
    if patch.get("reorder_level") is None:
        patch["reorder_level"] = current_app.config.get("LOW_STOCK_DEFAULT_REORDER_LEVEL", 0)

    def _op():
        _ensure_unique_sku(patch["sku"])
        _ensure_supplier(patch.get("supplier_id"))

        p = Product(stock_quantity=opening_stock)
        apply_product_patch(p, patch)
        db.session.add(p)
        db.session.flush()  # ensure p.id exists before the opening movement

        stock_service.record_opening_balance(p, opening_stock)

        db.session.commit()
        return p

    return run_with_retry(_op)


def update_product(product_id: int, payload: dict) -> Product:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)

    def _op():
        p = get_product(product_id)
        if "sku" in patch and patch["sku"] != p.sku:
            _ensure_unique_sku(patch["sku"], exclude_id=p.id)
        if "supplier_id" in patch:
            _ensure_supplier(patch["supplier_id"])
        apply_product_patch(p, patch)
        db.session.commit()
        return p

    return run_with_retry(_op)


def delete_product(product_id: int) -> None:
    """
    Hard-delete a product that has never been sold or moved.

    Products with order items or stock movements are referenced by the
    audit trail; deactivate them (is_active=False) instead.
    """
    def _op():
        p = get_product(product_id)

        has_items = db.session.query(OrderItem.id).filter_by(product_id=p.id).first() is not None
        has_movements = db.session.query(StockMovement.id).filter_by(product_id=p.id).first() is not None
        if has_items or has_movements:
            raise ConflictError(
                "Product has sales or stock history; deactivate it instead",
                details={"product_id": p.id},
            )

        db.session.delete(p)
        db.session.commit()

    run_with_retry(_op)


def get_expiring_products(within_days: int = 30) -> list[Product]:
    """Products expiring within the window (already expired included), soonest first."""
    cutoff = expiry_cutoff(within_days)
    return (
        db.session.query(Product)
        .filter(Product.expiry_date.isnot(None), Product.expiry_date <= cutoff)
        .order_by(Product.expiry_date.asc(), Product.id.asc())
        .all()
    )
