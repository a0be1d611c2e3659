"""
Order Ledger

Turns requested line items into a persisted order and drives the order and
payment state machines.

The order row, its items, every stock debit and the customer rollup are
written inside a single run_with_retry() unit. Any failure rolls the
session back, so a failed checkout leaves no order, items or movements.
"""

from __future__ import annotations

import logging

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import (
    InsufficientStock,
    InvalidStateTransition,
    NotFound,
    PersistenceError,
    ValidationError,
    ConflictError,
)
from ..extensions import db
from ..models import Order, OrderItem, Product, StockMovement
from ..models.orders import (
    ORDER_PENDING,
    ORDER_PROCESSING,
    ORDER_COMPLETED,
    ORDER_CANCELLED,
    ORDER_STATUSES,
    PAYMENT_PENDING,
    PAYMENT_PAID,
    PAYMENT_FAILED,
    PAYMENT_REFUNDED,
    PAYMENT_STATUSES,
)
from ..validation import ORDER_PATCH_POLICY, validate_payload
from . import customer_service, stock_service
from .cart import Cart, OrderItemInput
from .concurrency import lock_for_update, run_with_retry
from pharmapos.time_utils import utcnow

logger = logging.getLogger(__name__)

ORDER_TRANSITIONS = {
    ORDER_PENDING: {ORDER_PROCESSING, ORDER_CANCELLED},
    ORDER_PROCESSING: {ORDER_COMPLETED, ORDER_CANCELLED},
    ORDER_COMPLETED: set(),
    ORDER_CANCELLED: set(),
}

PAYMENT_TRANSITIONS = {
    PAYMENT_PENDING: {PAYMENT_PAID, PAYMENT_FAILED},
    PAYMENT_PAID: {PAYMENT_REFUNDED},
    PAYMENT_FAILED: set(),
    PAYMENT_REFUNDED: set(),
}

MAX_PAYMENT_METHOD_LENGTH = 32
MAX_IDEMPOTENCY_KEY_LENGTH = 64


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _coerce_item(raw, index: int) -> OrderItemInput:
    if isinstance(raw, dict):
        raw = OrderItemInput.from_dict(raw)
    if not isinstance(raw, OrderItemInput):
        raise ValidationError(f"items[{index}] is not a valid order item")

    if not _is_int(raw.product_id):
        raise ValidationError(f"items[{index}].product_id must be an integer", details={"index": index})
    if not _is_int(raw.quantity) or raw.quantity <= 0:
        raise ValidationError(f"items[{index}].quantity must be > 0", details={"index": index})
    if raw.unit_price_cents is not None and (not _is_int(raw.unit_price_cents) or raw.unit_price_cents < 0):
        raise ValidationError(f"items[{index}].unit_price_cents must be >= 0", details={"index": index})
    if not _is_int(raw.discount_cents) or raw.discount_cents < 0:
        raise ValidationError(f"items[{index}].discount_cents must be >= 0", details={"index": index})
    return raw


def _validate_amount(name: str, value) -> int:
    if value is None:
        return 0
    if not _is_int(value) or value < 0:
        raise ValidationError(f"{name} must be a non-negative integer (cents)", details={"field": name})
    return value


def compute_order_total(lines: list[tuple[int, int, int]], discount_amount_cents: int, tax_amount_cents: int) -> int:
    """
    total = sum(qty * unit_price - line_discount) - discount + tax

    lines are (quantity, unit_price_cents, discount_cents) triples.
    """
    items_total = sum(qty * price - discount for qty, price, discount in lines)
    return items_total - discount_amount_cents + tax_amount_cents


def _check_live_stock(requested: dict[int, int]) -> dict[int, Product]:
    """
    Re-read every product at commit time (locked, ascending id) and verify
    the aggregated request fits. The cart's cached stock is never trusted.
    """
    products: dict[int, Product] = {}
    insufficient = []
    for product_id in sorted(requested):
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if product is None:
            raise NotFound(f"Product {product_id} not found", details={"product_id": product_id})
        if not product.is_active:
            raise ValidationError(f"Product {product_id} is inactive", details={"product_id": product_id})
        if product.stock_quantity < requested[product_id]:
            insufficient.append({
                "product_id": product_id,
                "requested_quantity": requested[product_id],
                "on_hand": product.stock_quantity,
            })
        products[product_id] = product

    if insufficient:
        raise InsufficientStock(
            "Insufficient stock to place order",
            details={"items": insufficient},
        )
    return products


def _find_by_idempotency_key(key: str) -> Order | None:
    return db.session.query(Order).filter_by(idempotency_key=key).first()


def place_order(
    items,
    *,
    customer_id: int | None = None,
    payment_method: str | None = None,
    discount_amount_cents: int = 0,
    tax_amount_cents: int = 0,
    notes: str | None = None,
    idempotency_key: str | None = None,
) -> Order:
    """
    Create an order with its items and debit stock, all or nothing.

    items: OrderItemInput instances or dicts with product_id, quantity,
    unit_price_cents (None snapshots the catalog price) and discount_cents.

    Raises ValidationError, NotFound, InsufficientStock or PersistenceError.
    A repeated call with the same idempotency_key returns the first order.
    """
    if not items:
        raise ValidationError("Cannot place an order with no items")
    lines = [_coerce_item(raw, i) for i, raw in enumerate(items)]

    discount_amount_cents = _validate_amount("discount_amount_cents", discount_amount_cents)
    tax_amount_cents = _validate_amount("tax_amount_cents", tax_amount_cents)

    if payment_method is None:
        payment_method = current_app.config.get("DEFAULT_PAYMENT_METHOD", "cash")
    payment_method = str(payment_method).strip()
    if not payment_method or len(payment_method) > MAX_PAYMENT_METHOD_LENGTH:
        raise ValidationError("payment_method is required", details={"field": "payment_method"})

    if idempotency_key is not None:
        idempotency_key = str(idempotency_key).strip() or None
        if idempotency_key and len(idempotency_key) > MAX_IDEMPOTENCY_KEY_LENGTH:
            raise ValidationError("idempotency_key is too long", details={"field": "idempotency_key"})

    requested: dict[int, int] = {}
    for line in lines:
        requested[line.product_id] = requested.get(line.product_id, 0) + line.quantity

    def _op():
        if idempotency_key:
            existing = _find_by_idempotency_key(idempotency_key)
            if existing is not None:
                logger.info("Checkout replay for key %s returned order %s", idempotency_key, existing.id)
                return existing

        customer = None
        if customer_id is not None:
            customer = customer_service.get_customer(customer_id)

        products = _check_live_stock(requested)

        priced = []
        for line in lines:
            unit_price = line.unit_price_cents
            if unit_price is None:
                unit_price = products[line.product_id].price_cents
            if line.discount_cents > line.quantity * unit_price:
                raise ValidationError(
                    "Line discount exceeds line subtotal",
                    details={"product_id": line.product_id},
                )
            priced.append((line, unit_price))

        total = compute_order_total(
            [(line.quantity, price, line.discount_cents) for line, price in priced],
            discount_amount_cents,
            tax_amount_cents,
        )
        if total < 0:
            raise ValidationError("Order total cannot be negative", details={"total_amount_cents": total})

        order = Order(
            customer_id=customer.id if customer else None,
            status=ORDER_PENDING,
            payment_status=PAYMENT_PENDING,
            total_amount_cents=total,
            discount_amount_cents=discount_amount_cents,
            tax_amount_cents=tax_amount_cents,
            payment_method=payment_method,
            notes=notes,
            idempotency_key=idempotency_key,
        )
        db.session.add(order)
        db.session.flush()  # order.id for items and movements

        for line, unit_price in priced:
            order.items.append(OrderItem(
                product_id=line.product_id,
                quantity=line.quantity,
                unit_price_cents=unit_price,
                discount_amount_cents=line.discount_cents,
            ))
            stock_service.debit(
                line.product_id,
                line.quantity,
                reference_order_id=order.id,
                notes=f"Order #{order.id}",
            )

        if customer is not None:
            customer_service.record_visit(customer, total)

        db.session.commit()
        logger.info("Placed order %s: %d item(s), total %d cents", order.id, len(priced), total)
        return order

    try:
        return run_with_retry(_op)
    except PersistenceError as exc:
        # Lost the race on the unique idempotency key: the other attempt won.
        if idempotency_key and isinstance(exc.__cause__, IntegrityError):
            existing = _find_by_idempotency_key(idempotency_key)
            if existing is not None:
                return existing
        logger.warning("Checkout failed and was rolled back: %s", exc)
        raise
    except (ValidationError, NotFound, InsufficientStock) as exc:
        logger.warning("Checkout rejected (%s): %s", exc.kind, exc)
        raise


def place_order_from_cart(
    cart: Cart,
    *,
    customer_id: int | None = None,
    tax_rate=None,
    discount_amount_cents: int = 0,
    payment_method: str | None = None,
    notes: str | None = None,
    idempotency_key: str | None = None,
) -> Order:
    """Checkout a session cart; tax is computed from the cart subtotal."""
    if cart.is_empty:
        raise ValidationError("Cannot place an order from an empty cart")
    if tax_rate is None:
        tax_rate = current_app.config.get("DEFAULT_TAX_RATE", 0)
    totals = cart.compute_totals(tax_rate=tax_rate, discount_cents=discount_amount_cents)
    return place_order(
        cart.to_order_items(),
        customer_id=customer_id,
        payment_method=payment_method,
        discount_amount_cents=totals.discount_cents,
        tax_amount_cents=totals.tax_cents,
        notes=notes,
        idempotency_key=idempotency_key,
    )


def get_order(order_id: int) -> Order:
    order = db.session.query(Order).filter_by(id=order_id).first()
    if order is None:
        raise NotFound(f"Order {order_id} not found", details={"order_id": order_id})
    return order


def list_orders(
    *,
    status: str | None = None,
    payment_status: str | None = None,
    customer_id: int | None = None,
    limit: int | None = None,
) -> list[Order]:
    query = db.session.query(Order)
    if status is not None:
        if status not in ORDER_STATUSES:
            raise ValidationError(f"Unknown order status: {status}")
        query = query.filter(Order.status == status)
    if payment_status is not None:
        if payment_status not in PAYMENT_STATUSES:
            raise ValidationError(f"Unknown payment status: {payment_status}")
        query = query.filter(Order.payment_status == payment_status)
    if customer_id is not None:
        query = query.filter(Order.customer_id == customer_id)
    query = query.order_by(Order.created_at.desc(), Order.id.desc())
    if limit is not None:
        query = query.limit(limit)
    return query.all()


def _lock_order(order_id: int) -> Order:
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    if order is None:
        raise NotFound(f"Order {order_id} not found", details={"order_id": order_id})
    return order


def _restock_items(order: Order, note: str) -> None:
    for item in order.items:
        stock_service.credit(item.product_id, item.quantity, reference_order_id=order.id, notes=note)
    order.restocked_at = utcnow()


def update_order(order_id: int, payload: dict) -> Order:
    """
    Edit the free-form parts of an order: notes and payment_method.

    Items, amounts and both statuses are not patchable; statuses move only
    through update_order_status() and update_payment_status().
    """
    patch = validate_payload(model=Order, payload=payload, policy=ORDER_PATCH_POLICY, partial=True)

    def _op():
        order = _lock_order(order_id)
        for key, value in patch.items():
            setattr(order, key, value)
        db.session.commit()
        logger.info("Order %s updated: %s", order.id, ", ".join(sorted(patch)) or "no changes")
        return order

    return run_with_retry(_op)


def update_order_status(order_id: int, new_status: str) -> Order:
    """
    pending -> processing | cancelled
    processing -> completed | cancelled
    completed, cancelled: terminal

    Entering 'cancelled' credits every item back exactly once. A second
    cancel is an illegal transition, so it can never credit twice.
    """
    if new_status not in ORDER_STATUSES:
        raise ValidationError(f"Unknown order status: {new_status}", details={"status": new_status})

    def _op():
        order = _lock_order(order_id)
        current = order.status
        if new_status not in ORDER_TRANSITIONS[current]:
            raise InvalidStateTransition(
                f"Cannot change order status from {current} to {new_status}",
                details={"order_id": order.id, "from": current, "to": new_status},
            )

        if new_status == ORDER_CANCELLED:
            # A refunded order may already have been restocked explicitly.
            if order.restocked_at is None:
                _restock_items(order, f"Order #{order.id} cancelled")
            if order.customer is not None:
                customer_service.reverse_spend(order.customer, order.total_amount_cents)

        order.status = new_status
        db.session.commit()
        logger.info("Order %s status %s -> %s", order.id, current, new_status)
        return order

    return run_with_retry(_op)


def update_payment_status(order_id: int, new_status: str) -> Order:
    """
    pending -> paid | failed
    paid -> refunded

    Never touches stock. Refunded goods go back on the shelf only through
    restock_refunded_order().
    """
    if new_status not in PAYMENT_STATUSES:
        raise ValidationError(f"Unknown payment status: {new_status}", details={"payment_status": new_status})

    def _op():
        order = _lock_order(order_id)
        current = order.payment_status
        if new_status not in PAYMENT_TRANSITIONS[current]:
            raise InvalidStateTransition(
                f"Cannot change payment status from {current} to {new_status}",
                details={"order_id": order.id, "from": current, "to": new_status},
            )
        order.payment_status = new_status
        db.session.commit()
        logger.info("Order %s payment %s -> %s", order.id, current, new_status)
        return order

    return run_with_retry(_op)


def restock_refunded_order(order_id: int, notes: str | None = None) -> Order:
    """
    Compensating action for a refund: credit every item back once.

    Only for refunded orders that are not cancelled (cancellation already
    restocks) and have not been restocked before.
    """
    def _op():
        order = _lock_order(order_id)
        if order.payment_status != PAYMENT_REFUNDED:
            raise InvalidStateTransition(
                "Only refunded orders can be restocked",
                details={"order_id": order.id, "payment_status": order.payment_status},
            )
        if order.status == ORDER_CANCELLED or order.restocked_at is not None:
            raise InvalidStateTransition(
                "Order items were already returned to stock",
                details={"order_id": order.id, "status": order.status},
            )
        _restock_items(order, notes or f"Order #{order.id} refunded")
        db.session.commit()
        logger.info("Order %s restocked after refund", order.id)
        return order

    return run_with_retry(_op)


def delete_order(order_id: int) -> None:
    """
    Hard-delete an order that never moved stock: items first, then the order.

    Orders referenced by stock movements stay, so the movement trail keeps
    replaying to the live stock figures.
    """
    def _op():
        order = _lock_order(order_id)
        if db.session.query(StockMovement.id).filter_by(reference_order_id=order.id).first() is not None:
            raise ConflictError(
                "Order has recorded stock movements and cannot be deleted",
                details={"order_id": order.id},
            )
        # items cascade from the relationship and are deleted before the order row
        db.session.delete(order)
        db.session.commit()
        logger.info("Deleted order %s", order_id)

    run_with_retry(_op)
