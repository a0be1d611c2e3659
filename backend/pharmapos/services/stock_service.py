# Overview: Service-layer operations for the stock ledger; the only writer of Product.stock_quantity.

from __future__ import annotations

import logging

from sqlalchemy import and_, case, func, or_

from ..errors import InsufficientStock, NotFound, ValidationError
from ..extensions import db
from ..models import Product, StockMovement
from ..models.inventory import MOVEMENT_IN, MOVEMENT_OUT, MOVEMENT_DIRECTIONS
from .concurrency import lock_for_update, run_with_retry
"""
Stock Ledger Invariants (authoritative)

- Product.stock_quantity is never negative.
- Every change to stock_quantity appends exactly one StockMovement in the
  same DB transaction (direction 'in' or 'out', quantity > 0).
- StockMovement rows are append-only.
- Replay: sum('in') - sum('out') == stock_quantity for every product, because
  opening stock is itself recorded as an 'in' movement.

debit() and credit() do NOT commit; they join the caller's transaction so an
order and its stock debits land (or roll back) together. adjust_stock() is
the standalone, committed entry point for manual corrections.
"""

logger = logging.getLogger(__name__)

OPENING_BALANCE_NOTE = "opening balance"


def _require_positive(qty) -> int:
    if isinstance(qty, bool) or not isinstance(qty, int):
        raise ValidationError("quantity must be an integer", details={"quantity": qty})
    if qty <= 0:
        raise ValidationError("quantity must be > 0", details={"quantity": qty})
    return qty


def _get_product(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFound(f"Product {product_id} not found", details={"product_id": product_id})
    return product


def _append_movement(
    product: Product,
    direction: str,
    qty: int,
    reference_order_id: int | None,
    notes: str | None,
) -> StockMovement:
    movement = StockMovement(
        product_id=product.id,
        direction=direction,
        quantity=qty,
        reference_order_id=reference_order_id,
        notes=notes,
    )
    db.session.add(movement)
    return movement


def debit(
    product_id: int,
    qty: int,
    reference_order_id: int | None = None,
    notes: str | None = None,
) -> StockMovement:
    """
    Take qty units out of stock and record an 'out' movement.

    The product row is read with FOR UPDATE (where the backend supports it)
    and written back under its version_id, so two callers that both saw
    stock=3 cannot both debit 3: the loser gets StaleDataError on flush and
    its enclosing run_with_retry re-reads the row.
    """
    _require_positive(qty)
    product = _get_product(product_id, lock=True)

    if qty > product.stock_quantity:
        raise InsufficientStock.for_product(product.id, qty, product.stock_quantity)

    product.stock_quantity = product.stock_quantity - qty
    movement = _append_movement(product, MOVEMENT_OUT, qty, reference_order_id, notes)
    db.session.flush()

    logger.info(
        "Debited %d of product %s (order=%s), stock now %d",
        qty, product.id, reference_order_id, product.stock_quantity,
    )
    return movement


def credit(
    product_id: int,
    qty: int,
    reference_order_id: int | None = None,
    notes: str | None = None,
) -> StockMovement:
    """Put qty units back into stock and record an 'in' movement."""
    _require_positive(qty)
    product = _get_product(product_id, lock=True)

    product.stock_quantity = product.stock_quantity + qty
    movement = _append_movement(product, MOVEMENT_IN, qty, reference_order_id, notes)
    db.session.flush()

    logger.info(
        "Credited %d of product %s (order=%s), stock now %d",
        qty, product.id, reference_order_id, product.stock_quantity,
    )
    return movement


def record_opening_balance(product: Product, qty: int) -> StockMovement | None:
    """Record a freshly created product's starting stock. Caller commits."""
    if not qty:
        return None
    return _append_movement(product, MOVEMENT_IN, qty, None, OPENING_BALANCE_NOTE)


def adjust_stock(
    *,
    product_id: int,
    direction: str,
    quantity: int,
    notes: str | None = None,
) -> StockMovement:
    """
    Manual restock ('in') or write-off ('out') as its own committed unit.

    Write-offs obey the same floor as sales: InsufficientStock if the
    shelf does not hold that many.
    """
    if direction not in MOVEMENT_DIRECTIONS:
        raise ValidationError(
            f"direction must be one of {', '.join(MOVEMENT_DIRECTIONS)}",
            details={"direction": direction},
        )
    _require_positive(quantity)

    def _op():
        if direction == MOVEMENT_IN:
            movement = credit(product_id, quantity, notes=notes or "manual restock")
        else:
            movement = debit(product_id, quantity, notes=notes or "manual write-off")
        db.session.commit()
        return movement

    return run_with_retry(_op)


def get_low_stock() -> list[Product]:
    """Products at or below their reorder level, lowest stock first."""
    return (
        db.session.query(Product)
        .filter(Product.stock_quantity <= Product.reorder_level)
        .order_by(Product.stock_quantity.asc(), Product.id.asc())
        .all()
    )


class StockHistory:
    """
    Movements of one product, newest first.

    Iteration is lazy (rows are fetched batch_size at a time) and
    restartable: every iter() runs a fresh query from the newest row.
    Batches are keyed on the last (created_at, id) seen, so movements
    appended mid-iteration neither shift nor repeat rows already yielded.
    """

    def __init__(self, product_id: int, batch_size: int = 100):
        if batch_size <= 0:
            raise ValidationError("batch_size must be > 0")
        self.product_id = product_id
        self.batch_size = batch_size

    def _query(self):
        return (
            db.session.query(StockMovement)
            .filter(StockMovement.product_id == self.product_id)
            .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        )

    def __iter__(self):
        query = self._query()
        last = None
        while True:
            page = query
            if last is not None:
                page = page.filter(or_(
                    StockMovement.created_at < last.created_at,
                    and_(StockMovement.created_at == last.created_at, StockMovement.id < last.id),
                ))
            batch = page.limit(self.batch_size).all()
            yield from batch
            if len(batch) < self.batch_size:
                return
            last = batch[-1]

    def count(self) -> int:
        return self._query().count()

    def __repr__(self) -> str:
        return f"<StockHistory product_id={self.product_id} batch_size={self.batch_size}>"


def get_history(product_id: int, batch_size: int = 100) -> StockHistory:
    _get_product(product_id)
    return StockHistory(product_id, batch_size=batch_size)


def get_movements_for_order(order_id: int) -> list[StockMovement]:
    return (
        db.session.query(StockMovement)
        .filter(StockMovement.reference_order_id == order_id)
        .order_by(StockMovement.id.asc())
        .all()
    )


def reconcile(product_id: int) -> dict:
    """
    Replay a product's movements and compare against its live stock.

    opening is the quantity recorded as the opening balance; expected is
    the replayed stock (opening included in total_in).
    """
    product = _get_product(product_id)

    row = db.session.query(
        func.coalesce(func.sum(case((StockMovement.direction == MOVEMENT_IN, StockMovement.quantity), else_=0)), 0).label("total_in"),
        func.coalesce(func.sum(case((StockMovement.direction == MOVEMENT_OUT, StockMovement.quantity), else_=0)), 0).label("total_out"),
        func.coalesce(func.sum(case((StockMovement.notes == OPENING_BALANCE_NOTE, StockMovement.quantity), else_=0)), 0).label("opening"),
    ).filter(StockMovement.product_id == product_id).one()

    total_in = int(row.total_in or 0)
    total_out = int(row.total_out or 0)
    expected = total_in - total_out

    return {
        "product_id": product.id,
        "sku": product.sku,
        "opening": int(row.opening or 0),
        "total_in": total_in,
        "total_out": total_out,
        "expected": expected,
        "actual": product.stock_quantity,
        "balanced": expected == product.stock_quantity,
    }


def reconcile_all() -> list[dict]:
    product_ids = [pid for (pid,) in db.session.query(Product.id).order_by(Product.id.asc()).all()]
    return [reconcile(pid) for pid in product_ids]
