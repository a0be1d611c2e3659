# backend/pharmapos/routes/inventory.py
"""
Stock ledger routes: low stock, movement history, manual adjustments and
reconciliation.
"""
from itertools import islice

from flask import Blueprint, request, current_app

from ..errors import PharmaPosError
from ..services import stock_service

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/low-stock")
def low_stock_route():
    products = stock_service.get_low_stock()
    return {"items": [p.to_dict() for p in products], "count": len(products)}


@inventory_bp.get("/<int:product_id>/history")
def history_route(product_id: int):
    """Movements newest first; ?limit= caps the page (default 100)."""
    limit = request.args.get("limit", default=100, type=int)
    try:
        history = stock_service.get_history(product_id)
    except PharmaPosError as e:
        return e.to_dict(), e.http_status
    movements = list(islice(history, max(limit, 0)))
    return {
        "product_id": product_id,
        "items": [m.to_dict() for m in movements],
        "count": len(movements),
        "total": history.count(),
    }


@inventory_bp.post("/<int:product_id>/adjust")
def adjust_route(product_id: int):
    """
    Manual restock or write-off.

    Body: {"direction": "in" | "out", "quantity": int > 0, "notes": str?}
    """
    data = request.get_json(silent=True) or {}
    try:
        movement = stock_service.adjust_stock(
            product_id=product_id,
            direction=data.get("direction"),
            quantity=data.get("quantity"),
            notes=data.get("notes"),
        )
    except PharmaPosError as e:
        return e.to_dict(), e.http_status
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return {"error": "Internal server error"}, 500
    return {"movement": movement.to_dict()}, 201


@inventory_bp.get("/<int:product_id>/reconcile")
def reconcile_route(product_id: int):
    try:
        return stock_service.reconcile(product_id)
    except PharmaPosError as e:
        return e.to_dict(), e.http_status
