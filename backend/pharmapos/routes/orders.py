# Overview: Flask API routes for orders and checkout; parses input and returns JSON responses.

# backend/pharmapos/routes/orders.py
"""
Order routes.

POST /api/orders takes explicit line items. /quote and /checkout build a
request-scoped Cart from {product_id, quantity, discount_cents} lines with
prices from the catalog. A quote clamps quantities to the stock seen now;
checkout keeps the requested quantities, so a short shelf is a 409
insufficient_stock rather than a smaller sale.
"""

from flask import Blueprint, request, current_app

from ..errors import PharmaPosError, ValidationError
from ..services import catalog_service, order_service
from ..services.cart import Cart

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _idempotency_key(data: dict) -> str | None:
    return request.headers.get("Idempotency-Key") or data.get("idempotency_key")


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _cents_field(data: dict, name: str) -> int:
    value = data.get(name)
    if value is None:
        return 0
    if not _is_int(value) or value < 0:
        raise ValidationError(f"{name} must be a non-negative integer (cents)", details={"field": name})
    return value


def _build_cart(data: dict, *, clamp_to_stock: bool = True) -> Cart:
    lines = data.get("items")
    if not isinstance(lines, list) or not lines:
        raise ValidationError("items required")

    cart = Cart(clamp_to_stock=clamp_to_stock)
    for i, line in enumerate(lines):
        if not isinstance(line, dict):
            raise ValidationError(f"items[{i}] must be an object")
        product_id = line.get("product_id")
        quantity = line.get("quantity", 1)
        if not _is_int(product_id):
            raise ValidationError(f"items[{i}].product_id must be an integer", details={"index": i})
        if not _is_int(quantity) or quantity <= 0:
            raise ValidationError(f"items[{i}].quantity must be a positive integer", details={"index": i})
        discount = _cents_field(line, "discount_cents")
        product = catalog_service.get_product(product_id)
        cart.add_item(product, quantity)
        if discount:
            cart.set_discount(product_id, discount)
    return cart


@orders_bp.get("")
def list_orders_route():
    """
    List orders, newest first.

    Query params: status, payment_status, customer_id, limit
    """
    try:
        orders = order_service.list_orders(
            status=request.args.get("status"),
            payment_status=request.args.get("payment_status"),
            customer_id=request.args.get("customer_id", type=int),
            limit=request.args.get("limit", type=int),
        )
    except PharmaPosError as e:
        return e.to_dict(), e.http_status
    return {"items": [o.to_dict(include_items=False) for o in orders], "count": len(orders)}


@orders_bp.get("/<int:order_id>")
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id)
    except PharmaPosError as e:
        return e.to_dict(), e.http_status
    return {"order": order.to_dict()}


@orders_bp.post("")
def place_order_route():
    """
    Place an order from explicit line items.

    Body: items[{product_id, quantity, unit_price_cents?, discount_cents?}],
    customer_id?, payment_method?, discount_amount_cents?, tax_amount_cents?,
    notes?, idempotency_key? (or Idempotency-Key header)
    """
    data = request.get_json(silent=True) or {}
    try:
        order = order_service.place_order(
            data.get("items") or [],
            customer_id=data.get("customer_id"),
            payment_method=data.get("payment_method"),
            discount_amount_cents=data.get("discount_amount_cents", 0),
            tax_amount_cents=data.get("tax_amount_cents", 0),
            notes=data.get("notes"),
            idempotency_key=_idempotency_key(data),
        )
    except PharmaPosError as e:
        return e.to_dict(), e.http_status
    except Exception:
        current_app.logger.exception("Failed to place order")
        return {"error": "Internal server error"}, 500
    return {"order": order.to_dict()}, 201


@orders_bp.post("/quote")
def quote_route():
    """Price a cart without touching stock: clamped lines plus totals."""
    data = request.get_json(silent=True) or {}
    try:
        cart = _build_cart(data)
        tax_rate = data.get("tax_rate", current_app.config.get("DEFAULT_TAX_RATE", 0))
        totals = cart.compute_totals(tax_rate=tax_rate, discount_cents=_cents_field(data, "discount_amount_cents"))
    except PharmaPosError as e:
        return e.to_dict(), e.http_status
    except Exception:
        current_app.logger.exception("Failed to quote cart")
        return {"error": "Internal server error"}, 500
    return {"cart": cart.to_dict(), "totals": totals.to_dict()}


@orders_bp.post("/checkout")
def checkout_route():
    """Place the requested lines as an order; nothing is clamped."""
    data = request.get_json(silent=True) or {}
    try:
        cart = _build_cart(data, clamp_to_stock=False)
        order = order_service.place_order_from_cart(
            cart,
            customer_id=data.get("customer_id"),
            tax_rate=data.get("tax_rate"),
            discount_amount_cents=_cents_field(data, "discount_amount_cents"),
            payment_method=data.get("payment_method"),
            notes=data.get("notes"),
            idempotency_key=_idempotency_key(data),
        )
    except PharmaPosError as e:
        return e.to_dict(), e.http_status
    except Exception:
        current_app.logger.exception("Failed to checkout cart")
        return {"error": "Internal server error"}, 500
    return {"order": order.to_dict()}, 201


@orders_bp.patch("/<int:order_id>")
def update_order_route(order_id: int):
    """Patch notes and/or payment_method. Status fields have their own routes."""
    payload = request.get_json(silent=True) or {}
    try:
        order = order_service.update_order(order_id, payload)
    except PharmaPosError as e:
        return e.to_dict(), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update order")
        return {"error": "Internal server error"}, 500
    return {"order": order.to_dict()}


@orders_bp.patch("/<int:order_id>/status")
def update_status_route(order_id: int):
    data = request.get_json(silent=True) or {}
    new_status = data.get("status")
    if not new_status:
        return {"error": "status required", "kind": "validation", "details": {}}, 400
    try:
        order = order_service.update_order_status(order_id, new_status)
    except PharmaPosError as e:
        return e.to_dict(), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return {"error": "Internal server error"}, 500
    return {"order": order.to_dict()}


@orders_bp.patch("/<int:order_id>/payment-status")
def update_payment_status_route(order_id: int):
    data = request.get_json(silent=True) or {}
    new_status = data.get("payment_status")
    if not new_status:
        return {"error": "payment_status required", "kind": "validation", "details": {}}, 400
    try:
        order = order_service.update_payment_status(order_id, new_status)
    except PharmaPosError as e:
        return e.to_dict(), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update payment status")
        return {"error": "Internal server error"}, 500
    return {"order": order.to_dict()}


@orders_bp.post("/<int:order_id>/restock")
def restock_route(order_id: int):
    """Return a refunded order's items to stock (explicit compensating action)."""
    data = request.get_json(silent=True) or {}
    try:
        order = order_service.restock_refunded_order(order_id, notes=data.get("notes"))
    except PharmaPosError as e:
        return e.to_dict(), e.http_status
    except Exception:
        current_app.logger.exception("Failed to restock order")
        return {"error": "Internal server error"}, 500
    return {"order": order.to_dict()}


@orders_bp.delete("/<int:order_id>")
def delete_order_route(order_id: int):
    try:
        order_service.delete_order(order_id)
    except PharmaPosError as e:
        return e.to_dict(), e.http_status
    except Exception:
        current_app.logger.exception("Failed to delete order")
        return {"error": "Internal server error"}, 500
    return "", 204
