# Overview: Flask API routes for the catalog; parses input and returns JSON responses.

# backend/pharmapos/routes/products.py
"""
Product management routes.

stock_quantity is accepted on create only (opening balance). Later stock
changes go through /api/inventory.
"""
from flask import Blueprint, request, current_app

from ..errors import PharmaPosError
from ..services import catalog_service

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products():
    """
    List products with optional search and pagination.

    Query params:
    - q: str (optional) - match on name or SKU
    - category: str (optional) - exact category
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    search = request.args.get("q")
    page = request.args.get("page", type=int)
    per_page = request.args.get("per_page", type=int)
    return catalog_service.list_products(
        search=search,
        category=request.args.get("category"),
        page=page,
        per_page=per_page,
    )


@products_bp.get("/categories")
def list_categories():
    categories = catalog_service.list_categories()
    return {"items": categories, "count": len(categories)}


@products_bp.get("/expiring")
def list_expiring_products():
    """Products expiring within ?days= (default EXPIRY_WARNING_DAYS)."""
    days = request.args.get("days", type=int)
    if days is None:
        days = current_app.config.get("EXPIRY_WARNING_DAYS", 30)
    products = catalog_service.get_expiring_products(within_days=days)
    return {"items": [p.to_dict() for p in products], "count": len(products), "within_days": days}


@products_bp.get("/<int:product_id>")
def get_product(product_id: int):
    try:
        return catalog_service.get_product(product_id).to_dict()
    except PharmaPosError as e:
        return e.to_dict(), e.http_status


@products_bp.post("")
def create_product_route():
    payload = request.get_json(silent=True) or {}
    try:
        created = catalog_service.create_product(payload)
    except PharmaPosError as e:
        return e.to_dict(), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create product")
        return {"error": "Internal server error"}, 500
    return created.to_dict(), 201


@products_bp.patch("/<int:product_id>")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        updated = catalog_service.update_product(product_id, payload)
    except PharmaPosError as e:
        return e.to_dict(), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update product")
        return {"error": "Internal server error"}, 500
    return updated.to_dict()


@products_bp.delete("/<int:product_id>")
def delete_product_route(product_id: int):
    try:
        catalog_service.delete_product(product_id)
    except PharmaPosError as e:
        return e.to_dict(), e.http_status
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return {"error": "Internal server error"}, 500
    return "", 204
