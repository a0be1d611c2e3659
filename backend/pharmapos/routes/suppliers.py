# Overview: Flask API routes for the supplier directory; parses input and returns JSON responses.

from flask import Blueprint, request, current_app

from ..errors import PharmaPosError
from ..services import supplier_service

suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")


@suppliers_bp.get("")
def list_suppliers():
    suppliers = supplier_service.list_suppliers()
    return {"items": [s.to_dict() for s in suppliers], "count": len(suppliers)}


@suppliers_bp.get("/<int:supplier_id>")
def get_supplier(supplier_id: int):
    try:
        supplier = supplier_service.get_supplier(supplier_id)
    except PharmaPosError as e:
        return e.to_dict(), e.http_status
    data = supplier.to_dict()
    data["product_count"] = supplier.products.count()
    return data


@suppliers_bp.post("")
def create_supplier_route():
    payload = request.get_json(silent=True) or {}
    try:
        supplier = supplier_service.create_supplier(payload)
    except PharmaPosError as e:
        return e.to_dict(), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create supplier")
        return {"error": "Internal server error"}, 500
    return supplier.to_dict(), 201


@suppliers_bp.patch("/<int:supplier_id>")
def update_supplier_route(supplier_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        supplier = supplier_service.update_supplier(supplier_id, payload)
    except PharmaPosError as e:
        return e.to_dict(), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update supplier")
        return {"error": "Internal server error"}, 500
    return supplier.to_dict()


@suppliers_bp.delete("/<int:supplier_id>")
def delete_supplier_route(supplier_id: int):
    try:
        supplier_service.delete_supplier(supplier_id)
    except PharmaPosError as e:
        return e.to_dict(), e.http_status
    except Exception:
        current_app.logger.exception("Failed to delete supplier")
        return {"error": "Internal server error"}, 500
    return "", 204
