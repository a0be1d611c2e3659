# Overview: Flask API routes for the customer directory; parses input and returns JSON responses.

from flask import Blueprint, request, current_app

from ..errors import PharmaPosError
from ..services import customer_service

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
def list_customers():
    """List customers, or search them with ?q= (name, phone, email)."""
    query = request.args.get("q")
    if query:
        customers = customer_service.search_customers(query)
    else:
        customers = customer_service.list_customers()
    return {"items": [c.to_dict() for c in customers], "count": len(customers)}


@customers_bp.get("/<int:customer_id>")
def get_customer(customer_id: int):
    try:
        return customer_service.get_customer(customer_id).to_dict()
    except PharmaPosError as e:
        return e.to_dict(), e.http_status


@customers_bp.post("")
def create_customer_route():
    payload = request.get_json(silent=True) or {}
    try:
        customer = customer_service.create_customer(payload)
    except PharmaPosError as e:
        return e.to_dict(), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return {"error": "Internal server error"}, 500
    return customer.to_dict(), 201


@customers_bp.patch("/<int:customer_id>")
def update_customer_route(customer_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        customer = customer_service.update_customer(customer_id, payload)
    except PharmaPosError as e:
        return e.to_dict(), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update customer")
        return {"error": "Internal server error"}, 500
    return customer.to_dict()


@customers_bp.delete("/<int:customer_id>")
def delete_customer_route(customer_id: int):
    try:
        customer_service.delete_customer(customer_id)
    except PharmaPosError as e:
        return e.to_dict(), e.http_status
    except Exception:
        current_app.logger.exception("Failed to delete customer")
        return {"error": "Internal server error"}, 500
    return "", 204
