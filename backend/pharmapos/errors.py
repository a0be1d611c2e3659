"""
Domain error taxonomy.

Every error carries a stable machine-readable ``kind`` and a human-readable
message. Routes translate them to HTTP responses; library callers decide
presentation themselves.
"""
from __future__ import annotations


class PharmaPosError(Exception):
    """Base class for all domain errors."""

    kind = "error"
    http_status = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "kind": self.kind,
            "details": self.details,
        }


class ValidationError(PharmaPosError, ValueError):
    """Malformed or missing input, empty cart."""

    kind = "validation"
    http_status = 400


class NotFound(PharmaPosError, LookupError):
    """Unknown product, customer or order id."""

    kind = "not_found"
    http_status = 404


class ConflictError(PharmaPosError):
    """Business rule conflict (duplicate SKU, referenced record)."""

    kind = "conflict"
    http_status = 409


class InsufficientStock(PharmaPosError):
    """Requested quantity exceeds live stock at commit time."""

    kind = "insufficient_stock"
    http_status = 409

    @classmethod
    def for_product(cls, product_id: int, requested: int, available: int) -> "InsufficientStock":
        return cls(
            f"Insufficient stock for product {product_id}: requested {requested}, available {available}",
            details={"items": [{
                "product_id": product_id,
                "requested_quantity": requested,
                "on_hand": available,
            }]},
        )


class InvalidStateTransition(PharmaPosError):
    """Illegal status change; never mutates state."""

    kind = "invalid_transition"
    http_status = 409


class PersistenceError(PharmaPosError):
    """Underlying store failure mid-operation (already rolled back)."""

    kind = "persistence"
    http_status = 500
