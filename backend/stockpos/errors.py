# Overview: Error taxonomy for stock, sale and refund operations.

"""
Every failure raised by the service layer is a StockError subclass.

Routes translate them with ``status_code`` and ``to_dict()``; anything that is
not a StockError is an unexpected failure and becomes a 500.

- NotFoundError: product / stock line / sale / alert absent
- InvalidRequestError: malformed quantities, empty refund target, bad filters
- InsufficientStockError: sale-time shortfall (adjustments clamp instead)
- ConflictError: concurrent write detected at commit; callers may retry
- DuplicateError: unique business key already taken; never retried
- InternalError: storage unavailable (connection lost); never retried
"""

from __future__ import annotations


class StockError(Exception):
    """Base class for service-layer failures."""

    status_code = 500
    retryable = False

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class NotFoundError(StockError):
    status_code = 404


class InvalidRequestError(StockError):
    status_code = 400


class InsufficientStockError(StockError):
    status_code = 409

    def __init__(
        self,
        *,
        product_id: int,
        variant_id: int | None,
        available: int,
        required: int,
        product_name: str | None = None,
    ):
        label = product_name or f"product {product_id}"
        super().__init__(
            f"Insufficient stock for {label}. Available: {available}, Required: {required}",
            details={
                "product_id": product_id,
                "variant_id": variant_id,
                "product_name": product_name,
                "available": available,
                "required": required,
            },
        )


class ConflictError(StockError):
    status_code = 409
    retryable = True


class DuplicateError(StockError):
    """Unique business key already taken (SKU, barcode, stock line)."""

    status_code = 409


class InternalError(StockError):
    status_code = 500
