"""Failures raised by the order placement core.

Every error carries a stable ``code`` and a ``details`` dict so the HTTP layer
can render a user-facing message without parsing strings. ``retryable`` tells
callers whether repeating the whole operation can succeed.
"""
from decimal import Decimal


class OrderError(Exception):
    code = "order_error"
    status_code = 400
    retryable = False

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {
            "message": self.message,
            "code": self.code,
            "details": {k: _jsonable(v) for k, v in self.details.items()},
        }


class ProductNotFound(OrderError):
    code = "product_not_found"
    status_code = 400

    def __init__(self, product_id: int):
        super().__init__(f"Product {product_id} not found", product_id=product_id)
        self.product_id = product_id


class InsufficientStock(OrderError):
    code = "insufficient_stock"
    status_code = 400

    def __init__(self, product_id: int, available: int):
        super().__init__(
            f"Insufficient stock for product {product_id}. Available: {available}",
            product_id=product_id,
            available=available,
        )
        self.product_id = product_id
        self.available = available


class TotalMismatch(OrderError):
    code = "total_mismatch"
    status_code = 400

    def __init__(self, expected: Decimal, declared: Decimal):
        super().__init__("Total amount mismatch", expected=expected, declared=declared)
        self.expected = expected
        self.declared = declared


class OrderNotFound(OrderError):
    code = "order_not_found"
    status_code = 404

    def __init__(self, order_id: int):
        super().__init__("Order not found", order_id=order_id)
        self.order_id = order_id


class OrderNotCancellable(OrderError):
    code = "order_not_cancellable"
    status_code = 409

    def __init__(self, order_id: int, status: str):
        super().__init__("Order cannot be cancelled", order_id=order_id, status=status)
        self.order_id = order_id
        self.status = status


class InvalidStatus(OrderError):
    code = "invalid_status"
    status_code = 422

    def __init__(self, field: str, value: str):
        label = "payment status" if field == "payment_status" else "order status"
        super().__init__(f"Invalid {label}", field=field, value=value)
        self.field = field
        self.value = value


class InvalidStatusTransition(OrderError):
    code = "invalid_status_transition"
    status_code = 409

    def __init__(self, order_id: int, current: str, requested: str):
        super().__init__(
            f"Order cannot move from {current} to {requested}",
            order_id=order_id,
            current=current,
            requested=requested,
        )
        self.order_id = order_id
        self.current = current
        self.requested = requested


class TransientError(OrderError):
    code = "transient_error"
    status_code = 503
    retryable = True

    def __init__(self, message: str = "Temporary failure, please retry", **details):
        super().__init__(message, **details)


def _jsonable(value):
    if isinstance(value, Decimal):
        return str(value)
    return value
