# Overview: Domain error taxonomy shared by services and routes.

"""
Every failure raised by the service layer is one of four kinds:

- ValidationError (400): malformed input, missing or unknown option choice.
- ConflictError (409): a state precondition does not hold (already processed,
  already delivered, over-delivery, unpaid).
- ResourceError (422): not enough stock or balance, or stock never configured.
- NotFoundError (404): a referenced product, location, order or account
  does not exist.

Each error carries a human-readable message and a `details` dict with the
specific field, product, account, amounts or current state involved, so the
caller can explain the refusal to the operator.
"""

from __future__ import annotations


class DomainError(Exception):
    """Base class for typed, user-presentable failures."""

    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "details": self.details}


class ValidationError(DomainError, ValueError):
    """400-level input problem."""

    status_code = 400


class ConflictError(DomainError, ValueError):
    """409-level business rule conflict (e.g., duplicate code, terminal state)."""

    status_code = 409


class ResourceError(DomainError):
    """422-level shortage of stock or balance."""

    status_code = 422


class NotFoundError(DomainError):
    status_code = 404


# =============================================================================
# Catalog
# =============================================================================

class OptionSelectionError(ValidationError):
    """A choice group was left unselected or given a code outside the group."""

    def __init__(self, message: str, *, group: str, code: str | None, options: list[str]):
        super().__init__(message, details={"group": group, "code": code, "options": options})
        self.group = group
        self.code = code


# =============================================================================
# Inventory
# =============================================================================

class InsufficientStockError(ResourceError):
    def __init__(self, *, product_id: int, product_name: str, location_id: int,
                 available: int, requested: int):
        super().__init__(
            f"Insufficient stock of {product_name} (available: {available}, requested: {requested})",
            details={
                "product_id": product_id,
                "product_name": product_name,
                "location_id": location_id,
                "available": available,
                "requested": requested,
                "shortfall": requested - available,
            },
        )


class InventoryNotConfiguredError(ResourceError):
    def __init__(self, *, product_id: int, product_name: str, location_id: int):
        super().__init__(
            f"{product_name} has no stock configured at location {location_id}",
            details={
                "product_id": product_id,
                "product_name": product_name,
                "location_id": location_id,
            },
        )


# =============================================================================
# Balance accounts
# =============================================================================

class InsufficientBalanceError(ResourceError):
    def __init__(self, *, account_code: str, balance_cents: int, required_cents: int):
        super().__init__(
            f"Insufficient balance. Available: {balance_cents / 100:.2f}",
            details={
                "account_code": account_code,
                "balance_cents": balance_cents,
                "required_cents": required_cents,
                "shortfall_cents": required_cents - balance_cents,
            },
        )


class BalanceAccountUnavailableError(ConflictError):
    """Account is DEPLETED, BLOCKED or EXPIRED."""

    def __init__(self, message: str, *, account_code: str, status: str):
        super().__init__(message, details={"account_code": account_code, "status": status})
        self.status = status


class BalanceAccountExpiredError(BalanceAccountUnavailableError):
    def __init__(self, *, account_code: str):
        super().__init__("Balance account expired", account_code=account_code, status="EXPIRED")


# =============================================================================
# Payments
# =============================================================================

class NotTransferPaymentError(ConflictError):
    def __init__(self, *, order_id: int, payment_method: str):
        super().__init__(
            "Only transfer payments can be approved",
            details={"order_id": order_id, "payment_method": payment_method},
        )


class PaymentAlreadyProcessedError(ConflictError):
    def __init__(self, *, order_id: int, payment_status: str):
        super().__init__(
            f"Payment already processed (status: {payment_status})",
            details={"order_id": order_id, "payment_status": payment_status},
        )


# =============================================================================
# Delivery
# =============================================================================

class OrderNotPaidError(ConflictError):
    def __init__(self, *, order_code: str, payment_status: str):
        super().__init__(
            "Payment pending approval. Order cannot be delivered.",
            details={"order_code": order_code, "payment_status": payment_status},
        )


class OrderClosedError(ConflictError):
    def __init__(self, *, order_code: str, fulfillment_status: str):
        message = {
            "DELIVERED": "Order was already fully delivered",
            "CANCELLED": "Order is cancelled",
        }.get(fulfillment_status, f"Order is {fulfillment_status}")
        super().__init__(
            message,
            details={"order_code": order_code, "fulfillment_status": fulfillment_status},
        )


class OverDeliveryError(ConflictError):
    def __init__(self, *, line_id: int, product_name: str, requested: int, remaining: int):
        super().__init__(
            f"Cannot deliver {requested} of {product_name}. Only {remaining} left to deliver.",
            details={
                "line_id": line_id,
                "product_name": product_name,
                "requested": requested,
                "remaining": remaining,
            },
        )
