# Overview: Exception taxonomy shared by the ledger, sale and return services.

"""
Every business-rule error is raised before the first write of an operation.
Only LockTimeoutError and PersistenceError can surface mid-commit, and the
transaction is rolled back in full before they propagate.

Each error carries a machine-readable ``code`` and a ``details`` dict so the
routes can hand a structured payload to the UI.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for stock/sale/return operation errors."""

    code = "ledger_error"
    http_status = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": str(self), "code": self.code, "details": self.details}


class ValidationError(LedgerError):
    """Malformed input (bad quantity, unknown payment method, ...)."""

    code = "validation_error"


class NotFoundError(LedgerError):
    code = "not_found"
    http_status = 404

    def __init__(self, entity: str, entity_id):
        super().__init__(
            f"{entity} {entity_id} not found",
            details={"entity": entity, "id": entity_id},
        )
        self.entity = entity
        self.entity_id = entity_id


class ProductUnavailableError(LedgerError):
    """Product is soft-deleted and cannot take new sales or manual adjustments."""

    code = "product_unavailable"
    http_status = 409


class InsufficientStockError(LedgerError):
    code = "insufficient_stock"
    http_status = 409

    def __init__(self, product_id: int, requested, available, product_name: str | None = None):
        label = product_name or f"product {product_id}"
        super().__init__(
            f"Insufficient stock for {label}: requested {requested}, available {available}",
            details={
                "product_id": product_id,
                "product_name": product_name,
                "requested": str(requested),
                "available": str(available),
            },
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class InsufficientPaymentError(LedgerError):
    code = "insufficient_payment"

    def __init__(self, required_cents: int, provided_cents: int):
        super().__init__(
            f"Payment of {provided_cents} cents does not cover {required_cents} cents",
            details={"required_cents": required_cents, "provided_cents": provided_cents},
        )
        self.required_cents = required_cents
        self.provided_cents = provided_cents


class ExcessiveReturnError(LedgerError):
    code = "excessive_return"
    http_status = 409

    def __init__(self, sale_item_id: int, requested, remaining):
        super().__init__(
            f"Cannot return {requested} of sale item {sale_item_id}; only {remaining} remaining",
            details={
                "sale_item_id": sale_item_id,
                "requested": str(requested),
                "remaining": str(remaining),
            },
        )
        self.sale_item_id = sale_item_id
        self.requested = requested
        self.remaining = remaining


class NoItemsSelectedError(LedgerError):
    code = "no_items_selected"

    def __init__(self, message: str = "No items selected for return"):
        super().__init__(message)


class SaleAlreadyReturnedError(LedgerError):
    code = "sale_already_returned"
    http_status = 409

    def __init__(self, sale_id: int):
        super().__init__(
            "This sale has already been returned or canceled",
            details={"sale_id": sale_id},
        )


class LockTimeoutError(LedgerError):
    """Transient: another writer held the product lock too long. Safe to retry."""

    code = "lock_timeout"
    http_status = 503


class PersistenceError(LedgerError):
    """Storage failure; the transaction has been rolled back."""

    code = "persistence_error"
    http_status = 500
