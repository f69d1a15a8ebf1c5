# Overview: Closed error taxonomy for the stock core; each error carries structured context.

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    INSUFFICIENT_STOCK = "insufficient_stock"
    INVALID_INPUT = "invalid_input"
    STORAGE_FAILURE = "storage_failure"


HTTP_STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INSUFFICIENT_STOCK: 409,
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.STORAGE_FAILURE: 503,
}


class StockError(Exception):
    """
    Base class for every failure the stock core reports.

    Callers inspect `kind` and `details`, never the message text.
    Any StockError means the enclosing atomic unit was rolled back.
    """
    kind: ErrorKind = ErrorKind.STORAGE_FAILURE

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def http_status(self) -> int:
        return HTTP_STATUS_BY_KIND[self.kind]

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "kind": self.kind.value,
            "details": self.details,
        }


class NotFoundError(StockError):
    """Referenced product, transaction, user or customer does not exist."""
    kind = ErrorKind.NOT_FOUND

    def __init__(self, entity: str, entity_id):
        super().__init__(
            f"{entity.capitalize()} {entity_id} not found",
            details={"entity": entity, "id": entity_id},
        )
        self.entity = entity
        self.entity_id = entity_id


class InsufficientStockError(StockError):
    """A movement would take stock_quantity below zero."""
    kind = ErrorKind.INSUFFICIENT_STOCK

    def __init__(
        self,
        product_id: int,
        current_stock: int,
        requested_delta: int,
        product_name: str | None = None,
        transaction_id: int | None = None,
    ):
        label = product_name or f"product {product_id}"
        super().__init__(
            f"Insufficient stock for {label}: available {current_stock}, requested {abs(requested_delta)}",
            details={
                "product_id": product_id,
                "product_name": product_name,
                "current_stock": current_stock,
                "requested_delta": requested_delta,
                "transaction_id": transaction_id,
            },
        )
        self.product_id = product_id
        self.current_stock = current_stock
        self.requested_delta = requested_delta


class InvalidInputError(StockError):
    kind = ErrorKind.INVALID_INPUT

    def __init__(self, message: str, field: str | None = None, details: dict | None = None):
        merged = dict(details or {})
        if field is not None:
            merged["field"] = field
        super().__init__(message, details=merged)
        self.field = field


class StorageFailureError(StockError):
    """The store could not commit (conflict, lock timeout, connectivity). Safe to retry."""
    kind = ErrorKind.STORAGE_FAILURE
