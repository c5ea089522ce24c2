# backend/stockledger/errors.py
"""
Error taxonomy for the stock ledger.

Every error carries a stable machine-readable ``code`` and the HTTP status a
service embedding this core maps it to. Extra keyword context (offending
field, current stock, ...) is kept on ``context`` and serialized verbatim.
"""
from __future__ import annotations


class LedgerError(ValueError):
    """Base class for domain errors raised by the services."""

    code = "ledger_error"
    status_code = 400

    def __init__(self, message: str, *, field: str | None = None, **context):
        super().__init__(message)
        self.message = message
        self.field = field
        self.context = context

    def to_dict(self) -> dict:
        payload = {"code": self.code, "message": self.message}
        if self.field is not None:
            payload["field"] = self.field
        payload.update(self.context)
        return payload


class ValidationError(LedgerError):
    """400-level input problem."""

    code = "validation_error"
    status_code = 400


class UnauthenticatedError(LedgerError):
    """Credential missing, invalid, expired or revoked."""

    code = "unauthenticated"
    status_code = 401


class PermissionDeniedError(LedgerError):
    code = "permission_denied"
    status_code = 403


class NotFoundError(LedgerError):
    code = "not_found"
    status_code = 404


class ConflictError(LedgerError):
    """409-level business rule conflict (e.g., duplicate SKU)."""

    code = "conflict"
    status_code = 409


class InsufficientStockError(LedgerError):
    """A DECREASE would drive on-hand stock below zero."""

    code = "insufficient_stock"
    status_code = 409

    def __init__(self, message: str, *, available: int, requested: int, **context):
        super().__init__(message, field="quantity", available=available, requested=requested, **context)
        self.available = available
        self.requested = requested


class ContentionError(LedgerError):
    """Retries exhausted while competing writers held the product row."""

    code = "contention"
    status_code = 503


class ImmutableEntryError(LedgerError):
    """A committed ledger entry was about to be updated or deleted."""

    code = "immutable_entry"
    status_code = 409
