# Overview: Error taxonomy shared by services and routes.

"""
Every service failure a client can act on is a LedgerError subclass. Routes turn
them into JSON with `to_dict()` and `status_code`; anything else is a 500.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for client-visible failures."""

    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class NotFoundError(LedgerError):
    status_code = 404


class ProductNotFoundError(NotFoundError):
    pass


class ValidationError(LedgerError, ValueError):
    """400-level input problem, reported per field."""

    def __init__(self, message: str, field: str | None = None, errors: list[dict] | None = None):
        super().__init__(message)
        self.field = field
        self.errors = errors or [{"field": field, "message": message}]

    def to_dict(self) -> dict:
        return {"message": self.message, "errors": self.errors}


class BusinessRuleError(LedgerError):
    pass


class InsufficientStockError(BusinessRuleError):
    pass


class ExceedsBalanceError(BusinessRuleError):
    pass


class AlreadySettledError(BusinessRuleError):
    pass


class AlreadyWithdrawnError(BusinessRuleError):
    pass


class InvalidCustomerError(BusinessRuleError):
    pass


class ConflictError(BusinessRuleError):
    """Duplicate unique value (SKU, barcode, username)."""

    status_code = 409


class AuthenticationError(LedgerError):
    status_code = 401


class ForbiddenError(LedgerError):
    status_code = 403
