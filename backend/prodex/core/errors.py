"""
Domain errors for the quoting core.

Every error carries a stable ``code``, a human readable message, an HTTP
status used by the API layer, and a ``details`` dict with whatever the
caller needs to render actionable feedback (e.g. the stock shortfall list).
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional


class QuotingError(Exception):
    """Base error for pricing, quoting and conversion operations."""

    code = "quoting_error"
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"detail": self.message, "error": self.code}
        body.update(self.details)
        return body


# ---------------------------
# Invalid input (400)
# ---------------------------
class InvalidInput(QuotingError):
    code = "invalid_input"
    status_code = 400


class InvalidProduct(InvalidInput):
    code = "invalid_product"


class InvalidQuantity(InvalidInput):
    code = "invalid_quantity"


class InvalidFinishingLevel(InvalidInput):
    code = "invalid_finishing_level"


class InvalidFormula(InvalidInput):
    code = "invalid_formula"

    def __init__(self, formula: str, reason: str = "formula contains unsupported syntax"):
        self.formula = formula
        super().__init__(f"Invalid formula {formula!r}: {reason}", {"formula": formula})


class InvalidFormulaResult(InvalidInput):
    code = "invalid_formula_result"

    def __init__(self, formula: str, reason: str = "result must be a finite number >= 0"):
        self.formula = formula
        super().__init__(f"Invalid result for formula {formula!r}: {reason}", {"formula": formula})


class InvalidDiscount(InvalidInput):
    code = "invalid_discount"

    def __init__(self, message: str, field: str):
        super().__init__(message, {"field": field})


# ---------------------------
# Not found (404)
# ---------------------------
class NotFound(QuotingError):
    code = "not_found"
    status_code = 404


class ProductNotFound(NotFound):
    code = "product_not_found"


class TemplateNotFound(NotFound):
    code = "template_not_found"


class QuoteNotFound(NotFound):
    code = "quote_not_found"


class SupplyNotFound(NotFound):
    code = "supply_not_found"


class CustomerNotFound(NotFound):
    code = "customer_not_found"


# ---------------------------
# AuthN / AuthZ
# ---------------------------
class Unauthorized(QuotingError):
    code = "unauthorized"
    status_code = 401


class Forbidden(QuotingError):
    code = "forbidden"
    status_code = 403


class ApprovalRequired(Forbidden):
    """Caller should prompt for supervisor credentials and retry."""

    code = "approval_required"

    def __init__(self, message: str = "Supervisor approval required: supervisor_email and supervisor_password"):
        super().__init__(message, {"approval_required": True})


# ---------------------------
# Workflow
# ---------------------------
class Expired(QuotingError):
    code = "expired"
    status_code = 409


class InvalidState(QuotingError):
    code = "invalid_state"
    status_code = 409


class InsufficientStock(QuotingError):
    code = "insufficient_stock"
    status_code = 409

    def __init__(self, missing: List[Dict[str, Any]]):
        self.missing = missing
        super().__init__("Insufficient stock", {"missing": missing})


class PersistenceError(QuotingError):
    code = "persistence_error"
    status_code = 500
