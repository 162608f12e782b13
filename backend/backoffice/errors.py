"""
Commerce ledger error taxonomy.

Every error carries a machine-readable ``kind`` so callers can branch on it
without parsing messages:

- ValidationError: malformed or missing input, raised before any DB access
- BusinessRuleViolation: input is well-formed but the ledger refuses it
- NotFoundError: header, product, till, person or tender type absent
- IntegrityConflict: the store rejected a write (unique/referential)
    - DanglingReference: a transaction points at a tombstoned product/till
    - ConcurrencyConflict: lock or version conflict; safe to retry
- ReversalIncomplete / IncompleteTransaction: a postcondition did not hold
- InternalError: anything unanticipated
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for all commerce ledger errors."""

    kind = "ledger_error"
    retryable = False

    def __init__(self, message: str, details: dict | None = None, *, kind: str | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if kind is not None:
            self.kind = kind

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "message": self.message,
            "details": self.details,
            "retryable": self.retryable,
        }


class ValidationError(LedgerError):
    """400-level input problem; ``details`` maps field paths to messages."""

    kind = "validation_error"


class BusinessRuleViolation(LedgerError):
    kind = "business_rule_violation"


class NotFoundError(LedgerError):
    kind = "not_found"


class IntegrityConflict(LedgerError):
    kind = "integrity_conflict"


class DanglingReference(IntegrityConflict):
    kind = "dangling_reference"


class ConcurrencyConflict(IntegrityConflict):
    kind = "concurrency_conflict"
    retryable = True


class IncompleteTransaction(LedgerError):
    """A stored transaction is missing its lines or till movements."""

    kind = "incomplete_transaction"


class ReversalIncomplete(LedgerError):
    """A compensation step left live rows behind."""

    kind = "reversal_incomplete"


class InternalError(LedgerError):
    kind = "internal_error"


# Business rule kinds
INVALID_QUANTITY = "invalid_quantity"
DECIMALS_NOT_ALLOWED = "decimals_not_allowed"
INSUFFICIENT_STOCK = "insufficient_stock"
INSUFFICIENT_TILL_FUNDS = "insufficient_till_funds"
INSUFFICIENT_PAYMENT = "insufficient_payment"
INVALID_STATUS = "invalid_status"
ALREADY_DELETED = "already_deleted"
HAS_REFUNDS = "has_refunds"
TILL_CLOSED = "till_closed"
REFUND_EXCEEDS_SOLD = "refund_exceeds_sold"
PRODUCT_NOT_IN_SALE = "product_not_in_sale"
MEASUREMENT_UNIT_IN_USE = "measurement_unit_in_use"


def invalid_quantity(message: str, details: dict | None = None) -> BusinessRuleViolation:
    return BusinessRuleViolation(message, details, kind=INVALID_QUANTITY)


def decimals_not_allowed(message: str, details: dict | None = None) -> BusinessRuleViolation:
    return BusinessRuleViolation(message, details, kind=DECIMALS_NOT_ALLOWED)


def already_deleted(message: str, details: dict | None = None) -> BusinessRuleViolation:
    return BusinessRuleViolation(message, details, kind=ALREADY_DELETED)
