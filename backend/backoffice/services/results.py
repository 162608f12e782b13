# Overview: Explicit result values returned by the public ledger operations.

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from ..errors import (
    BusinessRuleViolation,
    IncompleteTransaction,
    IntegrityConflict,
    InternalError,
    LedgerError,
    NotFoundError,
    ReversalIncomplete,
    ValidationError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommerceResult:
    """
    Outcome of a ledger operation.

    Exactly one of ``value`` / ``error`` is set. Callers branch on
    ``is_success`` and ``kind`` instead of catching exceptions;
    ``retryable`` tells a conflict worth retrying from a terminal failure.
    """

    operation: str
    value: dict | None = None
    error: LedgerError | None = None

    @property
    def is_success(self) -> bool:
        return self.error is None

    @property
    def kind(self) -> str | None:
        return None if self.error is None else self.error.kind

    @property
    def retryable(self) -> bool:
        return bool(self.error is not None and self.error.retryable)

    def unwrap(self) -> dict:
        """Return the value, re-raising the error for callers that prefer exceptions."""
        if self.error is not None:
            raise self.error
        return self.value


def _log_failure(operation: str, error: LedgerError) -> None:
    extra = {"operation": operation, "error_kind": error.kind, "error_details": error.details}
    if isinstance(error, (ReversalIncomplete, IncompleteTransaction)):
        logger.critical("%s failed: %s", operation, error.message, extra=extra)
    elif isinstance(error, IntegrityConflict):
        logger.warning("%s conflicted: %s", operation, error.message, extra=extra)
    elif isinstance(error, (ValidationError, BusinessRuleViolation, NotFoundError)):
        logger.info("%s rejected: %s", operation, error.message, extra=extra)
    else:
        logger.error("%s failed: %s", operation, error.message, extra=extra)


def run_operation(operation: str, func: Callable[..., dict], *args: Any, **kwargs: Any) -> CommerceResult:
    """
    Execute ``func`` and wrap its outcome.

    ``func`` owns its unit of work, so by the time an error reaches this
    point the transaction has already been rolled back.
    """
    try:
        value = func(*args, **kwargs)
    except LedgerError as exc:
        _log_failure(operation, exc)
        return CommerceResult(operation=operation, error=exc)
    except Exception:
        logger.exception("%s failed unexpectedly", operation, extra={"operation": operation})
        return CommerceResult(
            operation=operation,
            error=InternalError("Unexpected error while processing the request"),
        )
    return CommerceResult(operation=operation, value=value)
