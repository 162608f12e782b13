# Overview: Maps ledger results to JSON responses and HTTP status codes.

from flask import current_app, jsonify

from ..errors import BusinessRuleViolation, IntegrityConflict, NotFoundError, ValidationError
from ..services.results import CommerceResult


def status_for(error) -> int:
    if isinstance(error, ValidationError):
        return 422
    if isinstance(error, BusinessRuleViolation):
        return 400
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, IntegrityConflict):
        return 409
    return 500


def result_response(result: CommerceResult, success_status: int = 200):
    """
    Render a CommerceResult.

    Success: the result value with ``success_status``. Failure:
    ``{"error", "kind", "details", "retryable"}``; 500s carry a generic
    message only.
    """
    if result.is_success:
        return jsonify(result.value), success_status

    error = result.error
    status = status_for(error)
    if status == 500:
        current_app.logger.error("%s failed with %s", result.operation, error.kind)
        return jsonify({"error": "Internal server error", "kind": error.kind}), 500

    return jsonify({
        "error": error.message,
        "kind": error.kind,
        "details": error.details,
        "retryable": error.retryable,
    }), status
