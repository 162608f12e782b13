# Overview: Flask API routes for tills; balance reads and manual cash movements.

from flask import Blueprint, current_app, jsonify, request

from ..services import cash_ledger
from .responses import result_response


tills_bp = Blueprint("tills", __name__, url_prefix="/api/tills")


@tills_bp.get("/<int:till_id>/balance")
def till_balance_route(till_id: int):
    """Balance = sum of the till's live movements, recomputed on every call."""
    try:
        return result_response(cash_ledger.get_till_balance(till_id))
    except Exception:
        current_app.logger.exception("Failed to read till balance")
        return jsonify({"error": "Internal server error"}), 500


@tills_bp.post("/<int:till_id>/deposits")
def deposit_route(till_id: int):
    """Body: amount_cents, description?"""
    try:
        data = request.get_json(silent=True) or {}
        result = cash_ledger.deposit_cash(till_id, data.get("amount_cents"), data.get("description"))
        return result_response(result, 201)
    except Exception:
        current_app.logger.exception("Failed to deposit cash")
        return jsonify({"error": "Internal server error"}), 500


@tills_bp.post("/<int:till_id>/withdrawals")
def withdrawal_route(till_id: int):
    try:
        data = request.get_json(silent=True) or {}
        result = cash_ledger.withdraw_cash(till_id, data.get("amount_cents"), data.get("description"))
        return result_response(result, 201)
    except Exception:
        current_app.logger.exception("Failed to withdraw cash")
        return jsonify({"error": "Internal server error"}), 500
