# Overview: Flask API routes for purchases; parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request

from ..services import commerce_service
from ..services.transaction_store import TransactionKind
from .responses import result_response


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


@purchases_bp.post("")
def create_purchase_route():
    """
    Register a purchase; the till pays the supplier.

    Body: person_id, transaction_date, number, till_id, lines[], tenders[].
    Returns 201 with {id, number, date}.
    """
    try:
        data = request.get_json(silent=True)
        result = commerce_service.create_purchase(data)
        return result_response(result, 201)
    except Exception:
        current_app.logger.exception("Failed to create purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.get("/<int:purchase_id>")
def get_purchase_route(purchase_id: int):
    try:
        purchase = commerce_service.get_transaction(TransactionKind.PURCHASE, purchase_id)
        if purchase is None:
            return jsonify({"error": f"Purchase {purchase_id} not found", "kind": "not_found"}), 404
        return jsonify(purchase), 200
    except Exception:
        current_app.logger.exception("Failed to read purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.delete("/<int:purchase_id>")
def delete_purchase_route(purchase_id: int):
    """Reverse stock and cash for the purchase, then tombstone it."""
    try:
        result = commerce_service.delete_purchase(purchase_id)
        return result_response(result)
    except Exception:
        current_app.logger.exception("Failed to delete purchase")
        return jsonify({"error": "Internal server error"}), 500
