# Overview: Flask API routes for sales; parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request

from ..services import commerce_service
from ..services.transaction_store import TransactionKind
from .responses import result_response


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
def create_sale_route():
    """
    Register a sale.

    Body: person_id, transaction_date, number, till_id, lines[], tenders[].
    Returns 201 with {id, number, date}.
    """
    try:
        data = request.get_json(silent=True)
        result = commerce_service.create_sale(data)
        return result_response(result, 201)
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    """Sale with its lines and till movements; tombstoned rows included for a deleted sale."""
    try:
        sale = commerce_service.get_transaction(TransactionKind.SALE, sale_id)
        if sale is None:
            return jsonify({"error": f"Sale {sale_id} not found", "kind": "not_found"}), 404
        return jsonify(sale), 200
    except Exception:
        current_app.logger.exception("Failed to read sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.delete("/<int:sale_id>")
def delete_sale_route(sale_id: int):
    """Reverse stock and cash for the sale, then tombstone it."""
    try:
        result = commerce_service.delete_sale(sale_id)
        return result_response(result)
    except Exception:
        current_app.logger.exception("Failed to delete sale")
        return jsonify({"error": "Internal server error"}), 500
