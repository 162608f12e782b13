# Overview: Flask API routes for refunds and refund lines.

from flask import Blueprint, current_app, jsonify, request

from ..services import refund_service
from .responses import result_response


refunds_bp = Blueprint("refunds", __name__, url_prefix="/api")


@refunds_bp.post("/refunds")
def create_refund_route():
    """
    Refund goods against a sale.

    Body: sale_id, refund_date, lines[{product_id, quantity}], note?
    Stock goes back up; the till is not touched.
    """
    try:
        data = request.get_json(silent=True)
        return result_response(refund_service.create_refund(data), 201)
    except Exception:
        current_app.logger.exception("Failed to create refund")
        return jsonify({"error": "Internal server error"}), 500


@refunds_bp.delete("/refunds/<int:refund_id>")
def delete_refund_route(refund_id: int):
    try:
        return result_response(refund_service.delete_refund(refund_id))
    except Exception:
        current_app.logger.exception("Failed to delete refund")
        return jsonify({"error": "Internal server error"}), 500


@refunds_bp.patch("/refund-lines/<int:line_id>")
def update_refund_line_route(line_id: int):
    """Body: quantity"""
    try:
        data = request.get_json(silent=True) or {}
        return result_response(refund_service.update_refund_line(line_id, data.get("quantity")))
    except Exception:
        current_app.logger.exception("Failed to update refund line")
        return jsonify({"error": "Internal server error"}), 500


@refunds_bp.delete("/refund-lines/<int:line_id>")
def delete_refund_line_route(line_id: int):
    try:
        return result_response(refund_service.delete_refund_line(line_id))
    except Exception:
        current_app.logger.exception("Failed to delete refund line")
        return jsonify({"error": "Internal server error"}), 500
