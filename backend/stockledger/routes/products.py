# Overview: Flask API routes for product stock, cost and price operations; parses input and returns JSON responses.

# backend/stockledger/routes/products.py
"""
Product ledger routes.

Catalog creation/editing lives outside this service; these endpoints only
expose the stock/cost/price operations owned by ledger_service.
"""
from flask import Blueprint, current_app, jsonify, request

from ..errors import LedgerError
from ..services import ledger_service, price_history_service, reporting_service

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    try:
        product = ledger_service.get_product(product_id)
        return jsonify({"product": product.to_dict()})
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status


@products_bp.get("/low-stock")
def low_stock_route():
    products = reporting_service.get_low_stock_products()
    return jsonify({"products": [p.to_dict() for p in products]})


@products_bp.post("/<int:product_id>/stock")
def adjust_stock_route(product_id: int):
    """
    Apply a stock adjustment.

    Request body:
    {
        "quantity_delta": 10,           (signed; positive for add/return)
        "adjustment_type": "add",       (add, remove, sale, return)
        "new_cost_cents": 700,          (optional, add only)
        "reason": "Supplier delivery",  (optional)
        "reference": "PO-1234"          (optional)
    }

    Returns:
        201: adjustment and updated product
        400: invalid input
        404: unknown product
        409: insufficient stock / deleted product
    """
    data = request.get_json(silent=True) or {}
    if "quantity_delta" not in data or "adjustment_type" not in data:
        return jsonify({"error": "quantity_delta and adjustment_type required"}), 400

    try:
        adjustment = ledger_service.apply_stock_adjustment(
            product_id,
            data["quantity_delta"],
            data["adjustment_type"],
            new_cost_cents=data.get("new_cost_cents"),
            reason=data.get("reason"),
            reference=data.get("reference"),
        )
        product = ledger_service.get_product(product_id)
        return jsonify({"adjustment": adjustment.to_dict(), "product": product.to_dict()}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("/<int:product_id>/price")
def update_price_route(product_id: int):
    data = request.get_json(silent=True) or {}
    if "selling_price_cents" not in data:
        return jsonify({"error": "selling_price_cents required"}), 400

    try:
        product = ledger_service.update_selling_price(
            product_id,
            data["selling_price_cents"],
            reason=data.get("reason"),
        )
        return jsonify({"product": product.to_dict()})
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update selling price")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/<int:product_id>")
def delete_product_route(product_id: int):
    """Soft delete: the product stays referenced by its sales."""
    try:
        product = ledger_service.soft_delete_product(product_id)
        return jsonify({"product": product.to_dict()})
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status


@products_bp.post("/<int:product_id>/restore")
def restore_product_route(product_id: int):
    try:
        product = ledger_service.restore_product(product_id)
        return jsonify({"product": product.to_dict()})
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status


@products_bp.get("/<int:product_id>/adjustments")
def list_adjustments_route(product_id: int):
    limit = request.args.get("limit", 200, type=int)
    try:
        adjustments = ledger_service.list_stock_adjustments(product_id, limit=limit)
        return jsonify({"adjustments": [a.to_dict() for a in adjustments]})
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status


@products_bp.get("/<int:product_id>/price-history")
def price_history_route(product_id: int):
    limit = request.args.get("limit", 200, type=int)
    try:
        ledger_service.get_product(product_id)
        entries = price_history_service.list_price_history(product_id, limit=limit)
        return jsonify({"price_history": [e.to_dict() for e in entries]})
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
