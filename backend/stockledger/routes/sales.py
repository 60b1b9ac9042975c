# Overview: Flask API routes for sales and returns; parses input and returns JSON responses.

# backend/stockledger/routes/sales.py
"""
Sales API routes.

Tax settings come from the app config and are handed to the service
explicitly; the service never reads ambient settings.
"""

from flask import Blueprint, current_app, jsonify, request

from ..errors import LedgerError
from ..services import return_service, sales_service
from ..time_utils import parse_period

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
def finalize_sale_route():
    """
    Finalize a cart into a sale.

    Request body:
    {
        "lines": [{"product_id": 1, "quantity": 3, "unit_price_cents": 2000}],
        "discount": {"type": "percentage", "value": 10},      (optional)
        "payment_method": "cash",                              (cash, card, split)
        "payment": {"amount_paid_cents": 6000},                (split: cash_amount_cents, card_amount_cents)
        "notes": "..."                                         (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    if not data.get("lines"):
        return jsonify({"error": "lines required"}), 400

    try:
        sale = sales_service.finalize_sale(
            data["lines"],
            discount=data.get("discount"),
            payment_method=data.get("payment_method", "cash"),
            payment=data.get("payment"),
            tax_rate=current_app.config.get("TAX_RATE_PERCENT"),
            enable_tax=current_app.config.get("ENABLE_TAX", False),
            notes=data.get("notes"),
        )
        return jsonify({
            "sale": sale.to_dict(include_items=True),
            "receipt": sales_service.build_receipt(sale),
        }), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to finalize sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
def list_sales_route():
    try:
        start, end = parse_period(request.args.get("start"), request.args.get("end"))
    except ValueError:
        return jsonify({"error": "start/end must be ISO-8601 dates or datetimes, start before end"}), 400

    try:
        sales = sales_service.list_sales(
            start=start,
            end=end,
            payment_method=request.args.get("payment_method"),
            limit=request.args.get("limit", 100, type=int),
        )
        return jsonify({"sales": [s.to_dict() for s in sales]})
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
        returned = return_service.get_returned_quantities(sale_id)
        payload = sale.to_dict(include_items=True)
        for item in payload["items"]:
            item["returned_quantity"] = str(returned.get(item["id"], 0))
        return jsonify({"sale": payload})
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status


@sales_bp.get("/<int:sale_id>/receipt")
def receipt_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
        return jsonify({"receipt": sales_service.build_receipt(sale)})
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status


@sales_bp.post("/<int:sale_id>/returns")
def process_return_route(sale_id: int):
    """
    Return part or all of a sale.

    Request body:
    {
        "lines": [{"sale_item_id": 12, "return_quantity": 1}],
        "reason": "Damaged"   (optional)
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        record = return_service.process_return(
            sale_id,
            data.get("lines") or [],
            reason=data.get("reason"),
        )
        sale = sales_service.get_sale(sale_id)
        return jsonify({"return": record.to_dict(), "sale": sale.to_dict()}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to process return")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>/returns")
def list_returns_route(sale_id: int):
    try:
        sales_service.get_sale(sale_id)
        records = return_service.get_returns_for_sale(sale_id)
        return jsonify({"returns": [r.to_dict() for r in records]})
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status


@sales_bp.post("/<int:sale_id>/cancel")
def cancel_sale_route(sale_id: int):
    data = request.get_json(silent=True) or {}

    try:
        record = return_service.cancel_sale(sale_id, reason=data.get("reason") or return_service.CANCEL_REASON)
        sale = sales_service.get_sale(sale_id)
        return jsonify({"return": record.to_dict(), "sale": sale.to_dict()}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to cancel sale")
        return jsonify({"error": "Internal server error"}), 500
