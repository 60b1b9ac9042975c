# Overview: Flask API routes for stock and margin reports.

from flask import Blueprint, jsonify, request

from ..errors import LedgerError
from ..services import reporting_service
from ..time_utils import parse_period

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/inventory")
def inventory_report_route():
    return jsonify(reporting_service.get_inventory_value())


@reports_bp.get("/profit")
def profit_report_route():
    """
    Revenue, cost of goods and margin for a period.

    Query params:
    - start: ISO-8601 datetime (optional, inclusive)
    - end: ISO-8601 date or datetime (optional, inclusive; a bare date means the whole day)
    """
    try:
        start, end = parse_period(request.args.get("start"), request.args.get("end"))
    except ValueError:
        return jsonify({"error": "start/end must be ISO-8601 dates or datetimes, start before end"}), 400

    return jsonify(reporting_service.get_profit_metrics(start, end))


@reports_bp.get("/today")
def today_sales_route():
    return jsonify(reporting_service.get_today_sales_total())


@reports_bp.get("/payment-methods")
def payment_methods_report_route():
    try:
        start, end = parse_period(request.args.get("start"), request.args.get("end"))
    except ValueError:
        return jsonify({"error": "start/end must be ISO-8601 dates or datetimes, start before end"}), 400

    return jsonify({"methods": reporting_service.get_revenue_by_payment_method(start, end)})


@reports_bp.get("/top-products")
def top_products_report_route():
    """
    Best-selling products for a period.

    Query params:
    - start, end: ISO-8601 datetimes (optional, inclusive)
    - limit: number of products (default 5)
    - sort_by: quantity | revenue | profit (default quantity)
    """
    try:
        start, end = parse_period(request.args.get("start"), request.args.get("end"))
    except ValueError:
        return jsonify({"error": "start/end must be ISO-8601 dates or datetimes, start before end"}), 400

    try:
        products = reporting_service.get_top_selling_products(
            start,
            end,
            limit=request.args.get("limit", 5, type=int),
            sort_by=request.args.get("sort_by", "quantity"),
        )
        return jsonify({"products": products})
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
