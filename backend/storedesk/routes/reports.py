# Overview: Flask API routes for reports; parses input and returns JSON responses.

from flask import Blueprint, request

from ..services.reporting_service import (
    ReportError,
    low_stock_report,
    monthly_profit_series,
    parse_reference_date,
    product_sales_report,
    profit_report,
    store_zone,
    trending_report,
)
from ..services.settings_service import load_store_config
from storedesk.time_utils import local_today

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/product-sales")
def product_sales_route():
    """Per-product quantity and revenue for one day (?date=YYYY-MM-DD, default today)."""
    try:
        day = parse_reference_date(request.args.get("date"))
        return product_sales_report(day)
    except ReportError as e:
        return {"error": str(e)}, 400


@reports_bp.get("/trending")
def trending_route():
    """Top products for the day, month and year containing ?date=."""
    try:
        reference = parse_reference_date(request.args.get("date"))
        return trending_report(reference, request.args.get("sort_by", "quantity"))
    except ReportError as e:
        return {"error": str(e)}, 400


@reports_bp.get("/profits")
def profits_route():
    try:
        reference = parse_reference_date(request.args.get("date"))
        return profit_report(reference)
    except ReportError as e:
        return {"error": str(e)}, 400


@reports_bp.get("/profits/monthly")
def monthly_profits_route():
    year = request.args.get("year", type=int) or local_today(store_zone()).year
    try:
        return monthly_profit_series(year)
    except ReportError as e:
        return {"error": str(e)}, 400


@reports_bp.get("/low-stock")
def low_stock_route():
    return low_stock_report(load_store_config())
