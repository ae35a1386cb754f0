# Overview: Sales analytics over materialized sales records.

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime
from typing import Callable, Iterable
from zoneinfo import ZoneInfo

from flask import current_app

from storedesk.extensions import db
from storedesk.models import Product, SalesRecord
from storedesk.time_utils import PERIODS, local_today, parse_iso_date, period_window, to_utc_z, utc_to_local

from .settings_service import StoreConfig

TRENDING_SORTS = ("quantity", "revenue")

MONTH_LABELS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


class ReportError(Exception):
    """Raised when report generation fails."""
    pass


def _group_key(record) -> tuple:
    """
    Grouping key shared by the product-sales, trending and profit views.

    Records whose product was deleted (product_id is null) are grouped by
    their snapshot name in every view, so one retired product stays one row.
    """
    if record.product_id is not None:
        return ("id", record.product_id)
    return ("name", record.product_name)


def _avg_half_up(total: int, qty: int) -> int:
    if qty <= 0:
        return 0
    return (2 * total + qty) // (2 * qty)


# =============================================================================
# Pure aggregation
# =============================================================================

def _sum_by_product(records: Iterable) -> list[dict]:
    groups: dict[tuple, dict] = {}
    for r in records:
        key = _group_key(r)
        row = groups.get(key)
        if row is None:
            row = groups[key] = {
                "product_id": r.product_id,
                "product_name": r.product_name,
                "quantity": 0,
                "revenue_cents": 0,
            }
        row["quantity"] += r.quantity
        row["revenue_cents"] += r.total_price_cents
    return list(groups.values())


def aggregate_product_sales(records: Iterable) -> list[dict]:
    """Quantity and revenue per product, highest revenue first."""
    rows = _sum_by_product(records)
    return sorted(rows, key=lambda row: row["revenue_cents"], reverse=True)


def aggregate_trending(records: Iterable, sort_by: str = "quantity", limit: int = 20) -> list[dict]:
    """
    Top products by quantity or revenue.

    Sorting happens over every product before the list is cut to `limit`.
    Ties keep first-seen order.
    """
    if sort_by not in TRENDING_SORTS:
        raise ReportError("sort_by must be quantity or revenue")

    measure = "quantity" if sort_by == "quantity" else "revenue_cents"
    rows = sorted(_sum_by_product(records), key=lambda row: row[measure], reverse=True)
    return rows[:limit]


def aggregate_profits(records: Iterable) -> dict:
    """
    Per-product revenue, cost and profit plus overall totals.

    cost = sum(cost_per_unit * quantity). A record without total_profit
    contributes revenue - cost. The overall total_profit is always
    total_revenue - total_cost.
    """
    groups: dict[tuple, dict] = {}
    for r in records:
        key = _group_key(r)
        row = groups.get(key)
        if row is None:
            row = groups[key] = {
                "product_id": r.product_id,
                "product_name": r.product_name,
                "quantity": 0,
                "revenue_cents": 0,
                "cost_cents": 0,
                "total_profit_cents": 0,
            }
        line_cost = (r.cost_per_unit_cents or 0) * r.quantity
        row["quantity"] += r.quantity
        row["revenue_cents"] += r.total_price_cents
        row["cost_cents"] += line_cost
        if r.total_profit_cents is not None:
            row["total_profit_cents"] += r.total_profit_cents
        else:
            row["total_profit_cents"] += r.total_price_cents - line_cost

    products = []
    for row in groups.values():
        row["avg_sale_price_cents"] = _avg_half_up(row["revenue_cents"], row["quantity"])
        row["avg_cost_price_cents"] = _avg_half_up(row["cost_cents"], row["quantity"])
        products.append(row)

    products.sort(key=lambda row: row["total_profit_cents"], reverse=True)

    total_revenue = sum(row["revenue_cents"] for row in products)
    total_cost = sum(row["cost_cents"] for row in products)
    return {
        "products": products,
        "total_revenue_cents": total_revenue,
        "total_cost_cents": total_cost,
        "total_profit_cents": total_revenue - total_cost,
    }


# =============================================================================
# Queries
# =============================================================================

def store_zone() -> ZoneInfo:
    """The store's local time zone (STORE_TIMEZONE)."""
    return ZoneInfo(current_app.config.get("STORE_TIMEZONE", "UTC"))


def parse_reference_date(value: str | None) -> date:
    """Report anchor date from a query string; today in the store's zone when omitted."""
    if not value:
        return local_today(store_zone())
    try:
        parsed = parse_iso_date(value)
    except ValueError:
        raise ReportError("date must be YYYY-MM-DD")
    return parsed or local_today(store_zone())


def fetch_sales_records(start: datetime, end: datetime) -> list[SalesRecord]:
    """Sales records with start <= sale_date <= end, oldest first."""
    return (
        db.session.query(SalesRecord)
        .filter(SalesRecord.sale_date >= start, SalesRecord.sale_date <= end)
        .order_by(SalesRecord.sale_date.asc(), SalesRecord.id.asc())
        .all()
    )


def _window_report(reference: date, period: str, aggregate: Callable, tz: ZoneInfo) -> dict:
    start, end = period_window(reference, period, tz)
    records = fetch_sales_records(start, end)
    return {
        "period": period,
        "start": to_utc_z(start),
        "end": to_utc_z(end),
        "record_count": len(records),
        "result": aggregate(records),
    }


def _run_windows(reference: date, aggregate: Callable) -> dict:
    """
    Day, month and year windows computed independently.

    With REPORT_WINDOW_WORKERS > 1 each window runs on its own thread with
    its own app context (and so its own session).
    """
    app = current_app._get_current_object()
    workers = int(app.config.get("REPORT_WINDOW_WORKERS", 3))
    tz = store_zone()

    if workers <= 1:
        return {period: _window_report(reference, period, aggregate, tz) for period in PERIODS}

    def _in_context(period: str) -> dict:
        with app.app_context():
            return _window_report(reference, period, aggregate, tz)

    with ThreadPoolExecutor(max_workers=min(workers, len(PERIODS))) as pool:
        results = list(pool.map(_in_context, PERIODS))
    return dict(zip(PERIODS, results))


def product_sales_report(day: date) -> dict:
    tz = store_zone()
    window = _window_report(day, "day", aggregate_product_sales, tz)
    return {
        "date": day.isoformat(),
        "timezone": tz.key,
        "start": window["start"],
        "end": window["end"],
        "record_count": window["record_count"],
        "products": window["result"],
    }


def trending_report(reference: date, sort_by: str = "quantity") -> dict:
    if sort_by not in TRENDING_SORTS:
        raise ReportError("sort_by must be quantity or revenue")

    limit = int(current_app.config.get("TRENDING_LIMIT", 20))
    windows = _run_windows(reference, lambda records: aggregate_trending(records, sort_by, limit))
    return {
        "date": reference.isoformat(),
        "timezone": store_zone().key,
        "sort_by": sort_by,
        "limit": limit,
        "windows": windows,
    }


def profit_report(reference: date) -> dict:
    windows = _run_windows(reference, aggregate_profits)
    return {
        "date": reference.isoformat(),
        "timezone": store_zone().key,
        "windows": windows,
    }


def monthly_profit_series(year: int) -> dict:
    """Revenue, cost and profit for each month of `year` (12 rows), by store-local month."""
    # years 1 and 9999 overflow datetime once shifted by a zone offset
    if year < 2 or year > 9998:
        raise ReportError("year out of range")

    tz = store_zone()
    start, end = period_window(date(year, 1, 1), "year", tz)
    months = [
        {"month": m, "label": MONTH_LABELS[m - 1], "revenue_cents": 0, "cost_cents": 0, "profit_cents": 0}
        for m in range(1, 13)
    ]

    for r in fetch_sales_records(start, end):
        row = months[utc_to_local(r.sale_date, tz).month - 1]
        line_cost = (r.cost_per_unit_cents or 0) * r.quantity
        row["revenue_cents"] += r.total_price_cents
        row["cost_cents"] += line_cost

    for row in months:
        row["profit_cents"] = row["revenue_cents"] - row["cost_cents"]

    return {
        "year": year,
        "timezone": tz.key,
        "months": months,
        "total_revenue_cents": sum(row["revenue_cents"] for row in months),
        "total_cost_cents": sum(row["cost_cents"] for row in months),
        "total_profit_cents": sum(row["profit_cents"] for row in months),
    }


def low_stock_report(config: StoreConfig) -> dict:
    """Products at or below the store's low-stock threshold, emptiest first."""
    threshold = config.low_stock_threshold
    products = (
        db.session.query(Product)
        .filter(Product.quantity_in_stock <= threshold)
        .order_by(Product.quantity_in_stock.asc(), Product.name.asc())
        .all()
    )
    return {
        "threshold": threshold,
        "count": len(products),
        "out_of_stock_count": sum(1 for p in products if p.is_out_of_stock()),
        "items": [
            {
                "product_id": p.id,
                "name": p.name,
                "sku": p.sku,
                "quantity_in_stock": p.quantity_in_stock,
                "out_of_stock": p.is_out_of_stock(),
            }
            for p in products
        ],
    }
