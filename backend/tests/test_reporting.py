"""
Analytics aggregation tests.

Pure aggregation runs on plain objects; the window / report tests go
through the database.
"""

from datetime import date, datetime
from types import SimpleNamespace
from zoneinfo import ZoneInfo

import pytest

from storedesk import create_app
from storedesk.config import TestConfig
from storedesk.extensions import db
from storedesk.models import Product
from storedesk.services import invoice_service
from storedesk.services.reporting_service import (
    ReportError,
    aggregate_product_sales,
    aggregate_profits,
    aggregate_trending,
    fetch_sales_records,
    low_stock_report,
    monthly_profit_series,
    parse_reference_date,
    product_sales_report,
    profit_report,
    trending_report,
)
from storedesk.services.settings_service import load_store_config
from storedesk.time_utils import period_window


def rec(product_id, name, qty, unit_price, cost=None, total_profit="auto"):
    total = qty * unit_price
    if total_profit == "auto":
        total_profit = total - (cost or 0) * qty
    return SimpleNamespace(
        product_id=product_id,
        product_name=name,
        quantity=qty,
        unit_price_cents=unit_price,
        total_price_cents=total,
        cost_per_unit_cents=cost,
        total_profit_cents=total_profit,
    )


# =============================================================================
# PURE AGGREGATION
# =============================================================================


class TestAggregateProfits:
    def test_two_records_same_product(self):
        result = aggregate_profits([rec(1, "A", 2, 100, cost=60), rec(1, "A", 1, 100, cost=60)])

        (a,) = result["products"]
        assert a["quantity"] == 3
        assert a["revenue_cents"] == 300
        assert a["cost_cents"] == 180
        assert a["total_profit_cents"] == 120
        assert a["avg_sale_price_cents"] == 100
        assert a["avg_cost_price_cents"] == 60

        assert result["total_revenue_cents"] == 300
        assert result["total_cost_cents"] == 180
        assert result["total_profit_cents"] == 120

    def test_missing_total_profit_falls_back_to_revenue_minus_cost(self):
        result = aggregate_profits([rec(1, "A", 2, 100, cost=30, total_profit=None)])
        assert result["products"][0]["total_profit_cents"] == 140

    def test_sorted_by_profit_desc(self):
        result = aggregate_profits([
            rec(1, "Low", 1, 100, cost=90),
            rec(2, "High", 1, 100, cost=10),
            rec(3, "Mid", 1, 100, cost=50),
        ])
        assert [p["product_name"] for p in result["products"]] == ["High", "Mid", "Low"]

    def test_average_rounds_half_up(self):
        result = aggregate_profits([rec(1, "A", 1, 100, cost=0), rec(1, "A", 1, 101, cost=0)])
        assert result["products"][0]["avg_sale_price_cents"] == 101  # 100.5 -> 101

    def test_empty(self):
        assert aggregate_profits([]) == {
            "products": [],
            "total_revenue_cents": 0,
            "total_cost_cents": 0,
            "total_profit_cents": 0,
        }


class TestAggregateSales:
    def test_groups_by_product_id(self):
        rows = aggregate_product_sales([rec(1, "A", 1, 100), rec(2, "B", 5, 10), rec(1, "A renamed", 2, 100)])

        assert rows[0] == {"product_id": 1, "product_name": "A", "quantity": 3, "revenue_cents": 300}
        assert rows[1]["product_id"] == 2

    def test_deleted_products_grouped_by_name(self):
        rows = aggregate_product_sales([rec(None, "Old tee", 1, 100), rec(None, "Old tee", 1, 100), rec(None, "Cap", 1, 50)])

        assert [(r["product_name"], r["quantity"]) for r in rows] == [("Old tee", 2), ("Cap", 1)]

    def test_deleted_products_grouped_by_name_in_every_view(self):
        records = [rec(None, "Old tee", 1, 100, cost=40), rec(None, "Old tee", 2, 100, cost=40), rec(7, "Old tee", 1, 100, cost=40)]

        trending = aggregate_trending(records, "quantity")
        profits = aggregate_profits(records)["products"]

        assert [(r["product_id"], r["quantity"]) for r in trending] == [(None, 3), (7, 1)]
        assert [(r["product_id"], r["total_profit_cents"]) for r in profits] == [(None, 180), (7, 60)]

    def test_sorted_by_revenue_desc_stable(self):
        rows = aggregate_product_sales([rec(1, "A", 1, 100), rec(2, "B", 1, 300), rec(3, "C", 1, 100)])
        assert [r["product_name"] for r in rows] == ["B", "A", "C"]


class TestAggregateTrending:
    def setup_method(self):
        self.records = [rec(1, "P1", 10, 100), rec(2, "P2", 15, 53)]  # P1: 10 / 1000, P2: 15 / 795

    def test_by_quantity(self):
        rows = aggregate_trending(self.records, "quantity")
        assert [r["product_name"] for r in rows] == ["P2", "P1"]

    def test_by_revenue(self):
        rows = aggregate_trending(self.records, "revenue")
        assert [r["product_name"] for r in rows] == ["P1", "P2"]

    def test_truncates_after_sorting(self):
        records = [rec(i, f"P{i}", i, 1) for i in range(1, 31)]
        rows = aggregate_trending(records, "quantity", limit=20)

        assert len(rows) == 20
        assert rows[0]["product_name"] == "P30"
        assert rows[-1]["product_name"] == "P11"

    def test_bad_sort(self):
        with pytest.raises(ReportError):
            aggregate_trending(self.records, "profit")


# =============================================================================
# WINDOWS / QUERIES
# =============================================================================


class TestWindows:
    def test_period_window_bounds(self):
        start, end = period_window(date(2024, 2, 10), "month")
        assert start == datetime(2024, 2, 1, 0, 0, 0)
        assert end.date() == date(2024, 2, 29)
        assert end.hour == 23 and end.minute == 59

        start, end = period_window(datetime(2026, 7, 4, 15, 0), "year")
        assert start == datetime(2026, 1, 1)
        assert end.date() == date(2026, 12, 31)

    def test_period_window_rejects_unknown_period(self):
        with pytest.raises(ValueError):
            period_window(date(2026, 1, 1), "week")

    def test_period_window_in_store_zone(self):
        start, end = period_window(date(2026, 10, 18), "day", ZoneInfo("Asia/Kolkata"))
        assert start == datetime(2026, 10, 17, 18, 30)
        assert end == datetime(2026, 10, 18, 18, 29, 59, 999999)

    def test_parse_reference_date(self):
        assert parse_reference_date("2026-03-15") == date(2026, 3, 15)
        assert isinstance(parse_reference_date(None), date)
        assert parse_reference_date("") == parse_reference_date(None)
        with pytest.raises(ReportError):
            parse_reference_date("15/03/2026")

    def test_range_sum_matches_records_in_range(self, make_product, make_invoice):
        shirt = make_product(price_cents=1000)
        make_invoice([(shirt, 1)], created_at=datetime(2026, 5, 9, 23, 59, 59))
        make_invoice([(shirt, 2)], created_at=datetime(2026, 5, 10, 0, 0, 0))
        make_invoice([(shirt, 3)], created_at=datetime(2026, 5, 10, 23, 59, 59))
        make_invoice([(shirt, 4)], created_at=datetime(2026, 5, 11, 0, 0, 0))
        make_invoice([(shirt, 7)], payment_status="pending", created_at=datetime(2026, 5, 10, 12, 0))

        start, end = period_window(date(2026, 5, 10), "day")
        in_range = fetch_sales_records(start, end)
        report = product_sales_report(date(2026, 5, 10))

        assert sum(r.total_price_cents for r in in_range) == 5000
        assert sum(p["revenue_cents"] for p in report["products"]) == 5000
        assert report["record_count"] == 2

    def test_profit_report_has_three_windows(self, make_product, make_invoice):
        shirt = make_product(price_cents=1000, cost_cents=600)
        make_invoice([(shirt, 1)], created_at=datetime(2026, 6, 15, 12, 0))
        make_invoice([(shirt, 1)], created_at=datetime(2026, 6, 1, 12, 0))
        make_invoice([(shirt, 1)], created_at=datetime(2026, 1, 2, 12, 0))
        make_invoice([(shirt, 1)], created_at=datetime(2025, 12, 31, 12, 0))

        report = profit_report(date(2026, 6, 15))

        windows = report["windows"]
        assert set(windows) == {"day", "month", "year"}
        assert windows["day"]["result"]["total_profit_cents"] == 400
        assert windows["month"]["result"]["total_profit_cents"] == 800
        assert windows["year"]["result"]["total_profit_cents"] == 1200

    def test_reports_follow_store_local_calendar(self, app, make_product, make_invoice, monkeypatch):
        monkeypatch.setitem(app.config, "STORE_TIMEZONE", "Asia/Kolkata")
        shirt = make_product(price_cents=1000, cost_cents=600)
        # 02:00 IST on 1 Jan 2026
        make_invoice([(shirt, 1)], created_at=datetime(2025, 12, 31, 20, 30))

        day = product_sales_report(date(2026, 1, 1))
        assert day["record_count"] == 1
        assert day["timezone"] == "Asia/Kolkata"
        assert day["start"] == "2025-12-31T18:30:00Z"
        assert product_sales_report(date(2025, 12, 31))["record_count"] == 0

        windows = profit_report(date(2026, 1, 1))["windows"]
        assert windows["month"]["record_count"] == 1
        assert windows["year"]["result"]["total_profit_cents"] == 400

        assert monthly_profit_series(2026)["months"][0]["revenue_cents"] == 1000
        assert monthly_profit_series(2025)["total_revenue_cents"] == 0

    def test_trending_report_uses_configured_limit(self, app, make_product, make_invoice, monkeypatch):
        monkeypatch.setitem(app.config, "TRENDING_LIMIT", 2)
        for qty in (1, 2, 3):
            make_invoice([(make_product(), qty)], created_at=datetime(2026, 6, 15, 12, 0))

        report = trending_report(date(2026, 6, 15), "quantity")

        day = report["windows"]["day"]["result"]
        assert [row["quantity"] for row in day] == [3, 2]

    def test_trending_report_rejects_bad_sort(self, db_session):
        with pytest.raises(ReportError):
            trending_report(date(2026, 6, 15), "margin")

    def test_monthly_series(self, make_product, make_invoice):
        shirt = make_product(price_cents=1000, cost_cents=400)
        make_invoice([(shirt, 1)], created_at=datetime(2026, 2, 3, 9, 0))
        make_invoice([(shirt, 2)], created_at=datetime(2026, 2, 20, 9, 0))
        make_invoice([(shirt, 1)], created_at=datetime(2026, 11, 30, 9, 0))

        series = monthly_profit_series(2026)

        assert len(series["months"]) == 12
        feb = series["months"][1]
        assert (feb["label"], feb["revenue_cents"], feb["cost_cents"], feb["profit_cents"]) == ("Feb", 3000, 1200, 1800)
        assert series["months"][0]["revenue_cents"] == 0
        assert series["total_profit_cents"] == 2400

    def test_low_stock(self, make_product, store_config):
        make_product(name="Plenty", quantity_in_stock=50)
        make_product(name="Few", quantity_in_stock=3)
        make_product(name="None left", quantity_in_stock=0)
        make_product(name="Edge", quantity_in_stock=10)

        report = low_stock_report(store_config)

        assert report["threshold"] == 10
        assert [i["name"] for i in report["items"]] == ["None left", "Few", "Edge"]
        assert report["out_of_stock_count"] == 1


class ThreadedConfig(TestConfig):
    REPORT_WINDOW_WORKERS = 3


def test_threaded_windows_match_sequential(tmp_path):
    """Windows computed on worker threads give the same answer."""
    threaded_app = create_app(type("FileConfig", (ThreadedConfig,), {
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'reports.sqlite3'}",
    }))

    with threaded_app.app_context():
        db.create_all()
        product = Product(name="Tee", price_cents=1000, cost_cents=600, quantity_in_stock=10)
        db.session.add(product)
        db.session.commit()
        config = load_store_config()
        for created in (datetime(2026, 6, 15, 9, 0), datetime(2026, 6, 2, 9, 0), datetime(2026, 3, 1, 9, 0)):
            invoice_service.create_invoice(
                {"items": [{"product_id": product.id, "quantity": 1}]}, config, created_at=created
            )

        threaded = profit_report(date(2026, 6, 15))

        threaded_app.config["REPORT_WINDOW_WORKERS"] = 1
        sequential = profit_report(date(2026, 6, 15))

        assert threaded == sequential
        assert threaded["windows"]["year"]["result"]["total_profit_cents"] == 1200

        db.session.remove()
        db.drop_all()
