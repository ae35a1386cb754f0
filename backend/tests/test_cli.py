"""
CLI command tests (flask system / catalog / invoices groups).
"""

from storedesk.extensions import db
from storedesk.models import Color, Product, SalesRecord, Size


def test_seed_defaults(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["catalog", "seed-defaults"])

    assert result.exit_code == 0
    assert "Added 7 sizes, 8 colors" in result.output
    assert db.session.query(Size).count() == 7
    assert db.session.query(Color).count() == 8


def test_system_init_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    first = runner.invoke(args=["system", "init"])
    second = runner.invoke(args=["system", "init"])

    assert first.exit_code == 0, first.output
    assert second.exit_code == 0, second.output
    assert "Added 0 sizes, 0 colors" in second.output


def test_low_stock_listing(app, make_product, store_config):
    make_product(name="Silk saree", sku="SAR-1", quantity_in_stock=0)
    make_product(name="Plenty tee", quantity_in_stock=40)

    result = app.test_cli_runner().invoke(args=["catalog", "low-stock"])

    assert result.exit_code == 0
    assert "Silk saree" in result.output
    assert "Plenty tee" not in result.output
    assert "1 products, 1 out of stock" in result.output


def test_check_records_clean(app, make_product, make_invoice):
    make_invoice([(make_product(), 1)])

    result = app.test_cli_runner().invoke(args=["invoices", "check-records"])

    assert result.exit_code == 0
    assert "PASS" in result.output


def test_check_records_reports_and_fixes(app, make_product, make_invoice):
    invoice = make_invoice([(make_product(), 1), (make_product(), 1)])
    db.session.query(SalesRecord).filter_by(invoice_id=invoice.id).delete()
    db.session.commit()
    runner = app.test_cli_runner()

    result = runner.invoke(args=["invoices", "check-records"])
    assert result.exit_code == 1
    assert f"FAIL {invoice.invoice_number}" in result.output

    result = runner.invoke(args=["invoices", "check-records", "--fix"])
    assert result.exit_code == 0
    assert "Repaired 1 invoices" in result.output
    assert db.session.query(SalesRecord).filter_by(invoice_id=invoice.id).count() == 2


def test_rematerialize_unknown_invoice(app, db_session):
    result = app.test_cli_runner().invoke(args=["invoices", "rematerialize", "404"])

    assert result.exit_code == 1
    assert "Invoice not found" in result.output


def test_reset_db_requires_confirmation(app, make_product):
    make_product()
    runner = app.test_cli_runner()

    result = runner.invoke(args=["system", "reset-db"], input="n\n")
    assert result.exit_code == 1
    assert db.session.query(Product).count() == 1
    db.session.commit()

    result = runner.invoke(args=["system", "reset-db", "--yes"])
    assert result.exit_code == 0, result.output
    assert db.session.query(Product).count() == 0
