# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/storedesk/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Use: python -m flask --app storedesk <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask --app storedesk system init
#   Idempotent bootstrap: tables, default store settings, default sizes and colors.
# - python -m flask --app storedesk system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Catalog:
# - python -m flask --app storedesk catalog seed-defaults
#   Insert any missing default sizes (XS..XXXL) and colors.
# - python -m flask --app storedesk catalog low-stock
#   List products at or below the store's low-stock threshold.
#
# Invoices / sales records:
# - python -m flask --app storedesk invoices check-records [--fix]
#   Report invoices whose sales records disagree with their payment status.
# - python -m flask --app storedesk invoices rematerialize 42
#   Delete and recreate the sales records of one invoice.

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import catalog_service
from .services import sales_record_service
from .services.reporting_service import low_stock_report
from .services.sales_record_service import MaterializationError
from .services.settings_service import load_store_config


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize the store backend.

    Creates:
    - All tables (no-op for tables that exist)
    - The store settings row (18% tax, low-stock threshold 10)
    - Default sizes and colors
    """
    click.echo("START Initializing storedesk...")

    db.create_all()
    click.echo("PASS Tables ready")

    config = load_store_config()
    click.echo(f"PASS Store settings: {config.store_name} (tax {config.tax_rate_bps / 100:.2f}%)")

    seeded = catalog_service.seed_default_options()
    click.echo(f"PASS Added {seeded['sizes_added']} sizes, {seeded['colors_added']} colors")

    click.echo("DONE storedesk initialized")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask --app storedesk system init' to initialize.")


@click.group('catalog')
def catalog_group():
    """Catalog maintenance commands."""


@catalog_group.command('seed-defaults')
@with_appcontext
def seed_defaults():
    """Insert missing default sizes and colors."""
    seeded = catalog_service.seed_default_options()
    click.echo(f"PASS Added {seeded['sizes_added']} sizes, {seeded['colors_added']} colors")


@catalog_group.command('low-stock')
@with_appcontext
def low_stock():
    """List products at or below the low-stock threshold."""
    report = low_stock_report(load_store_config())
    if not report["items"]:
        click.echo(f"PASS No products at or below {report['threshold']} units")
        return

    click.echo(f"\nLow stock (threshold {report['threshold']}):")
    click.echo("-" * 60)
    for item in report["items"]:
        flag = "OUT " if item["out_of_stock"] else "    "
        click.echo(f"{flag}{item['quantity_in_stock']:>6}  {item['name']}  [{item['sku'] or '-'}]")
    click.echo("-" * 60)
    click.echo(f"{report['count']} products, {report['out_of_stock_count']} out of stock")


@click.group('invoices')
def invoices_group():
    """Invoice and sales-record maintenance commands."""


@invoices_group.command('check-records')
@click.option('--fix', is_flag=True, help='Rematerialize inconsistent invoices')
@with_appcontext
def check_records(fix):
    """
    Check that sales records exist exactly for paid ("done") invoices.

    Exits with status 1 when problems remain.
    """
    problems = sales_record_service.find_inconsistent_invoices()
    if not problems:
        click.echo("PASS All invoices consistent with their sales records")
        return

    for p in problems:
        click.echo(
            f"FAIL {p['invoice_number']} ({p['payment_status']}): "
            f"{p['items']} items, {p['sales_records']} sales records"
        )

    if not fix:
        click.echo(f"\n{len(problems)} inconsistent invoices. Re-run with --fix to repair.")
        raise SystemExit(1)

    repaired = sales_record_service.repair_sales_records()
    for r in repaired:
        click.echo(f"FIXED {r['invoice_number']}: -{r['deleted']} +{r['created']}")
    click.echo(f"\nPASS Repaired {len(repaired)} invoices")


@invoices_group.command('rematerialize')
@click.argument('invoice_id', type=int)
@with_appcontext
def rematerialize(invoice_id):
    """Delete and recreate one invoice's sales records."""
    try:
        result = sales_record_service.rematerialize_invoice(invoice_id)
    except MaterializationError as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)

    click.echo(f"PASS Invoice {result['invoice_id']}: deleted {result['deleted']}, created {result['created']}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(invoices_group)
