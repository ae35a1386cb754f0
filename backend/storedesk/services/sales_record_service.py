"""
Sales-record materializer.

sales_records is a derived table: for every invoice currently marked paid
("done") it holds one snapshot row per invoice item, with the product cost
and profit as they were when the invoice became paid. Reverting the invoice
to "pending" deletes those rows.

Everything here runs inside the caller's transaction and never commits, so
the status write and the record changes land (or fail) together.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Invoice, InvoiceItem, Product, SalesRecord
from ..models.invoices import PAYMENT_DONE, PAYMENT_PENDING, PAYMENT_STATUSES
from .concurrency import lock_for_update, run_with_retry


class MaterializationError(Exception):
    """Raised when a status transition cannot be applied."""
    pass


def count_sales_records(invoice_id: int) -> int:
    return int(
        db.session.query(func.count(SalesRecord.id))
        .filter(SalesRecord.invoice_id == invoice_id)
        .scalar()
        or 0
    )


def _product_costs(items: list[InvoiceItem]) -> dict[int, int | None]:
    product_ids = {item.product_id for item in items if item.product_id is not None}
    if not product_ids:
        return {}
    rows = db.session.query(Product.id, Product.cost_cents).filter(Product.id.in_(product_ids)).all()
    return {row.id: row.cost_cents for row in rows}


def build_sales_record(invoice: Invoice, item: InvoiceItem, cost_cents: int | None) -> SalesRecord:
    """
    Snapshot one invoice item.

    A null cost counts as zero cost: profit per unit falls back to the unit
    price and total profit to the line total.
    """
    if cost_cents is None:
        profit_per_unit = item.unit_price_cents
        total_profit = item.total_price_cents
    else:
        profit_per_unit = item.unit_price_cents - cost_cents
        total_profit = profit_per_unit * item.quantity

    return SalesRecord(
        invoice_id=invoice.id,
        invoice_number=invoice.invoice_number,
        product_id=item.product_id,
        product_name=item.product_name,
        size_name=item.size_name,
        color_name=item.color_name,
        quantity=item.quantity,
        unit_price_cents=item.unit_price_cents,
        total_price_cents=item.total_price_cents,
        cost_per_unit_cents=cost_cents or 0,
        profit_per_unit_cents=profit_per_unit,
        total_profit_cents=total_profit,
        sale_date=invoice.created_at,
    )


def materialize_invoice(invoice: Invoice) -> int:
    """
    Emit one sales record per current invoice item.

    Must be called after the invoice's items are flushed. Idempotent: an
    invoice that already has records is left alone. Returns rows created.
    """
    db.session.flush()

    if count_sales_records(invoice.id):
        return 0

    items = (
        db.session.query(InvoiceItem)
        .filter(InvoiceItem.invoice_id == invoice.id)
        .order_by(InvoiceItem.id.asc())
        .all()
    )
    costs = _product_costs(items)

    created = 0
    for item in items:
        if item.product_id is not None and item.product_id not in costs:
            current_app.logger.warning(
                "Sales record for invoice %s item %s: product %s not found, using zero cost",
                invoice.invoice_number,
                item.id,
                item.product_id,
            )
        record = build_sales_record(invoice, item, costs.get(item.product_id))
        db.session.add(record)
        created += 1

    if created:
        db.session.flush()
        db.session.expire(invoice, ["sales_records"])
    current_app.logger.info("Materialized %d sales records for %s", created, invoice.invoice_number)
    return created


def retract_invoice(invoice: Invoice) -> int:
    """Delete every sales record of the invoice. Returns rows deleted."""
    deleted = (
        db.session.query(SalesRecord)
        .filter(SalesRecord.invoice_id == invoice.id)
        .delete(synchronize_session="fetch")
    )
    db.session.flush()
    if deleted:
        db.session.expire(invoice, ["sales_records"])
    current_app.logger.info("Retracted %d sales records for %s", deleted, invoice.invoice_number)
    return deleted


def apply_invoice_status_transition(invoice: Invoice, old_status: str | None, new_status: str) -> int:
    """
    Keep sales_records in step with a payment_status change.

    old_status None means the invoice was just created. Returns the number
    of rows created (positive) or deleted (negative); 0 for no-op
    transitions (done -> done, pending -> pending).
    """
    if new_status not in PAYMENT_STATUSES:
        raise MaterializationError(f"Unknown payment status: {new_status}")
    if old_status is not None and old_status not in PAYMENT_STATUSES:
        raise MaterializationError(f"Unknown payment status: {old_status}")

    if old_status == new_status:
        return 0

    if new_status == PAYMENT_DONE:
        return materialize_invoice(invoice)

    if old_status == PAYMENT_DONE and new_status == PAYMENT_PENDING:
        return -retract_invoice(invoice)

    # Created as pending: nothing to derive yet
    return 0


def rematerialize_invoice(invoice_id: int) -> dict:
    """
    Full retract/recreate cycle for one invoice, re-snapshotting costs.

    Pending invoices only lose stray records.
    """
    def _op():
        invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()
        if invoice is None:
            raise MaterializationError("Invoice not found")

        deleted = retract_invoice(invoice)
        created = materialize_invoice(invoice) if invoice.payment_status == PAYMENT_DONE else 0
        db.session.commit()
        return {"invoice_id": invoice.id, "deleted": deleted, "created": created}

    return run_with_retry(_op)


def find_inconsistent_invoices() -> list[dict]:
    """
    Invoices violating the paid-iff-recorded invariant.

    A done invoice with items must have records; a pending invoice must
    have none. A done invoice whose items were edited after it was paid
    keeps its old snapshot and is not reported.
    """
    record_counts = dict(
        db.session.query(SalesRecord.invoice_id, func.count(SalesRecord.id))
        .group_by(SalesRecord.invoice_id)
        .all()
    )
    item_counts = dict(
        db.session.query(InvoiceItem.invoice_id, func.count(InvoiceItem.id))
        .group_by(InvoiceItem.invoice_id)
        .all()
    )

    problems = []
    for invoice in db.session.query(Invoice).order_by(Invoice.id.asc()):
        records = int(record_counts.get(invoice.id, 0))
        items = int(item_counts.get(invoice.id, 0))
        if invoice.payment_status == PAYMENT_DONE:
            broken = items > 0 and records == 0
        else:
            broken = records > 0
        if broken:
            problems.append(
                {
                    "invoice_id": invoice.id,
                    "invoice_number": invoice.invoice_number,
                    "payment_status": invoice.payment_status,
                    "items": items,
                    "sales_records": records,
                }
            )
    return problems


def repair_sales_records() -> list[dict]:
    """Rematerialize every inconsistent invoice. Returns what was repaired."""
    repaired = []
    for problem in find_inconsistent_invoices():
        result = rematerialize_invoice(problem["invoice_id"])
        repaired.append({**problem, **result})
    return repaired
