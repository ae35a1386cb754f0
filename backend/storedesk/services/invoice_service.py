"""
Invoice Service - totals, numbering and payment status

Every write that can touch sales_records (creation, status change) runs as a
single transaction: invoice row, item rows and the materializer's records
commit together or not at all.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Invoice, InvoiceItem, SalesRecord
from ..models.invoices import (
    DISCOUNT_PERCENTAGE,
    DISCOUNT_TYPES,
    PAYMENT_DONE,
    PAYMENT_STATUSES,
)
from ..validation import (
    MAX_PRICE_CENTS,
    ConflictError,
    ValidationError,
    _check_money,
    enforce_rules_rate_bps,
    optional_int,
    require_int,
)
from ..time_utils import parse_iso_date
from .catalog_service import CatalogError, select_product_for_invoice
from .concurrency import begin_serialized, lock_for_update, run_with_retry
from .document_service import next_invoice_number
from .sales_record_service import apply_invoice_status_transition
from .settings_service import StoreConfig


class InvoiceError(Exception):
    """Raised for invoice operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class InvoiceNotFoundError(InvoiceError):
    pass


class InvoiceNumberConflict(ConflictError):
    """Auto-assigned invoice number kept colliding. Safe to retry."""
    retryable = True


def _round_bps(amount_cents: int, bps: int) -> int:
    # Half-up on non-negative integers
    return (amount_cents * bps + 5000) // 10000


def compute_totals(
    lines: list[dict],
    tax_rate_bps: int,
    discount_type: str = DISCOUNT_PERCENTAGE,
    discount_value: int = 0,
) -> dict:
    """
    Invoice arithmetic in integer cents.

    subtotal = sum of line totals
    discount = discount_value bps of subtotal (percentage) or discount_value
               cents (fixed), clamped to [0, subtotal]
    tax      = tax_rate_bps of (subtotal - discount)
    grand    = subtotal - discount + tax
    """
    if discount_type not in DISCOUNT_TYPES:
        raise ValidationError(f"discount_type must be one of: {', '.join(DISCOUNT_TYPES)}")

    subtotal = sum(int(line["total_price_cents"]) for line in lines)

    if discount_type == DISCOUNT_PERCENTAGE:
        discount = _round_bps(subtotal, discount_value)
    else:
        discount = discount_value
    discount = max(0, min(discount, subtotal))

    taxable = subtotal - discount
    tax = _round_bps(taxable, tax_rate_bps)

    return {
        "subtotal_cents": subtotal,
        "discount_cents": discount,
        "tax_cents": tax,
        "grand_total_cents": taxable + tax,
    }


# =============================================================================
# Payload validation
# =============================================================================

def _optional_text(payload: dict, key: str, max_len: int | None = None) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    value = str(value).strip()
    if max_len and len(value) > max_len:
        raise ValidationError(f"{key} exceeds max length {max_len}")
    return value or None


def _validate_line(raw: dict, index: int) -> dict:
    """
    Normalize one requested line into invoice item fields.

    Product-backed lines go through the stock guard and take their snapshot
    (name, size, color, price) from the catalog; unit_price_cents may still
    be overridden. Free-text lines need product_name and unit_price_cents.
    """
    if not isinstance(raw, dict):
        raise ValidationError(f"items[{index}] must be an object")

    quantity = require_int(raw, "quantity", minimum=1)
    product_id = optional_int(raw, "product_id")
    price_override = optional_int(raw, "unit_price_cents")
    if price_override is not None:
        _check_money({"unit_price_cents": price_override}, "unit_price_cents")

    if product_id is not None:
        try:
            line = select_product_for_invoice(
                product_id,
                size_id=optional_int(raw, "size_id"),
                color_id=optional_int(raw, "color_id"),
                quantity=quantity,
            )
        except CatalogError as exc:
            raise InvoiceError(str(exc), details={"line": index, **exc.details})
        line.pop("quantity_in_stock", None)
        if line["size_name"] is None:
            line["size_name"] = _optional_text(raw, "size_name", 32)
        if line["color_name"] is None:
            line["color_name"] = _optional_text(raw, "color_name", 64)
    else:
        name = _optional_text(raw, "product_name", 255)
        if not name:
            raise ValidationError(f"items[{index}] needs product_id or product_name")
        if price_override is None:
            raise ValidationError(f"items[{index}].unit_price_cents is required")
        line = {
            "product_id": None,
            "product_name": name,
            "size_name": _optional_text(raw, "size_name", 32),
            "color_name": _optional_text(raw, "color_name", 64),
            "quantity": quantity,
        }

    unit_price = price_override if price_override is not None else line["unit_price_cents"]
    line["unit_price_cents"] = unit_price
    line["total_price_cents"] = unit_price * quantity
    if line["total_price_cents"] > MAX_PRICE_CENTS:
        raise ValidationError(f"items[{index}] total exceeds maximum")
    return line


def validate_lines(raw_lines) -> list[dict]:
    if not isinstance(raw_lines, list) or not raw_lines:
        raise ValidationError("items must be a non-empty list")
    return [_validate_line(raw, i) for i, raw in enumerate(raw_lines)]


def _validate_discount(payload: dict, default_type: str = DISCOUNT_PERCENTAGE) -> tuple[str, int]:
    discount_type = payload.get("discount_type") or default_type
    if discount_type not in DISCOUNT_TYPES:
        raise ValidationError(f"discount_type must be one of: {', '.join(DISCOUNT_TYPES)}")
    discount_value = optional_int(payload, "discount_value", minimum=0) or 0
    if discount_type == DISCOUNT_PERCENTAGE:
        enforce_rules_rate_bps("discount_value", discount_value)
    elif discount_value > MAX_PRICE_CENTS:
        raise ValidationError("discount_value exceeds maximum")
    return discount_type, discount_value


def _validate_status(value) -> str:
    if value not in PAYMENT_STATUSES:
        raise ValidationError(f"payment_status must be one of: {', '.join(PAYMENT_STATUSES)}")
    return value


def _validate_expected_date(payload: dict):
    raw = payload.get("expected_payment_date")
    if raw in (None, ""):
        return None
    try:
        return parse_iso_date(raw)
    except (AttributeError, TypeError, ValueError):
        raise ValidationError("expected_payment_date must be an ISO-8601 date")


# =============================================================================
# Create
# =============================================================================

def _insert_invoice(data: dict, lines: list[dict], created_at: datetime | None) -> Invoice:
    if data["invoice_number"]:
        if db.session.query(Invoice.id).filter_by(invoice_number=data["invoice_number"]).first():
            raise ConflictError(f"Invoice number {data['invoice_number']} already exists.")
        invoice_number = data["invoice_number"]
    else:
        invoice_number = next_invoice_number()

    invoice = Invoice(invoice_number=invoice_number, **data["fields"])
    if created_at is not None:
        invoice.created_at = created_at
    db.session.add(invoice)
    db.session.flush()

    for line in lines:
        db.session.add(InvoiceItem(invoice_id=invoice.id, **line))
    db.session.flush()

    apply_invoice_status_transition(invoice, None, invoice.payment_status)
    db.session.commit()
    return invoice


def _is_number_collision(exc: IntegrityError) -> bool:
    """True when the unique constraint on invoices.invoice_number rejected the insert."""
    return "invoice_number" in str(exc.orig)


def create_invoice(payload: dict, config: StoreConfig, *, created_at: datetime | None = None) -> Invoice:
    """
    Create an invoice with its items in one transaction.

    Lines are validated and stock-checked first; a rejected line leaves
    nothing behind. When the invoice is created "done" its sales records are
    materialized in the same transaction, after the items are flushed.

    Raises:
        ValidationError / OutOfStockError: bad payload, out-of-stock product
        InvoiceError: referenced product / size / color not found
        ConflictError: explicit invoice_number already used
        InvoiceNumberConflict: auto-assigned number collided on every attempt
        IntegrityError: any other constraint failure, after rollback
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    lines = validate_lines(payload.get("items"))

    tax_rate_bps = optional_int(payload, "tax_rate_bps")
    if tax_rate_bps is None:
        tax_rate_bps = config.tax_rate_bps
    enforce_rules_rate_bps("tax_rate_bps", tax_rate_bps)

    discount_type, discount_value = _validate_discount(payload)
    status = _validate_status(payload.get("payment_status") or PAYMENT_DONE)

    totals = compute_totals(lines, tax_rate_bps, discount_type, discount_value)

    data = {
        "invoice_number": _optional_text(payload, "invoice_number", 32),
        "fields": {
            "customer_name": _optional_text(payload, "customer_name", 255),
            "customer_phone": _optional_text(payload, "customer_phone", 32),
            "tax_rate_bps": tax_rate_bps,
            "discount_type": discount_type,
            "discount_value": discount_value,
            "payment_status": status,
            "expected_payment_date": _validate_expected_date(payload),
            "pdf_url": _optional_text(payload, "pdf_url"),
            **totals,
        },
    }

    attempts = current_app.config.get("INVOICE_NUMBER_ATTEMPTS", 3)
    for attempt in range(attempts):
        try:
            invoice = run_with_retry(lambda: _insert_invoice(data, lines, created_at))
        except IntegrityError as exc:
            db.session.rollback()
            if not _is_number_collision(exc):
                raise
            if data["invoice_number"]:
                raise ConflictError(f"Invoice number {data['invoice_number']} already exists.")
            current_app.logger.warning(
                "Invoice number collision (attempt %d/%d), retrying", attempt + 1, attempts
            )
            continue
        except Exception:
            db.session.rollback()
            raise

        current_app.logger.info(
            "Created invoice %s (%s, %d items, total %d)",
            invoice.invoice_number,
            invoice.payment_status,
            len(lines),
            invoice.grand_total_cents,
        )
        return invoice

    raise InvoiceNumberConflict("Could not assign a unique invoice number, please retry.")


# =============================================================================
# Status / edits
# =============================================================================

def _lock_invoice(invoice_id: int) -> Invoice:
    begin_serialized()
    invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()
    if invoice is None:
        raise InvoiceNotFoundError("Invoice not found", details={"invoice_id": invoice_id})
    return invoice


def _change_status(invoice: Invoice, new_status: str) -> int:
    old_status = invoice.payment_status
    invoice.payment_status = new_status
    db.session.flush()
    delta = apply_invoice_status_transition(invoice, old_status, new_status)
    if old_status != new_status:
        current_app.logger.info(
            "Invoice %s payment status %s -> %s (sales records %+d)",
            invoice.invoice_number,
            old_status,
            new_status,
            delta,
        )
    return delta


def set_payment_status(invoice_id: int, status: str) -> Invoice:
    """Atomic status write plus sales-record transition."""
    status = _validate_status(status)

    def _op():
        try:
            invoice = _lock_invoice(invoice_id)
            _change_status(invoice, status)
            db.session.commit()
            return invoice
        except Exception:
            db.session.rollback()
            raise

    return run_with_retry(_op)


def update_invoice(invoice_id: int, payload: dict) -> Invoice:
    """
    Patch customer details, expected_payment_date, pdf_url and
    payment_status. Status changes go through the materializer.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    allowed = {"customer_name", "customer_phone", "expected_payment_date", "pdf_url", "payment_status"}
    for key in payload:
        if key not in allowed:
            raise ValidationError(f"Field not allowed: {key}")

    patch = {}
    if "customer_name" in payload:
        patch["customer_name"] = _optional_text(payload, "customer_name", 255)
    if "customer_phone" in payload:
        patch["customer_phone"] = _optional_text(payload, "customer_phone", 32)
    if "expected_payment_date" in payload:
        patch["expected_payment_date"] = _validate_expected_date(payload)
    if "pdf_url" in payload:
        patch["pdf_url"] = _optional_text(payload, "pdf_url")
    new_status = _validate_status(payload["payment_status"]) if "payment_status" in payload else None

    def _op():
        try:
            invoice = _lock_invoice(invoice_id)
            for key, value in patch.items():
                setattr(invoice, key, value)
            if new_status is not None:
                _change_status(invoice, new_status)
            db.session.commit()
            return invoice
        except Exception:
            db.session.rollback()
            raise

    return run_with_retry(_op)


def replace_invoice_items(invoice_id: int, raw_lines, config: StoreConfig) -> Invoice:
    """
    Replace all items and recompute totals with the invoice's own tax rate
    and discount.

    Existing sales records are snapshots and are not rewritten; use
    sales_record_service.rematerialize_invoice for that.
    """
    lines = validate_lines(raw_lines)

    def _op():
        try:
            invoice = _lock_invoice(invoice_id)
            db.session.query(InvoiceItem).filter(InvoiceItem.invoice_id == invoice.id).delete(
                synchronize_session="fetch"
            )
            for line in lines:
                db.session.add(InvoiceItem(invoice_id=invoice.id, **line))

            totals = compute_totals(lines, invoice.tax_rate_bps, invoice.discount_type, invoice.discount_value)
            for key, value in totals.items():
                setattr(invoice, key, value)

            db.session.commit()
            db.session.expire(invoice, ["items"])
            return invoice
        except Exception:
            db.session.rollback()
            raise

    invoice = run_with_retry(_op)
    current_app.logger.info("Replaced items on invoice %s (%d lines)", invoice.invoice_number, len(lines))
    return invoice


def delete_invoice(invoice_id: int) -> bool:
    """Delete an invoice with its items and sales records."""
    invoice = db.session.query(Invoice).filter_by(id=invoice_id).first()
    if invoice is None:
        return False

    number = invoice.invoice_number
    db.session.query(SalesRecord).filter(SalesRecord.invoice_id == invoice.id).delete(synchronize_session="fetch")
    db.session.query(InvoiceItem).filter(InvoiceItem.invoice_id == invoice.id).delete(synchronize_session="fetch")
    db.session.delete(invoice)
    db.session.commit()

    current_app.logger.info("Deleted invoice %s", number)
    return True


# =============================================================================
# Read
# =============================================================================

def get_invoice(invoice_id: int) -> Invoice | None:
    return db.session.query(Invoice).filter_by(id=invoice_id).first()


def list_invoices(
    *,
    status: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    q: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """Invoices newest first, filtered by status, created_at range and text."""
    query = db.session.query(Invoice)

    if status:
        query = query.filter(Invoice.payment_status == _validate_status(status))
    if start is not None:
        query = query.filter(Invoice.created_at >= start)
    if end is not None:
        query = query.filter(Invoice.created_at <= end)
    if q:
        pattern = f"%{q.strip().lower()}%"
        query = query.filter(
            or_(
                db.func.lower(Invoice.invoice_number).like(pattern),
                db.func.lower(Invoice.customer_name).like(pattern),
                Invoice.customer_phone.like(pattern),
            )
        )

    query = query.order_by(Invoice.created_at.desc(), Invoice.id.desc())

    page = max(page or 1, 1)
    per_page = max(min(per_page or 50, 200), 1)

    total = query.count()
    rows = query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [inv.to_dict() for inv in rows],
        "count": len(rows),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": (total + per_page - 1) // per_page if total else 1,
        },
    }
