from __future__ import annotations

from ..extensions import db
from storedesk.time_utils import to_utc_z, utcnow

PAYMENT_PENDING = "pending"
PAYMENT_DONE = "done"
PAYMENT_STATUSES = (PAYMENT_PENDING, PAYMENT_DONE)

DISCOUNT_PERCENTAGE = "percentage"
DISCOUNT_FIXED = "fixed"
DISCOUNT_TYPES = (DISCOUNT_PERCENTAGE, DISCOUNT_FIXED)


class Invoice(db.Model):
    """
    Sale transaction header with computed totals and a payment status.

    LIFECYCLE: created once; payment_status may flip pending <-> done any
    number of times. Every flip is routed through
    sales_record_service.apply_invoice_status_transition in the same
    transaction, which keeps sales_records in step with the status.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.Index("ix_invoices_payment_status", "payment_status"),
        db.Index("ix_invoices_created_at", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "INV-000042")
    invoice_number = db.Column(db.String(32), nullable=False, unique=True)

    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True)

    # Totals (all amounts in cents, rates in basis points)
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_type = db.Column(db.String(16), nullable=False, default=DISCOUNT_PERCENTAGE)
    discount_value = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    grand_total_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_status = db.Column(db.String(16), nullable=False, default=PAYMENT_DONE)
    expected_payment_date = db.Column(db.Date, nullable=True)
    pdf_url = db.Column(db.Text, nullable=True)

    # UTC-naive; copied to sale_date on this invoice's sales records
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    items = db.relationship(
        "InvoiceItem",
        backref="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.id",
        lazy=True,
    )
    sales_records = db.relationship(
        "SalesRecord",
        backref="invoice",
        cascade="all, delete-orphan",
        order_by="SalesRecord.id",
        lazy=True,
    )

    def __repr__(self) -> str:
        return f"<Invoice id={self.id} number={self.invoice_number!r} status={self.payment_status}>"

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "subtotal_cents": self.subtotal_cents,
            "tax_rate_bps": self.tax_rate_bps,
            "tax_cents": self.tax_cents,
            "discount_type": self.discount_type,
            "discount_value": self.discount_value,
            "discount_cents": self.discount_cents,
            "grand_total_cents": self.grand_total_cents,
            "payment_status": self.payment_status,
            "expected_payment_date": self.expected_payment_date.isoformat() if self.expected_payment_date else None,
            "pdf_url": self.pdf_url,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class InvoiceItem(db.Model):
    """
    Line item on an invoice.

    product_name / size_name / color_name / unit_price_cents are snapshots
    taken when the line was selected; they survive product edits and
    deletion (product_id is nulled then).
    """
    __tablename__ = "invoice_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(
        db.Integer, db.ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id = db.Column(
        db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True
    )

    product_name = db.Column(db.String(255), nullable=False)
    size_name = db.Column(db.String(32), nullable=True)
    color_name = db.Column(db.String(64), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "size_name": self.size_name,
            "color_name": self.color_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
        }


class SalesRecord(db.Model):
    """
    Point-in-time snapshot of one sold invoice item.

    INVARIANT: rows exist for an invoice iff that invoice is currently
    payment_status == "done". Rows are never updated in place; a status
    round trip deletes and recreates them.
    """
    __tablename__ = "sales_records"
    __table_args__ = (
        db.Index("ix_sales_records_sale_date", "sale_date"),
        db.CheckConstraint("quantity > 0", name="ck_sales_records_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(
        db.Integer, db.ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True
    )
    invoice_number = db.Column(db.String(32), nullable=False)

    product_id = db.Column(
        db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True
    )
    product_name = db.Column(db.String(255), nullable=False)
    size_name = db.Column(db.String(32), nullable=True)
    color_name = db.Column(db.String(64), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)

    cost_per_unit_cents = db.Column(db.Integer, nullable=True)
    profit_per_unit_cents = db.Column(db.Integer, nullable=True)
    total_profit_cents = db.Column(db.Integer, nullable=True)

    sale_date = db.Column(db.DateTime(timezone=True), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "invoice_number": self.invoice_number,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "size_name": self.size_name,
            "color_name": self.color_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
            "cost_per_unit_cents": self.cost_per_unit_cents,
            "profit_per_unit_cents": self.profit_per_unit_cents,
            "total_profit_cents": self.total_profit_cents,
            "sale_date": to_utc_z(self.sale_date),
        }
