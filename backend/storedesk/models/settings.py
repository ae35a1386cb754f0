from __future__ import annotations

from ..extensions import db
from storedesk.time_utils import to_utc_z

DEFAULT_STORE_NAME = "My Garment Store"
DEFAULT_TAX_RATE_BPS = 1800
DEFAULT_LOW_STOCK_THRESHOLD = 10


class StoreSettings(db.Model):
    """
    Store configuration, branding and social links.

    Exactly one row is expected. Services never query it ad hoc; they go
    through settings_service.load_store_config() and pass the resulting
    StoreConfig to whoever needs it.
    """
    __tablename__ = "store_settings"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    store_name = db.Column(db.String(255), nullable=False, default=DEFAULT_STORE_NAME)
    address = db.Column(db.Text, nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)

    tax_rate_bps = db.Column(db.Integer, nullable=False, default=DEFAULT_TAX_RATE_BPS)
    currency_symbol = db.Column(db.String(8), nullable=False, default="₹")
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=DEFAULT_LOW_STOCK_THRESHOLD)

    # Invoice branding
    logo_url = db.Column(db.Text, nullable=True)
    invoice_font_family = db.Column(db.String(64), nullable=False, default="helvetica")
    invoice_primary_color = db.Column(db.String(7), nullable=False, default="#000000")
    invoice_secondary_color = db.Column(db.String(7), nullable=False, default="#666666")

    # Social links printed on invoices
    whatsapp_channel = db.Column(db.Text, nullable=False, default="")
    whatsapp_channel_name = db.Column(db.String(255), nullable=False, default="")
    whatsapp_tagline = db.Column(db.String(255), nullable=False, default="Join our WhatsApp group")
    whatsapp_qr_url = db.Column(db.Text, nullable=False, default="")
    instagram_page = db.Column(db.Text, nullable=False, default="")
    instagram_page_id = db.Column(db.String(255), nullable=False, default="")
    instagram_tagline = db.Column(db.String(255), nullable=False, default="Follow us on Instagram")
    instagram_qr_url = db.Column(db.Text, nullable=False, default="")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_name": self.store_name,
            "address": self.address,
            "phone": self.phone,
            "email": self.email,
            "tax_rate_bps": self.tax_rate_bps,
            "currency_symbol": self.currency_symbol,
            "low_stock_threshold": self.low_stock_threshold,
            "logo_url": self.logo_url,
            "invoice_font_family": self.invoice_font_family,
            "invoice_primary_color": self.invoice_primary_color,
            "invoice_secondary_color": self.invoice_secondary_color,
            "whatsapp_channel": self.whatsapp_channel,
            "whatsapp_channel_name": self.whatsapp_channel_name,
            "whatsapp_tagline": self.whatsapp_tagline,
            "whatsapp_qr_url": self.whatsapp_qr_url,
            "instagram_page": self.instagram_page,
            "instagram_page_id": self.instagram_page_id,
            "instagram_tagline": self.instagram_tagline,
            "instagram_qr_url": self.instagram_qr_url,
            "updated_at": to_utc_z(self.updated_at),
        }
