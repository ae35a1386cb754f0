from __future__ import annotations

import re
from dataclasses import dataclass, fields

from ..extensions import db
from ..models import StoreSettings
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_rate_bps,
    validate_payload,
)

COLOR_RE = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")

SETTINGS_POLICY = ModelValidationPolicy(
    writable_fields={
        "store_name",
        "address",
        "phone",
        "email",
        "tax_rate_bps",
        "currency_symbol",
        "low_stock_threshold",
        "logo_url",
        "invoice_font_family",
        "invoice_primary_color",
        "invoice_secondary_color",
        "whatsapp_channel",
        "whatsapp_channel_name",
        "whatsapp_tagline",
        "whatsapp_qr_url",
        "instagram_page",
        "instagram_page_id",
        "instagram_tagline",
        "instagram_qr_url",
    },
)


class SettingsError(ValueError):
    pass


class SettingsValidationError(SettingsError):
    pass


@dataclass(frozen=True)
class StoreConfig:
    """Immutable snapshot of the store_settings row handed to callers."""
    store_name: str
    address: str | None
    phone: str | None
    email: str | None
    tax_rate_bps: int
    currency_symbol: str
    low_stock_threshold: int
    logo_url: str | None
    invoice_font_family: str
    invoice_primary_color: str
    invoice_secondary_color: str
    whatsapp_channel: str
    whatsapp_channel_name: str
    whatsapp_tagline: str
    whatsapp_qr_url: str
    instagram_page: str
    instagram_page_id: str
    instagram_tagline: str
    instagram_qr_url: str

    @classmethod
    def from_row(cls, row: StoreSettings) -> "StoreConfig":
        return cls(**{f.name: getattr(row, f.name) for f in fields(cls)})

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def _get_or_create_row() -> StoreSettings:
    row = db.session.query(StoreSettings).order_by(StoreSettings.id.asc()).first()
    if row is None:
        row = StoreSettings()
        db.session.add(row)
        db.session.commit()
    return row


def load_store_config() -> StoreConfig:
    """
    Load store settings as an explicit config object.

    The default row (18% tax, low-stock threshold 10) is created on first use.
    """
    return StoreConfig.from_row(_get_or_create_row())


def _validate_settings_patch(patch: dict) -> None:
    if "tax_rate_bps" in patch:
        try:
            enforce_rules_rate_bps("tax_rate_bps", patch["tax_rate_bps"])
        except ValidationError as exc:
            raise SettingsValidationError(str(exc))

    if "low_stock_threshold" in patch and patch["low_stock_threshold"] < 0:
        raise SettingsValidationError("low_stock_threshold must be >= 0")

    for key in ("invoice_primary_color", "invoice_secondary_color"):
        if key in patch and not COLOR_RE.match(patch[key] or ""):
            raise SettingsValidationError(f"{key} must be a hex color like #1a2b3c")


def update_store_settings(payload: dict) -> StoreConfig:
    try:
        patch = validate_payload(model=StoreSettings, payload=payload, policy=SETTINGS_POLICY, partial=True)
    except ValidationError as exc:
        raise SettingsValidationError(str(exc))

    _validate_settings_patch(patch)

    row = _get_or_create_row()
    for key, value in patch.items():
        setattr(row, key, value)
    db.session.commit()
    return StoreConfig.from_row(row)
