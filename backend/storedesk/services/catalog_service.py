# backend/storedesk/services/catalog_service.py
"""
Catalog Service

Products, categories, sizes, colors and per-size price overrides.

STOCK GUARD: select_product_for_invoice() is the only gate between the
catalog and an invoice line. It rejects products with stock <= 0. Two
operators selecting the last unit at the same time can both pass; stock is
not reserved.
"""
from __future__ import annotations

from sqlalchemy import or_

from ..extensions import db
from ..models import Category, Color, InvoiceItem, Product, ProductSizePrice, SalesRecord, Size
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_product,
    validate_payload,
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "name",
        "sku",
        "description",
        "category_id",
        "price_cents",
        "cost_cents",
        "quantity_in_stock",
        "image_url",
        "secondary_image_url",
    },
    required_on_create={"name", "price_cents"},
)

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description"},
    required_on_create={"name"},
)

SIZE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "sort_order"},
    required_on_create={"name"},
)

COLOR_POLICY = ModelValidationPolicy(
    writable_fields={"name", "hex_code", "sort_order"},
    required_on_create={"name"},
)

OPTION_POLICIES = {
    Category: CATEGORY_POLICY,
    Size: SIZE_POLICY,
    Color: COLOR_POLICY,
}

DEFAULT_SIZES = [("XS", 1), ("S", 2), ("M", 3), ("L", 4), ("XL", 5), ("XXL", 6), ("XXXL", 7)]

DEFAULT_COLORS = [
    ("Black", "#000000", 1),
    ("White", "#FFFFFF", 2),
    ("Red", "#FF0000", 3),
    ("Blue", "#0000FF", 4),
    ("Green", "#008000", 5),
    ("Yellow", "#FFFF00", 6),
    ("Pink", "#FFC0CB", 7),
    ("Grey", "#808080", 8),
]

OUT_OF_STOCK_MESSAGE = "Please add stock before adding this product."


class CatalogError(Exception):
    """Raised for catalog operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class OutOfStockError(ValidationError):
    """A product with stock <= 0 was picked for an invoice line."""
    def __init__(self, product: Product):
        super().__init__(OUT_OF_STOCK_MESSAGE)
        self.product_id = product.id
        self.product_name = product.name
        self.quantity_in_stock = product.quantity_in_stock
        self.description = f"{product.name} is currently out of stock."


# =============================================================================
# Categories, sizes, colors
# =============================================================================

def _option_order(model):
    if model is Category:
        return (Category.name.asc(),)
    return (model.sort_order.asc(), model.name.asc())


def list_options(model) -> list[dict]:
    rows = db.session.query(model).order_by(*_option_order(model)).all()
    return [row.to_dict() for row in rows]


def _ensure_unique_name(model, name: str, exclude_id: int | None = None) -> None:
    query = db.session.query(model).filter(db.func.lower(model.name) == name.lower())
    if exclude_id is not None:
        query = query.filter(model.id != exclude_id)
    if query.first():
        raise ConflictError(f"{model.__name__} '{name}' already exists.")


def create_option(model, payload: dict) -> dict:
    patch = validate_payload(model=model, payload=payload, policy=OPTION_POLICIES[model], partial=False)
    _ensure_unique_name(model, patch["name"])

    row = model(**patch)
    db.session.add(row)
    db.session.commit()
    return row.to_dict()


def update_option(model, option_id: int, payload: dict) -> dict | None:
    row = db.session.query(model).filter_by(id=option_id).first()
    if row is None:
        return None

    patch = validate_payload(model=model, payload=payload, policy=OPTION_POLICIES[model], partial=True)
    if "name" in patch:
        _ensure_unique_name(model, patch["name"], exclude_id=row.id)

    for key, value in patch.items():
        setattr(row, key, value)
    db.session.commit()
    return row.to_dict()


def delete_option(model, option_id: int) -> bool:
    row = db.session.query(model).filter_by(id=option_id).first()
    if row is None:
        return False

    if model is Category:
        db.session.query(Product).filter(Product.category_id == row.id).update(
            {Product.category_id: None}, synchronize_session="fetch"
        )
    elif model is Size:
        db.session.query(ProductSizePrice).filter(ProductSizePrice.size_id == row.id).delete(
            synchronize_session="fetch"
        )

    db.session.delete(row)
    db.session.commit()
    return True


def seed_default_options() -> dict:
    """Insert the default sizes and colors that are missing. Idempotent."""
    existing_sizes = {name for (name,) in db.session.query(Size.name)}
    existing_colors = {name for (name,) in db.session.query(Color.name)}

    sizes_added = 0
    for name, sort_order in DEFAULT_SIZES:
        if name not in existing_sizes:
            db.session.add(Size(name=name, sort_order=sort_order))
            sizes_added += 1

    colors_added = 0
    for name, hex_code, sort_order in DEFAULT_COLORS:
        if name not in existing_colors:
            db.session.add(Color(name=name, hex_code=hex_code, sort_order=sort_order))
            colors_added += 1

    db.session.commit()
    return {"sizes_added": sizes_added, "colors_added": colors_added}


# =============================================================================
# Products
# =============================================================================

def _load_ids(model, ids) -> list:
    if ids is None:
        return []
    if not isinstance(ids, list):
        raise ValidationError(f"{model.__tablename__[:-1]}_ids must be a list")
    wanted = set()
    for raw in ids:
        if isinstance(raw, bool) or not isinstance(raw, int):
            raise ValidationError(f"{model.__tablename__[:-1]}_ids must contain integers")
        wanted.add(raw)
    rows = db.session.query(model).filter(model.id.in_(wanted)).all() if wanted else []
    missing = wanted - {row.id for row in rows}
    if missing:
        raise ValidationError(f"Unknown {model.__tablename__[:-1]} ids: {sorted(missing)}")
    return rows


def _validate_product_payload(payload: dict, *, partial: bool) -> tuple[dict, dict]:
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    payload = dict(payload)
    relations = {}
    if "size_ids" in payload:
        relations["sizes"] = _load_ids(Size, payload.pop("size_ids"))
    if "color_ids" in payload:
        relations["colors"] = _load_ids(Color, payload.pop("color_ids"))

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=partial)
    enforce_rules_product(patch)

    if patch.get("category_id") is not None:
        if not db.session.query(Category).filter_by(id=patch["category_id"]).first():
            raise ValidationError("Category not found")

    return patch, relations


def _ensure_unique_sku(sku: str | None, exclude_id: int | None = None) -> None:
    if not sku:
        return
    query = db.session.query(Product).filter(Product.sku == sku)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first():
        raise ConflictError("SKU already exists.")


def list_products(
    q: str | None = None,
    category_id: int | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Product listing, newest first, with optional search and pagination.

    q matches name or SKU (case-insensitive substring).
    """
    base_query = db.session.query(Product)

    if q:
        pattern = f"%{q.strip().lower()}%"
        base_query = base_query.filter(
            or_(db.func.lower(Product.name).like(pattern), db.func.lower(Product.sku).like(pattern))
        )
    if category_id is not None:
        base_query = base_query.filter(Product.category_id == category_id)

    base_query = base_query.order_by(Product.created_at.desc(), Product.id.desc())

    # If no pagination requested, return all items
    if page is None:
        products = base_query.all()
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    per_page = max(min(per_page or 20, 100), 1)  # Default 20, max 100
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def get_product(product_id: int) -> Product | None:
    return db.session.query(Product).filter_by(id=product_id).first()


def create_product(payload: dict) -> dict:
    """
    Create product from a JSON payload.

    Raises:
        ValidationError: bad fields, unknown category/size/color ids
        ConflictError: SKU already exists
    """
    patch, relations = _validate_product_payload(payload, partial=False)
    _ensure_unique_sku(patch.get("sku"))

    p = Product(**patch)
    if "sizes" in relations:
        p.sizes = relations["sizes"]
    if "colors" in relations:
        p.colors = relations["colors"]

    db.session.add(p)
    db.session.commit()
    return p.to_dict()


def update_product(product_id: int, payload: dict) -> dict | None:
    p = get_product(product_id)
    if p is None:
        return None

    patch, relations = _validate_product_payload(payload, partial=True)
    if "sku" in patch:
        _ensure_unique_sku(patch["sku"], exclude_id=p.id)

    for key, value in patch.items():
        setattr(p, key, value)
    if "sizes" in relations:
        p.sizes = relations["sizes"]
    if "colors" in relations:
        p.colors = relations["colors"]

    db.session.commit()
    return p.to_dict()


def delete_product(product_id: int) -> bool:
    """
    Delete a product.

    Historical invoice items and sales records keep their snapshot text;
    only their product_id is cleared.
    """
    p = get_product(product_id)
    if p is None:
        return False

    db.session.query(InvoiceItem).filter(InvoiceItem.product_id == p.id).update(
        {InvoiceItem.product_id: None}, synchronize_session="fetch"
    )
    db.session.query(SalesRecord).filter(SalesRecord.product_id == p.id).update(
        {SalesRecord.product_id: None}, synchronize_session="fetch"
    )

    db.session.delete(p)
    db.session.commit()
    return True


def set_size_price(product_id: int, size_id: int, price_cents: int) -> dict | None:
    p = get_product(product_id)
    if p is None:
        return None

    if not db.session.query(Size).filter_by(id=size_id).first():
        raise ValidationError("Size not found")
    enforce_rules_product({"price_cents": price_cents})

    override = (
        db.session.query(ProductSizePrice)
        .filter_by(product_id=p.id, size_id=size_id)
        .first()
    )
    if override is None:
        override = ProductSizePrice(product_id=p.id, size_id=size_id, price_cents=price_cents)
        db.session.add(override)
    else:
        override.price_cents = price_cents

    db.session.commit()
    db.session.expire(p, ["size_prices"])
    return p.to_dict()


def remove_size_price(product_id: int, size_id: int) -> bool:
    deleted = (
        db.session.query(ProductSizePrice)
        .filter_by(product_id=product_id, size_id=size_id)
        .delete(synchronize_session="fetch")
    )
    db.session.commit()
    return bool(deleted)


# =============================================================================
# Invoice line selection
# =============================================================================

def select_product_for_invoice(
    product_id: int,
    *,
    size_id: int | None = None,
    color_id: int | None = None,
    quantity: int = 1,
) -> dict:
    """
    Build a draft invoice line for a product, enforcing the stock guard.

    Nothing is written. The returned line carries the snapshot fields an
    invoice item stores (name, size, color, unit price with any per-size
    override applied).

    Raises:
        CatalogError: product / size / color not found
        OutOfStockError: product stock <= 0
        ValidationError: quantity < 1
    """
    p = get_product(product_id)
    if p is None:
        raise CatalogError("Product not found", details={"product_id": product_id})

    if p.is_out_of_stock():
        raise OutOfStockError(p)

    if quantity is None or quantity < 1:
        raise ValidationError("quantity must be >= 1")

    size_name = None
    if size_id is not None:
        size = db.session.query(Size).filter_by(id=size_id).first()
        if size is None:
            raise CatalogError("Size not found", details={"size_id": size_id})
        size_name = size.name

    color_name = None
    if color_id is not None:
        color = db.session.query(Color).filter_by(id=color_id).first()
        if color is None:
            raise CatalogError("Color not found", details={"color_id": color_id})
        color_name = color.name

    unit_price = p.price_for_size(size_id)
    return {
        "product_id": p.id,
        "product_name": p.name,
        "size_name": size_name,
        "color_name": color_name,
        "quantity": quantity,
        "unit_price_cents": unit_price,
        "total_price_cents": unit_price * quantity,
        "quantity_in_stock": p.quantity_in_stock,
    }
