from __future__ import annotations

from ..extensions import db
from storedesk.time_utils import to_utc_z


product_sizes = db.Table(
    "product_sizes",
    db.Column("product_id", db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), primary_key=True),
    db.Column("size_id", db.Integer, db.ForeignKey("sizes.id", ondelete="CASCADE"), primary_key=True),
)

product_colors = db.Table(
    "product_colors",
    db.Column("product_id", db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), primary_key=True),
    db.Column("color_id", db.Integer, db.ForeignKey("colors.id", ondelete="CASCADE"), primary_key=True),
)


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Category id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
        }


class Size(db.Model):
    """Garment size option (XS..XXXL by default)."""
    __tablename__ = "sizes"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(32), nullable=False, unique=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "sort_order": self.sort_order,
            "created_at": to_utc_z(self.created_at),
        }


class Color(db.Model):
    __tablename__ = "colors"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False, unique=True)
    hex_code = db.Column(db.String(7), nullable=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "hex_code": self.hex_code,
            "sort_order": self.sort_order,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Product master data.

    SKU is optional but unique when present. quantity_in_stock is displayed
    as >= 0 but the database does not enforce it; write paths guard it.

    COST: cost_cents is read by the sales-record materializer at the moment
    an invoice becomes paid. Later cost edits never rewrite history.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=True, unique=True)
    description = db.Column(db.Text, nullable=True)

    category_id = db.Column(
        db.Integer, db.ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True
    )

    # Authoritative storage in cents (frontend may only format for display)
    price_cents = db.Column(db.Integer, nullable=False)
    cost_cents = db.Column(db.Integer, nullable=True)
    quantity_in_stock = db.Column(db.Integer, nullable=False, default=0)

    # Links only; uploads live elsewhere
    image_url = db.Column(db.Text, nullable=True)
    secondary_image_url = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    sizes = db.relationship(
        "Size",
        secondary=product_sizes,
        order_by="Size.sort_order",
        lazy="selectin",
        backref=db.backref("products", lazy=True),
    )
    colors = db.relationship(
        "Color",
        secondary=product_colors,
        order_by="Color.sort_order",
        lazy="selectin",
        backref=db.backref("products", lazy=True),
    )
    size_prices = db.relationship(
        "ProductSizePrice",
        backref="product",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"

    def is_out_of_stock(self) -> bool:
        return (self.quantity_in_stock or 0) <= 0

    def price_for_size(self, size_id: int | None) -> int:
        """Per-size override when one exists, else the base price."""
        if size_id is not None:
            for override in self.size_prices:
                if override.size_id == size_id:
                    return override.price_cents
        return self.price_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "sku": self.sku,
            "description": self.description,
            "category_id": self.category_id,
            "size_ids": [s.id for s in self.sizes],
            "color_ids": [c.id for c in self.colors],
            "price_cents": self.price_cents,
            "cost_cents": self.cost_cents,
            "quantity_in_stock": self.quantity_in_stock,
            "image_url": self.image_url,
            "secondary_image_url": self.secondary_image_url,
            "size_prices": [sp.to_dict() for sp in self.size_prices],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductSizePrice(db.Model):
    """Price override for one size of a product."""
    __tablename__ = "product_size_prices"
    __table_args__ = (
        db.UniqueConstraint("product_id", "size_id", name="uq_product_size_prices_product_size"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    size_id = db.Column(db.Integer, db.ForeignKey("sizes.id", ondelete="CASCADE"), nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    size = db.relationship("Size")

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "size_id": self.size_id,
            "price_cents": self.price_cents,
        }
