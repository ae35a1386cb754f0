# Overview: Flask API routes for catalog operations; parses input and returns JSON responses.

# backend/storedesk/routes/catalog.py
"""
Catalog routes: categories, sizes, colors and products.

POST /api/products/<id>/select is the stock guard for invoice entry. It
returns a draft line and writes nothing; an out-of-stock product is a 422
with a user-facing warning.
"""
from flask import Blueprint, current_app, request

from ..models import Category, Color, Size
from ..services import catalog_service
from ..services.catalog_service import CatalogError, OutOfStockError
from ..validation import ConflictError, ValidationError, optional_int, require_int

catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")

OPTION_MODELS = {
    "categories": Category,
    "sizes": Size,
    "colors": Color,
}


def _option_model(kind: str):
    return OPTION_MODELS.get(kind)


# =============================================================================
# Categories / sizes / colors
# =============================================================================

@catalog_bp.get("/<any(categories, sizes, colors):kind>")
def list_options_route(kind: str):
    items = catalog_service.list_options(_option_model(kind))
    return {"items": items, "count": len(items)}


@catalog_bp.post("/<any(categories, sizes, colors):kind>")
def create_option_route(kind: str):
    payload = request.get_json(silent=True) or {}
    try:
        created = catalog_service.create_option(_option_model(kind), payload)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409
    return created, 201


@catalog_bp.put("/<any(categories, sizes, colors):kind>/<int:option_id>")
def update_option_route(kind: str, option_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        updated = catalog_service.update_option(_option_model(kind), option_id, payload)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409
    if updated is None:
        return {"error": "Not found"}, 404
    return updated


@catalog_bp.delete("/<any(categories, sizes, colors):kind>/<int:option_id>")
def delete_option_route(kind: str, option_id: int):
    if not catalog_service.delete_option(_option_model(kind), option_id):
        return {"error": "Not found"}, 404
    return {"deleted": True}


# =============================================================================
# Products
# =============================================================================

@catalog_bp.get("/products")
def list_products_route():
    """
    List products.

    Query params:
    - q: str (optional) - name / SKU search
    - category_id: int (optional)
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    return catalog_service.list_products(
        q=request.args.get("q"),
        category_id=request.args.get("category_id", type=int),
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )


@catalog_bp.post("/products")
def create_product_route():
    payload = request.get_json(silent=True) or {}
    try:
        created = catalog_service.create_product(payload)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409

    current_app.logger.info("Created product %s (%s)", created["id"], created["name"])
    return created, 201


@catalog_bp.get("/products/<int:product_id>")
def get_product_route(product_id: int):
    p = catalog_service.get_product(product_id)
    if p is None:
        return {"error": "Product not found"}, 404
    return p.to_dict()


@catalog_bp.put("/products/<int:product_id>")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        updated = catalog_service.update_product(product_id, payload)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409
    if updated is None:
        return {"error": "Product not found"}, 404
    return updated


@catalog_bp.delete("/products/<int:product_id>")
def delete_product_route(product_id: int):
    if not catalog_service.delete_product(product_id):
        return {"error": "Product not found"}, 404
    current_app.logger.info("Deleted product %s", product_id)
    return {"deleted": True}


@catalog_bp.put("/products/<int:product_id>/size-prices")
def set_size_price_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        size_id = require_int(payload, "size_id")
        price_cents = require_int(payload, "price_cents", minimum=0)
        updated = catalog_service.set_size_price(product_id, size_id, price_cents)
    except ValidationError as e:
        return {"error": str(e)}, 400
    if updated is None:
        return {"error": "Product not found"}, 404
    return updated


@catalog_bp.delete("/products/<int:product_id>/size-prices/<int:size_id>")
def remove_size_price_route(product_id: int, size_id: int):
    if not catalog_service.remove_size_price(product_id, size_id):
        return {"error": "Size price not found"}, 404
    return {"deleted": True}


@catalog_bp.post("/products/<int:product_id>/select")
def select_product_route(product_id: int):
    """
    Draft an invoice line for a product.

    Body: {size_id?, color_id?, quantity?}
    """
    payload = request.get_json(silent=True) or {}
    try:
        line = catalog_service.select_product_for_invoice(
            product_id,
            size_id=optional_int(payload, "size_id"),
            color_id=optional_int(payload, "color_id"),
            quantity=optional_int(payload, "quantity") or 1,
        )
    except OutOfStockError as e:
        current_app.logger.info("Rejected out-of-stock product %s", e.product_id)
        return {
            "error": str(e),
            "warning": e.description,
            "product_id": e.product_id,
            "quantity_in_stock": e.quantity_in_stock,
        }, 422
    except ValidationError as e:
        return {"error": str(e)}, 400
    except CatalogError as e:
        return {"error": str(e), "details": e.details}, 404

    return {"line": line}
