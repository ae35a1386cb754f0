# Overview: Flask API routes for invoice operations; parses input and returns JSON responses.

# backend/storedesk/routes/invoices.py
"""Invoice API routes"""

from flask import Blueprint, current_app, request

from ..extensions import db
from ..models import SalesRecord
from ..services import invoice_service
from ..services.catalog_service import OutOfStockError
from ..services.invoice_service import InvoiceError, InvoiceNotFoundError, InvoiceNumberConflict
from ..services.sales_record_service import MaterializationError
from ..services.settings_service import load_store_config
from ..validation import ConflictError, ValidationError
from storedesk.time_utils import parse_iso_datetime

invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


def _error_response(e: Exception):
    """Map invoice service errors to JSON responses."""
    if isinstance(e, OutOfStockError):
        return {
            "error": str(e),
            "warning": e.description,
            "product_id": e.product_id,
        }, 422
    if isinstance(e, InvoiceNumberConflict):
        return {"error": str(e), "retryable": True}, 409
    if isinstance(e, ConflictError):
        return {"error": str(e)}, 409
    if isinstance(e, InvoiceNotFoundError):
        return {"error": str(e), "details": e.details}, 404
    if isinstance(e, InvoiceError):
        return {"error": str(e), "details": e.details}, 400
    return {"error": str(e)}, 400


@invoices_bp.get("")
def list_invoices_route():
    """
    List invoices, newest first.

    Query params: status, start, end (ISO-8601), q, page, per_page
    """
    try:
        start = parse_iso_datetime(request.args.get("start"))
        end = parse_iso_datetime(request.args.get("end"))
    except ValueError:
        return {"error": "start/end must be ISO-8601 datetimes"}, 400

    try:
        return invoice_service.list_invoices(
            status=request.args.get("status"),
            start=start,
            end=end,
            q=request.args.get("q"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400


@invoices_bp.post("")
def create_invoice_route():
    """
    Create an invoice.

    Body: {items: [{product_id?, product_name?, size_id?, color_id?,
    quantity, unit_price_cents?}], customer_name?, customer_phone?,
    discount_type?, discount_value?, tax_rate_bps?, payment_status?,
    expected_payment_date?, invoice_number?, pdf_url?}
    """
    payload = request.get_json(silent=True) or {}
    try:
        invoice = invoice_service.create_invoice(payload, load_store_config())
    except (InvoiceError, ValidationError, ConflictError) as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create invoice")
        return {"error": "Internal server error"}, 500

    return {"invoice": invoice.to_dict(include_items=True)}, 201


@invoices_bp.get("/<int:invoice_id>")
def get_invoice_route(invoice_id: int):
    invoice = invoice_service.get_invoice(invoice_id)
    if invoice is None:
        return {"error": "Invoice not found"}, 404
    return {"invoice": invoice.to_dict(include_items=True)}


@invoices_bp.patch("/<int:invoice_id>")
def update_invoice_route(invoice_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        invoice = invoice_service.update_invoice(invoice_id, payload)
    except (InvoiceError, ValidationError, MaterializationError) as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update invoice")
        return {"error": "Internal server error"}, 500

    return {"invoice": invoice.to_dict(include_items=True)}


@invoices_bp.post("/<int:invoice_id>/status")
def set_status_route(invoice_id: int):
    """Body: {payment_status: "pending" | "done"}"""
    payload = request.get_json(silent=True) or {}
    status = payload.get("payment_status")
    if not status:
        return {"error": "payment_status required"}, 400

    try:
        invoice = invoice_service.set_payment_status(invoice_id, status)
    except (InvoiceError, ValidationError, MaterializationError) as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to change invoice status")
        return {"error": "Internal server error"}, 500

    return {"invoice": invoice.to_dict()}


@invoices_bp.put("/<int:invoice_id>/items")
def replace_items_route(invoice_id: int):
    """Body: {items: [...]} (same line shape as create)"""
    payload = request.get_json(silent=True) or {}
    try:
        invoice = invoice_service.replace_invoice_items(invoice_id, payload.get("items"), load_store_config())
    except (InvoiceError, ValidationError) as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to replace invoice items")
        return {"error": "Internal server error"}, 500

    return {"invoice": invoice.to_dict(include_items=True)}


@invoices_bp.delete("/<int:invoice_id>")
def delete_invoice_route(invoice_id: int):
    if not invoice_service.delete_invoice(invoice_id):
        return {"error": "Invoice not found"}, 404
    return {"deleted": True}


@invoices_bp.get("/<int:invoice_id>/sales-records")
def list_sales_records_route(invoice_id: int):
    if invoice_service.get_invoice(invoice_id) is None:
        return {"error": "Invoice not found"}, 404

    records = (
        db.session.query(SalesRecord)
        .filter(SalesRecord.invoice_id == invoice_id)
        .order_by(SalesRecord.id.asc())
        .all()
    )
    return {"items": [r.to_dict() for r in records], "count": len(records)}
