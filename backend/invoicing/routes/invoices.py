# Overview: Flask API routes for invoice operations; parses input and returns JSON responses.

import io

from flask import Blueprint, request, jsonify, g, send_file

from ..decorators import require_auth, require_role
from ..models import Role
from ..services import invoice_service


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


@invoices_bp.get("")
@require_auth
def list_invoices_route():
    """Admins get every invoice, users get their own. Newest first."""
    invoices = invoice_service.list_invoices(g.identity)
    return jsonify([invoice.to_dict() for invoice in invoices])


@invoices_bp.get("/<int:invoice_id>")
@require_auth
def get_invoice_route(invoice_id: int):
    invoice = invoice_service.get_invoice(g.identity, invoice_id)
    return jsonify(invoice.to_dict())


@invoices_bp.post("")
@require_auth
@require_role(Role.ADMIN)
def create_invoice_route():
    data = request.get_json(silent=True) or {}
    invoice = invoice_service.create_invoice(
        g.identity,
        customer_name=data.get("customerName"),
        due_date=data.get("dueDate"),
        assigned_user_id=data.get("assignedUserId"),
        items=data.get("items"),
    )
    return jsonify(invoice.to_dict()), 201


@invoices_bp.put("/<int:invoice_id>/status")
@require_auth
def update_status_route(invoice_id: int):
    data = request.get_json(silent=True) or {}
    invoice = invoice_service.update_status(g.identity, invoice_id, data.get("status"))
    return jsonify({"message": "Invoice status updated successfully", "invoice": invoice.to_dict()})


@invoices_bp.post("/<int:invoice_id>/accept")
@require_auth
@require_role(Role.USER)
def accept_invoice_route(invoice_id: int):
    invoice = invoice_service.accept_invoice(g.identity, invoice_id)
    return jsonify({"message": "Invoice accepted successfully", "invoice": invoice.to_dict()})


@invoices_bp.post("/<int:invoice_id>/reject")
@require_auth
@require_role(Role.USER)
def reject_invoice_route(invoice_id: int):
    data = request.get_json(silent=True) or {}
    invoice = invoice_service.reject_invoice(g.identity, invoice_id, data.get("reason"))
    return jsonify({"message": "Invoice rejected successfully", "invoice": invoice.to_dict()})


@invoices_bp.get("/<int:invoice_id>/download")
@require_auth
def download_invoice_route(invoice_id: int):
    filename, pdf_bytes = invoice_service.download_invoice(g.identity, invoice_id)
    return send_file(
        io.BytesIO(pdf_bytes),
        mimetype="application/pdf",
        as_attachment=True,
        download_name=filename,
    )
