"""
PDF Service - turns an invoice snapshot into PDF bytes.

The renderer is an application extension (app.extensions["invoice_renderer"])
so it can be swapped without touching the workflow service.
"""

from __future__ import annotations

import logging

from flask import render_template

logger = logging.getLogger(__name__)


class PdfRenderingError(RuntimeError):
    """Raised when the PDF backend is unavailable or fails."""


class WeasyPrintInvoiceRenderer:
    """Renders templates/invoice_pdf.html with WeasyPrint."""

    template_name = "invoice_pdf.html"

    def render(self, snapshot: dict) -> bytes:
        try:
            from weasyprint import HTML
        except (ImportError, OSError) as exc:
            raise PdfRenderingError(
                "PDF generation is currently unavailable due to missing system dependencies."
            ) from exc

        html_string = render_template(self.template_name, invoice=snapshot)
        try:
            pdf_bytes = HTML(string=html_string).write_pdf()
        except Exception as exc:
            logger.error("PDF generation failed for invoice %s: %s", snapshot.get("invoiceNumber"), exc)
            raise PdfRenderingError("PDF generation failed") from exc

        logger.info("Generated PDF for invoice %s", snapshot.get("invoiceNumber"))
        return pdf_bytes
