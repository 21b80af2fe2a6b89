from __future__ import annotations

import logging

from einvoice.invoice_calculations import build_invoice_line, compute_totals, is_exchange_rate_required
from einvoice.models import ExchangeRate, InvoiceDocument, InvoiceRequest
from einvoice.settings import Settings, get_settings


logger = logging.getLogger(__name__)


def _exchange_rate(request: InvoiceRequest, currency: str, settings: Settings) -> ExchangeRate | None:
    if not is_exchange_rate_required(currency, settings.domestic_currency):
        return None
    if request.exchange_rate is None:
        # Upstream form validation owns this; the document is still built.
        logger.warning(
            "documents.exchange_rate_missing id=%s currency=%s domestic=%s",
            request.id,
            currency,
            settings.domestic_currency,
        )
        return None
    return ExchangeRate(
        source_currency_code=currency,
        target_currency_code=settings.domestic_currency,
        calculation_rate=request.exchange_rate,
    )


def assemble_invoice_document(request: InvoiceRequest, settings: Settings | None = None) -> InvoiceDocument:
    settings = settings or get_settings()
    currency = (request.currency or settings.default_currency).strip().upper()

    totals = compute_totals(
        request.lines,
        request.allowance_charges,
        request.prepaid_amount,
        allowance_tax_scheme=settings.allowance_tax_scheme,
    )
    document = InvoiceDocument(
        id=request.id,
        issue_date=request.issue_date,
        due_date=request.due_date,
        document_type=request.document_type,
        currency=currency,
        note=request.note,
        billing_reference=request.billing_reference,
        additional_document_references=request.additional_document_references,
        supplier=request.supplier,
        customer=request.customer,
        payment_terms_note=request.payment_terms_note,
        allowance_charges=request.allowance_charges,
        tax_exchange_rate=_exchange_rate(request, currency, settings),
        tax_total=totals.tax_total,
        legal_monetary_total=totals.legal_monetary_total,
        lines=[build_invoice_line(line) for line in request.lines],
    )
    logger.info(
        "documents.assembled id=%s type=%s currency=%s lines=%s payable=%s",
        document.id,
        document.document_type.value,
        currency,
        len(document.lines),
        document.legal_monetary_total.payable_amount,
    )
    return document
