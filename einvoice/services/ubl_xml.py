"""UBL 2.1 XML builder for invoices, credit notes and debit notes.

Element order follows the CamInvoice mapping:

- Invoice: https://doc-caminv.netlify.app/invoice-structure/invoice
- Credit Note: https://doc-caminv.netlify.app/invoice-structure/credit-note
- Debit Note: https://doc-caminv.netlify.app/invoice-structure/debit-note

Text goes through lxml text nodes, which escape reserved characters.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

from lxml import etree

from einvoice.errors import XmlTooLargeError
from einvoice.invoice_calculations import round_amount, tax_category_for
from einvoice.models import (
    AdditionalDocumentReference,
    AllowanceCharge,
    BillingReference,
    DocumentType,
    ExchangeRate,
    InvoiceDocument,
    InvoiceLine,
    LegalMonetaryTotal,
    Party,
    TaxCategory,
    TaxSchemeId,
    TaxTotal,
)
from einvoice.settings import get_settings


logger = logging.getLogger(__name__)

CAC_NS = "urn:oasis:names:specification:ubl:schema:xsd:CommonAggregateComponents-2"
CBC_NS = "urn:oasis:names:specification:ubl:schema:xsd:CommonBasicComponents-2"
UBL_VERSION = "2.1"
TYPE_CODE_LIST_ID = "UN/ECE 1001 Subset"


@dataclass(frozen=True)
class _Layout:
    root: str
    namespace: str
    type_code_tag: Optional[str]
    line_tag: str
    quantity_tag: str
    monetary_total_tag: str
    has_due_date: bool
    # Invoice-2 puts PrepaidPayment and AllowanceCharge ahead of
    # TaxExchangeRate; the note schemas have no PrepaidPayment and put the
    # exchange rate first.
    has_prepaid_payment: bool = False
    exchange_rate_first: bool = True


_INVOICE_LAYOUT = _Layout(
    root="Invoice",
    namespace="urn:oasis:names:specification:ubl:schema:xsd:Invoice-2",
    type_code_tag="InvoiceTypeCode",
    line_tag="InvoiceLine",
    quantity_tag="InvoicedQuantity",
    monetary_total_tag="LegalMonetaryTotal",
    has_due_date=True,
    has_prepaid_payment=True,
    exchange_rate_first=False,
)

_LAYOUTS: dict[DocumentType, _Layout] = {
    DocumentType.INVOICE: _INVOICE_LAYOUT,
    DocumentType.COMMERCIAL_INVOICE: _INVOICE_LAYOUT,
    DocumentType.CREDIT_NOTE: _Layout(
        root="CreditNote",
        namespace="urn:oasis:names:specification:ubl:schema:xsd:CreditNote-2",
        type_code_tag="CreditNoteTypeCode",
        line_tag="CreditNoteLine",
        quantity_tag="CreditedQuantity",
        monetary_total_tag="LegalMonetaryTotal",
        has_due_date=False,
    ),
    # UBL DebitNote has no type code element.
    DocumentType.DEBIT_NOTE: _Layout(
        root="DebitNote",
        namespace="urn:oasis:names:specification:ubl:schema:xsd:DebitNote-2",
        type_code_tag=None,
        line_tag="DebitNoteLine",
        quantity_tag="DebitedQuantity",
        monetary_total_tag="RequestedMonetaryTotal",
        has_due_date=False,
    ),
}


def _format_amount(value: Any) -> str:
    return format(round_amount(value), "f")


def _format_number(value: Any) -> str:
    # 10.00 -> "10", 12.50 -> "12.5"
    number = value if isinstance(value, Decimal) else Decimal(str(value))
    text = format(number.normalize(), "f")
    return "0" if text in ("-0", "") else text


def _present(value: Optional[str]) -> bool:
    return value is not None and str(value).strip() != ""


def _cac(parent: etree._Element, name: str) -> etree._Element:
    return etree.SubElement(parent, f"{{{CAC_NS}}}{name}")


def _cbc(parent: etree._Element, name: str, text: Any, **attrib: str) -> etree._Element:
    el = etree.SubElement(parent, f"{{{CBC_NS}}}{name}", attrib)
    el.text = "" if text is None else str(text)
    return el


def _cbc_optional(parent: etree._Element, name: str, text: Optional[str]) -> None:
    if _present(text):
        _cbc(parent, name, text)


def _amount(parent: etree._Element, name: str, value: Any, currency: str) -> etree._Element:
    return _cbc(parent, name, _format_amount(value), currencyID=currency)


def _tax_scheme(parent: etree._Element, scheme_id: str) -> None:
    _cbc(_cac(parent, "TaxScheme"), "ID", scheme_id)


def _tax_category(parent: etree._Element, category: TaxCategory, tag: str = "TaxCategory") -> None:
    el = _cac(parent, tag)
    _cbc(el, "ID", category.id.value)
    _cbc(el, "Percent", _format_number(category.percent))
    _tax_scheme(el, category.tax_scheme.id.value)


def _render_party(parent: etree._Element, wrapper_tag: str, party: Party) -> None:
    """Shared by supplier and customer so both blocks keep the same shape."""
    wrapper = _cac(parent, wrapper_tag)
    el = _cac(wrapper, "Party")
    _cbc(el, "EndpointID", party.endpoint_id)
    _cbc(_cac(el, "PartyName"), "Name", party.name)

    address = party.postal_address
    postal = _cac(el, "PostalAddress")
    _cbc_optional(postal, "Floor", address.floor)
    _cbc_optional(postal, "Room", address.room)
    _cbc(postal, "StreetName", address.street_name)
    _cbc_optional(postal, "AdditionalStreetName", address.additional_street_name)
    _cbc_optional(postal, "BuildingName", address.building_name)
    _cbc(postal, "CityName", address.city_name)
    _cbc_optional(postal, "PostalZone", address.postal_zone)
    _cbc(_cac(postal, "Country"), "IdentificationCode", address.country_code)

    tax_scheme = _cac(el, "PartyTaxScheme")
    _cbc(tax_scheme, "CompanyID", party.party_tax_scheme.company_id)
    _tax_scheme(tax_scheme, party.party_tax_scheme.tax_scheme.id.value)

    legal = _cac(el, "PartyLegalEntity")
    _cbc(legal, "RegistrationName", party.party_legal_entity.registration_name)
    _cbc(legal, "CompanyID", party.party_legal_entity.company_id)

    contact = party.contact
    if contact is not None and (_present(contact.telephone) or _present(contact.email)):
        contact_el = _cac(el, "Contact")
        _cbc_optional(contact_el, "Telephone", contact.telephone)
        _cbc_optional(contact_el, "ElectronicMail", contact.email)


def _render_tax_total(parent: etree._Element, tax_total: TaxTotal, currency: str) -> None:
    el = _cac(parent, "TaxTotal")
    _amount(el, "TaxAmount", tax_total.tax_amount, currency)
    for subtotal in tax_total.tax_subtotals:
        st = _cac(el, "TaxSubtotal")
        _amount(st, "TaxableAmount", subtotal.taxable_amount, currency)
        _amount(st, "TaxAmount", subtotal.tax_amount, currency)
        _tax_category(st, subtotal.tax_category)


def _render_allowance_charge(
    parent: etree._Element,
    entry: AllowanceCharge,
    currency: str,
    category: Optional[TaxCategory] = None,
) -> None:
    el = _cac(parent, "AllowanceCharge")
    _cbc(el, "ChargeIndicator", "true" if entry.charge_indicator else "false")
    _cbc_optional(el, "AllowanceChargeReason", entry.reason)
    _amount(el, "Amount", entry.amount, currency)
    if category is not None:
        _tax_category(el, category)


def _render_document_reference(parent: etree._Element, ref: AdditionalDocumentReference) -> None:
    el = _cac(parent, "AdditionalDocumentReference")
    _cbc(el, "ID", ref.id)
    _cbc_optional(el, "DocumentDescription", ref.description)
    attachment = ref.attachment
    if attachment is None:
        return
    if not (_present(attachment.embedded_binary_object) or _present(attachment.external_reference_uri)):
        return
    att = _cac(el, "Attachment")
    _cbc_optional(att, "EmbeddedDocumentBinaryObject", attachment.embedded_binary_object)
    if _present(attachment.external_reference_uri):
        _cbc(_cac(att, "ExternalReference"), "URI", attachment.external_reference_uri)


def _render_billing_reference(parent: etree._Element, ref: BillingReference) -> None:
    inner = _cac(_cac(parent, "BillingReference"), "InvoiceDocumentReference")
    _cbc(inner, "ID", ref.invoice_id)
    _cbc_optional(inner, "UUID", ref.invoice_uuid)


def _render_exchange_rate(parent: etree._Element, rate: ExchangeRate) -> None:
    el = _cac(parent, "TaxExchangeRate")
    _cbc(el, "SourceCurrencyCode", rate.source_currency_code)
    _cbc(el, "TargetCurrencyCode", rate.target_currency_code)
    _cbc(el, "CalculationRate", _format_number(rate.calculation_rate))


def _render_monetary_total(parent: etree._Element, tag: str, total: LegalMonetaryTotal, currency: str) -> None:
    el = _cac(parent, tag)
    _amount(el, "LineExtensionAmount", total.line_extension_amount, currency)
    _amount(el, "TaxExclusiveAmount", total.tax_exclusive_amount, currency)
    _amount(el, "TaxInclusiveAmount", total.tax_inclusive_amount, currency)
    if total.allowance_total_amount is not None:
        _amount(el, "AllowanceTotalAmount", total.allowance_total_amount, currency)
    if total.charge_total_amount is not None:
        _amount(el, "ChargeTotalAmount", total.charge_total_amount, currency)
    if total.prepaid_amount is not None:
        _amount(el, "PrepaidAmount", total.prepaid_amount, currency)
    _amount(el, "PayableAmount", total.payable_amount, currency)


def _render_line(parent: etree._Element, line: InvoiceLine, layout: _Layout, currency: str) -> None:
    el = _cac(parent, layout.line_tag)
    _cbc(el, "ID", line.id)
    _cbc(el, layout.quantity_tag, _format_number(line.quantity), unitCode=line.unit_code)
    _amount(el, "LineExtensionAmount", line.line_extension_amount, currency)
    for entry in line.allowance_charges:
        _render_allowance_charge(el, entry, currency)
    _render_tax_total(el, line.tax_total, currency)

    item = _cac(el, "Item")
    _cbc_optional(item, "Description", line.item.description)
    _cbc(item, "Name", line.item.name)
    for subtotal in line.tax_total.tax_subtotals:
        _tax_category(item, subtotal.tax_category, tag="ClassifiedTaxCategory")

    _amount(_cac(el, "Price"), "PriceAmount", line.price_amount, currency)


def _allowance_category(entry: AllowanceCharge, scheme_id: TaxSchemeId) -> Optional[TaxCategory]:
    if not entry.taxable or not entry.tax_percent:
        return None
    return tax_category_for(scheme_id, entry.tax_percent)


def build_invoice_tree(
    document: InvoiceDocument,
    *,
    allowance_tax_scheme: TaxSchemeId = TaxSchemeId.VAT,
) -> etree._Element:
    layout = _LAYOUTS[document.document_type]
    currency = document.currency
    root = etree.Element(
        f"{{{layout.namespace}}}{layout.root}",
        nsmap={"cac": CAC_NS, "cbc": CBC_NS, None: layout.namespace},
    )

    _cbc(root, "UBLVersionID", UBL_VERSION)
    _cbc(root, "ID", document.id)
    _cbc(root, "IssueDate", document.issue_date.isoformat())
    if layout.has_due_date and document.due_date is not None:
        _cbc(root, "DueDate", document.due_date.isoformat())
    if layout.type_code_tag is not None:
        _cbc(root, layout.type_code_tag, document.document_type.value, listID=TYPE_CODE_LIST_ID)
    _cbc_optional(root, "Note", document.note)
    _cbc(root, "DocumentCurrencyCode", currency)

    if document.billing_reference is not None:
        _render_billing_reference(root, document.billing_reference)
    for ref in document.additional_document_references:
        _render_document_reference(root, ref)

    _render_party(root, "AccountingSupplierParty", document.supplier)
    _render_party(root, "AccountingCustomerParty", document.customer)

    if _present(document.payment_terms_note):
        _cbc(_cac(root, "PaymentTerms"), "Note", document.payment_terms_note)
    if layout.exchange_rate_first and document.tax_exchange_rate is not None:
        _render_exchange_rate(root, document.tax_exchange_rate)
    prepaid = document.legal_monetary_total.prepaid_amount
    if layout.has_prepaid_payment and prepaid is not None:
        _amount(_cac(root, "PrepaidPayment"), "PaidAmount", prepaid, currency)
    for entry in document.allowance_charges:
        _render_allowance_charge(root, entry, currency, _allowance_category(entry, allowance_tax_scheme))
    if not layout.exchange_rate_first and document.tax_exchange_rate is not None:
        _render_exchange_rate(root, document.tax_exchange_rate)

    _render_tax_total(root, document.tax_total, currency)
    _render_monetary_total(root, layout.monetary_total_tag, document.legal_monetary_total, currency)

    for line in document.lines:
        _render_line(root, line, layout, currency)
    return root


def serialize_invoice(
    document: InvoiceDocument,
    *,
    allowance_tax_scheme: TaxSchemeId = TaxSchemeId.VAT,
) -> str:
    root = build_invoice_tree(document, allowance_tax_scheme=allowance_tax_scheme)
    xml = etree.tostring(root, xml_declaration=True, encoding="UTF-8").decode("utf-8")
    logger.debug(
        "ubl.serialized id=%s type=%s lines=%s bytes=%s",
        document.id,
        document.document_type.value,
        len(document.lines),
        len(xml.encode("utf-8")),
    )
    return xml


def check_xml_size(xml: str, limit: int | None = None) -> int:
    if limit is None:
        limit = get_settings().max_xml_bytes
    size = len(xml.encode("utf-8"))
    if size > limit:
        raise XmlTooLargeError(size, limit)
    return size
