from __future__ import annotations

import re
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from einvoice.errors import UnknownTaxSchemeError


# Code points XML 1.0 cannot carry, even escaped.
_XML_ILLEGAL = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]")


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("*")
    @classmethod
    def _xml_compatible_text(cls, value: Any) -> Any:
        if isinstance(value, str) and _XML_ILLEGAL.search(value):
            raise ValueError("text contains characters that cannot be written to XML")
        return value


# --- tax reference data ---

class TaxSchemeId(str, Enum):
    VAT = "VAT"
    SP = "SP"
    PLT = "PLT"
    AT = "AT"


class TaxCategoryCode(str, Enum):
    STANDARD = "S"
    ZERO = "Z"


class TaxScheme(_Frozen):
    id: TaxSchemeId
    name: str
    description: str = ""


TAX_SCHEMES: dict[TaxSchemeId, TaxScheme] = {
    TaxSchemeId.VAT: TaxScheme(id=TaxSchemeId.VAT, name="Value Added Tax", description="Standard VAT"),
    TaxSchemeId.SP: TaxScheme(id=TaxSchemeId.SP, name="Specific Tax", description="Specific Tax on certain goods"),
    TaxSchemeId.PLT: TaxScheme(id=TaxSchemeId.PLT, name="Public Lighting Tax", description="Public Lighting Tax"),
    TaxSchemeId.AT: TaxScheme(id=TaxSchemeId.AT, name="Accommodation Tax", description="Accommodation Tax"),
}

DEFAULT_TAX_RATES: dict[TaxSchemeId, Decimal] = {
    TaxSchemeId.VAT: Decimal("10"),
    TaxSchemeId.SP: Decimal("10"),
    TaxSchemeId.PLT: Decimal("5"),
    TaxSchemeId.AT: Decimal("2"),
}


def get_tax_scheme(scheme_id: Any) -> TaxScheme:
    """Resolve a scheme id (enum member or string, case-insensitive).

    Unknown ids raise ``UnknownTaxSchemeError`` right away.
    """
    if isinstance(scheme_id, TaxSchemeId):
        return TAX_SCHEMES[scheme_id]
    try:
        key = TaxSchemeId(str(scheme_id or "").strip().upper())
    except ValueError:
        raise UnknownTaxSchemeError(scheme_id) from None
    return TAX_SCHEMES[key]


class TaxCategory(_Frozen):
    id: TaxCategoryCode = TaxCategoryCode.STANDARD
    percent: Decimal
    tax_scheme: TaxScheme


class TaxSubtotal(_Frozen):
    taxable_amount: Decimal
    tax_amount: Decimal
    tax_category: TaxCategory


class TaxTotal(_Frozen):
    tax_amount: Decimal
    tax_subtotals: List[TaxSubtotal] = Field(default_factory=list)


# --- line input ---

class TaxToggle(_Frozen):
    enabled: bool = False
    percent: Decimal = Decimal("0")


def _toggle(scheme_id: TaxSchemeId) -> TaxToggle:
    return TaxToggle(percent=DEFAULT_TAX_RATES[scheme_id])


_SCHEME_FIELDS: dict[TaxSchemeId, str] = {
    TaxSchemeId.VAT: "vat",
    TaxSchemeId.SP: "sp",
    TaxSchemeId.PLT: "plt",
    TaxSchemeId.AT: "at",
}


class LineTaxes(_Frozen):
    """One toggle per tax scheme; every scheme is always present."""

    vat: TaxToggle = Field(default_factory=lambda: _toggle(TaxSchemeId.VAT))
    sp: TaxToggle = Field(default_factory=lambda: _toggle(TaxSchemeId.SP))
    plt: TaxToggle = Field(default_factory=lambda: _toggle(TaxSchemeId.PLT))
    at: TaxToggle = Field(default_factory=lambda: _toggle(TaxSchemeId.AT))

    @model_validator(mode="before")
    @classmethod
    def _resolve_scheme_keys(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        resolved: dict[str, Any] = {}
        for key, value in data.items():
            scheme = get_tax_scheme(key)
            resolved[_SCHEME_FIELDS[scheme.id]] = value
        return resolved

    def entries(self) -> Iterator[tuple[TaxSchemeId, TaxToggle]]:
        for scheme_id, field_name in _SCHEME_FIELDS.items():
            yield scheme_id, getattr(self, field_name)

    @classmethod
    def enabled_for(cls, **rates: Any) -> "LineTaxes":
        """``LineTaxes.enabled_for(vat=10, sp=5)`` enables just those schemes."""
        return cls(**{name: TaxToggle(enabled=True, percent=Decimal(str(rate))) for name, rate in rates.items()})


class AllowanceCharge(_Frozen):
    """Document level, or attached to a single line (where taxable is ignored)."""

    charge_indicator: bool = False
    reason: str = ""
    amount: Decimal
    taxable: bool = False
    tax_percent: Optional[Decimal] = None


class LineItem(_Frozen):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str = ""
    quantity: Decimal
    unit_code: str = "none"
    unit_price: Decimal
    taxes: LineTaxes = Field(default_factory=LineTaxes)
    allowance_charges: List[AllowanceCharge] = Field(default_factory=list)

    @property
    def net_total(self) -> Decimal:
        return self.quantity * self.unit_price


class LegalMonetaryTotal(_Frozen):
    line_extension_amount: Decimal
    tax_exclusive_amount: Decimal
    tax_inclusive_amount: Decimal
    allowance_total_amount: Optional[Decimal] = None
    charge_total_amount: Optional[Decimal] = None
    prepaid_amount: Optional[Decimal] = None
    payable_amount: Decimal


class DocumentTotals(_Frozen):
    tax_total: TaxTotal
    legal_monetary_total: LegalMonetaryTotal


# --- parties ---

class PostalAddress(_Frozen):
    street_name: str = Field(min_length=1)
    city_name: str = Field(min_length=1)
    country_code: str = Field(min_length=2, max_length=3)
    floor: Optional[str] = None
    room: Optional[str] = None
    additional_street_name: Optional[str] = None
    building_name: Optional[str] = None
    postal_zone: Optional[str] = None


class PartyTaxScheme(_Frozen):
    company_id: str = Field(min_length=1)
    tax_scheme: TaxScheme = TAX_SCHEMES[TaxSchemeId.VAT]


class PartyLegalEntity(_Frozen):
    registration_name: str = Field(min_length=1)
    company_id: str = Field(min_length=1)


class Contact(_Frozen):
    telephone: Optional[str] = None
    email: Optional[str] = None


class Party(_Frozen):
    endpoint_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    postal_address: PostalAddress
    party_tax_scheme: PartyTaxScheme
    party_legal_entity: PartyLegalEntity
    contact: Optional[Contact] = None


# --- document ---

class DocumentType(str, Enum):
    INVOICE = "388"
    COMMERCIAL_INVOICE = "380"
    CREDIT_NOTE = "381"
    DEBIT_NOTE = "383"


class Item(_Frozen):
    name: str = Field(min_length=1)
    description: Optional[str] = None


class InvoiceLine(_Frozen):
    id: str = Field(min_length=1)
    quantity: Decimal
    unit_code: str
    line_extension_amount: Decimal
    allowance_charges: List[AllowanceCharge] = Field(default_factory=list)
    tax_total: TaxTotal
    item: Item
    price_amount: Decimal


class Attachment(_Frozen):
    embedded_binary_object: Optional[str] = None
    external_reference_uri: Optional[str] = None


class AdditionalDocumentReference(_Frozen):
    id: str = Field(min_length=1)
    description: Optional[str] = None
    attachment: Optional[Attachment] = None


class BillingReference(_Frozen):
    invoice_id: str = Field(min_length=1)
    invoice_uuid: Optional[str] = None


class ExchangeRate(_Frozen):
    source_currency_code: str
    target_currency_code: str
    calculation_rate: Decimal


def _require_billing_reference(document_type: DocumentType, reference: Optional[BillingReference]) -> None:
    if document_type in (DocumentType.CREDIT_NOTE, DocumentType.DEBIT_NOTE) and reference is None:
        raise ValueError("Credit and debit notes require a billing reference to the original invoice")


class InvoiceDocument(_Frozen):
    id: str = Field(min_length=1)
    issue_date: date
    due_date: Optional[date] = None
    document_type: DocumentType = DocumentType.INVOICE
    currency: str = Field(min_length=3, max_length=3)
    note: Optional[str] = None
    billing_reference: Optional[BillingReference] = None
    additional_document_references: List[AdditionalDocumentReference] = Field(default_factory=list)
    supplier: Party
    customer: Party
    payment_terms_note: Optional[str] = None
    allowance_charges: List[AllowanceCharge] = Field(default_factory=list)
    tax_exchange_rate: Optional[ExchangeRate] = None
    tax_total: TaxTotal
    legal_monetary_total: LegalMonetaryTotal
    lines: List[InvoiceLine] = Field(min_length=1)

    @model_validator(mode="after")
    def _notes_reference_an_invoice(self) -> "InvoiceDocument":
        _require_billing_reference(self.document_type, self.billing_reference)
        return self


# --- request payloads ---

class TotalsRequest(_Frozen):
    lines: List[LineItem] = Field(default_factory=list)
    allowance_charges: List[AllowanceCharge] = Field(default_factory=list)
    prepaid_amount: Decimal = Decimal("0")


class InvoiceRequest(TotalsRequest):
    lines: List[LineItem] = Field(min_length=1)
    id: str = Field(min_length=1)
    issue_date: date
    due_date: Optional[date] = None
    document_type: DocumentType = DocumentType.INVOICE
    currency: Optional[str] = None
    exchange_rate: Optional[Decimal] = None
    note: Optional[str] = None
    billing_reference: Optional[BillingReference] = None
    additional_document_references: List[AdditionalDocumentReference] = Field(default_factory=list)
    supplier: Party
    customer: Party
    payment_terms_note: Optional[str] = None

    @model_validator(mode="after")
    def _notes_reference_an_invoice(self) -> "InvoiceRequest":
        _require_billing_reference(self.document_type, self.billing_reference)
        return self
