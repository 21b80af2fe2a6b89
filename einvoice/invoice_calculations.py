"""Tax and totals engine.

All amounts are ``Decimal`` rounded half-up to two places. Every per-line,
per-scheme tax amount is rounded on its own; group and document totals add
the already rounded values, so ``tax_total.tax_amount`` always equals the sum
of its subtotals. A grouped document subtotal is the sum of rounded line
amounts, so its tax can sit a cent away from re-rounding
``taxable_amount * percent / 100`` (three lines of 1.05 at 10% give 0.33, not
0.32).

A line extension amount is ``quantity * unit_price`` less the line's own
allowances plus its own charges. Those line-level entries never appear in the
document allowance and charge totals.

Inputs are assumed to be validated upstream. Negative quantities or rates
outside 0..100 are not rejected here; the arithmetic simply follows them.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable

from einvoice.models import (
    AllowanceCharge,
    DocumentTotals,
    InvoiceLine,
    Item,
    LegalMonetaryTotal,
    LineItem,
    TaxCategory,
    TaxCategoryCode,
    TaxSchemeId,
    TaxSubtotal,
    TaxTotal,
    get_tax_scheme,
)


logger = logging.getLogger(__name__)

_DECIMAL_PLACES = Decimal("0.01")
_HUNDRED = Decimal("100")
_ZERO = Decimal("0.00")


def _to_decimal(value: Any) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_amount(value: Any) -> Decimal:
    return _to_decimal(value).quantize(_DECIMAL_PLACES, rounding=ROUND_HALF_UP)


def _sum(values: Iterable[Decimal]) -> Decimal:
    return round_amount(sum(values, _ZERO))


def line_extension_amount(line: LineItem) -> Decimal:
    amount = round_amount(line.net_total)
    for entry in line.allowance_charges:
        adjustment = round_amount(entry.amount)
        amount += adjustment if entry.charge_indicator else -adjustment
    return amount


def tax_category_for(scheme_id: TaxSchemeId, percent: Decimal) -> TaxCategory:
    code = TaxCategoryCode.ZERO if percent == 0 else TaxCategoryCode.STANDARD
    return TaxCategory(id=code, percent=percent, tax_scheme=get_tax_scheme(scheme_id))


def _tax_amount(taxable_amount: Decimal, percent: Decimal) -> Decimal:
    return round_amount(taxable_amount * percent / _HUNDRED)


@dataclass(frozen=True)
class LineTaxResult:
    tax_subtotals: list[TaxSubtotal]
    total_tax_amount: Decimal


def calculate_line_taxes(line: LineItem) -> LineTaxResult:
    # Every enabled scheme is applied to the full line amount; schemes never
    # compound on each other.
    base = line_extension_amount(line)
    subtotals: list[TaxSubtotal] = []
    for scheme_id, toggle in line.taxes.entries():
        if not toggle.enabled:
            continue
        subtotals.append(
            TaxSubtotal(
                taxable_amount=base,
                tax_amount=_tax_amount(base, toggle.percent),
                tax_category=tax_category_for(scheme_id, toggle.percent),
            )
        )
    return LineTaxResult(
        tax_subtotals=subtotals,
        total_tax_amount=_sum(st.tax_amount for st in subtotals),
    )


class _TaxGroup:
    __slots__ = ("category", "taxable_amount", "tax_amount")

    def __init__(self, category: TaxCategory) -> None:
        self.category = category
        self.taxable_amount = _ZERO
        self.tax_amount = _ZERO

    def add(self, taxable_amount: Decimal, tax_amount: Decimal) -> None:
        self.taxable_amount += taxable_amount
        self.tax_amount += tax_amount

    def to_subtotal(self) -> TaxSubtotal:
        return TaxSubtotal(
            taxable_amount=round_amount(self.taxable_amount),
            tax_amount=round_amount(self.tax_amount),
            tax_category=self.category,
        )


def calculate_document_tax_total(
    lines: Iterable[LineItem],
    allowance_charges: Iterable[AllowanceCharge] = (),
    *,
    allowance_tax_scheme: TaxSchemeId = TaxSchemeId.VAT,
) -> TaxTotal:
    """Aggregate line taxes by (scheme, percent), in first-seen order.

    Taxable allowances/charges carry no scheme of their own and are folded
    in under ``allowance_tax_scheme`` at their own percent.
    """
    groups: dict[tuple[TaxSchemeId, Decimal], _TaxGroup] = {}

    def _group(scheme_id: TaxSchemeId, percent: Decimal) -> _TaxGroup:
        key = (scheme_id, percent)
        group = groups.get(key)
        if group is None:
            group = groups[key] = _TaxGroup(tax_category_for(scheme_id, percent))
        return group

    for line in lines:
        for subtotal in calculate_line_taxes(line).tax_subtotals:
            category = subtotal.tax_category
            _group(category.tax_scheme.id, category.percent).add(subtotal.taxable_amount, subtotal.tax_amount)

    for entry in allowance_charges:
        if not entry.taxable or not entry.tax_percent:
            continue
        amount = round_amount(entry.amount)
        _group(allowance_tax_scheme, entry.tax_percent).add(amount, _tax_amount(amount, entry.tax_percent))

    subtotals = [group.to_subtotal() for group in groups.values()]
    return TaxTotal(tax_amount=_sum(st.tax_amount for st in subtotals), tax_subtotals=subtotals)


def _optional_amount(value: Decimal) -> Decimal | None:
    return None if value == 0 else value


def calculate_legal_monetary_total(
    lines: Iterable[LineItem],
    allowance_charges: Iterable[AllowanceCharge] = (),
    prepaid_amount: Any = 0,
    *,
    allowance_tax_scheme: TaxSchemeId = TaxSchemeId.VAT,
    tax_total: TaxTotal | None = None,
) -> LegalMonetaryTotal:
    lines = list(lines)
    allowance_charges = list(allowance_charges)

    line_total = _sum(line_extension_amount(line) for line in lines)
    allowance_total = _sum(round_amount(e.amount) for e in allowance_charges if not e.charge_indicator)
    charge_total = _sum(round_amount(e.amount) for e in allowance_charges if e.charge_indicator)
    tax_exclusive = line_total + charge_total - allowance_total

    if tax_total is None:
        tax_total = calculate_document_tax_total(
            lines, allowance_charges, allowance_tax_scheme=allowance_tax_scheme
        )
    tax_inclusive = tax_exclusive + tax_total.tax_amount
    prepaid = round_amount(prepaid_amount)

    return LegalMonetaryTotal(
        line_extension_amount=line_total,
        tax_exclusive_amount=round_amount(tax_exclusive),
        tax_inclusive_amount=round_amount(tax_inclusive),
        allowance_total_amount=_optional_amount(allowance_total),
        charge_total_amount=_optional_amount(charge_total),
        prepaid_amount=_optional_amount(prepaid),
        payable_amount=round_amount(tax_inclusive - prepaid),
    )


def compute_totals(
    lines: Iterable[LineItem],
    allowance_charges: Iterable[AllowanceCharge] = (),
    prepaid_amount: Any = 0,
    *,
    allowance_tax_scheme: TaxSchemeId = TaxSchemeId.VAT,
) -> DocumentTotals:
    lines = list(lines)
    allowance_charges = list(allowance_charges)
    tax_total = calculate_document_tax_total(
        lines, allowance_charges, allowance_tax_scheme=allowance_tax_scheme
    )
    legal_total = calculate_legal_monetary_total(
        lines,
        allowance_charges,
        prepaid_amount,
        allowance_tax_scheme=allowance_tax_scheme,
        tax_total=tax_total,
    )
    logger.debug(
        "totals.computed lines=%s allowance_charges=%s tax=%s payable=%s",
        len(lines),
        len(allowance_charges),
        tax_total.tax_amount,
        legal_total.payable_amount,
    )
    return DocumentTotals(tax_total=tax_total, legal_monetary_total=legal_total)


def build_invoice_line(line: LineItem) -> InvoiceLine:
    result = calculate_line_taxes(line)
    return InvoiceLine(
        id=line.id,
        quantity=line.quantity,
        unit_code=line.unit_code,
        line_extension_amount=line_extension_amount(line),
        allowance_charges=list(line.allowance_charges),
        tax_total=TaxTotal(tax_amount=result.total_tax_amount, tax_subtotals=result.tax_subtotals),
        item=Item(name=line.name, description=line.description or None),
        price_amount=line.unit_price,
    )


def tax_breakdown_summary(tax_total: TaxTotal) -> list[dict[str, Any]]:
    return [
        {
            "tax_scheme": st.tax_category.tax_scheme.name,
            "taxable_amount": st.taxable_amount,
            "tax_amount": st.tax_amount,
            "percent": st.tax_category.percent,
        }
        for st in tax_total.tax_subtotals
    ]


def is_exchange_rate_required(currency: str, domestic_currency: str = "KHR") -> bool:
    return (currency or "").strip().upper() != (domestic_currency or "").strip().upper()
