from __future__ import annotations

from datetime import date
from decimal import Decimal
from pathlib import Path
import sys

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from einvoice.models import (  # noqa: E402
    Contact,
    InvoiceRequest,
    LineItem,
    LineTaxes,
    Party,
    PartyLegalEntity,
    PartyTaxScheme,
    PostalAddress,
)


def make_party(name: str, endpoint_id: str, **address: str) -> Party:
    return Party(
        endpoint_id=endpoint_id,
        name=name,
        postal_address=PostalAddress(
            street_name=address.pop("street_name", "Street 271"),
            city_name=address.pop("city_name", "Phnom Penh"),
            country_code=address.pop("country_code", "KH"),
            **address,
        ),
        party_tax_scheme=PartyTaxScheme(company_id=f"TIN-{endpoint_id}"),
        party_legal_entity=PartyLegalEntity(registration_name=name, company_id=f"REG-{endpoint_id}"),
    )


def make_line(line_id: str = "1", quantity: str = "2", unit_price: str = "50.00", **rates) -> LineItem:
    return LineItem(
        id=line_id,
        name=f"Item {line_id}",
        quantity=Decimal(quantity),
        unit_price=Decimal(unit_price),
        taxes=LineTaxes.enabled_for(**rates) if rates else LineTaxes(),
    )


@pytest.fixture()
def supplier() -> Party:
    return make_party("Angkor Supplies Co., Ltd.", "KHUID00001234")


@pytest.fixture()
def customer() -> Party:
    return make_party(
        "Mekong Trading",
        "KHUID00005678",
        postal_zone="12000",
    )


@pytest.fixture()
def customer_with_contact(customer: Party) -> Party:
    return customer.model_copy(update={"contact": Contact(telephone="+855 12 345 678", email="ap@mekong.example")})


@pytest.fixture()
def invoice_request(supplier: Party, customer: Party) -> InvoiceRequest:
    return InvoiceRequest(
        id="INV-2024-0001",
        issue_date=date(2024, 3, 1),
        currency="KHR",
        supplier=supplier,
        customer=customer,
        lines=[make_line("1", "2", "50.00", vat=10)],
    )
