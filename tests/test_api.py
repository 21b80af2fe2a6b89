from __future__ import annotations

from lxml import etree
import pytest
from fastapi.testclient import TestClient

from einvoice.main import app
from einvoice.services.ubl_xml import CBC_NS


@pytest.fixture()
def client(monkeypatch: pytest.MonkeyPatch) -> TestClient:
    for name in ("EINV_MAX_XML_BYTES", "EINV_DEFAULT_CURRENCY", "EINV_ALLOWANCE_TAX_SCHEME"):
        monkeypatch.delenv(name, raising=False)
    return TestClient(app)


def _party(name: str, endpoint_id: str) -> dict:
    return {
        "endpoint_id": endpoint_id,
        "name": name,
        "postal_address": {"street_name": "Street 271", "city_name": "Phnom Penh", "country_code": "KH"},
        "party_tax_scheme": {"company_id": f"TIN-{endpoint_id}"},
        "party_legal_entity": {"registration_name": name, "company_id": f"REG-{endpoint_id}"},
    }


def _line(**taxes) -> dict:
    return {
        "id": "1",
        "name": "Consulting",
        "quantity": "2",
        "unit_price": "50.00",
        "taxes": taxes or {"VAT": {"enabled": True, "percent": "10"}},
    }


def _invoice_payload(**overrides) -> dict:
    payload = {
        "id": "INV-2024-0001",
        "issue_date": "2024-03-01",
        "currency": "KHR",
        "supplier": _party("Angkor Supplies Co., Ltd.", "KHUID00001234"),
        "customer": _party("Mekong Trading", "KHUID00005678"),
        "lines": [_line()],
    }
    payload.update(overrides)
    return payload


def test_health(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_totals_endpoint(client: TestClient) -> None:
    response = client.post(
        "/api/totals",
        json={
            "lines": [_line()],
            "allowance_charges": [{"charge_indicator": False, "reason": "Loyalty", "amount": "20.00"}],
        },
    )
    assert response.status_code == 200
    body = response.json()
    legal = body["legal_monetary_total"]
    assert legal["tax_exclusive_amount"] == "80.00"
    assert legal["tax_inclusive_amount"] == "90.00"
    assert legal["allowance_total_amount"] == "20.00"
    assert legal["charge_total_amount"] is None
    assert body["tax_total"]["tax_amount"] == "10.00"
    assert body["tax_total"]["tax_subtotals"][0]["tax_category"]["tax_scheme"]["id"] == "VAT"


def test_totals_rejects_unknown_tax_scheme(client: TestClient) -> None:
    response = client.post("/api/totals", json={"lines": [_line(GST={"enabled": True, "percent": "7"})]})
    assert response.status_code == 422


def test_document_xml_endpoint(client: TestClient) -> None:
    response = client.post("/api/documents/xml", json=_invoice_payload())
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/xml")

    root = etree.fromstring(response.content)
    assert root.findtext(f"{{{CBC_NS}}}ID") == "INV-2024-0001"
    assert root.findtext(f"{{{CBC_NS}}}DocumentCurrencyCode") == "KHR"


def test_credit_note_without_reference_is_rejected(client: TestClient) -> None:
    response = client.post("/api/documents/xml", json=_invoice_payload(document_type="381"))
    assert response.status_code == 422


def test_document_xml_size_limit(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EINV_MAX_XML_BYTES", "200")
    response = client.post("/api/documents/xml", json=_invoice_payload())
    assert response.status_code == 413
    assert "exceeds the limit of 200 bytes" in response.json()["detail"]


def test_control_characters_in_party_name_are_rejected(client: TestClient) -> None:
    payload = _invoice_payload(supplier=_party("Acme\u000bLtd", "KHUID00001234"))
    response = client.post("/api/documents/xml", json=payload)
    assert response.status_code == 422
