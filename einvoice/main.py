from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Response
from pydantic import ValidationError

from einvoice.env import load_env
from einvoice.errors import XmlTooLargeError
from einvoice.invoice_calculations import compute_totals
from einvoice.logging_setup import setup_logging
from einvoice.models import DocumentTotals, InvoiceRequest, TotalsRequest
from einvoice.services.documents import assemble_invoice_document
from einvoice.services.ubl_xml import check_xml_size, serialize_invoice
from einvoice.settings import get_settings

load_env()


@asynccontextmanager
async def _lifespan(_: FastAPI):
    setup_logging()
    yield


app = FastAPI(title="einvoice", lifespan=_lifespan)


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.post("/api/totals", response_model=DocumentTotals)
def totals(request: TotalsRequest) -> DocumentTotals:
    settings = get_settings()
    return compute_totals(
        request.lines,
        request.allowance_charges,
        request.prepaid_amount,
        allowance_tax_scheme=settings.allowance_tax_scheme,
    )


@app.post("/api/documents/xml")
def document_xml(request: InvoiceRequest) -> Response:
    settings = get_settings()
    try:
        document = assemble_invoice_document(request, settings)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    xml = serialize_invoice(document, allowance_tax_scheme=settings.allowance_tax_scheme)
    try:
        check_xml_size(xml, settings.max_xml_bytes)
    except XmlTooLargeError as exc:
        raise HTTPException(status_code=413, detail=str(exc)) from exc
    return Response(content=xml, media_type="application/xml")


def run() -> None:
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    run()
