from einvoice.invoice_calculations import compute_totals
from einvoice.services.ubl_xml import serialize_invoice

__all__ = ["compute_totals", "serialize_invoice"]
