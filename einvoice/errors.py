from __future__ import annotations


class InvoiceError(Exception):
    """Base class for errors raised by the invoicing core."""


class UnknownTaxSchemeError(InvoiceError, ValueError):
    def __init__(self, scheme_id: object) -> None:
        self.scheme_id = scheme_id
        super().__init__(f"Unsupported tax scheme: {scheme_id!r}")


class XmlTooLargeError(InvoiceError):
    def __init__(self, size: int, limit: int) -> None:
        self.size = size
        self.limit = limit
        super().__init__(f"Generated XML is {size} bytes, exceeds the limit of {limit} bytes")
