from __future__ import annotations

import os
from dataclasses import dataclass

from einvoice.errors import UnknownTaxSchemeError
from einvoice.models import TaxSchemeId, get_tax_scheme


_DEFAULT_MAX_XML_BYTES = 10 * 1024 * 1024
_DEFAULT_LOG_DIR = "./data/logs"


def _env_str(name: str, default: str) -> str:
    value = (os.getenv(name) or "").strip()
    return value or default


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name) or default)
    except ValueError:
        return default


def _env_scheme(name: str, default: TaxSchemeId) -> TaxSchemeId:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return get_tax_scheme(raw).id
    except UnknownTaxSchemeError:
        return default


@dataclass(frozen=True)
class Settings:
    debug: bool
    log_dir: str
    domestic_currency: str
    default_currency: str
    allowance_tax_scheme: TaxSchemeId
    max_xml_bytes: int


def get_settings() -> Settings:
    return Settings(
        debug=os.getenv("EINV_DEBUG") == "1",
        log_dir=_env_str("EINV_LOG_DIR", _DEFAULT_LOG_DIR),
        domestic_currency=_env_str("EINV_DOMESTIC_CURRENCY", "KHR").upper(),
        default_currency=_env_str("EINV_DEFAULT_CURRENCY", "USD").upper(),
        allowance_tax_scheme=_env_scheme("EINV_ALLOWANCE_TAX_SCHEME", TaxSchemeId.VAT),
        max_xml_bytes=_env_int("EINV_MAX_XML_BYTES", _DEFAULT_MAX_XML_BYTES),
    )
