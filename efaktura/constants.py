"""Project-wide constants."""

from os import getenv


def _env_bool(name: str, default: str | None = None) -> bool:
    """Return a boolean flag read from the environment."""

    value = getenv(name)
    if value is None:
        value = default if default is not None else "0"
    value = str(value).strip().lower()
    return value not in {"0", "false", "no", "off", ""}


def _env_str(name: str, default: str) -> str:
    """Return a stripped string setting, ``default`` when unset or blank."""

    raw = getenv(name)
    if raw is None or str(raw).strip() == "":
        return default
    return str(raw).strip()


# Currency assumed when a document omits ``DocumentCurrencyCode``.
HOME_CURRENCY = _env_str("EFAKTURA_HOME_CURRENCY", "RSD").upper()

# UN/ECE Rec. 20 "piece"; used when ``InvoicedQuantity`` has no ``unitCode``.
DEFAULT_UNIT_CODE = _env_str("EFAKTURA_DEFAULT_UNIT", "H87")

# Directory used by the CLI for the JSON invoice store.
STORE_DIR = _env_str("EFAKTURA_STORE_DIR", "efaktura_store")

TRACE = _env_bool("EFAKTURA_TRACE", "0")

# Counterparty name used when a CSV export has no supplier column.
CSV_FALLBACK_SUPPLIER = "Uvezeno iz CSV"

# Exchange status assigned to documents without one.
IMPORTED_EXCHANGE_STATUS = "Imported"
