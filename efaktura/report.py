"""Tabular views of stored records (terminal listing and file export)."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable
import logging

import pandas as pd

from efaktura.models import CanonicalRecord
from efaktura.parsing.utils import format_date

log = logging.getLogger(__name__)

# Mapping of record attributes to exported column headers.
REPORT_COLUMN_DEFS = [
    ("source_id", "SEF ID"),
    ("invoice_number", "Broj fakture"),
    ("direction", "Vrsta"),
    ("issue_date", "Datum izdavanja"),
    ("due_date", "Datum dospeća"),
    ("counterparty_name", "Komitent"),
    ("counterparty_tax_id", "PIB"),
    ("net_amount", "Osnovica"),
    ("vat_amount", "PDV"),
    ("total_amount", "Iznos"),
    ("payable_amount", "Za plaćanje"),
    ("currency", "Valuta"),
    ("exchange_status", "SEF status"),
    ("status", "Status"),
    ("linked_invoice_id", "Lokalna faktura"),
]

REPORT_COLS = [header for _, header in REPORT_COLUMN_DEFS]


def records_to_frame(records: Iterable[CanonicalRecord]) -> pd.DataFrame:
    """Return one row per record; amounts stay :class:`Decimal` objects."""
    rows = []
    for rec in records:
        data = rec.to_dict()
        row = {}
        for key, header in REPORT_COLUMN_DEFS:
            value = getattr(rec, key) if key.endswith("amount") else data[key]
            if key in ("issue_date", "due_date"):
                value = format_date(value) if value else ""
            row[header] = value
        rows.append(row)
    return pd.DataFrame(rows, columns=REPORT_COLS, dtype=object)


def export_records(records: Iterable[CanonicalRecord], path: Path | str) -> Path:
    """Write records to ``.xlsx`` or ``;``-separated ``.csv`` and return the path."""
    path = Path(path)
    df = records_to_frame(records)
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix.lower() == ".xlsx":
        with pd.ExcelWriter(path, engine="openpyxl") as writer:
            df.to_excel(writer, sheet_name="fakture", index=False)
    else:
        df.to_csv(path, sep=";", index=False)
    log.info("Izvoženih %d zapisov v %s", len(df), path)
    return path
