# -*- coding: utf-8 -*-
"""
SEF CSV export importer
=======================
Column names in SEF exports are not fixed, so every field is located by
keywords contained in the lower-cased header.  Columns that cannot be found
fall back to synthetic values; rows with unusable amounts are skipped and
reported as ``Red <n>: ...`` where ``n`` counts the header as row 1.
"""

from __future__ import annotations

import csv
import hashlib
import io
import logging
from datetime import date
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Sequence

from efaktura.constants import CSV_FALLBACK_SUPPLIER, IMPORTED_EXCHANGE_STATUS
from efaktura.models import CanonicalRecord, CsvParseResult, Tenant
from .codes import Direction, LocalStatus, SourceFormat
from .money import parse_decimal
from .utils import _normalize_date

log = logging.getLogger(__name__)

DELIMITER = ";"
EMPTY_CSV_ERROR = "CSV fajl je prazan ili nema podataka"

Matcher = Callable[[str], bool]


def _any_of(*words: str) -> Matcher:
    return lambda header: any(w in header for w in words)


def _all_of(*words: str) -> Matcher:
    return lambda header: all(w in header for w in words)


# field -> predicates tried against each lower-cased header cell
COLUMN_KEYWORDS: Dict[str, Sequence[Matcher]] = {
    "invoice_number": (_any_of("broj", "number"),),
    "issue_date": (_all_of("datum", "izdav"), _all_of("issue", "date")),
    "amount": (_any_of("iznos", "amount"),),
    "supplier": (_any_of("dobav", "supplier", "izdavač"),),
    "status": (_any_of("status"),),
    "tax_id": (_any_of("pib", "tax id"),),
    "currency": (_any_of("valuta", "currency"),),
    "due_date": (_any_of("dospe", "due"),),
}


def detect_columns(header: Sequence[str]) -> Dict[str, int]:
    """Map each known field to the index of the first matching header cell.

    Matching is by substring on the lower-cased, trimmed header text.  Fields
    without a matching column are absent from the result.
    """
    cells = [h.strip().lower() for h in header]
    columns: Dict[str, int] = {}
    for field, matchers in COLUMN_KEYWORDS.items():
        for idx, cell in enumerate(cells):
            if any(match(cell) for match in matchers):
                columns[field] = idx
                break
    log.debug("CSV columns detected: %s", columns)
    return columns


def _read_rows(csv_text: str) -> List[List[str]]:
    text = csv_text.lstrip("\ufeff")
    reader = csv.reader(io.StringIO(text), delimiter=DELIMITER, quotechar='"')
    return [row for row in reader if any(cell.strip() for cell in row)]


def _row_payload(header: Sequence[str], row: Sequence[str]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, delimiter=DELIMITER, lineterminator="\n")
    writer.writerow(header)
    writer.writerow(row)
    return buf.getvalue()


class _RowError(ValueError):
    pass


def _cell(row: Sequence[str], columns: Dict[str, int], field: str) -> Optional[str]:
    idx = columns.get(field)
    if idx is None:
        return None
    if idx >= len(row):
        raise _RowError(f"nedostaje kolona {idx + 1} (red ima {len(row)} kolona)")
    return row[idx].strip()


# fields that identify a row; the exchange status is left out so a status
# change in a later export does not look like a new invoice
KEY_FIELDS = ("invoice_number", "issue_date", "supplier", "tax_id", "currency", "due_date")


def _row_key(
    row: Sequence[str], columns: Dict[str, int], amount: Optional[Decimal]
) -> str:
    parts = [(_cell(row, columns, f) or "").lower() for f in KEY_FIELDS if f in columns]
    if not parts:
        parts = [cell.strip().lower() for cell in row]
    parts.append(format(amount.normalize(), "f") if amount is not None else "")
    return hashlib.sha1("\x1f".join(parts).encode("utf-8")).hexdigest()[:12]


def parse_sef_csv(
    csv_text: str,
    tenant: Tenant,
    *,
    direction: Direction = Direction.PURCHASE,
    today: Optional[date] = None,
) -> CsvParseResult:
    """Parse a semicolon-delimited SEF export into canonical records.

    Never raises for bad rows: each is skipped and reported in
    ``result.errors``.  Source ids hash the row's own values (not its position
    or the rest of the file) plus a counter for identical rows, so editing
    one row of an export leaves the ids of the other rows unchanged.
    """
    result = CsvParseResult()
    try:
        rows = _read_rows(csv_text)
    except csv.Error as exc:
        log.warning("CSV ni mogoče prebrati: %s", exc)
        result.errors.append(f"Neispravan CSV fajl: {exc}")
        return result
    if len(rows) < 2:
        result.errors.append(EMPTY_CSV_ERROR)
        return result

    header = rows[0]
    columns = detect_columns(header)
    seen: Dict[str, int] = {}
    today_iso = (today or date.today()).isoformat()

    for data_idx, row in enumerate(rows[1:], start=1):
        row_no = data_idx + 1
        try:
            raw_amount = _cell(row, columns, "amount")
            amount = parse_decimal(raw_amount) if raw_amount else None
            if raw_amount and amount is None:
                raise _RowError(f"neispravan iznos '{raw_amount}'")

            number = _cell(row, columns, "invoice_number") or f"CSV-{data_idx}"
            issue_date = _cell(row, columns, "issue_date")
            due_date = _cell(row, columns, "due_date")
            key = _row_key(row, columns, amount)
            seen[key] = seen.get(key, 0) + 1
            record = CanonicalRecord(
                tenant_id=tenant.id,
                source_id=f"CSV-IMPORT-{key}-{seen[key]}",
                direction=direction,
                invoice_number=number,
                issue_date=_normalize_date(issue_date) if issue_date else today_iso,
                due_date=_normalize_date(due_date) if due_date else None,
                total_amount=amount if amount is not None else Decimal("0"),
                payable_amount=amount if amount is not None else Decimal("0"),
                currency=(_cell(row, columns, "currency") or tenant.home_currency).upper(),
                source_format=SourceFormat.CSV,
                counterparty_name=_cell(row, columns, "supplier") or CSV_FALLBACK_SUPPLIER,
                counterparty_tax_id=_cell(row, columns, "tax_id") or None,
                exchange_status=_cell(row, columns, "status") or IMPORTED_EXCHANGE_STATUS,
                status=LocalStatus.IMPORTED,
                raw_payload=_row_payload(header, row),
            )
        except _RowError as exc:
            log.warning("CSV vrstica %d preskočena: %s", row_no, exc)
            result.errors.append(f"Red {row_no}: {exc}")
            continue
        result.records.append(record)

    log.info(
        "CSV: %d zapisov, %d napak", len(result.records), len(result.errors)
    )
    return result
