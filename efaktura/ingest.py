"""Batch ingestion of SEF documents into an :class:`InvoiceStore`.

Each record is checked and inserted on its own; a failure is written to the
result's error list and the batch moves on.  Records already inserted stay
in the store when a later one fails.
"""

from __future__ import annotations

import hashlib
import logging
import threading
from dataclasses import replace
from pathlib import Path
from typing import Iterable, Optional, Union

from efaktura.invoice_store import DuplicateRecordError, InvoiceStore
from efaktura.models import CanonicalRecord, ImportResult, ParsedInvoice, Tenant
from efaktura.parsing.codes import Direction, LocalStatus, SourceFormat
from efaktura.parsing.csv_import import parse_sef_csv
from efaktura.parsing.ubl import parse_ubl_invoice

log = logging.getLogger(__name__)

XML_PARSE_ERROR = "Nije moguće parsirati XML fajl"


def _digits(value: Optional[str]) -> str:
    return "".join(ch for ch in (value or "") if ch.isdigit())


def detect_direction(invoice: ParsedInvoice, tenant: Tenant) -> Direction:
    """``sales`` when the tenant is the supplier, otherwise ``purchase``.

    PIB values are compared on their digits only, so ``RS100200300`` matches
    ``100200300``.
    """
    own = _digits(tenant.tax_id)
    if own and _digits(invoice.supplier.tax_id) == own:
        return Direction.SALES
    return Direction.PURCHASE


def record_from_invoice(
    invoice: ParsedInvoice,
    tenant: Tenant,
    raw_xml: str,
    *,
    direction: Optional[Direction] = None,
) -> CanonicalRecord:
    """Turn a parsed UBL document into a canonical record.

    The exchange UUID is the source id; documents without one get an id
    derived from the payload digest so that re-uploading the same file is
    still detected as a duplicate.
    """
    direction = direction or detect_direction(invoice, tenant)
    party = invoice.customer if direction == Direction.SALES else invoice.supplier
    source_id = invoice.exchange_id
    if not source_id:
        source_id = "XML-" + hashlib.sha1(raw_xml.encode("utf-8")).hexdigest()[:16]
        log.debug("Dokument brez UUID, source id %s", source_id)

    return CanonicalRecord(
        tenant_id=tenant.id,
        source_id=source_id,
        direction=direction,
        invoice_number=invoice.invoice_number,
        issue_date=invoice.issue_date,
        delivery_date=invoice.service_date,
        due_date=invoice.due_date,
        counterparty_name=party.name,
        counterparty_tax_id=party.tax_id or None,
        counterparty_registration_number=party.registration_number,
        counterparty_address=party.address or None,
        net_amount=invoice.subtotal,
        vat_amount=invoice.total_vat,
        # prepaid invoices have PayableAmount 0 but keep their real total
        total_amount=invoice.total_amount or invoice.payable_amount,
        payable_amount=invoice.payable_amount,
        currency=invoice.currency,
        source_format=SourceFormat.XML,
        status=LocalStatus.IMPORTED,
        raw_payload=raw_xml,
    )


def import_records(
    records: Iterable[CanonicalRecord],
    tenant: Tenant,
    store: InvoiceStore,
    *,
    cancel: Optional[threading.Event] = None,
) -> ImportResult:
    """Insert ``records`` for ``tenant``, skipping known source ids.

    ``cancel`` is checked before each record; a record whose insert has
    started is always finished.
    """
    result = ImportResult()
    for record in records:
        if cancel is not None and cancel.is_set():
            log.info("Uvoz prekinjen, %d uvoženih", result.imported)
            result.cancelled = True
            break
        if record.tenant_id != tenant.id:
            record = _retarget(record, tenant)
        try:
            if store.exists(tenant.id, record.source_id):
                log.debug("%s je že uvožen", record.source_id)
                result.skipped += 1
                continue
            store.insert(record)
        except DuplicateRecordError:
            result.skipped += 1
        except Exception as exc:
            log.warning("Uvoz %s ni uspel: %s", record.source_id, exc)
            result.add_error(f"{record.invoice_number}: {exc}")
        else:
            result.imported += 1
    log.info(
        "Uvoz %s: %d uvoženih, %d preskočenih, %d napak",
        tenant.id,
        result.imported,
        result.skipped,
        len(result.errors),
    )
    return result


def _retarget(record: CanonicalRecord, tenant: Tenant) -> CanonicalRecord:
    log.debug("Zapis %s premaknjen na tenant %s", record.source_id, tenant.id)
    return replace(record, tenant_id=tenant.id)


def import_xml(
    xml_text: str,
    tenant: Tenant,
    store: InvoiceStore,
    *,
    direction: Optional[Direction] = None,
) -> ImportResult:
    """Parse one UBL document and store it."""
    invoice = parse_ubl_invoice(xml_text, home_currency=tenant.home_currency)
    if invoice is None or not invoice.invoice_number:
        result = ImportResult()
        result.add_error(XML_PARSE_ERROR)
        return result
    record = record_from_invoice(invoice, tenant, xml_text, direction=direction)
    return import_records([record], tenant, store)


def import_csv(
    csv_text: str,
    tenant: Tenant,
    store: InvoiceStore,
    *,
    direction: Direction = Direction.PURCHASE,
    cancel: Optional[threading.Event] = None,
) -> ImportResult:
    """Parse a SEF CSV export and store every valid row.

    Row errors from the importer come first in ``errors``, followed by
    storage errors.
    """
    parsed = parse_sef_csv(csv_text, tenant, direction=direction)
    result = ImportResult(errors=list(parsed.errors))
    result.merge(import_records(parsed.records, tenant, store, cancel=cancel))
    return result


def import_files(
    paths: Iterable[Union[str, Path]],
    tenant: Tenant,
    store: InvoiceStore,
    *,
    cancel: Optional[threading.Event] = None,
) -> ImportResult:
    """Import ``.xml`` and ``.csv`` files; other files are reported."""
    result = ImportResult()
    for path in map(Path, paths):
        if cancel is not None and cancel.is_set():
            result.cancelled = True
            break
        suffix = path.suffix.lower()
        if suffix not in (".xml", ".csv"):
            result.add_error(f"{path.name}: nepodržan format")
            continue
        try:
            text = path.read_text(encoding="utf-8-sig")
        except (OSError, UnicodeDecodeError) as exc:
            result.add_error(f"{path.name}: {exc}")
            continue
        if suffix == ".xml":
            part = import_xml(text, tenant, store)
        else:
            part = import_csv(text, tenant, store, cancel=cancel)
        part.errors = [f"{path.name}: {e}" for e in part.errors]
        result.merge(part)
    return result
