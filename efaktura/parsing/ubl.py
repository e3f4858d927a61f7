# -*- coding: utf-8 -*-
"""
SEF UBL 2.1 parser
==================
• extract_party()          → Party (dobavitelj / kupec)
• extract_line_items()     → postavke v vrstnem redu dokumenta
• extract_vat_breakdown()  → DDV po stopnjah
• resolve_totals()         → osnova / DDV / skupaj / za plačilo
• parse_ubl_invoice()      → ParsedInvoice ali ``None``

Missing optional elements never raise: text defaults to ``""``/``None`` and
amounts to ``0``.  The only hard failure is XML that cannot be parsed at all.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Optional, Tuple, Union

from lxml import etree as LET

from efaktura.constants import DEFAULT_UNIT_CODE, HOME_CURRENCY
from efaktura.models import LineItem, ParsedInvoice, Party, VatBand
from .codes import DocumentType
from .resolver import (
    attr_of,
    decimal_at,
    find_all_elements,
    find_element,
    find_path,
    local_name,
    text_at,
    text_of,
)
from .money import parse_decimal
from .utils import _normalize_date, extract_invoice_from_envelope, sanitize_xml

log = logging.getLogger(__name__)

XML_PARSER = LET.XMLParser(resolve_entities=False, no_network=True, huge_tree=True)
_RECOVER_PARSER = LET.XMLParser(
    resolve_entities=False, no_network=True, huge_tree=True, recover=True
)

ZERO = Decimal("0")
ONE = Decimal("1")


def _opt(value: str) -> Optional[str]:
    return value or None


def _date(value: str) -> str:
    return _normalize_date(value) if value else ""


# ────────────────────────── stranke ──────────────────────────
def extract_party(party: Optional[LET._Element]) -> Party:
    """Build a :class:`Party` from a ``cac:Party`` subtree.

    Tax id and registration number share the ``CompanyID`` leaf but live in
    different parents: ``PartyTaxScheme`` holds the PIB and
    ``PartyLegalEntity`` the registration number (matični broj).
    """
    if party is None:
        return Party()

    name_el = find_element(party, "PartyName")
    name = text_at(name_el if name_el is not None else party, "Name")

    postal = find_element(party, "PostalAddress")
    street = text_at(postal, "StreetName")
    number = text_at(postal, "BuildingNumber")
    address = f"{street} {number}".strip() if number else street

    return Party(
        name=name,
        address=address,
        city=text_at(postal, "CityName"),
        postal_code=_opt(text_at(postal, "PostalZone")),
        tax_id=text_at(party, "PartyTaxScheme", "CompanyID"),
        registration_number=_opt(text_at(party, "PartyLegalEntity", "CompanyID")),
        email=_opt(text_at(party, "Contact", "ElectronicMail")),
        phone=_opt(text_at(party, "Contact", "Telephone")),
        website=_opt(text_at(party, "WebsiteURI")),
    )


# ────────────────────────── postavke ──────────────────────────
def _line_vat_rate(line: LET._Element, item: Optional[LET._Element]) -> Decimal:
    category = find_element(item, "ClassifiedTaxCategory")
    if category is None:
        category = find_element(line, "TaxCategory")
    rate = decimal_at(category, "Percent")
    return ZERO if rate is None else rate


def _line_item(line: LET._Element) -> LineItem:
    item = find_element(line, "Item")
    description = text_at(item, "Name") or text_at(item, "Description")

    qty_el = find_element(line, "InvoicedQuantity")
    if qty_el is None:
        qty_el = find_element(line, "CreditedQuantity")
    quantity = parse_decimal(text_of(qty_el))
    if quantity is None:
        quantity = ONE

    unit_price = decimal_at(line, "Price", "PriceAmount")
    net_amount = decimal_at(line, "LineExtensionAmount")

    discount = None
    allowance = find_element(line, "AllowanceCharge")
    if allowance is not None:
        discount = decimal_at(allowance, "Amount")

    return LineItem(
        description=description,
        quantity=quantity,
        unit_price=ZERO if unit_price is None else unit_price,
        unit_code=attr_of(qty_el, "unitCode") or DEFAULT_UNIT_CODE,
        net_amount=ZERO if net_amount is None else net_amount,
        vat_rate=_line_vat_rate(line, item),
        discount=discount,
    )


def extract_line_items(root: LET._Element) -> Tuple[LineItem, ...]:
    """Return one :class:`LineItem` per ``InvoiceLine`` in document order.

    Credit notes carry ``CreditNoteLine`` elements instead; they are used
    when the document has no ``InvoiceLine`` at all.
    """
    lines = find_all_elements(root, "InvoiceLine")
    if not lines:
        lines = find_all_elements(root, "CreditNoteLine")
    return tuple(_line_item(line) for line in lines)


# ────────────────────────── DDV ──────────────────────────
def extract_vat_breakdown(root: LET._Element) -> Tuple[VatBand, ...]:
    """Return non-empty ``TaxSubtotal`` bands.

    Some issuers add placeholder subtotals where rate, base and amount are
    all zero; those are dropped.
    """
    bands = []
    for subtotal in find_all_elements(root, "TaxSubtotal"):
        rate = decimal_at(subtotal, "TaxCategory", "Percent") or ZERO
        base = decimal_at(subtotal, "TaxableAmount") or ZERO
        amount = decimal_at(subtotal, "TaxAmount") or ZERO
        if rate != 0 or base != 0 or amount != 0:
            bands.append(VatBand(rate=rate, base=base, amount=amount))
        else:
            log.debug("Skipping zero TaxSubtotal")
    return tuple(bands)


# ────────────────────────── zneski ──────────────────────────
@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    total_vat: Decimal
    total_amount: Decimal
    payable_amount: Decimal


def resolve_totals(root: LET._Element) -> Totals:
    """Resolve document totals from ``LegalMonetaryTotal`` and ``TaxTotal``.

    ``subtotal`` falls back to ``TaxExclusiveAmount`` when
    ``LineExtensionAmount`` is zero or missing, and ``payable_amount`` to
    ``TaxInclusiveAmount`` when ``PayableAmount`` is missing.  Total VAT is
    the document-level ``TaxTotal/TaxAmount``, not the sum of the bands,
    because only the document figure carries the issuer's rounding.
    """
    monetary = find_element(root, "LegalMonetaryTotal")

    subtotal = decimal_at(monetary, "LineExtensionAmount") or ZERO
    if subtotal == 0:
        subtotal = decimal_at(monetary, "TaxExclusiveAmount") or ZERO
        if subtotal != 0:
            log.debug("Subtotal taken from TaxExclusiveAmount: %s", subtotal)

    total = decimal_at(monetary, "TaxInclusiveAmount") or ZERO
    payable = decimal_at(monetary, "PayableAmount")
    if payable is None:
        log.debug("PayableAmount missing, using TaxInclusiveAmount %s", total)
        payable = total

    total_vat = decimal_at(root, "TaxTotal", "TaxAmount") or ZERO

    return Totals(
        subtotal=subtotal,
        total_vat=total_vat,
        total_amount=total,
        payable_amount=payable,
    )


# ────────────────────────── razčlenjevanje ──────────────────────────
def _parse_root(xml_text: str) -> Optional[LET._Element]:
    """Parse ``xml_text``; ``None`` if it is not well-formed XML.

    Prefixes that are used without an ``xmlns`` declaration (common when the
    invoice was cut out of a SEF envelope) only produce namespace errors; in
    that case the text is parsed again in recover mode and the prefixed tags
    are kept literally, which the resolver handles by local name.
    """
    data = xml_text.encode("utf-8")
    try:
        return LET.fromstring(data, parser=XML_PARSER)
    except LET.XMLSyntaxError as exc:
        entries = list(getattr(exc, "error_log", None) or [])
        if entries and all(
            e.domain == LET.ErrorDomains.NAMESPACE for e in entries
        ):
            log.debug("Undeclared namespace prefixes, reparsing: %s", exc)
            root = LET.fromstring(data, parser=_RECOVER_PARSER)
            if root is not None:
                return root
        log.warning("XML ni mogoče razčleniti: %s", exc)
        return None


def _warn_entities(root: LET._Element) -> None:
    """Log entities declared in the internal DTD; they are never expanded."""
    dtd = root.getroottree().docinfo.internalDTD
    if dtd is None:
        return
    names = [entity.name for entity in dtd.iterentities()]
    if names:
        log.warning("XML deklarira entitete %s, ki niso razrešene", ", ".join(names))


def _document_type(root: LET._Element) -> DocumentType:
    if local_name(root) == DocumentType.CREDIT_NOTE.value:
        return DocumentType.CREDIT_NOTE
    return DocumentType.INVOICE


def _service_date(root: LET._Element) -> str:
    return (
        text_at(root, "InvoicePeriod", "EndDate")
        or text_at(root, "TaxPointDate")
        or text_at(root, "Delivery", "ActualDeliveryDate")
    )


def parse_document(root: LET._Element, *, home_currency: str = HOME_CURRENCY) -> ParsedInvoice:
    """Build a :class:`ParsedInvoice` from an already parsed document."""
    exchange_id = text_at(root, "UUID") or attr_of(root, "UUID") or ""

    payment_means = find_element(root, "PaymentMeans")
    payment_reference = text_at(payment_means, "PaymentID") or text_at(
        root, "PaymentMeansCode"
    )
    due_date = text_at(root, "DueDate") or text_at(payment_means, "PaymentDueDate")

    supplier = extract_party(find_path(root, "AccountingSupplierParty", "Party"))
    customer = extract_party(find_path(root, "AccountingCustomerParty", "Party"))
    totals = resolve_totals(root)

    return ParsedInvoice(
        invoice_number=text_at(root, "ID"),
        exchange_id=exchange_id,
        issue_date=_date(text_at(root, "IssueDate")),
        currency=text_at(root, "DocumentCurrencyCode") or home_currency,
        supplier=supplier,
        customer=customer,
        items=extract_line_items(root),
        subtotal=totals.subtotal,
        vat_breakdown=extract_vat_breakdown(root),
        total_vat=totals.total_vat,
        total_amount=totals.total_amount,
        payable_amount=totals.payable_amount,
        due_date=_opt(_date(due_date)),
        service_date=_opt(_date(_service_date(root))),
        note=_opt(text_at(root, "Note")),
        payment_reference=_opt(payment_reference),
        bank_account=_opt(text_at(payment_means, "PayeeFinancialAccount", "ID")),
        document_type=_document_type(root),
    )


def parse_ubl_invoice(
    xml_text: Union[str, bytes], *, home_currency: str = HOME_CURRENCY
) -> Optional[ParsedInvoice]:
    """Parse a SEF UBL invoice or credit note.

    ``xml_text`` may be the bare document or a SEF ``DocumentEnvelope``.
    Returns ``None`` only for empty input or XML that is not well-formed;
    every missing element is defaulted.  Declared entities are logged and
    left unexpanded.
    The function performs no I/O.
    """
    if isinstance(xml_text, bytes):
        xml_text = xml_text.decode("utf-8", errors="replace")
    if not xml_text or not xml_text.strip():
        log.warning("Prazen XML dokument")
        return None

    cleaned = extract_invoice_from_envelope(sanitize_xml(xml_text))
    root = _parse_root(cleaned)
    if root is None:
        return None
    _warn_entities(root)
    return parse_document(root, home_currency=home_currency)


def parse_ubl_file(
    path: Union[str, Path], *, home_currency: str = HOME_CURRENCY
) -> Optional[ParsedInvoice]:
    """Read ``path`` as UTF-8 (BOM tolerant) and parse it."""
    text = Path(path).read_text(encoding="utf-8-sig", errors="replace")
    return parse_ubl_invoice(text, home_currency=home_currency)
