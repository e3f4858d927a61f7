from __future__ import annotations

from dataclasses import dataclass, field, fields
from decimal import Decimal
from typing import Any, Optional, Tuple
import uuid

from efaktura.constants import HOME_CURRENCY, IMPORTED_EXCHANGE_STATUS
from efaktura.parsing.codes import (
    Direction,
    DocumentType,
    LocalStatus,
    SourceFormat,
)

ZERO = Decimal("0")


@dataclass(frozen=True)
class Party:
    """Supplier or customer as printed on the document."""

    name: str = ""
    address: str = ""
    city: str = ""
    postal_code: Optional[str] = None
    tax_id: str = ""
    registration_number: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None


@dataclass(frozen=True)
class LineItem:
    description: str
    quantity: Decimal
    unit_price: Decimal
    unit_code: str
    net_amount: Decimal
    vat_rate: Decimal
    discount: Optional[Decimal] = None


@dataclass(frozen=True)
class VatBand:
    rate: Decimal
    base: Decimal
    amount: Decimal


@dataclass(frozen=True)
class ParsedInvoice:
    """Everything :func:`efaktura.parsing.ubl.parse_ubl_invoice` extracts."""

    invoice_number: str
    exchange_id: str
    issue_date: str
    currency: str
    supplier: Party
    customer: Party
    items: Tuple[LineItem, ...] = ()
    subtotal: Decimal = ZERO
    vat_breakdown: Tuple[VatBand, ...] = ()
    total_vat: Decimal = ZERO
    total_amount: Decimal = ZERO
    payable_amount: Decimal = ZERO
    due_date: Optional[str] = None
    service_date: Optional[str] = None
    note: Optional[str] = None
    payment_reference: Optional[str] = None
    bank_account: Optional[str] = None
    document_type: DocumentType = DocumentType.INVOICE


@dataclass(frozen=True)
class Tenant:
    """Company on whose behalf documents are imported."""

    id: str
    tax_id: Optional[str] = None
    home_currency: str = HOME_CURRENCY


_DECIMAL_FIELDS = {"net_amount", "vat_amount", "total_amount", "payable_amount"}
_ENUM_FIELDS = {
    "direction": Direction,
    "status": LocalStatus,
    "source_format": SourceFormat,
}


@dataclass(frozen=True)
class CanonicalRecord:
    """Storage-ready invoice shared by the XML and CSV import paths.

    ``(tenant_id, source_id)`` is unique.  Financial fields never change after
    the record is created; the store only replaces ``status``,
    ``rejection_reason``, ``linked_invoice_id`` and ``processed_at``.
    ``total_amount`` is the invoice total with VAT and ``payable_amount`` what
    is still owed after prepayments (``None`` when the source has no such
    figure).
    """

    tenant_id: str
    source_id: str
    direction: Direction
    invoice_number: str
    issue_date: str
    total_amount: Decimal
    currency: str
    source_format: SourceFormat
    counterparty_name: str = ""
    counterparty_tax_id: Optional[str] = None
    counterparty_registration_number: Optional[str] = None
    counterparty_address: Optional[str] = None
    delivery_date: Optional[str] = None
    due_date: Optional[str] = None
    net_amount: Decimal = ZERO
    vat_amount: Decimal = ZERO
    payable_amount: Optional[Decimal] = None
    exchange_status: str = IMPORTED_EXCHANGE_STATUS
    status: LocalStatus = LocalStatus.IMPORTED
    raw_payload: Optional[str] = None
    linked_invoice_id: Optional[str] = None
    rejection_reason: Optional[str] = None
    fetched_at: Optional[str] = None
    processed_at: Optional[str] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable mapping (decimals as strings)."""
        out: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, Decimal):
                value = str(value)
            elif f.name in _ENUM_FIELDS:
                value = value.value
            out[f.name] = value
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CanonicalRecord":
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known}
        for name in _DECIMAL_FIELDS:
            if kwargs.get(name) is not None:
                kwargs[name] = Decimal(str(kwargs[name]))
        for name, enum in _ENUM_FIELDS.items():
            if kwargs.get(name) is not None:
                kwargs[name] = enum(kwargs[name])
        return cls(**kwargs)


@dataclass
class CsvParseResult:
    """Records parsed from one CSV export plus row-numbered problems."""

    records: list[CanonicalRecord] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


@dataclass
class ImportResult:
    """Outcome of one ingestion batch.

    ``errors`` is only ever appended to; a failed record never aborts the
    batch.
    """

    imported: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)
    cancelled: bool = False

    @property
    def success(self) -> bool:
        return not self.errors

    def add_error(self, message: str) -> None:
        self.errors.append(message)

    def merge(self, other: "ImportResult") -> None:
        self.imported += other.imported
        self.skipped += other.skipped
        self.errors.extend(other.errors)
        self.cancelled = self.cancelled or other.cancelled
