"""Enumerations used by the parsers and the invoice store."""

from enum import Enum


class LocalStatus(str, Enum):
    """Processing status of a stored canonical record."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    IMPORTED = "imported"


class Direction(str, Enum):
    """Whether the tenant received (purchase) or issued (sales) the invoice."""

    PURCHASE = "purchase"
    SALES = "sales"


class DocumentType(str, Enum):
    """UBL document root."""

    INVOICE = "Invoice"
    CREDIT_NOTE = "CreditNote"


class SourceFormat(str, Enum):
    XML = "xml"
    CSV = "csv"
