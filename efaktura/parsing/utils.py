"""Utility helpers for parsers."""
from __future__ import annotations

import logging
import re

log = logging.getLogger(__name__)

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_BARE_AMP = re.compile(r"&(?!(?:amp|lt|gt|quot|apos|#\d+|#x[0-9a-fA-F]+);)")

# Blocks that SEF embeds next to the invoice; they can be megabytes of base64.
_BINARY_BLOCKS = ("DocumentPdf", "EmbeddedDocumentBinaryObject")
_DOCUMENT_START = re.compile(r"<((?:[\w.-]+:)?)(Invoice|CreditNote)(?=[\s>/])")


def _normalize_date(date_str: str) -> str:
    """Convert ``DD.MM.YYYY`` or ``YYYYMMDD`` and similar into ``YYYY-MM-DD``."""
    s = date_str.replace(" ", "").replace("\xa0", "")
    m = re.match(r"(\d{4})(\d{2})(\d{2})$", s)
    if m:
        y, mth, d = m.groups()
        return f"{y}-{mth}-{d}"
    m = re.match(r"(\d{1,2})\.?\s*(\d{1,2})\.?\s*(\d{4})\.?$", s)
    if m:
        d, mth, y = m.groups()
        return f"{y}-{int(mth):02d}-{int(d):02d}"
    m = re.match(r"(\d{4}-\d{2}-\d{2})T", s)
    if m:
        return m.group(1)
    return s


def format_date(date_str: str | None) -> str:
    """Return ``YYYY-MM-DD`` as ``DD.MM.YYYY``; ``-`` for empty values."""
    if not date_str:
        return "-"
    parts = date_str.split("-")
    if len(parts) == 3:
        return f"{parts[2]}.{parts[1]}.{parts[0]}"
    return date_str


def sanitize_xml(xml: str) -> str:
    """Strip BOM and control characters and escape stray ampersands."""
    xml = xml.lstrip("\ufeff")
    xml = _CONTROL_CHARS.sub("", xml)
    return _BARE_AMP.sub("&amp;", xml)


def _remove_blocks(xml: str, local: str) -> str:
    """Remove every ``<prefix:local ...>...</prefix:local>`` block."""
    start_re = re.compile(r"<((?:[\w.-]+:)?)" + re.escape(local) + r"(?=[\s>/])")
    pos = 0
    while True:
        m = start_re.search(xml, pos)
        if m is None:
            return xml
        end_tag = f"</{m.group(1)}{local}>"
        end = xml.find(end_tag, m.end())
        if end == -1:
            pos = m.end()
            continue
        xml = xml[: m.start()] + xml[end + len(end_tag):]
        pos = m.start()


def is_envelope(xml: str) -> bool:
    return "DocumentEnvelope" in xml or "DocumentBody" in xml


def extract_invoice_from_envelope(xml: str) -> str:
    """Return the ``Invoice``/``CreditNote`` element of a SEF envelope.

    Documents that are not wrapped in ``DocumentEnvelope`` are returned
    unchanged.  Embedded PDF and binary attachments are dropped before the
    document element is located.  When no complete document element can be
    found the cleaned envelope is returned so the caller can still try to
    parse it.
    """
    if not is_envelope(xml):
        return xml

    cleaned = xml
    for local in _BINARY_BLOCKS:
        cleaned = _remove_blocks(cleaned, local)
    log.debug(
        "SEF envelope: removed %d chars of binary content",
        len(xml) - len(cleaned),
    )

    m = _DOCUMENT_START.search(cleaned)
    if m is not None:
        end_tag = f"</{m.group(1)}{m.group(2)}>"
        end = cleaned.find(end_tag, m.end())
        if end != -1:
            return cleaned[m.start(): end + len(end_tag)]
    log.debug("No document element found inside SEF envelope")
    return cleaned
