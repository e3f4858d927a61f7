# -*- coding: utf-8 -*-
"""
Namespace-tolerant element lookup
=================================
SEF documents use ``cbc:``/``cac:`` prefixes, other prefixes, a default
namespace or no namespace at all for the same UBL element.  Everything in
:mod:`efaktura.parsing.ubl` therefore resolves elements by *local name*:

• find_element()       → first match or ``None``
• find_all_elements()  → every match in document order
• text_at() / decimal_at() → typed values along a path of local names
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable, List, Optional, Union

from lxml import etree as LET

from efaktura.constants import TRACE
from .money import parse_decimal

log = logging.getLogger(__name__)

# Qualified names tried before the local-name scan, in this order.
PREFIX_CANDIDATES = ("", "cbc:", "cac:", "ubl:", "Invoice:")

Node = Union[LET._Element, LET._ElementTree]


def _t(msg, *args):
    if TRACE:
        log.warning("[TRACE PARSE] " + msg, *args)


def local_name(el: LET._Element) -> str:
    """Return the tag without ``{namespace}`` or ``prefix:`` part."""
    tag = el.tag
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1].rsplit(":", 1)[-1]


def qualified_name(el: LET._Element) -> str:
    """Return the tag as written in the source, e.g. ``cbc:ID``."""
    tag = el.tag
    if not isinstance(tag, str):
        return ""
    if tag.startswith("{"):
        local = tag.split("}", 1)[1]
        return f"{el.prefix}:{local}" if el.prefix else local
    # undeclared prefixes survive recover-mode parsing as literal tag text
    return tag


def _elements(parent: Optional[Node]) -> List[LET._Element]:
    if parent is None:
        return []
    if hasattr(parent, "getroot"):
        nodes: Iterable = parent.getroot().iter()
    else:
        nodes = parent.iterdescendants()
    return [el for el in nodes if isinstance(el.tag, str)]


def find_element(parent: Optional[Node], name: str) -> Optional[LET._Element]:
    """Return the first descendant of ``parent`` named ``name``.

    Known prefixes are tried first (``name``, ``cbc:name``, ``cac:name``, ...),
    each over the whole subtree, and only then any element whose local name is
    ``name``.  ``None`` if ``parent`` is ``None`` or nothing matches.
    """
    nodes = _elements(parent)
    if not nodes:
        return None
    for prefix in PREFIX_CANDIDATES:
        wanted = prefix + name
        for el in nodes:
            if qualified_name(el) == wanted:
                return el
    for el in nodes:
        if local_name(el) == name:
            _t("%s resolved by local name as %s", name, el.tag)
            return el
    return None


def find_all_elements(parent: Optional[Node], name: str) -> List[LET._Element]:
    """Return every descendant of ``parent`` named ``name`` in document order.

    A prefix-candidate match always has local name ``name`` as well, so a
    single local-name pass returns the union of both searches without
    reordering the document.
    """
    return [el for el in _elements(parent) if local_name(el) == name]


def find_path(parent: Optional[Node], *names: str) -> Optional[LET._Element]:
    """Resolve ``names`` one after another, e.g. ``("Price", "PriceAmount")``."""
    node = parent
    for name in names:
        node = find_element(node, name)
        if node is None:
            return None
    return node


def text_of(el: Optional[LET._Element]) -> str:
    """Return the stripped text content of ``el`` or ``""``."""
    if el is None:
        return ""
    return "".join(el.itertext()).strip()


def text_at(parent: Optional[Node], *names: str) -> str:
    return text_of(find_path(parent, *names))


def decimal_at(parent: Optional[Node], *names: str) -> Optional[Decimal]:
    """Return the numeric value at ``names`` or ``None`` if absent/invalid."""
    return parse_decimal(text_at(parent, *names))


def attr_of(el: Optional[LET._Element], name: str) -> Optional[str]:
    """Return a stripped attribute value, ignoring any namespace on it."""
    if el is None:
        return None
    for key, value in el.attrib.items():
        if key.rsplit("}", 1)[-1].rsplit(":", 1)[-1] == name:
            value = (value or "").strip()
            return value or None
    return None
