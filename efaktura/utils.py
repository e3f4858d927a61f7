# -*- coding: utf-8 -*-
"""Shared helpers for file-system keys."""
from __future__ import annotations

import re

_WINDOWS_RESERVED = {
    "CON",
    "PRN",
    "AUX",
    "NUL",
    *(f"COM{i}" for i in range(1, 10)),
    *(f"LPT{i}" for i in range(1, 10)),
}


def sanitize_folder_name(name: str) -> str:
    """Return a Windows- and Linux-safe file or folder name.

    Forbidden characters and control characters become ``_``; trailing dots
    and spaces are removed.  Reserved Windows names (``CON``, ``PRN`` ...) get
    a trailing ``_``.  An empty result becomes ``"unknown"``.
    """

    if not isinstance(name, str):
        raise TypeError(
            f"sanitize_folder_name expects a string, got {type(name)}"
        )
    cleaned = re.sub(r'[\\/*?:"<>|]', "_", name)
    cleaned = re.sub(r"[\x00-\x1f]", "_", cleaned)
    cleaned = re.sub(r"[\s.]+$", "", cleaned)

    if cleaned.upper() in _WINDOWS_RESERVED:
        cleaned += "_"

    if cleaned == "":
        return "unknown"

    return cleaned
