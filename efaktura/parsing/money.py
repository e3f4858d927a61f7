from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

DEC2 = Decimal("0.01")


def _dec2(x: Decimal) -> Decimal:
    """Quantize value to two decimal places using ``ROUND_HALF_UP``."""
    return x.quantize(DEC2, rounding=ROUND_HALF_UP)


def parse_decimal(raw: object) -> Decimal | None:
    """Return ``raw`` as :class:`Decimal` or ``None`` when it is not a number.

    Non-breaking and regular spaces are treated as thousands separators.
    When both ``,`` and ``.`` are present the one that appears last is the
    decimal separator (``1.234,56`` and ``1,234.56`` both give ``1234.56``);
    a lone ``,`` is a decimal comma.
    """
    if raw is None:
        return None
    txt = str(raw).strip().replace("\xa0", "").replace(" ", "")
    if not txt:
        return None

    if "," in txt and "." in txt:
        if txt.rfind(",") > txt.rfind("."):
            txt = txt.replace(".", "").replace(",", ".")
        else:
            txt = txt.replace(",", "")
    elif "," in txt:
        txt = txt.replace(",", ".")

    try:
        value = Decimal(txt)
    except (InvalidOperation, ValueError):
        return None
    return value if value.is_finite() else None


def to_decimal(raw: object, default: Decimal = Decimal("0")) -> Decimal:
    """Like :func:`parse_decimal` but returns ``default`` instead of ``None``."""
    value = parse_decimal(raw)
    return default if value is None else value


def format_amount(amount: Decimal, currency: str = "RSD") -> str:
    """Format ``amount`` the way Serbian invoices print it: ``1.234,56 RSD``."""
    txt = f"{_dec2(Decimal(amount)):,.2f}"
    txt = txt.replace(",", "\x00").replace(".", ",").replace("\x00", ".")
    return f"{txt} {currency}".strip()
