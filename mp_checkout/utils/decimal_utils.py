from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, getcontext


getcontext().prec = 28

_CURRENCY_SYMBOLS = ("R$", "BRL", "US$", "USD", "$")


def _normalize_string(value: str) -> str:
    """Normalize Brazilian and international number formats to a canonical decimal string.

    Amounts reach the service typed by merchants in the dashboard ("1.234,50",
    "R$ 97,00") as well as from Mercado Pago payloads ("97.0"). The rightmost
    separator is taken as the decimal separator and the other one is dropped as
    a thousands separator.
    """

    cleaned = value.strip()
    if not cleaned:
        raise ValueError("Empty string cannot be converted to Decimal")

    for symbol in _CURRENCY_SYMBOLS:
        cleaned = cleaned.replace(symbol, "")
    cleaned = cleaned.replace(" ", "").replace("\xa0", "")

    if "," in cleaned and "." in cleaned:
        if cleaned.rfind(",") > cleaned.rfind("."):
            cleaned = cleaned.replace(".", "")
            cleaned = cleaned.replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")
    elif "," in cleaned:
        cleaned = cleaned.replace(".", "")
        cleaned = cleaned.replace(",", ".")

    return cleaned


def to_decimal(value: float | int | str | Decimal) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Invalid decimal value: {value}")
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, str):
        normalized = _normalize_string(value)
    else:
        raise ValueError(f"Invalid decimal value: {value!r}")

    try:
        return Decimal(normalized)
    except InvalidOperation as error:
        raise ValueError(f"Invalid decimal value: {value}") from error


def optional_decimal(value: float | int | str | Decimal | None) -> Decimal | None:
    if value is None or value == "":
        return None
    return to_decimal(value)


def quantize(value: Decimal, digits: str = "0.01") -> Decimal:
    return value.quantize(Decimal(digits), rounding=ROUND_HALF_UP)


def format_brl(value: Decimal | float | int | str | None) -> str:
    """Render an amount the way pt-BR users read it, e.g. ``1.234,50``."""
    if value is None:
        return "0,00"
    amount = quantize(to_decimal(value))
    integer, _, fraction = f"{abs(amount):f}".partition(".")
    groups = []
    while len(integer) > 3:
        groups.insert(0, integer[-3:])
        integer = integer[:-3]
    groups.insert(0, integer)
    sign = "-" if amount < 0 else ""
    return f"{sign}{'.'.join(groups)},{fraction or '00'}"
