"""Locale-aware rendering of values."""

from __future__ import annotations

import math

from .config import (
    CURRENCY_DECIMALS,
    OUTPUT_PRECISION,
    SCIENTIFIC_LOWER,
    SCIENTIFIC_UPPER,
)
from .locales import LocaleSetting, current_locale
from .types import Value, ValueKind
from .units import CURRENCY_DISPLAY_SYMBOLS


def _group(integer: str, separator: str) -> str:
    if len(integer) <= 3:
        return integer
    head = len(integer) % 3 or 3
    parts = [integer[:head]]
    parts.extend(integer[i : i + 3] for i in range(head, len(integer), 3))
    return separator.join(parts)


def _plain_digits(amount: float, decimals: int | None = None) -> str:
    """Render ``abs(amount)`` in fixed notation with a ``.`` decimal mark."""
    magnitude = abs(amount)
    if decimals is None:
        exponent = math.floor(math.log10(magnitude)) if magnitude else 0
        decimals = max(0, OUTPUT_PRECISION - 1 - exponent)
        text = f"{magnitude:.{decimals}f}"
        if "." in text:
            text = text.rstrip("0").rstrip(".")
        return text
    return f"{magnitude:.{decimals}f}"


def _scientific_digits(amount: float) -> str:
    mantissa, exponent = f"{abs(amount):.{OUTPUT_PRECISION - 1}e}".split("e")
    if "." in mantissa:
        mantissa = mantissa.rstrip("0").rstrip(".")
    return f"{mantissa}e{int(exponent)}"


def _localize(digits: str, locale: LocaleSetting, grouped: bool = True) -> str:
    integer, _, fraction = digits.partition(".")
    if grouped:
        integer = _group(integer, locale.group_separator)
    if fraction:
        return f"{integer}{locale.decimal_separator}{fraction}"
    return integer


def uses_scientific(amount: float) -> bool:
    magnitude = abs(amount)
    return magnitude != 0 and (magnitude >= SCIENTIFIC_UPPER or magnitude < SCIENTIFIC_LOWER)


def format_number(amount: float, locale: LocaleSetting | None = None) -> str:
    """Format a plain number.

    Digits are produced in a locale-independent step with OUTPUT_PRECISION
    significant digits; the locale only swaps the separators.

    Args:
        amount: Finite number to render
        locale: Locale supplying separators (defaults to the active one)

    Returns:
        The rendered number, e.g. "1,234.5" (en-US) or "1.234,5" (de)
    """
    if locale is None:
        locale = current_locale()
    if amount == 0:
        return "0"
    if uses_scientific(amount):
        digits = _scientific_digits(amount)
        mantissa, _, exponent = digits.partition("e")
        text = f"{_localize(mantissa, locale, grouped=False)}e{exponent}"
    else:
        digits = _plain_digits(amount)
        if digits == "0":
            return "0"
        text = _localize(digits, locale)
    return f"-{text}" if amount < 0 else text


def format_money(amount: float, code: str, locale: LocaleSetting | None = None) -> str:
    """Format an amount of currency with two decimals and the currency mark."""
    if locale is None:
        locale = current_locale()
    if abs(amount) >= SCIENTIFIC_UPPER:
        number = format_number(abs(amount), locale)
        negative = amount < 0
    else:
        digits = _plain_digits(amount, CURRENCY_DECIMALS)
        number = _localize(digits, locale)
        negative = amount < 0 and float(digits) != 0
    symbol = CURRENCY_DISPLAY_SYMBOLS.get(code)
    sign = "-" if negative else ""
    if locale.currency_prefix:
        mark = symbol if symbol else f"{code} "
        return f"{sign}{mark}{number}"
    return f"{sign}{number} {symbol or code}"


def format_value(value: Value, locale: LocaleSetting | None = None) -> str:
    """Render a value for display.

    Examples:
        >>> format_value(Value.quantity(5, "km"))
        '5 km'
        >>> format_value(Value.money(3.5, "USD"))
        '$3.50'
    """
    if value.kind is ValueKind.CURRENCY:
        return format_money(value.amount, value.unit, locale)
    number = format_number(value.amount, locale)
    if value.kind is ValueKind.UNIT:
        return f"{number} {value.unit}"
    return number


def unit_label(value: Value) -> str:
    """The unit id or currency code of a value, or "" for plain numbers."""
    return value.unit or ""


def compact_number(amount: float) -> str:
    """Short human-readable form with k/M/B/T suffixes ("1.5k", "42.50")."""
    magnitude = abs(amount)
    for threshold, suffix in ((1e12, "T"), (1e9, "B"), (1e6, "M"), (1e3, "k")):
        if magnitude >= threshold:
            return f"{amount / threshold:.1f}{suffix}"
    if magnitude >= 100:
        return f"{amount:.0f}"
    return f"{amount:.2f}"
