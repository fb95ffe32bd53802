"""Locale-aware coercion between displayed field text and numbers/dates."""

import logging
import math
import re
from dataclasses import dataclass
from datetime import date, datetime
from enum import StrEnum, auto
from typing import Any

logger = logging.getLogger(__name__)


class FormatKind(StrEnum):
    """How a computed value is rendered back into the bound tree."""

    CURRENCY = auto()  # Grouped amount, up to 3 fraction digits
    IDR = auto()  # Alias of CURRENCY (Rupiah style grouping)
    NUMBER = auto()  # Generic locale grouping
    DECIMAL = auto()  # Fixed 2 decimals
    PERCENT = auto()  # x100 with 2 decimals and '%'
    DAYS = auto()
    WEEKS = auto()
    MONTHS = auto()
    YEARS = auto()
    PLAIN = auto()  # str() of the value


_UNIT_SUFFIXES: dict[FormatKind, str] = {
    FormatKind.DAYS: "days",
    FormatKind.WEEKS: "weeks",
    FormatKind.MONTHS: "months",
    FormatKind.YEARS: "years",
}


@dataclass(frozen=True, slots=True)
class NumberLocale:
    """Thousands and decimal separators of a number convention."""

    name: str
    thousands: str
    decimal: str


ID_LOCALE = NumberLocale(name="id", thousands=".", decimal=",")
EN_LOCALE = NumberLocale(name="en", thousands=",", decimal=".")

LOCALES: dict[str, NumberLocale] = {locale.name: locale for locale in (ID_LOCALE, EN_LOCALE)}

DEFAULT_LOCALE = ID_LOCALE

_NON_NUMERIC = re.compile(r"[^\d.,]")
_DATE_FORMATS = ("%d/%m/%Y", "%d-%m-%Y", "%Y/%m/%d")


def get_locale(name: str) -> NumberLocale:
    """Look up a named number locale.

    Raises:
        KeyError: If no locale with that name exists.

    """
    try:
        return LOCALES[name]
    except KeyError:
        msg = f"Unknown number locale '{name}'. Known: {sorted(LOCALES)}"
        raise KeyError(msg) from None


def _normalize_separators(digits: str, locale: NumberLocale) -> str:
    """Turn a digits-and-separators string into a Python float literal."""
    has_dot = "." in digits
    has_comma = "," in digits

    if has_dot and has_comma:
        # Whichever separator comes last is the decimal separator
        decimal_sep = "." if digits.rfind(".") > digits.rfind(",") else ","
        thousands_sep = "," if decimal_sep == "." else "."
        return digits.replace(thousands_sep, "").replace(decimal_sep, ".")

    if not has_dot and not has_comma:
        return digits

    sep = "." if has_dot else ","
    if digits.count(sep) > 1:
        return digits.replace(sep, "")

    _, _, fraction = digits.partition(sep)
    if len(fraction) == 3 and sep == locale.thousands:  # noqa: PLR2004
        return digits.replace(sep, "")
    return digits.replace(sep, ".")


def to_number(raw: Any, *, locale: NumberLocale = DEFAULT_LOCALE) -> float:
    """Parse a displayed value into a float.

    Currency and percent symbols are stripped, both ``1.234,56`` and
    ``1,234.56`` conventions are recognized, and a ``%`` marker divides the
    result by 100. Empty or unparsable input yields ``0``.

    Args:
        raw: Field text, a number, a bool or None.
        locale: Convention used to break ties for a lone separator followed
            by exactly three digits.

    Returns:
        The parsed number, or 0.0.

    """
    if raw is None:
        return 0.0
    if isinstance(raw, bool):
        return 1.0 if raw else 0.0
    if isinstance(raw, int | float):
        value = float(raw)
        return 0.0 if math.isnan(value) else value

    text = str(raw).strip()
    if not text:
        return 0.0

    is_percent = "%" in text
    first_digit = re.search(r"\d", text)
    if first_digit is None:
        return 0.0
    negative = "-" in text[: first_digit.start()]

    digits = _NON_NUMERIC.sub("", text).strip(".,")
    try:
        value = float(_normalize_separators(digits, locale))
    except ValueError:
        return 0.0

    if negative:
        value = -value
    if is_percent:
        value /= 100
    return value


def to_date(raw: Any) -> date | None:
    """Parse a date from field text; None when missing or malformed."""
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw

    text = str(raw).strip()
    if not text:
        return None

    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()  # noqa: DTZ007
        except ValueError:
            continue
    return None


def auto_coerce(raw: Any) -> float | bool | str:
    """Coerce field text to the most natural scalar (0 for empty)."""
    if raw is None:
        return 0
    if isinstance(raw, bool | int | float):
        return raw
    text = str(raw).strip()
    if not text:
        return 0
    if text == "true":
        return True
    if text == "false":
        return False
    try:
        return float(text)
    except ValueError:
        return text


def plain_string(value: Any) -> str:
    """Render a value the way a plain text field shows it."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
    return str(value)


def _group(value: float, locale: NumberLocale, max_fraction: int) -> str:
    """Group thousands and render at most ``max_fraction`` fraction digits."""
    text = f"{abs(value):,.{max_fraction}f}"
    integer, _, fraction = text.partition(".")
    fraction = fraction.rstrip("0")
    integer = integer.replace(",", locale.thousands)
    sign = "-" if value < 0 and (integer.strip("0" + locale.thousands) or fraction) else ""
    if fraction:
        return f"{sign}{integer}{locale.decimal}{fraction}"
    return f"{sign}{integer}"


def _resolve_kind(kind: FormatKind | str | None) -> FormatKind | None:
    if kind is None or isinstance(kind, FormatKind):
        return kind
    try:
        return FormatKind(kind.strip().lower())
    except ValueError:
        logger.warning("Unknown format kind '%s', falling back to plain", kind)
        return None


def format_value(
    value: Any,
    kind: FormatKind | str | None = None,
    *,
    locale: NumberLocale = DEFAULT_LOCALE,
) -> str:
    """Format a computed value for display.

    Args:
        value: Raw computed value (number or string).
        kind: Format kind; unknown or missing kinds render the plain string.
        locale: Number convention for grouped kinds.

    Returns:
        The display string. None and NaN render as an empty string.

    """
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return ""

    resolved = _resolve_kind(kind)
    if resolved is None or resolved is FormatKind.PLAIN:
        return plain_string(value)

    if resolved in (FormatKind.CURRENCY, FormatKind.IDR):
        if isinstance(value, str):
            if not value.strip():
                return ""
            number = to_number(value, locale=locale)
        else:
            number = float(value)
        return _group(number, locale, max_fraction=3)

    # The remaining kinds only apply to numbers; text passes through
    if isinstance(value, str):
        return value
    number = float(value)

    match resolved:
        case FormatKind.NUMBER:
            return _group(number, locale, max_fraction=3)
        case FormatKind.DECIMAL:
            return f"{number:.2f}"
        case FormatKind.PERCENT:
            return f"{number * 100:.2f}%"
        case _:
            return f"{round(number)} {_UNIT_SUFFIXES[resolved]}"
