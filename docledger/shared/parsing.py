"""Normalization helpers shared by the pipeline stages.

Collaborator output is free text written by a language model, so every
helper in this module is total: it returns a usable value for any input
and never raises.

- parse_number: locale-inconsistent monetary strings -> float
- parse_date: mixed date notations -> ISO date string
- normalize_currency: symbols, words and codes -> ISO 4217 code
- extract_json_object: first balanced JSON object embedded in free text
"""

import json
import logging
import math
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Parsed(Generic[T]):
    """Structured value recovered from a collaborator response."""

    value: T


@dataclass(frozen=True)
class Fallback(Generic[T]):
    """Documented default used because the response could not be parsed."""

    value: T
    reason: str


ParseOutcome = Parsed[T] | Fallback[T]


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    """Clamp value into [low, high]."""
    return max(low, min(high, value))


# ---------------------------------------------------------------------------
# Numbers
# ---------------------------------------------------------------------------

_NON_NUMERIC = re.compile(r"[^\d\s,.\-]")
_WHITESPACE = re.compile(r"\s+")
_DOT_THOUSANDS = re.compile(r"^-?\d{1,3}(\.\d{3})+(,\d+)?$")  # 1.234,56
_COMMA_THOUSANDS = re.compile(r"^-?\d{1,3}(,\d{3})+$")  # 1,049 and 1,234,567 (see DESIGN.md)
_US_GROUPED = re.compile(r"^-?\d{1,3}(,\d{3})+\.\d+$")  # 1,234.56
_COMMA_DECIMAL = re.compile(r",\d{1,2}$")  # 123,45
_LEADING_FLOAT = re.compile(r"^-?(\d+(\.\d*)?|\.\d+)")


def parse_number(value: Any) -> float:
    """Parse a monetary amount written in any of the common notations.

    Shapes are tried in priority order:
    1. dot thousands, comma decimal: "1.234,56" -> 1234.56
    2. comma-grouped integers: "1,049" -> 1049, "1,234,567" -> 1234567
    3. comma thousands, dot decimal: "1,234.56" -> 1234.56
    4. comma decimal: "123,45" -> 123.45 (also the fallback for any other comma)

    Whitespace is a thousands separator ("1 234,56" -> 1234.56). If the result is a
    small fraction but the bare digit string is a number above 100, the integer
    reading wins. Unparseable input gives 0.

    Args:
        value: Number or string from the collaborator

    Returns:
        Parsed amount, 0.0 when nothing numeric is found
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, int | float | Decimal):
        number = float(value)
        return number if math.isfinite(number) else 0.0
    if not isinstance(value, str):
        return 0.0

    cleaned = _WHITESPACE.sub("", _NON_NUMERIC.sub("", value))

    if _DOT_THOUSANDS.match(cleaned):
        cleaned = cleaned.replace(".", "").replace(",", ".")
    elif _COMMA_THOUSANDS.match(cleaned):
        cleaned = cleaned.replace(",", "")
    elif _US_GROUPED.match(cleaned):
        cleaned = cleaned.replace(",", "")
    elif _COMMA_DECIMAL.search(cleaned):
        cleaned = cleaned.replace(",", ".", 1)
    else:
        cleaned = cleaned.replace(",", ".", 1)

    match = _LEADING_FLOAT.match(cleaned)
    result = float(match.group(0)) if match else 0.0

    if 0 < result < 1:
        digits = re.sub(r"[^\d\-]", "", value)
        try:
            integer_value = int(digits)
        except ValueError:
            integer_value = 0
        if integer_value > 100:
            return float(integer_value)

    return result


def parse_optional_number(value: Any) -> float | None:
    """Like parse_number, but missing or zero values stay None."""
    if value is None or value == "":
        return None
    number = parse_number(value)
    return number if number else None


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------

SWEDISH_MONTHS: dict[str, int] = {
    "januari": 1,
    "jan": 1,
    "februari": 2,
    "feb": 2,
    "mars": 3,
    "mar": 3,
    "april": 4,
    "apr": 4,
    "maj": 5,
    "juni": 6,
    "jun": 6,
    "juli": 7,
    "jul": 7,
    "augusti": 8,
    "aug": 8,
    "september": 9,
    "sep": 9,
    "oktober": 10,
    "okt": 10,
    "november": 11,
    "nov": 11,
    "december": 12,
    "dec": 12,
}

_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_DAY_FIRST = re.compile(r"^(\d{1,2})[./](\d{1,2})[./](\d{4})$")
_YEAR_FIRST = re.compile(r"^(\d{4})[./](\d{1,2})[./](\d{1,2})$")
_SWEDISH_TEXT = re.compile(
    r"(\d{1,2})\s*(" + "|".join(SWEDISH_MONTHS) + r")\.?\s*(\d{4}|\d{2})\b"
)

_GENERIC_FORMATS = (
    "%d %B %Y",  # 26 November 2025
    "%d %b %Y",  # 26 Nov 2025
    "%B %d, %Y",  # November 26, 2025
    "%b %d, %Y",  # Nov 26, 2025
    "%Y%m%d",  # 20251126
)


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_date(value: Any, today: date | None = None) -> str:
    """Normalize a document date to ISO format (YYYY-MM-DD).

    Accepts ISO dates, day-first European dates (23.03.2024, 23/03/2024),
    year-first dotted dates (2024.03.23) and Swedish month names
    ("23 mar 22", "ons 14 mars 2022"), then generic parsing. Falls back to
    today's date when nothing matches.

    Args:
        value: Raw date value from the collaborator
        today: Reference date for the fallback (defaults to date.today())

    Returns:
        ISO date string
    """
    fallback = (today or date.today()).isoformat()
    if not isinstance(value, str) or not value.strip():
        return fallback

    text = value.strip()

    match = _ISO_DATE.match(text)
    if match:
        parsed = _safe_date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
        if parsed:
            return parsed.isoformat()

    match = _DAY_FIRST.match(text)
    if match:
        day, month, year = (int(g) for g in match.groups())
        parsed = _safe_date(year, month, day)
        if parsed:
            return parsed.isoformat()

    match = _YEAR_FIRST.match(text)
    if match:
        year, month, day = (int(g) for g in match.groups())
        parsed = _safe_date(year, month, day)
        if parsed:
            return parsed.isoformat()

    match = _SWEDISH_TEXT.search(text.lower())
    if match:
        day_text, month_text, year_text = match.groups()
        year = int(year_text) + 2000 if len(year_text) == 2 else int(year_text)
        parsed = _safe_date(year, SWEDISH_MONTHS[month_text], int(day_text))
        if parsed:
            return parsed.isoformat()

    try:
        return datetime.fromisoformat(text).date().isoformat()
    except ValueError:
        pass

    for fmt in _GENERIC_FORMATS:
        try:
            return datetime.strptime(text, fmt).date().isoformat()
        except ValueError:
            continue

    logger.debug(f"Unparseable date {text!r}, using {fallback}")
    return fallback


# ---------------------------------------------------------------------------
# Currency
# ---------------------------------------------------------------------------

VALID_CURRENCIES = frozenset({"SEK", "EUR", "USD", "GBP", "DKK", "NOK", "CHF", "JPY"})

CurrencyResolver = Callable[[str, str, str], str | None]


def _symbol_euro(symbol: str, raw: str, base: str) -> str | None:
    if symbol == "€" or "eur" in symbol:
        return "EUR"
    return None


def _symbol_dollar(symbol: str, raw: str, base: str) -> str | None:
    if symbol == "$" or symbol == "usd" or "dollar" in symbol:
        return "USD"
    return None


def _symbol_pound(symbol: str, raw: str, base: str) -> str | None:
    if symbol == "£" or symbol == "gbp" or "pound" in symbol:
        return "GBP"
    return None


def _symbol_danish(symbol: str, raw: str, base: str) -> str | None:
    if symbol == "dkk" or (symbol == "kr" and raw == "DKK"):
        return "DKK"
    return None


def _symbol_norwegian(symbol: str, raw: str, base: str) -> str | None:
    if symbol == "nok" or (symbol == "kr" and raw == "NOK"):
        return "NOK"
    return None


def _symbol_swedish(symbol: str, raw: str, base: str) -> str | None:
    if symbol == "kr":
        return base if base in {"SEK", "DKK", "NOK"} else "SEK"
    if symbol in {":-", "sek"} or "kronor" in symbol:
        return "SEK"
    return None


def _raw_iso_code(symbol: str, raw: str, base: str) -> str | None:
    return raw if raw in VALID_CURRENCIES else None


def _raw_word_variant(symbol: str, raw: str, base: str) -> str | None:
    if not raw:
        return None
    if "EURO" in raw or raw == "E":
        return "EUR"
    if "DOLLAR" in raw or raw == "US":
        return "USD"
    if "KRONOR" in raw or raw == "KR":
        return "SEK"
    if "POUND" in raw or raw == "STERLING":
        return "GBP"
    return None


_SYMBOL_RESOLVERS: tuple[CurrencyResolver, ...] = (
    _symbol_euro,
    _symbol_dollar,
    _symbol_pound,
    _symbol_danish,
    _symbol_norwegian,
    _symbol_swedish,
)
_RAW_RESOLVERS: tuple[CurrencyResolver, ...] = (_raw_iso_code, _raw_word_variant)


def normalize_currency(
    raw_currency: Any = None, detected_symbol: Any = None, base_currency: str = "SEK"
) -> str:
    """Resolve the document currency to an ISO 4217 code.

    The symbol or word actually seen next to the amounts beats the raw
    currency field. Always returns a valid code.

    Args:
        raw_currency: Currency field reported by the collaborator
        detected_symbol: Symbol/text the collaborator saw beside the amounts
        base_currency: Local currency used when nothing matches

    Returns:
        Three-letter currency code
    """
    base = base_currency.upper() if base_currency else "SEK"
    raw = raw_currency.upper().strip() if isinstance(raw_currency, str) else ""

    if isinstance(detected_symbol, str) and detected_symbol.strip():
        symbol = detected_symbol.lower().strip()
        for resolver in _SYMBOL_RESOLVERS:
            code = resolver(symbol, raw, base)
            if code:
                return code

    for resolver in _RAW_RESOLVERS:
        code = resolver("", raw, base)
        if code:
            return code

    return base


# ---------------------------------------------------------------------------
# Free-text JSON
# ---------------------------------------------------------------------------


def find_balanced_object(text: str) -> str | None:
    """Return the first balanced {...} substring, ignoring braces inside strings."""
    start = text.find("{")
    if start < 0:
        return None

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : index + 1]
    return None


def extract_json_object(text: Any) -> dict[str, Any] | None:
    """Best-effort parse of the JSON object embedded in a collaborator response.

    Args:
        text: Raw response text (prose, markdown fences and JSON mixed)

    Returns:
        Parsed dict, or None when no balanced object exists or it is not valid JSON
    """
    if not isinstance(text, str):
        return None
    candidate = find_balanced_object(text)
    if candidate is None:
        return None
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as e:
        logger.warning(f"Embedded JSON object failed to parse: {e}")
        return None
    return parsed if isinstance(parsed, dict) else None
