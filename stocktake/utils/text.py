# Text and number helpers shared by column detection, extraction and aggregation.

import datetime
import decimal
import logging
import math
import re
import unicodedata
from typing import Any, Optional

logger = logging.getLogger(__name__)

# Letters that NFKD does not decompose into base letter + combining mark.
_FOLD_TABLE = str.maketrans({
    "ł": "l", "Ł": "L",
    "ø": "o", "Ø": "O",
    "đ": "d", "Đ": "D",
    "æ": "ae", "Æ": "AE",
    "œ": "oe", "Œ": "OE",
})

# Anything that is not a letter/digit/space becomes a separator.
_NOISE_RE = re.compile(r"[^\w\s]|_", re.UNICODE)

# Thousands separators: any whitespace (incl. no-break spaces) and apostrophes.
_NUMBER_SPACES_RE = re.compile(r"[\s']")


def normalize(text: Any) -> str:
    """
    Build a matching key from free text.

    Trims, folds case, strips diacritics and punctuation noise and collapses
    whitespace, so "Kg", " kg " and "KG." all give "kg" and "Ilość" gives "ilosc".
    """
    if text is None:
        return ""
    value = str(text).translate(_FOLD_TABLE)
    value = unicodedata.normalize("NFKD", value)
    value = "".join(ch for ch in value if not unicodedata.combining(ch))
    value = _NOISE_RE.sub(" ", value.casefold())
    return " ".join(value.split())


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def cell_to_text(value: Any) -> str:
    """Display text of a cell: integral floats lose their '.0', whitespace is collapsed."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, decimal.Decimal):
        if value.is_finite() and value == value.to_integral_value():
            return str(value.quantize(decimal.Decimal(1)))
        return str(value)
    if isinstance(value, (datetime.datetime, datetime.date)):
        return value.isoformat()
    return " ".join(str(value).split())


def to_decimal(value: Any, context: str = "") -> Optional[decimal.Decimal]:
    """Convert a cell value to a finite Decimal, or None when it is not a number.

    Floats are rounded to 14 places first so that 0.30000000000000004 becomes 0.3.
    Strings accept spaces as thousands separators and a comma as decimal mark.
    """
    prefix = "[to_decimal]"
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, decimal.Decimal):
        return value if value.is_finite() else None

    if isinstance(value, int):
        return decimal.Decimal(value)

    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        value_str = f"{value:.14f}".rstrip('0').rstrip('.')
        if not value_str or value_str == '-':
            return decimal.Decimal(0)
        return decimal.Decimal(value_str)

    value_str = _NUMBER_SPACES_RE.sub("", str(value))
    if not value_str:
        return None

    if "," in value_str:
        if "." in value_str:
            # The right-most separator is the decimal mark
            if value_str.rfind(",") > value_str.rfind("."):
                value_str = value_str.replace(".", "").replace(",", ".")
            else:
                value_str = value_str.replace(",", "")
        else:
            value_str = value_str.replace(",", ".")

    try:
        result = decimal.Decimal(value_str)
    except (decimal.InvalidOperation, TypeError, ValueError):
        logger.debug(f"{prefix} Not a number: '{value}' {context}")
        return None

    if not result.is_finite():
        logger.debug(f"{prefix} Non-finite number rejected: '{value}' {context}")
        return None
    return result


def is_numeric_cell(value: Any) -> bool:
    return to_decimal(value) is not None
