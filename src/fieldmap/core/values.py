"""
Value Model: coercion rules for record values.

Records arrive from CSV readers, database cursors, and pandas frames, so a
"missing" value can be None, NaN, pd.NA, or NaT. Everything downstream
works on three questions:

- is_null(value)   -> is the value absent?
- to_text(value)   -> canonical string form
- to_number(value) -> float, or None when the value is not numeric
"""

import math
import re
from decimal import Decimal
from typing import Any, Optional

import numpy as np
import pandas as pd

from fieldmap.constants import BOOL_FALSE_TEXT, BOOL_TRUE_TEXT, NUMBER_RENDER_DIGITS

# Plain decimal or scientific notation; rejects "nan", "inf", "1_000"
NUMBER_PATTERN = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$")


def is_null(value: Any) -> bool:
    """
    Check whether a record value counts as absent.

    Example:
        >>> is_null(None), is_null(float("nan")), is_null(""), is_null(0)
        (True, True, False, False)
    """
    if value is None:
        return True
    if isinstance(value, (str, bool, int, Decimal)):
        return False
    if isinstance(value, (float, np.floating)):
        return math.isnan(value)
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        # array-like values are never a missing marker
        return False


def format_number(value: float) -> str:
    """
    Render a computed number without locale separators.

    Integral values drop the fraction; others keep up to
    NUMBER_RENDER_DIGITS fractional digits with trailing zeros stripped.

    Example:
        >>> format_number(125.0), format_number(0.1 + 0.2), format_number(-0.0)
        ('125', '0.3', '0')
    """
    if not math.isfinite(value):
        return str(value)
    if value == int(value) and abs(value) < 1e16:
        return str(int(value))
    text = f"{value:.{NUMBER_RENDER_DIGITS}f}".rstrip("0").rstrip(".")
    return "0" if text in ("-0", "") else text


def to_text(value: Any) -> Optional[str]:
    """
    Canonical string form of a record value; None for null.

    Booleans render as "true"/"false", floats through format_number.
    """
    if is_null(value):
        return None
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, bool):
        return BOOL_TRUE_TEXT if value else BOOL_FALSE_TEXT
    if isinstance(value, str):
        return value
    if isinstance(value, float):
        if math.isinf(value):
            return str(value)
        return format_number(value)
    if isinstance(value, Decimal):
        return format(value, "f")
    return str(value)


def to_number(value: Any) -> Optional[float]:
    """
    Coerce a value or literal to float.

    Returns None for null, booleans, non-finite numbers, and text that is not
    a plain decimal literal (surrounding whitespace is allowed).
    """
    if is_null(value):
        return None
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
        return number if math.isfinite(number) else None
    text = str(value).strip()
    if not NUMBER_PATTERN.match(text):
        return None
    number = float(text)
    return number if math.isfinite(number) else None
