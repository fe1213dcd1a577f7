"""
Formatter: fixed-width padding and type-specific formatting.

format_fixed_width() is total and pure: it always returns exactly `length`
characters, so applying it twice changes nothing.

format_typed() runs first and is opt-in per mapping via data_type.
"""

import logging
from datetime import datetime
from typing import Optional, Tuple

from fieldmap.constants import DEFAULT_PAD_CHAR
from fieldmap.core.mapping_types import DataType, PadSide
from fieldmap.core.values import to_number

logger = logging.getLogger(__name__)


def format_fixed_width(
    value: Optional[str],
    length: int,
    pad_side: PadSide = PadSide.RIGHT,
    pad_char: str = DEFAULT_PAD_CHAR,
) -> str:
    """
    Pad or truncate a value to exactly `length` characters.

    Args:
        value: Text to fit; None is treated as "".
        length: Target width. Values <= 0 return the text unchanged.
        pad_side: Side the padding is added on.
        pad_char: Padding character; only the first character is used.
            None or "" falls back to a space.

    Returns:
        The fitted string. Truncation keeps the left-most characters.

    Example:
        >>> format_fixed_width("N/A", 5)
        'N/A  '
        >>> format_fixed_width("42", 5, PadSide.LEFT, "0")
        '00042'
        >>> format_fixed_width("ABCDEFG", 3)
        'ABC'
    """
    text = value or ""
    if not length or length <= 0:
        return text
    if len(text) >= length:
        return text[:length]
    fill = (pad_char or DEFAULT_PAD_CHAR)[:1]
    if pad_side is PadSide.LEFT:
        return text.rjust(length, fill)
    return text.ljust(length, fill)


def format_typed(
    value: str,
    data_type: Optional[DataType],
    fmt: Optional[str] = None,
    source_format: Optional[str] = None,
) -> Tuple[str, bool]:
    """
    Apply data-type formatting ahead of padding.

    NUMERIC applies a Python format spec (".2f", "012.2f", "d").
    DATE re-formats from source_format to fmt (strptime/strftime codes).

    Returns:
        (formatted value, ok). When the value cannot be coerced it is
        returned unchanged with ok=False.
    """
    if data_type is None or data_type is DataType.STRING or not value:
        return value, True

    if data_type is DataType.NUMERIC:
        number = to_number(value)
        if number is None:
            return value, False
        if not fmt:
            return value, True
        try:
            if fmt.endswith("d"):
                return format(int(round(number)), fmt), True
            return format(number, fmt), True
        except ValueError as e:
            logger.debug(f"Numeric format {fmt!r} rejected for {value!r}: {e}")
            return value, False

    if data_type is DataType.DATE:
        if not fmt or not source_format:
            return value, True
        try:
            parsed = datetime.strptime(value.strip(), source_format)
        except ValueError:
            return value, False
        return parsed.strftime(fmt), True

    return value, True
