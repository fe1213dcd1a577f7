"""
Value Resolver: field lookup with default fallback.

Upstream data is often sparse, so an unresolvable field is a normal
condition, never an error.
"""

import logging
from typing import Any, Mapping, Optional

from fieldmap.core.values import to_text

logger = logging.getLogger(__name__)

_MISSING = object()


def lookup_field(record: Mapping[str, Any], field_name: str, case_insensitive: bool = True) -> Any:
    """
    Fetch a raw value from a record.

    Tries the exact key first, then (optionally) a case-insensitive match.

    Returns:
        The raw value, or None when the field is absent.
    """
    if not field_name:
        return None
    value = record.get(field_name, _MISSING)
    if value is not _MISSING:
        return value
    stripped = field_name.strip()
    if stripped != field_name:
        value = record.get(stripped, _MISSING)
        if value is not _MISSING:
            return value
    if case_insensitive:
        wanted = stripped.casefold()
        for key, candidate in record.items():
            if isinstance(key, str) and key.casefold() == wanted:
                return candidate
    return None


def has_field(record: Mapping[str, Any], field_name: str, case_insensitive: bool = False) -> bool:
    """Check whether field_name names a key of the record."""
    if not field_name:
        return False
    if field_name in record:
        return True
    if case_insensitive:
        wanted = field_name.casefold()
        return any(isinstance(k, str) and k.casefold() == wanted for k in record.keys())
    return False


def resolve(
    record: Mapping[str, Any],
    field_name: Optional[str],
    default: Optional[str] = None,
    case_insensitive: bool = True,
) -> str:
    """
    Resolve a source field to its string value.

    Args:
        record: Input record.
        field_name: Field to look up.
        default: Returned when the field is absent or null.
        case_insensitive: Fall back to a case-insensitive key match.

    Returns:
        The field's string form, default, or "".

    Example:
        >>> resolve({"amount": 12.5}, "amount")
        '12.5'
        >>> resolve({}, "missing", "N/A")
        'N/A'
    """
    text = to_text(lookup_field(record, field_name, case_insensitive)) if field_name else None
    if text is not None:
        return text
    return default if default is not None else ""


def resolve_reference(
    record: Mapping[str, Any],
    value: Optional[str],
    reference_marker: Optional[str] = None,
    case_insensitive: bool = True,
    default: Optional[str] = None,
) -> str:
    """
    Resolve a then-value that is either a literal or a field reference.

    Without a marker, a value that exactly names a field of the record is
    read from the record; anything else is a literal. With a marker (e.g.
    "$"), only values starting with the marker are references and the
    marker is stripped; everything else is literal. A reference to a null
    or absent field yields default (or "").

    Example:
        >>> resolve_reference({"HIGH": "x"}, "HIGH")
        'x'
        >>> resolve_reference({"HIGH": "x"}, "HIGH", reference_marker="$")
        'HIGH'
    """
    if value is None:
        return ""
    if reference_marker:
        if value.startswith(reference_marker):
            name = value[len(reference_marker):]
            return resolve(record, name, default, case_insensitive)
        return value
    if has_field(record, value):
        return resolve(record, value, default, case_insensitive=False)
    return value
