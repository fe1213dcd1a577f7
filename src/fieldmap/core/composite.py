"""
Composite Aggregator: one value from several source fields.

Operations:
    SUM     - numeric total; non-numeric/missing sources count as 0
    AVG     - SUM divided by the number of sources with a present value
    MIN/MAX - over numeric sources only
    CONCAT  - string join in configured order, nulls as ""

Each source may carry an UPPER/LOWER/TRIM function, applied after
resolution and before coercion or joining.

Fallbacks when nothing numeric is available:
    SUM          -> default, else "0"
    AVG/MIN/MAX  -> default, else ""
"""

from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional

from fieldmap.core.mapping_types import CompositeOperation, CompositeSpec, SourceRef
from fieldmap.core.resolver import lookup_field
from fieldmap.core.values import format_number, to_number, to_text


@dataclass
class AggregateResult:
    """Aggregated value plus the sources that needed a fallback."""
    value: str
    missing_sources: List[str] = field(default_factory=list)
    non_numeric_sources: List[str] = field(default_factory=list)


def _source_text(record: Mapping[str, Any], source: SourceRef, case_insensitive: bool) -> Optional[str]:
    text = to_text(lookup_field(record, source.source_field, case_insensitive))
    if text is not None and source.function is not None:
        text = source.function.apply(text)
    return text


def aggregate_detailed(
    record: Mapping[str, Any],
    spec: CompositeSpec,
    default: Optional[str] = None,
    case_insensitive: bool = True,
) -> AggregateResult:
    """
    Aggregate a composite spec and report which sources fell back.

    Args:
        record: Input record.
        spec: Sources, operation, and delimiter.
        default: Fallback for empty or non-numeric results.
        case_insensitive: Fall back to case-insensitive field lookup.

    Returns:
        AggregateResult with the rendered value.
    """
    fallback = default if default is not None else ""
    if spec is None or not spec.sources:
        return AggregateResult(value=fallback)

    result = AggregateResult(value=fallback)
    texts = []
    for source in spec.sources:
        text = _source_text(record, source, case_insensitive)
        if text is None:
            result.missing_sources.append(source.source_field)
        texts.append(text)

    if spec.operation is CompositeOperation.CONCAT:
        result.value = (spec.delimiter or "").join(t if t is not None else "" for t in texts)
        return result

    numbers: List[float] = []
    present = 0
    for source, text in zip(spec.sources, texts):
        if text is None:
            continue
        present += 1
        number = to_number(text)
        if number is None:
            result.non_numeric_sources.append(source.source_field)
        else:
            numbers.append(number)

    op = spec.operation
    if op is CompositeOperation.SUM:
        if numbers:
            result.value = format_number(sum(numbers))
        elif default is None:
            result.value = "0"
    elif op is CompositeOperation.AVG:
        if present:
            result.value = format_number(sum(numbers) / present)
    elif op is CompositeOperation.MIN:
        if numbers:
            result.value = format_number(min(numbers))
    elif op is CompositeOperation.MAX:
        if numbers:
            result.value = format_number(max(numbers))
    return result


def aggregate(
    record: Mapping[str, Any],
    spec: CompositeSpec,
    default: Optional[str] = None,
    case_insensitive: bool = True,
) -> str:
    """
    Compute a composite field value.

    Example:
        >>> spec = CompositeSpec(
        ...     sources=(SourceRef("principal"), SourceRef("interest")),
        ...     operation=CompositeOperation.SUM,
        ... )
        >>> aggregate({"principal": "100", "interest": "25"}, spec)
        '125'
    """
    return aggregate_detailed(record, spec, default, case_insensitive).value
