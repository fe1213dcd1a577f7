"""
Configuration builder: plain dicts -> typed mapping rules.

Mapping configuration is stored elsewhere (YAML, JSON, database rows); the
caller parses it into dicts and hands them here. Both camelCase keys (as
written by the batch configuration UI) and snake_case keys are accepted.

    field:
      targetField: account_status      # or the key of a `fields` dict
      targetPosition: 3
      transformationType: conditional  # constant|source|composite|conditional|blank
      conditions:
        - if: "amount > 1000000 && status == 'ACTIVE'"
          then: HIGH
          elseIfExprs:
            - if: "amount BETWEEN 100000 AND 1000000"
              then: MEDIUM
          else: LOW
      defaultValue: ""
      length: 6
      pad: right
      padChar: " "

All builders raise ConfigurationError on shapes they cannot interpret.
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from fieldmap.constants import (
    DEFAULT_DELIMITER,
    DEFAULT_PAD_CHAR,
    DEFAULT_TRANSACTION_TYPE,
    KIND_ALIASES,
    LEGACY_STRING_OPERATIONS,
    OPERATION_ALIASES,
)
from fieldmap.core.diagnostics import ConfigurationError
from fieldmap.core.mapping_types import (
    CompositeOperation,
    CompositeSpec,
    Condition,
    DataType,
    FieldMapping,
    MappingTemplate,
    PadSide,
    SourceFunction,
    SourceRef,
    TransformKind,
)
from fieldmap.core.values import to_text

logger = logging.getLogger(__name__)

DATA_TYPE_ALIASES = {
    "string": DataType.STRING,
    "str": DataType.STRING,
    "text": DataType.STRING,
    "numeric": DataType.NUMERIC,
    "number": DataType.NUMERIC,
    "decimal": DataType.NUMERIC,
    "integer": DataType.NUMERIC,
    "int": DataType.NUMERIC,
    "date": DataType.DATE,
}


def _first(d: Mapping[str, Any], *keys: str, default=None):
    """Value of the first key present in d."""
    for key in keys:
        if key in d:
            return d[key]
    return default


def _text(value: Any) -> Optional[str]:
    return None if value is None else to_text(value)


def _enum_value(raw: Any, aliases: Dict[str, str], what: str, field_name: str) -> str:
    key = str(raw).strip().lower()
    if key not in aliases:
        raise ConfigurationError(f"Field '{field_name}': unknown {what} {raw!r}")
    return aliases[key]


# =============================================================================
# COMPOSITE
# =============================================================================

def normalize_sources(raw_sources: Sequence[Any], field_name: str) -> List[Tuple[str, Optional[SourceFunction]]]:
    """
    Normalize composite sources.

    Accepts bare field names or dicts with sourceField and an optional
    function/transform.
    """
    out = []
    for src in raw_sources or []:
        if isinstance(src, str):
            out.append((src.strip(), None))
            continue
        if not isinstance(src, Mapping):
            raise ConfigurationError(f"Field '{field_name}': composite source must be a name or mapping, got {src!r}")
        name = _first(src, "sourceField", "source_field", "field", "name")
        if not name:
            raise ConfigurationError(f"Field '{field_name}': composite source without sourceField")
        func = _first(src, "function", "transform")
        function = None
        if func:
            try:
                function = SourceFunction(str(func).strip().lower())
            except ValueError as e:
                raise ConfigurationError(f"Field '{field_name}': unknown source function {func!r}") from e
        out.append((str(name).strip(), function))
    return out


def build_composite(d: Mapping[str, Any], field_name: str) -> CompositeSpec:
    """
    Build a CompositeSpec from a field dict.

    Legacy single-source string transforms (upper/lower/trim) become a
    CONCAT of the first source with that function.
    """
    raw = d.get("composite") if isinstance(d.get("composite"), Mapping) else d
    sources = normalize_sources(_first(raw, "sources", default=[]), field_name)
    op_raw = _first(raw, "operation", "transform", default="concat")
    delimiter = _first(raw, "delimiter", default=DEFAULT_DELIMITER)
    delimiter = "" if delimiter is None else str(delimiter)

    op_key = str(op_raw).strip().lower()
    if op_key in LEGACY_STRING_OPERATIONS:
        function = SourceFunction(LEGACY_STRING_OPERATIONS[op_key])
        first = sources[:1]
        refs = tuple(SourceRef(name, fn or function) for name, fn in first)
        return CompositeSpec(sources=refs, operation=CompositeOperation.CONCAT, delimiter="")

    operation = CompositeOperation(_enum_value(op_raw, OPERATION_ALIASES, "composite operation", field_name))
    refs = tuple(SourceRef(name, fn) for name, fn in sources)
    return CompositeSpec(sources=refs, operation=operation, delimiter=delimiter)


# =============================================================================
# CONDITIONAL
# =============================================================================

def flatten_conditions(raw_conditions: Sequence[Mapping[str, Any]], field_name: str) -> Tuple[Condition, ...]:
    """
    Flatten condition entries into one ordered list.

    Each entry may carry `if`/`then`, nested `elseIfExprs`, and an `else`,
    producing: if -> else-ifs -> else. An entry with only `then` is an
    else-branch; an empty `if` stays a predicate and never matches.
    """
    out: List[Condition] = []
    for entry in raw_conditions or []:
        if not isinstance(entry, Mapping):
            raise ConfigurationError(f"Field '{field_name}': condition must be a mapping, got {entry!r}")
        predicate = _first(entry, "if", "ifExpr", "predicate", "when")
        then = _text(_first(entry, "then", "thenValue", "then_value", default=""))
        has_else = any(k in entry for k in ("else", "elseExpr", "else_value"))

        if predicate is not None:
            out.append(Condition(predicate=str(predicate), then_value=then or ""))
        elif not has_else or then:
            out.append(Condition(predicate=None, then_value=then or ""))

        for nested in _first(entry, "elseIfExprs", "else_if", "elseIf", default=[]) or []:
            out.extend(c for c in flatten_conditions([nested], field_name) if not c.is_else)

        if has_else:
            else_value = _text(_first(entry, "else", "elseExpr", "else_value"))
            if else_value:
                out.append(Condition(predicate=None, then_value=else_value))
    return tuple(out)


# =============================================================================
# FIELD MAPPING
# =============================================================================

def _resolve_kind(d: Mapping[str, Any], field_name: str) -> TransformKind:
    raw = _first(d, "transformationType", "transformation_type", "kind", "type")
    if raw is None or not str(raw).strip():
        if d.get("composite") is True or isinstance(d.get("composite"), Mapping):
            return TransformKind.COMPOSITE
        return TransformKind.BLANK
    return TransformKind(_enum_value(raw, KIND_ALIASES, "transformation type", field_name))


def _int_option(raw: Any, what: str, field_name: str) -> Optional[int]:
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Field '{field_name}': {what} must be an integer, got {raw!r}") from e


def build_mapping(d: Mapping[str, Any], name: Optional[str] = None, validate: bool = True) -> FieldMapping:
    """
    Build a FieldMapping from a configuration dict.

    Args:
        d: Field configuration.
        name: Target field name when d does not carry one (e.g. dict key).
        validate: Raise ConfigurationError for shape problems.

    Returns:
        The immutable FieldMapping.
    """
    target = _first(d, "targetField", "target_field", "fieldName", "field_name", default=name)
    field_name = str(target) if target is not None else "<unnamed>"
    kind = _resolve_kind(d, field_name)

    pad_raw = _first(d, "pad", "padSide", "pad_side", default=PadSide.RIGHT.value)
    try:
        pad_side = PadSide(str(pad_raw).strip().lower())
    except ValueError as e:
        raise ConfigurationError(f"Field '{field_name}': pad must be left or right, got {pad_raw!r}") from e

    pad_char = _first(d, "padChar", "pad_char", default=DEFAULT_PAD_CHAR)
    pad_char = DEFAULT_PAD_CHAR if pad_char is None or str(pad_char) == "" else str(pad_char)[:1]

    data_type_raw = _first(d, "dataType", "data_type")
    data_type = None
    if data_type_raw:
        data_type = DATA_TYPE_ALIASES.get(str(data_type_raw).strip().lower())
        if data_type is None:
            logger.debug(f"Field '{field_name}': no formatter for data type {data_type_raw!r}")

    mapping = FieldMapping(
        target_field=str(target or ""),
        kind=kind,
        target_position=_int_option(_first(d, "targetPosition", "target_position"), "targetPosition", field_name) or 0,
        constant_value=_text(_first(d, "value", "constantValue", "constant_value")),
        source_field=_text(_first(d, "sourceField", "source_field", "from")),
        composite=build_composite(d, field_name) if kind is TransformKind.COMPOSITE else None,
        conditions=(
            flatten_conditions(_first(d, "conditions", default=[]), field_name)
            if kind is TransformKind.CONDITIONAL else ()
        ),
        default_value=_text(_first(d, "defaultValue", "default_value", "default")),
        length=_int_option(_first(d, "length"), "length", field_name),
        pad_side=pad_side,
        pad_char=pad_char,
        data_type=data_type,
        format=_text(_first(d, "format", "targetFormat", "target_format")),
        source_format=_text(_first(d, "sourceFormat", "source_format")),
    )
    return mapping.validate() if validate else mapping


def build_mappings(fields: Any, validate: bool = True) -> Tuple[FieldMapping, ...]:
    """
    Build mappings from a list of field dicts or a name -> dict mapping.

    Returns:
        Mappings sorted by target_position.
    """
    if isinstance(fields, Mapping):
        items = [build_mapping(d or {}, name=str(key), validate=validate) for key, d in fields.items()]
    else:
        items = [build_mapping(d, validate=validate) for d in fields or []]
    return tuple(sorted(items, key=lambda m: m.target_position))


# =============================================================================
# TEMPLATES
# =============================================================================

def build_template(doc: Mapping[str, Any], name: Optional[str] = None, validate: bool = True) -> MappingTemplate:
    """
    Build a MappingTemplate from one configuration document.

    The document carries `fields` (list or name -> dict) and an optional
    `transactionType`.
    """
    if not isinstance(doc, Mapping) or doc.get("fields") is None:
        raise ConfigurationError(f"Template '{name or '?'}' is empty or has no fields")
    txn = _first(doc, "transactionType", "transaction_type", default=DEFAULT_TRANSACTION_TYPE)
    template = MappingTemplate(
        name=str(_first(doc, "name", "template", default=name or "")),
        fields=build_mappings(doc["fields"], validate=validate),
        transaction_type=str(txn or DEFAULT_TRANSACTION_TYPE),
    )
    logger.info(
        f"Built template '{template.name}' ({template.transaction_type}) "
        f"with {len(template.fields)} fields"
    )
    return template


def build_templates(docs: Iterable[Mapping[str, Any]], name: Optional[str] = None) -> List[MappingTemplate]:
    """Build one template per document of a multi-document configuration."""
    return [build_template(doc, name=name) for doc in docs if doc is not None]


def select_template(templates: Sequence[MappingTemplate], transaction_type: Optional[str]) -> MappingTemplate:
    """
    Pick the template for a transaction type.

    Matching is case-insensitive; falls back to the "default" template.

    Raises:
        ConfigurationError: When neither a match nor a default exists.
    """
    wanted = (transaction_type or DEFAULT_TRANSACTION_TYPE).lower()
    for template in templates:
        if template.transaction_type.lower() == wanted:
            return template
    for template in templates:
        if template.transaction_type.lower() == DEFAULT_TRANSACTION_TYPE:
            logger.debug(f"No template for transaction type {transaction_type!r}; using default")
            return template
    raise ConfigurationError(f"No mapping template for transaction type {transaction_type!r}")
