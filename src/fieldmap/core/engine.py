"""
Transformation Dispatcher: the engine's public entry point.

    evaluate(record, mapping) -> str

branches on mapping.kind, delegates to the resolver, the composite
aggregator, or the predicate evaluator, then runs the formatter. It is
total for well-formed mappings: per-record data problems are reported to
the diagnostics collector and never raised.

An engine is built once per job. Construction validates the mappings and
compiles every predicate, so record processing only reads shared state.
"""

import logging
from collections import Counter
from typing import Any, Dict, Iterable, Mapping, Optional

from fieldmap.config import EngineConfig
from fieldmap.core.composite import aggregate_detailed
from fieldmap.core.diagnostics import (
    ConfigurationError,
    Diagnostic,
    DiagnosticCollector,
    DiagnosticKind,
    NullCollector,
)
from fieldmap.core.formatter import format_fixed_width, format_typed
from fieldmap.core.mapping_types import CompositeOperation, FieldMapping, TransformKind
from fieldmap.core.predicates import CompiledPredicate, PredicateCache, PredicateEvaluator
from fieldmap.core.resolver import lookup_field, resolve, resolve_reference
from fieldmap.core.values import is_null

logger = logging.getLogger(__name__)


class TransformationEngine:
    """
    Computes output field values from mapping rules.

    Args:
        mappings: Mappings to validate and precompile. Mappings that are not
            registered here still evaluate; their predicates compile on first use.
        config: Engine behaviour switches.
        diagnostics: Side channel for configuration and data problems.

    Raises:
        ConfigurationError: Only with config.strict and a malformed mapping.
    """

    def __init__(
        self,
        mappings: Iterable[FieldMapping] = (),
        config: Optional[EngineConfig] = None,
        diagnostics: Optional[DiagnosticCollector] = None,
    ):
        self.config = config or EngineConfig()
        self.diagnostics = diagnostics if diagnostics is not None else NullCollector()
        self._predicates = PredicateCache(PredicateEvaluator(self.config.case_insensitive_lookup))
        self.mappings = tuple(sorted(mappings, key=lambda m: m.target_position))

        invalid = 0
        for mapping in self.mappings:
            if not self._prepare(mapping):
                invalid += 1
        invalid += self._check_duplicates()
        logger.info(
            f"Prepared {len(self.mappings)} field mappings "
            f"({len(self._predicates)} predicates compiled, {invalid} with problems)"
        )

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    def _prepare(self, mapping: FieldMapping) -> bool:
        """Validate one mapping and compile its predicates. Returns False on problems."""
        ok = True
        issues = mapping.problems()
        if issues:
            ok = False
            message = "; ".join(issues)
            if self.config.strict:
                raise ConfigurationError(f"Field '{mapping.target_field}': {message}")
            logger.warning(f"Field '{mapping.target_field}' is misconfigured: {message}")
            self._report(DiagnosticKind.CONFIGURATION_ERROR, message, mapping.target_field)

        if mapping.else_branch_count > 1:
            logger.warning(
                f"Field '{mapping.target_field}' has {mapping.else_branch_count} else-branches; "
                f"only the first is used"
            )

        for predicate in mapping.predicates:
            if not self._compile(predicate, mapping.target_field).ok:
                ok = False
        return ok

    def _check_duplicates(self) -> int:
        """Report target fields claimed by more than one mapping. Returns the number of such fields."""
        counts = Counter(m.target_field for m in self.mappings)
        duplicates = [name for name, n in counts.items() if n > 1]
        for name in duplicates:
            message = f"target_field is used by {counts[name]} mappings; evaluate_all keeps the last"
            if self.config.strict:
                raise ConfigurationError(f"Field '{name}': {message}")
            logger.warning(f"Field '{name}' is misconfigured: {message}")
            self._report(DiagnosticKind.CONFIGURATION_ERROR, message, name)
        return len(duplicates)

    def _compile(self, predicate: str, target_field: str) -> CompiledPredicate:
        known = predicate in self._predicates
        compiled = self._predicates.get(predicate)
        if not known and not compiled.ok:
            self._report(
                DiagnosticKind.PREDICATE_SYNTAX_ERROR,
                str(compiled.error),
                target_field,
                detail=predicate,
            )
        return compiled

    def _report(self, kind: DiagnosticKind, message: str, target_field: str, detail: Optional[str] = None) -> None:
        if self.diagnostics.active:
            self.diagnostics.report(Diagnostic(kind, message, target_field, detail))

    # -------------------------------------------------------------------------
    # Evaluation
    # -------------------------------------------------------------------------

    def evaluate(self, record: Mapping[str, Any], mapping: FieldMapping) -> str:
        """
        Compute one output field for one record.

        Args:
            record: Input record; never mutated.
            mapping: Rule for the output field.

        Returns:
            The formatted string value.
        """
        value = self._dispatch(record, mapping)
        if value is None:
            value = mapping.fallback
        return self._post_process(value, mapping)

    def evaluate_all(
        self,
        record: Mapping[str, Any],
        mappings: Optional[Iterable[FieldMapping]] = None,
    ) -> Dict[str, str]:
        """
        Compute every output field for one record.

        Args:
            record: Input record.
            mappings: Mappings to apply; defaults to the registered ones.

        Returns:
            target_field -> value, ordered by target_position. Duplicate
            target fields are reported at construction; the last one wins here.
        """
        selected = self.mappings if mappings is None else sorted(mappings, key=lambda m: m.target_position)
        return {m.target_field: self.evaluate(record, m) for m in selected}

    def _dispatch(self, record: Mapping[str, Any], mapping: FieldMapping) -> Optional[str]:
        kind = mapping.kind
        if kind is TransformKind.CONSTANT:
            return mapping.constant_value if mapping.constant_value is not None else mapping.default_value
        if kind is TransformKind.SOURCE:
            return self._resolve_source(record, mapping)
        if kind is TransformKind.COMPOSITE:
            return self._aggregate(record, mapping)
        if kind is TransformKind.CONDITIONAL:
            return self._evaluate_conditions(record, mapping)
        return mapping.default_value

    def _resolve_source(self, record: Mapping[str, Any], mapping: FieldMapping) -> str:
        case_insensitive = self.config.case_insensitive_lookup
        if (
            self.config.report_missing_fields
            and self.diagnostics.active
            and mapping.source_field
            and is_null(lookup_field(record, mapping.source_field, case_insensitive))
        ):
            self._report(
                DiagnosticKind.MISSING_FIELD_WARNING,
                f"source field '{mapping.source_field}' is absent or null",
                mapping.target_field,
                detail=mapping.source_field,
            )
        return resolve(record, mapping.source_field, mapping.default_value, case_insensitive)

    def _aggregate(self, record: Mapping[str, Any], mapping: FieldMapping) -> str:
        spec = mapping.composite
        result = aggregate_detailed(record, spec, mapping.default_value, self.config.case_insensitive_lookup)
        if self.config.report_missing_fields and self.diagnostics.active:
            for name in result.missing_sources:
                self._report(
                    DiagnosticKind.MISSING_FIELD_WARNING,
                    f"composite source '{name}' is absent or null",
                    mapping.target_field,
                    detail=name,
                )
        if spec is not None and spec.operation is not CompositeOperation.CONCAT:
            for name in result.non_numeric_sources:
                self._report(
                    DiagnosticKind.COERCION_WARNING,
                    f"composite source '{name}' is not numeric",
                    mapping.target_field,
                    detail=name,
                )
        return result.value

    def _evaluate_conditions(self, record: Mapping[str, Any], mapping: FieldMapping) -> Optional[str]:
        for condition in mapping.conditions:
            if condition.is_else:
                return self._then_value(record, mapping, condition.then_value)
            if self._compile(condition.predicate, mapping.target_field).evaluate(record):
                return self._then_value(record, mapping, condition.then_value)
        return mapping.default_value

    def _then_value(self, record: Mapping[str, Any], mapping: FieldMapping, value: str) -> str:
        return resolve_reference(
            record,
            value,
            reference_marker=self.config.reference_marker,
            case_insensitive=self.config.case_insensitive_lookup,
            default=mapping.default_value,
        )

    def _post_process(self, value: str, mapping: FieldMapping) -> str:
        if mapping.data_type is not None:
            value, ok = format_typed(value, mapping.data_type, mapping.format, mapping.source_format)
            if not ok:
                self._report(
                    DiagnosticKind.COERCION_WARNING,
                    f"value {value!r} cannot be formatted as {mapping.data_type.value}",
                    mapping.target_field,
                    detail=value,
                )
        if mapping.length is not None and mapping.length > 0:
            return format_fixed_width(value, mapping.length, mapping.pad_side, mapping.pad_char)
        return value


def evaluate(
    record: Mapping[str, Any],
    mapping: FieldMapping,
    config: Optional[EngineConfig] = None,
    diagnostics: Optional[DiagnosticCollector] = None,
) -> str:
    """
    Evaluate one mapping in one step.

    For repeated evaluation, build a TransformationEngine once instead.
    """
    return TransformationEngine([mapping], config, diagnostics).evaluate(record, mapping)

