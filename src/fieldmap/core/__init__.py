"""
fieldmap core: the field transformation engine.

Layer Architecture:
    Value Model:     values      (null detection, text/number coercion)
                         ↓
    Configuration:   mapping_types (FieldMapping, Condition, CompositeSpec)
                         ↓
    Evaluation:      resolver → composite → predicates
                         ↓
    Output:          formatter (type formatting, fixed-width padding)
                         ↓
    Dispatch:        engine (TransformationEngine.evaluate)

Usage:
    from fieldmap.core import (
        FieldMapping,
        TransformKind,
        TransformationEngine,
    )
"""

from fieldmap.core.diagnostics import (
    ConfigurationError,
    Diagnostic,
    DiagnosticCollector,
    DiagnosticKind,
    FieldMapError,
    NullCollector,
    PredicateSyntaxError,
    log_diagnostic,
)
from fieldmap.core.values import format_number, is_null, to_number, to_text
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
from fieldmap.core.resolver import lookup_field, resolve, resolve_reference
from fieldmap.core.composite import AggregateResult, aggregate, aggregate_detailed
from fieldmap.core.predicates import (
    CompiledPredicate,
    PredicateCache,
    PredicateEvaluator,
    PredicateParser,
    compile_predicate,
    evaluate_predicate,
)
from fieldmap.core.formatter import format_fixed_width, format_typed
from fieldmap.core.engine import TransformationEngine, evaluate

__all__ = [
    # Diagnostics
    "ConfigurationError",
    "Diagnostic",
    "DiagnosticCollector",
    "DiagnosticKind",
    "FieldMapError",
    "NullCollector",
    "PredicateSyntaxError",
    "log_diagnostic",
    # Values
    "format_number",
    "is_null",
    "to_number",
    "to_text",
    # Mapping types
    "CompositeOperation",
    "CompositeSpec",
    "Condition",
    "DataType",
    "FieldMapping",
    "MappingTemplate",
    "PadSide",
    "SourceFunction",
    "SourceRef",
    "TransformKind",
    # Resolution and aggregation
    "lookup_field",
    "resolve",
    "resolve_reference",
    "AggregateResult",
    "aggregate",
    "aggregate_detailed",
    # Predicates
    "CompiledPredicate",
    "PredicateCache",
    "PredicateEvaluator",
    "PredicateParser",
    "compile_predicate",
    "evaluate_predicate",
    # Formatting and dispatch
    "format_fixed_width",
    "format_typed",
    "TransformationEngine",
    "evaluate",
]
