"""
Transformation engine tests: dispatch over every kind, post-processing,
diagnostics, and configuration switches.
"""

from __future__ import annotations

import pytest

from fieldmap.config import EngineConfig
from fieldmap.core.diagnostics import ConfigurationError, DiagnosticCollector, DiagnosticKind
from fieldmap.core.engine import TransformationEngine, evaluate
from fieldmap.core.mapping_types import (
    CompositeOperation,
    CompositeSpec,
    Condition,
    DataType,
    FieldMapping,
    PadSide,
    SourceFunction,
    SourceRef,
    TransformKind,
)


@pytest.fixture
def risk_tier() -> FieldMapping:
    return FieldMapping(
        target_field="risk_tier",
        kind=TransformKind.CONDITIONAL,
        conditions=(
            Condition("amount > 1000000 && status == 'ACTIVE'", "HIGH"),
            Condition("amount BETWEEN 100000 AND 1000000", "MEDIUM"),
            Condition(None, "LOW"),
        ),
    )


# =============================================================================
# DISPATCH
# =============================================================================

class TestKinds:
    """One test per transformation kind."""

    def test_constant(self):
        mapping = FieldMapping("record_type", TransformKind.CONSTANT, constant_value="D")
        assert evaluate({}, mapping) == "D"

    def test_constant_without_value_uses_default(self):
        mapping = FieldMapping("filler", TransformKind.CONSTANT, default_value="0")
        assert evaluate({}, mapping) == "0"

    def test_source(self):
        mapping = FieldMapping("acct", TransformKind.SOURCE, source_field="account_id")
        assert evaluate({"account_id": 1234}, mapping) == "1234"

    def test_composite_sum(self):
        mapping = FieldMapping(
            "total",
            TransformKind.COMPOSITE,
            composite=CompositeSpec(
                sources=(SourceRef("principal"), SourceRef("interest")),
                operation=CompositeOperation.SUM,
            ),
        )
        assert evaluate({"principal": "100", "interest": "25"}, mapping) == "125"

    def test_composite_functions(self):
        mapping = FieldMapping(
            "full_name",
            TransformKind.COMPOSITE,
            composite=CompositeSpec(
                sources=(SourceRef("first", SourceFunction.UPPER), SourceRef("last", SourceFunction.TRIM)),
                operation=CompositeOperation.CONCAT,
                delimiter=" ",
            ),
        )
        assert evaluate({"first": "jane", "last": "  doe  "}, mapping) == "JANE doe"

    def test_blank(self):
        assert evaluate({"x": "1"}, FieldMapping("filler", TransformKind.BLANK)) == ""
        assert evaluate({}, FieldMapping("filler", TransformKind.BLANK, default_value="-")) == "-"


class TestConditional:
    """Ordered condition evaluation."""

    def test_medium_tier(self, risk_tier):
        assert evaluate({"status": "ACTIVE", "amount": "150000"}, risk_tier) == "MEDIUM"

    def test_high_tier(self, risk_tier):
        assert evaluate({"status": "ACTIVE", "amount": "2000000"}, risk_tier) == "HIGH"

    def test_else_branch(self, risk_tier):
        assert evaluate({"status": "CLOSED", "amount": "5"}, risk_tier) == "LOW"

    def test_no_match_without_else_uses_default(self):
        mapping = FieldMapping(
            "flag",
            TransformKind.CONDITIONAL,
            conditions=(Condition("amount > 10", "Y"),),
            default_value="N",
        )
        assert evaluate({"amount": "1"}, mapping) == "N"

    def test_first_match_wins(self):
        mapping = FieldMapping(
            "flag",
            TransformKind.CONDITIONAL,
            conditions=(Condition("amount > 1", "A"), Condition("amount > 0", "B")),
        )
        assert evaluate({"amount": "5"}, mapping) == "A"

    def test_first_else_branch_wins(self):
        mapping = FieldMapping(
            "flag",
            TransformKind.CONDITIONAL,
            conditions=(Condition(None, "FIRST"), Condition(None, "SECOND")),
        )
        assert evaluate({}, mapping) == "FIRST"

    def test_blank_predicate_is_not_an_else_branch(self):
        diagnostics = DiagnosticCollector()
        mapping = FieldMapping(
            "flag",
            TransformKind.CONDITIONAL,
            conditions=(Condition("", "X"), Condition("   ", "Z"), Condition("a == '1'", "Y")),
            default_value="D",
        )
        assert evaluate({"a": "1"}, mapping, diagnostics=diagnostics) == "Y"
        assert evaluate({"a": "2"}, mapping) == "D"
        assert len(diagnostics.by_kind(DiagnosticKind.PREDICATE_SYNTAX_ERROR)) == 2

    def test_malformed_predicate_falls_through(self):
        diagnostics = DiagnosticCollector()
        mapping = FieldMapping(
            "flag",
            TransformKind.CONDITIONAL,
            conditions=(Condition("amount >>> 1", "BROKEN"), Condition("amount > 1", "OK")),
        )
        assert evaluate({"amount": "5"}, mapping, diagnostics=diagnostics) == "OK"
        errors = diagnostics.by_kind(DiagnosticKind.PREDICATE_SYNTAX_ERROR)
        assert len(errors) == 1
        assert errors[0].detail == "amount >>> 1"

    def test_then_value_field_reference(self):
        mapping = FieldMapping(
            "contact",
            TransformKind.CONDITIONAL,
            conditions=(Condition("phone IS NULL", "alt_phone"), Condition(None, "phone")),
        )
        assert evaluate({"phone": None, "alt_phone": "555-0100"}, mapping) == "555-0100"
        assert evaluate({"phone": "555-0199", "alt_phone": "x"}, mapping) == "555-0199"

    def test_reference_marker(self):
        config = EngineConfig(reference_marker="$")
        mapping = FieldMapping(
            "contact",
            TransformKind.CONDITIONAL,
            conditions=(Condition("kind == 'A'", "$alt_phone"), Condition(None, "alt_phone")),
        )
        record = {"kind": "A", "alt_phone": "555"}
        assert evaluate(record, mapping, config) == "555"
        assert evaluate({"kind": "B", "alt_phone": "555"}, mapping, config) == "alt_phone"


# =============================================================================
# POST-PROCESSING
# =============================================================================

class TestPostProcessing:
    """Default fallback, typed formatting, and fixed-width output."""

    def test_missing_source_default_and_padding(self):
        mapping = FieldMapping(
            "phone",
            TransformKind.SOURCE,
            source_field="missing",
            default_value="N/A",
            length=5,
            pad_side=PadSide.RIGHT,
            pad_char=" ",
        )
        assert evaluate({}, mapping) == "N/A  "

    def test_left_zero_padding(self):
        mapping = FieldMapping(
            "amount", TransformKind.SOURCE, source_field="amt", length=8, pad_side=PadSide.LEFT, pad_char="0",
        )
        assert evaluate({"amt": "1250"}, mapping) == "00001250"

    def test_truncation(self):
        mapping = FieldMapping("code", TransformKind.SOURCE, source_field="code", length=2)
        assert evaluate({"code": "ABCD"}, mapping) == "AB"

    def test_numeric_format_then_padding(self):
        mapping = FieldMapping(
            "amount",
            TransformKind.SOURCE,
            source_field="amt",
            data_type=DataType.NUMERIC,
            format=".2f",
            length=10,
            pad_side=PadSide.LEFT,
            pad_char="0",
        )
        assert evaluate({"amt": 12.5}, mapping) == "0000012.50"

    def test_coercion_failure_reported(self):
        diagnostics = DiagnosticCollector()
        mapping = FieldMapping(
            "amount", TransformKind.SOURCE, source_field="amt", data_type=DataType.NUMERIC, format=".2f",
        )
        assert evaluate({"amt": "n/a"}, mapping, diagnostics=diagnostics) == "n/a"
        assert diagnostics.counts() == {"coercion_warning": 1}


# =============================================================================
# ENGINE
# =============================================================================

class TestEngine:
    """Engine construction, ordering, and diagnostics."""

    def test_evaluate_all_in_position_order(self):
        engine = TransformationEngine([
            FieldMapping("b", TransformKind.CONSTANT, target_position=2, constant_value="2"),
            FieldMapping("a", TransformKind.CONSTANT, target_position=1, constant_value="1"),
        ])
        assert list(engine.evaluate_all({})) == ["a", "b"]

    def test_misconfigured_mapping_reported_not_raised(self):
        diagnostics = DiagnosticCollector()
        bad = FieldMapping("total", TransformKind.COMPOSITE, composite=CompositeSpec(), default_value="0")
        engine = TransformationEngine([bad], diagnostics=diagnostics)
        assert engine.evaluate({"a": "1"}, bad) == "0"
        assert len(diagnostics.by_kind(DiagnosticKind.CONFIGURATION_ERROR)) == 1

    def test_strict_mode_raises(self):
        bad = FieldMapping("acct", TransformKind.SOURCE)
        with pytest.raises(ConfigurationError):
            TransformationEngine([bad], config=EngineConfig(strict=True))

    def test_syntax_error_reported_once_per_predicate(self):
        diagnostics = DiagnosticCollector()
        shared = "status ==="
        engine = TransformationEngine(
            [
                FieldMapping("x", TransformKind.CONDITIONAL, conditions=(Condition(shared, "1"),)),
                FieldMapping("y", TransformKind.CONDITIONAL, conditions=(Condition(shared, "2"),)),
            ],
            diagnostics=diagnostics,
        )
        for _ in range(3):
            engine.evaluate_all({"status": "A"})
        assert len(diagnostics.by_kind(DiagnosticKind.PREDICATE_SYNTAX_ERROR)) == 1

    def test_missing_field_warning(self):
        diagnostics = DiagnosticCollector()
        mapping = FieldMapping("phone", TransformKind.SOURCE, source_field="phone", default_value="N/A")
        TransformationEngine([mapping], diagnostics=diagnostics).evaluate({}, mapping)
        warnings = diagnostics.by_kind(DiagnosticKind.MISSING_FIELD_WARNING)
        assert [w.detail for w in warnings] == ["phone"]

    def test_missing_field_warnings_can_be_disabled(self):
        diagnostics = DiagnosticCollector()
        mapping = FieldMapping("phone", TransformKind.SOURCE, source_field="phone")
        config = EngineConfig(report_missing_fields=False)
        TransformationEngine([mapping], config, diagnostics).evaluate({}, mapping)
        assert len(diagnostics) == 0

    def test_composite_diagnostics(self):
        diagnostics = DiagnosticCollector()
        mapping = FieldMapping(
            "total",
            TransformKind.COMPOSITE,
            composite=CompositeSpec(
                sources=(SourceRef("a"), SourceRef("b"), SourceRef("c")),
                operation=CompositeOperation.SUM,
            ),
        )
        value = TransformationEngine([mapping], diagnostics=diagnostics).evaluate({"a": "1", "b": "x"}, mapping)
        assert value == "1"
        assert diagnostics.counts() == {"missing_field_warning": 1, "coercion_warning": 1}

    def test_callback_receives_diagnostics(self):
        seen = []
        diagnostics = DiagnosticCollector(callback=seen.append, keep=False)
        mapping = FieldMapping("phone", TransformKind.SOURCE, source_field="phone")
        TransformationEngine([mapping], diagnostics=diagnostics).evaluate({}, mapping)
        assert len(seen) == 1
        assert len(diagnostics) == 0

    def test_case_sensitive_lookup(self):
        mapping = FieldMapping("acct", TransformKind.SOURCE, source_field="ACCOUNT", default_value="?")
        sensitive = TransformationEngine([mapping], EngineConfig(case_insensitive_lookup=False))
        assert sensitive.evaluate({"account": "A1"}, mapping) == "?"
        assert TransformationEngine([mapping]).evaluate({"account": "A1"}, mapping) == "A1"

    def test_record_is_not_mutated(self, risk_tier):
        record = {"status": "ACTIVE", "amount": "150000"}
        snapshot = dict(record)
        TransformationEngine([risk_tier]).evaluate_all(record)
        assert record == snapshot


@pytest.mark.parametrize("record", [
    {},
    {"amount": None, "status": None},
    {"amount": float("nan"), "status": 3},
    {"amount": "abc", "status": ""},
    {"amount": True, "status": ["x"]},
])
def test_evaluate_always_returns_string(record, risk_tier):
    mappings = [
        risk_tier,
        FieldMapping("a", TransformKind.SOURCE, source_field="amount", length=4),
        FieldMapping(
            "b",
            TransformKind.COMPOSITE,
            composite=CompositeSpec(
                sources=(SourceRef("amount"), SourceRef("status")),
                operation=CompositeOperation.AVG,
            ),
        ),
        FieldMapping("c", TransformKind.CONSTANT, constant_value="K"),
        FieldMapping("d", TransformKind.BLANK, length=3),
        FieldMapping("e", TransformKind.SOURCE, source_field="amount", length=3, pad_char=None),
    ]
    engine = TransformationEngine(mappings, diagnostics=DiagnosticCollector())
    for mapping in mappings:
        assert isinstance(engine.evaluate(record, mapping), str)


class TestDuplicateTargets:
    """Two mappings writing the same output field."""

    def test_reported_as_configuration_error(self):
        diagnostics = DiagnosticCollector()
        TransformationEngine(
            [
                FieldMapping("code", TransformKind.CONSTANT, target_position=1, constant_value="A"),
                FieldMapping("code", TransformKind.CONSTANT, target_position=2, constant_value="B"),
                FieldMapping("other", TransformKind.BLANK, target_position=3),
            ],
            diagnostics=diagnostics,
        )
        errors = diagnostics.by_kind(DiagnosticKind.CONFIGURATION_ERROR)
        assert [e.target_field for e in errors] == ["code"]

    def test_strict_mode_raises(self):
        with pytest.raises(ConfigurationError):
            TransformationEngine(
                [
                    FieldMapping("code", TransformKind.CONSTANT, constant_value="A"),
                    FieldMapping("code", TransformKind.CONSTANT, constant_value="B"),
                ],
                config=EngineConfig(strict=True),
            )
