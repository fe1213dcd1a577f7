"""
Mapping Types: the configuration shape consumed by the engine.

A FieldMapping describes how one output field is produced. The kind is a
closed enum; each kind reads only the attributes it needs:

    CONSTANT     -> constant_value
    SOURCE       -> source_field
    COMPOSITE    -> composite (CompositeSpec)
    CONDITIONAL  -> conditions (ordered Condition list)
    BLANK        -> nothing

default_value, length, pad_side, pad_char and the optional data-type
formatting attributes apply to every kind.

All types are frozen. They are built once per job by the configuration
loader and shared read-only across every record and worker.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from fieldmap.constants import DEFAULT_DELIMITER, DEFAULT_PAD_CHAR, DEFAULT_TRANSACTION_TYPE
from fieldmap.core.diagnostics import ConfigurationError


# =============================================================================
# ENUMS
# =============================================================================

class TransformKind(Enum):
    """Dispatch branch for a field mapping."""
    CONSTANT = "constant"
    SOURCE = "source"
    COMPOSITE = "composite"
    CONDITIONAL = "conditional"
    BLANK = "blank"


class CompositeOperation(Enum):
    """Aggregation applied across a composite's sources."""
    SUM = "sum"
    AVG = "avg"
    MIN = "min"
    MAX = "max"
    CONCAT = "concat"

    @property
    def is_numeric(self) -> bool:
        return self is not CompositeOperation.CONCAT


class SourceFunction(Enum):
    """Per-source string function applied after resolution."""
    UPPER = "upper"
    LOWER = "lower"
    TRIM = "trim"

    def apply(self, text: str) -> str:
        if self is SourceFunction.UPPER:
            return text.upper()
        if self is SourceFunction.LOWER:
            return text.lower()
        return text.strip()


class PadSide(Enum):
    """Which side fixed-width padding is added on."""
    LEFT = "left"
    RIGHT = "right"


class DataType(Enum):
    """Type-specific formatting applied before padding."""
    STRING = "string"
    NUMERIC = "numeric"
    DATE = "date"


# =============================================================================
# COMPOSITE
# =============================================================================

@dataclass(frozen=True)
class SourceRef:
    """One source of a composite field."""
    source_field: str
    function: Optional[SourceFunction] = None


@dataclass(frozen=True)
class CompositeSpec:
    """
    Multi-source aggregation.

    Attributes:
        sources: Ordered source references. Order is preserved for CONCAT.
        operation: Aggregation to apply.
        delimiter: Join string, used only for CONCAT.
    """
    sources: Tuple[SourceRef, ...] = ()
    operation: CompositeOperation = CompositeOperation.CONCAT
    delimiter: str = DEFAULT_DELIMITER


# =============================================================================
# CONDITIONAL
# =============================================================================

@dataclass(frozen=True)
class Condition:
    """
    One branch of a conditional mapping.

    A None predicate marks the unconditional else-branch. A blank predicate
    is an expression like any other and fails to parse.
    then_value is a literal or a source-field reference.
    """
    predicate: Optional[str]
    then_value: str = ""

    @property
    def is_else(self) -> bool:
        return self.predicate is None


# =============================================================================
# FIELD MAPPING
# =============================================================================

@dataclass(frozen=True)
class FieldMapping:
    """How to produce one output field."""
    target_field: str
    kind: TransformKind
    target_position: int = 0

    constant_value: Optional[str] = None
    source_field: Optional[str] = None
    composite: Optional[CompositeSpec] = None
    conditions: Tuple[Condition, ...] = ()

    default_value: Optional[str] = None
    length: Optional[int] = None
    pad_side: PadSide = PadSide.RIGHT
    pad_char: str = DEFAULT_PAD_CHAR

    data_type: Optional[DataType] = None
    format: Optional[str] = None
    source_format: Optional[str] = None

    @property
    def fallback(self) -> str:
        """default_value, or empty string when none is configured."""
        return self.default_value if self.default_value is not None else ""

    @property
    def else_branch_count(self) -> int:
        return sum(1 for c in self.conditions if c.is_else)

    @property
    def predicates(self) -> List[str]:
        """Non-else predicate strings, in evaluation order."""
        return [c.predicate for c in self.conditions if not c.is_else]

    def problems(self) -> List[str]:
        """
        List shape problems for this mapping.

        Returns:
            Human-readable problem descriptions; empty when the mapping is valid.
        """
        issues: List[str] = []
        if not self.target_field or not self.target_field.strip():
            issues.append("target_field must be non-empty")
        if not isinstance(self.kind, TransformKind):
            issues.append(f"unknown transformation kind: {self.kind!r}")
            return issues

        if self.kind is TransformKind.SOURCE and not self.source_field:
            issues.append("source mapping requires source_field")
        if self.kind is TransformKind.COMPOSITE:
            if self.composite is None or not self.composite.sources:
                issues.append("composite mapping requires at least one source")
            elif any(not s.source_field for s in self.composite.sources):
                issues.append("composite source without source_field")
        if self.kind is TransformKind.CONDITIONAL:
            if not self.conditions:
                issues.append("conditional mapping requires at least one condition")

        if self.length is not None and self.length < 0:
            issues.append(f"length must be non-negative, got {self.length}")
        if not isinstance(self.pad_char, str) or len(self.pad_char) != 1:
            issues.append(f"pad_char must be a single character, got {self.pad_char!r}")
        if self.data_type is DataType.DATE and (not self.format or not self.source_format):
            issues.append("date formatting requires format and source_format")
        return issues

    def validate(self) -> "FieldMapping":
        """
        Raise ConfigurationError if the mapping is malformed.

        Returns:
            self, so validation can be chained at load time.
        """
        issues = self.problems()
        if issues:
            raise ConfigurationError(f"Field '{self.target_field}': " + "; ".join(issues))
        return self


@dataclass(frozen=True)
class MappingTemplate:
    """
    Ordered field mappings for one output layout and transaction type.

    fields are kept sorted by target_position.
    """
    name: str
    fields: Tuple[FieldMapping, ...]
    transaction_type: str = DEFAULT_TRANSACTION_TYPE

    @property
    def record_length(self) -> int:
        """Total fixed-width line length (fields without a length count as 0)."""
        return sum(f.length or 0 for f in self.fields)
