"""
Diagnostics: Error Taxonomy and Side Channel.

The engine never raises for per-record data problems. Instead it reports
them here so the orchestrator can inspect, count, or log them.

Taxonomy:
    CONFIGURATION_ERROR     - Mapping shape is invalid (e.g. composite without sources)
    PREDICATE_SYNTAX_ERROR  - Conditional expression does not parse
    COERCION_WARNING        - Non-numeric value in a numeric context
    MISSING_FIELD_WARNING   - Referenced source field absent from the record

Exceptions are reserved for the configuration builder and strict validation.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


# =============================================================================
# EXCEPTIONS
# =============================================================================

class FieldMapError(Exception):
    """Base class for fieldmap errors."""
    pass


class ConfigurationError(FieldMapError):
    """A FieldMapping has an invalid kind/spec combination."""
    pass


class PredicateSyntaxError(FieldMapError):
    """Error parsing a conditional expression."""

    def __init__(self, message: str, expression: str = "", position: int = -1):
        super().__init__(message)
        self.expression = expression
        self.position = position


# =============================================================================
# DIAGNOSTICS
# =============================================================================

class DiagnosticKind(Enum):
    """Categories of problems surfaced through the side channel."""
    CONFIGURATION_ERROR = "configuration_error"
    PREDICATE_SYNTAX_ERROR = "predicate_syntax_error"
    COERCION_WARNING = "coercion_warning"
    MISSING_FIELD_WARNING = "missing_field_warning"


@dataclass(frozen=True)
class Diagnostic:
    """A single reported problem."""
    kind: DiagnosticKind
    message: str
    target_field: Optional[str] = None
    detail: Optional[str] = None  # offending predicate, source field, or raw value

    def __str__(self) -> str:
        where = f" [{self.target_field}]" if self.target_field else ""
        return f"{self.kind.value}{where}: {self.message}"


DiagnosticCallback = Callable[[Diagnostic], None]


class DiagnosticCollector:
    """
    Collects diagnostics reported by the engine.

    The collector is owned by the caller, not the engine, so a batch can
    decide whether to share one collector across workers or keep one per
    partition. Appends are guarded by a lock.

    Args:
        callback: Optional function invoked for every reported diagnostic.
        keep: If False, diagnostics are only forwarded to the callback.
    """

    def __init__(self, callback: Optional[DiagnosticCallback] = None, keep: bool = True):
        self._callback = callback
        self._keep = keep
        self._items: List[Diagnostic] = []
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        """False when reported diagnostics would go nowhere."""
        return self._keep or self._callback is not None

    def report(self, diagnostic: Diagnostic) -> None:
        if self._keep:
            with self._lock:
                self._items.append(diagnostic)
        if self._callback is not None:
            self._callback(diagnostic)

    @property
    def diagnostics(self) -> List[Diagnostic]:
        """Snapshot of the collected diagnostics."""
        with self._lock:
            return list(self._items)

    def by_kind(self, kind: DiagnosticKind) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.kind == kind]

    def counts(self) -> Dict[str, int]:
        """Diagnostic counts keyed by kind value."""
        return dict(Counter(d.kind.value for d in self.diagnostics))

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __iter__(self):
        return iter(self.diagnostics)


class NullCollector(DiagnosticCollector):
    """Discards diagnostics. Used when the caller supplies no sink."""

    def __init__(self):
        super().__init__(callback=None, keep=False)


def log_diagnostic(diagnostic: Diagnostic) -> None:
    """Callback that forwards diagnostics to the module logger."""
    if diagnostic.kind in (DiagnosticKind.CONFIGURATION_ERROR, DiagnosticKind.PREDICATE_SYNTAX_ERROR):
        logger.warning(str(diagnostic))
    else:
        logger.debug(str(diagnostic))
