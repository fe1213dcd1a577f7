"""
fieldmap: declarative per-record field transformation for batch pipelines.

Submodules:
    core: Engine, mapping types, predicates, aggregation, formatting
    loader: Build mapping rules from configuration dicts
    batch: Apply an engine to rows and DataFrames
    config: EngineConfig and logging setup
"""

from fieldmap.config import EngineConfig, setup_logging
from fieldmap.core import (
    ConfigurationError,
    DiagnosticCollector,
    DiagnosticKind,
    FieldMapping,
    TransformationEngine,
    TransformKind,
    evaluate,
)
from fieldmap.loader import build_mapping, build_mappings, build_template, select_template

__version__ = "0.1.0"

__all__ = [
    "EngineConfig",
    "setup_logging",
    "ConfigurationError",
    "DiagnosticCollector",
    "DiagnosticKind",
    "FieldMapping",
    "TransformationEngine",
    "TransformKind",
    "evaluate",
    "build_mapping",
    "build_mappings",
    "build_template",
    "select_template",
]
