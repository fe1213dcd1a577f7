"""
Shared constants across fieldmap modules.

This module is the single source of truth for:
- Default padding policy
- Literal spellings recognised in configuration and predicates
- Environment variable names read by EngineConfig
"""

# =============================================================================
# PADDING DEFAULTS
# =============================================================================

DEFAULT_PAD_CHAR = " "
DEFAULT_DELIMITER = ""


# =============================================================================
# LITERAL SPELLINGS
# =============================================================================

BOOL_TRUE_TEXT = "true"
BOOL_FALSE_TEXT = "false"

# Maximum fractional digits kept when rendering computed numbers
NUMBER_RENDER_DIGITS = 10

# Configuration spelling -> canonical transformation kind value
KIND_ALIASES = {
    "constant": "constant",
    "source": "source",
    "composite": "composite",
    "conditional": "conditional",
    "blank": "blank",
}

# Configuration spelling -> canonical composite operation value
OPERATION_ALIASES = {
    "sum": "sum",
    "avg": "avg",
    "average": "avg",
    "min": "min",
    "minimum": "min",
    "max": "max",
    "maximum": "max",
    "concat": "concat",
}

# Legacy single-source string transforms accepted as composite operations
LEGACY_STRING_OPERATIONS = {
    "upper": "upper",
    "uppercase": "upper",
    "lower": "lower",
    "lowercase": "lower",
    "trim": "trim",
}

DEFAULT_TRANSACTION_TYPE = "default"


# =============================================================================
# ENVIRONMENT
# =============================================================================

ENV_PREFIX = "FIELDMAP_"
ENV_CASE_INSENSITIVE = ENV_PREFIX + "CASE_INSENSITIVE_LOOKUP"
ENV_REFERENCE_MARKER = ENV_PREFIX + "REFERENCE_MARKER"
ENV_STRICT = ENV_PREFIX + "STRICT"
ENV_REPORT_MISSING = ENV_PREFIX + "REPORT_MISSING_FIELDS"
ENV_SHOW_PROGRESS = ENV_PREFIX + "SHOW_PROGRESS"
ENV_LOG_LEVEL = ENV_PREFIX + "LOG_LEVEL"

TRUTHY_TEXT = {"1", "true", "t", "yes", "y", "on"}
