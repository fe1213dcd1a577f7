"""
Engine configuration for fieldmap.

This module defines the EngineConfig dataclass that captures the behaviour
switches of the transformation engine. Mapping rules themselves are not
configuration here; they are built by fieldmap.loader and handed to the
engine explicitly.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from fieldmap.constants import (
    ENV_CASE_INSENSITIVE,
    ENV_LOG_LEVEL,
    ENV_REFERENCE_MARKER,
    ENV_REPORT_MISSING,
    ENV_SHOW_PROGRESS,
    ENV_STRICT,
    TRUTHY_TEXT,
)


def _env_flag(key: str, default: bool) -> bool:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in TRUTHY_TEXT


@dataclass(frozen=True)
class EngineConfig:
    """
    Configuration for the transformation engine.

    Attributes:
        case_insensitive_lookup: Fall back to a case-insensitive key match when
            a source field is not found under its exact name.
        reference_marker: When set (e.g. "$"), only then-values starting with
            the marker are field references. When None, a then-value naming a
            field of the record is a reference and anything else a literal.
        strict: Raise ConfigurationError for malformed mappings at engine
            construction instead of reporting a diagnostic.
        report_missing_fields: Emit MISSING_FIELD_WARNING diagnostics.
        show_progress: Show a tqdm progress bar in batch helpers.
    """

    case_insensitive_lookup: bool = True
    reference_marker: Optional[str] = None
    strict: bool = False
    report_missing_fields: bool = True
    show_progress: bool = False

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "EngineConfig":
        """
        Build configuration from FIELDMAP_* environment variables.

        A .env file is loaded first; variables already set in the
        environment take precedence.

        Args:
            dotenv_path: Optional explicit .env path.

        Returns:
            EngineConfig with environment overrides applied.
        """
        load_dotenv(dotenv_path)
        marker = os.getenv(ENV_REFERENCE_MARKER)
        return cls(
            case_insensitive_lookup=_env_flag(ENV_CASE_INSENSITIVE, True),
            reference_marker=marker or None,
            strict=_env_flag(ENV_STRICT, False),
            report_missing_fields=_env_flag(ENV_REPORT_MISSING, True),
            show_progress=_env_flag(ENV_SHOW_PROGRESS, False),
        )


def setup_logging(level=None):
    """
    Setup basic logging configuration for applications embedding fieldmap.

    Args:
        level: Logging level; defaults to FIELDMAP_LOG_LEVEL or INFO.
    """
    if level is None:
        level = os.getenv(ENV_LOG_LEVEL, "INFO").upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )
    return logging.getLogger("fieldmap")
