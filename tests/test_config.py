"""
EngineConfig environment loading tests.
"""

from __future__ import annotations

import logging

from fieldmap.config import EngineConfig, setup_logging


def test_defaults():
    config = EngineConfig()
    assert config.case_insensitive_lookup is True
    assert config.reference_marker is None
    assert config.strict is False


def test_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("FIELDMAP_CASE_INSENSITIVE_LOOKUP", "false")
    monkeypatch.setenv("FIELDMAP_REFERENCE_MARKER", "$")
    monkeypatch.setenv("FIELDMAP_STRICT", "yes")
    monkeypatch.delenv("FIELDMAP_SHOW_PROGRESS", raising=False)
    config = EngineConfig.from_env(dotenv_path=tmp_path / "missing.env")
    assert config.case_insensitive_lookup is False
    assert config.reference_marker == "$"
    assert config.strict is True
    assert config.show_progress is False


def test_from_dotenv_file(monkeypatch, tmp_path):
    # setenv then delenv so teardown removes whatever load_dotenv writes
    for key in ("FIELDMAP_SHOW_PROGRESS", "FIELDMAP_REPORT_MISSING_FIELDS"):
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    env_file = tmp_path / ".env"
    env_file.write_text("FIELDMAP_SHOW_PROGRESS=1\nFIELDMAP_REPORT_MISSING_FIELDS=off\n")
    config = EngineConfig.from_env(dotenv_path=env_file)
    assert config.show_progress is True
    assert config.report_missing_fields is False


def test_setup_logging_returns_package_logger():
    logger = setup_logging(logging.DEBUG)
    assert logger.name == "fieldmap"
