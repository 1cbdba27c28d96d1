"""
Tests for settings, retrieval config and structured logging
"""

import json
import logging

import pytest
from pydantic import ValidationError

from app.context_engine.models import RetrievalConfig
from app.core.config import Settings
from app.core.exceptions import ConfigurationError
from app.core.logging_config import StructuredFormatter, setup_logging


def test_settings_read_prefixed_env(monkeypatch):
    monkeypatch.setenv("CONTEXT_TOP_K", "7")
    monkeypatch.setenv("CONTEXT_EXPAND_QUERIES", "false")
    monkeypatch.setenv("CONTEXT_LOG_LEVEL", "debug")

    settings = Settings()

    assert settings.TOP_K == 7
    assert settings.EXPAND_QUERIES is False
    assert settings.LOG_LEVEL == "DEBUG"


def test_settings_validation():
    with pytest.raises(ValidationError):
        Settings(SIMILARITY_THRESHOLD=1.5)
    with pytest.raises(ValidationError):
        Settings(MAX_TOKENS=0)


def test_retrieval_config_from_settings():
    config = RetrievalConfig.from_settings(Settings(MAX_TOKENS=500, CACHE_ENABLED=False))

    assert config.max_tokens == 500
    assert config.top_k == 20
    assert config.similarity_threshold == 0.7
    assert config.use_cache is False


def test_retrieval_config_overrides():
    config = RetrievalConfig()

    updated = config.with_overrides(top_k=5)

    assert updated.top_k == 5
    assert config.top_k == 20
    assert config.with_overrides() is config
    with pytest.raises(ConfigurationError):
        config.with_overrides(top_k=5, chunk_overlap=50)


def test_retrieval_config_rejects_out_of_range_values():
    config = RetrievalConfig()

    with pytest.raises(ConfigurationError) as exc_info:
        config.with_overrides(similarity_threshold=1.5, top_k=0)
    assert exc_info.value.invalid_keys == ["similarity_threshold", "top_k"]

    with pytest.raises(ConfigurationError):
        RetrievalConfig(retrieval_timeout_seconds=0)
    with pytest.raises(ConfigurationError):
        config.with_overrides(max_tokens=-1)

    assert config.with_overrides(similarity_threshold=0.0).similarity_threshold == 0.0


def test_structured_formatter_includes_context():
    record = logging.LogRecord(
        name="HybridRetriever",
        level=logging.WARNING,
        pathname=__file__,
        lineno=10,
        msg="Corpus search failed",
        args=(),
        exc_info=None,
    )
    record.strategy = "keyword"
    record.subject_id = "biology"

    payload = json.loads(StructuredFormatter().format(record))

    assert payload["level"] == "WARNING"
    assert payload["message"] == "Corpus search failed"
    assert payload["strategy"] == "keyword"
    assert payload["subject_id"] == "biology"
    assert "document_id" not in payload


def test_setup_logging_installs_structured_handler():
    root = logging.getLogger()
    previous_level = root.level
    before = list(root.handlers)

    setup_logging("debug")
    try:
        added = [h for h in root.handlers if h not in before]
        assert root.level == logging.DEBUG
        assert len(added) == 1
        assert isinstance(added[0].formatter, StructuredFormatter)
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
    finally:
        for handler in root.handlers:
            if handler not in before:
                root.removeHandler(handler)
        root.setLevel(previous_level)
