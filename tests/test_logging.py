"""
Structured log lines for queries, cache events and embedding batches.
"""

import logging

import pytest

from kbmatch.util.logging import StructuredLogger, logger


@pytest.fixture
def structured(caplog):
    caplog.set_level(logging.INFO, logger="kbmatch-test")
    return StructuredLogger("kbmatch-test")


def test_log_operation_format(structured, caplog):
    structured.log_operation("engine.load", "ready", {"entries": 3})

    assert "Operation: engine.load, Status: ready, Details: {'entries': 3}" in caplog.text


def test_query_text_is_truncated(structured, caplog):
    structured.log_query("x" * 80, "matched", 87.654)

    assert "x" * 50 + "..." in caplog.text
    assert "x" * 51 not in caplog.text
    assert "'confidence': 87.7" in caplog.text


def test_cache_failure_logged_as_warning(structured, caplog):
    structured.log_cache_event("save", "failed", {"error": "disk full"})
    structured.log_cache_event("hit", "success")

    levels = {record.getMessage().split(",")[0]: record.levelno for record in caplog.records}
    assert levels["Operation: cache.save"] == logging.WARNING
    assert levels["Operation: cache.hit"] == logging.INFO


def test_embedding_batch(structured, caplog):
    structured.log_embedding_batch(2, 3, 20, 25, 12.3456)

    assert "'batch': '2/3'" in caplog.text
    assert "'entries': '20/25'" in caplog.text
    assert "'duration_ms': 12.35" in caplog.text


def test_config_issues(structured, caplog):
    structured.log_config_issues(["Invalid SEARCH_MODE: fuzzy", "EMBED_BATCH_SIZE must be >= 1"])

    assert len([r for r in caplog.records if r.levelno == logging.WARNING]) == 2


def test_handler_added_once():
    StructuredLogger("kbmatch-handlers")
    second = StructuredLogger("kbmatch-handlers")

    assert len(second.logger.handlers) == 1


def test_global_logger():
    assert isinstance(logger, StructuredLogger)
    assert logger.logger.name == "kbmatch"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
