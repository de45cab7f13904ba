"""
Tests for structured logging: formatters and context propagation.

Run with: pytest test_logging_config.py -v
"""

import json
import logging

from logging_config import (
    DevelopmentFormatter,
    JSONFormatter,
    game_code_var,
    get_logger,
)


def make_record(msg="hello", level=logging.INFO, **extra):
    record = logging.LogRecord("snap.test", level, __file__, 10, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:

    def test_basic_fields(self):
        data = json.loads(JSONFormatter().format(make_record()))
        assert data["message"] == "hello"
        assert data["level"] == "INFO"
        assert data["logger"] == "snap.test"
        assert "source" not in data

    def test_extra_context(self):
        data = json.loads(JSONFormatter().format(make_record(game_code="ABCD", player_id="p1")))
        assert data["game_code"] == "ABCD"
        assert data["player_id"] == "p1"

    def test_context_variable_fallback(self):
        token = game_code_var.set("WXYZ")
        try:
            data = json.loads(JSONFormatter().format(make_record()))
        finally:
            game_code_var.reset(token)
        assert data["game_code"] == "WXYZ"

    def test_errors_include_source(self):
        data = json.loads(JSONFormatter().format(make_record(level=logging.ERROR)))
        assert data["source"]["line"] == 10


class TestDevelopmentFormatter:

    def test_context_in_output(self):
        output = DevelopmentFormatter().format(make_record(game_code="ABCD"))
        assert "game=ABCD" in output
        assert "hello" in output


class TestContextLogger:

    def test_with_context_merges_extra(self, caplog):
        logger = get_logger("snap.ctx")
        with caplog.at_level(logging.INFO, logger="snap.ctx"):
            logger.with_context(game_code="ABCD").info("joined", extra={"player_id": "p1"})

        record = caplog.records[-1]
        assert record.game_code == "ABCD"
        assert record.player_id == "p1"
