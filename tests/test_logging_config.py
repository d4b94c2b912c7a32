"""JSON 로깅 설정 테스트."""

from __future__ import annotations

import json
import logging

from fgp_vercel.logging_config import JsonFormatter, setup_logging


def _record(**extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name="fgp_vercel.server",
        level=logging.WARNING,
        pathname=__file__,
        lineno=1,
        msg="Vercel API error %d",
        args=(404,),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:
    def test_basic_fields(self) -> None:
        entry = json.loads(JsonFormatter().format(_record()))

        assert entry["level"] == "WARNING"
        assert entry["logger"] == "fgp_vercel.server"
        assert entry["message"] == "Vercel API error 404"
        assert entry["timestamp"].endswith("Z")

    def test_extra_fields_merged(self) -> None:
        entry = json.loads(
            JsonFormatter().format(_record(event_code="API_ERROR", status_code=404, count=3, unrelated="x")),
        )

        assert entry["event_code"] == "API_ERROR"
        assert entry["status_code"] == 404
        assert "unrelated" not in entry
        assert "count" not in entry
        assert "method" not in entry


class TestSetupLogging:
    def test_json_handler(self) -> None:
        setup_logging(json_format=True, level=logging.DEBUG)

        logger = logging.getLogger("fgp_vercel")
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0].formatter, JsonFormatter)

    def test_repeated_setup_does_not_duplicate(self) -> None:
        setup_logging(json_format=False)
        setup_logging(json_format=False)

        logger = logging.getLogger("fgp_vercel")
        assert len(logger.handlers) == 1
        assert not isinstance(logger.handlers[0].formatter, JsonFormatter)
