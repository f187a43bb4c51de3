"""Tests for the logging setup and the JSON formatter."""

import io
import logging
import sys

import orjson

from utils.logging import JsonFormatter, get_logger, setup_logging


def test_json_lines_carry_extras(restore_root_logger):
    stream = io.StringIO()
    setup_logging(level="INFO", format_type="json", stream=stream)

    get_logger("icad.test").info("Store sync complete", extra={"store_id": "S1", "records": 3})

    line = orjson.loads(stream.getvalue().strip())
    assert line["level"] == "INFO"
    assert line["logger"] == "icad.test"
    assert line["message"] == "Store sync complete"
    assert line["store_id"] == "S1"
    assert line["records"] == 3
    assert "ts" in line


def test_level_filters_records(restore_root_logger):
    stream = io.StringIO()
    setup_logging(level="WARNING", format_type="json", stream=stream)

    logger = get_logger("icad.test")
    logger.info("hidden")
    logger.warning("shown")

    lines = stream.getvalue().strip().splitlines()
    assert len(lines) == 1
    assert orjson.loads(lines[0])["message"] == "shown"


def test_text_format(restore_root_logger):
    stream = io.StringIO()
    setup_logging(level="DEBUG", format_type="text", stream=stream)

    get_logger("icad.test").debug("Syncing store")

    assert " - icad.test - DEBUG - Syncing store" in stream.getvalue()


def test_repeated_setup_does_not_duplicate_output(restore_root_logger):
    stream = io.StringIO()
    setup_logging(stream=stream)
    setup_logging(stream=stream)

    get_logger("icad.test").info("once")

    assert len(stream.getvalue().strip().splitlines()) == 1


def test_exception_is_rendered():
    formatter = JsonFormatter()
    try:
        raise ValueError("boom")
    except ValueError:
        record = logging.getLogger("icad.test").makeRecord(
            "icad.test", logging.ERROR, __file__, 1, "failed", (), exc_info=sys.exc_info()
        )

    line = orjson.loads(formatter.format(record))
    assert "ValueError: boom" in line["exc_info"]


def test_non_serializable_extras_fall_back_to_str():
    record = logging.getLogger("icad.test").makeRecord(
        "icad.test", logging.INFO, __file__, 1, "msg", (), None, extra={"path": object()}
    )

    line = orjson.loads(JsonFormatter().format(record))
    assert line["path"].startswith("<object object")
