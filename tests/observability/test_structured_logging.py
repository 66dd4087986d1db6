import io
import json
import logging
from contextlib import contextmanager

from pharmacy_harvester.observability import add_run_log_file, bind_context, get_structured_logger


@contextmanager
def capture_stream_logger(logger: logging.Logger):
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    for h in list(logger.handlers):
        logger.removeHandler(h)
    logger.addHandler(handler)
    try:
        yield stream, handler
    finally:
        logger.removeHandler(handler)


def _lines(stream):
    return [json.loads(line) for line in stream.getvalue().strip().splitlines()]


def test_json_log_contains_bound_context():
    logger = get_structured_logger("test.harvest", base_context={"run_id": "r123", "city": "podgorica"})
    with capture_stream_logger(logger) as (stream, handler):
        log = bind_context(logger, {"stage": "deduping"})
        log.info("stage_completed", extra={"event": "stage_completed", "result_count": 4})
        handler.flush()
        [payload] = _lines(stream)

    assert payload["run_id"] == "r123"
    assert payload["city"] == "podgorica"
    assert payload["stage"] == "deduping"
    assert payload["event"] == "stage_completed"
    assert payload["result_count"] == 4
    assert payload["level"] == "INFO"
    assert payload["message"] == "stage_completed"
    assert "timestamp" in payload


def test_bind_context_leaves_parent_untouched():
    logger = get_structured_logger("test.parent", base_context={"run_id": "r1"})
    with capture_stream_logger(logger) as (stream, _):
        bind_context(logger, {"stage": "reconciling"}).info("child")
        logger.info("parent")
        child, parent = _lines(stream)

    assert child["stage"] == "reconciling"
    assert "stage" not in parent


def test_sensitive_fields_are_redacted():
    logger = get_structured_logger("test.redact")
    with capture_stream_logger(logger) as (stream, _):
        logger.info("provider call", extra={"api_key": "AIza-secret", "phone": "+38220123456", "provider": "here"})
        [payload] = _lines(stream)

    assert payload["api_key"] == "REDACTED"
    assert payload["phone"] == "REDACTED"
    assert payload["provider"] == "here"


def test_message_arguments_are_interpolated():
    logger = get_structured_logger("test.args")
    with capture_stream_logger(logger) as (stream, _):
        logger.warning("%s degraded: %d retries", "osm", 2)
        [payload] = _lines(stream)
    assert payload["message"] == "osm degraded: 2 retries"
    assert payload["level"] == "WARNING"


def test_run_log_file_receives_json_lines(tmp_path):
    logger = get_structured_logger("test.file", base_context={"run_id": "r9"})
    log_file = add_run_log_file(logger, tmp_path / "logs", "bar")
    try:
        logger.info("run_start", extra={"event": "run_start"})
    finally:
        for h in list(logger.handlers):
            if isinstance(h, logging.FileHandler):
                h.close()
                logger.removeHandler(h)

    assert log_file.name == "harvest-bar.log"
    payload = json.loads(log_file.read_text(encoding="utf-8").strip())
    assert payload["run_id"] == "r9"
