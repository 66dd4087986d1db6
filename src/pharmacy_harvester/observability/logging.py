import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

# Attributes every LogRecord carries; anything else was passed through `extra=`
_STANDARD_RECORD_KEYS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename', 'module', 'exc_info',
    'exc_text', 'stack_info', 'lineno', 'funcName', 'created', 'msecs', 'relativeCreated',
    'thread', 'threadName', 'processName', 'process', 'message', 'asctime', 'taskName',
}

# Credential and contact fields never written verbatim
_REDACT_FIELDS = {"api_key", "key", "google_api_key", "email", "phone"}


def _utc_rfc3339() -> str:
    return datetime.now(timezone.utc).isoformat()


class _StructuredFilter(logging.Filter):
    """Rewrite each record's message into one JSON object carrying bound context.

    Context is read from the logger that created the record, so the output stays
    structured when records propagate to ancestor handlers.
    """

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if getattr(record, "_structured", False):
            return True
        origin = logging.getLogger(record.name)
        payload: Dict[str, Any] = {}
        payload.update(getattr(origin, "_base_context", {}))
        payload.update(getattr(origin, "_logger_context", {}))
        payload.update(
            {k: v for k, v in record.__dict__.items() if k not in _STANDARD_RECORD_KEYS and not k.startswith("_")}
        )
        payload["timestamp"] = _utc_rfc3339()
        payload["level"] = record.levelname
        payload["message"] = record.getMessage()

        for key in _REDACT_FIELDS & set(payload):
            payload[key] = "REDACTED"

        record.msg = json.dumps(payload, ensure_ascii=False, default=str)
        record.args = ()
        record._structured = True
        return True


def _attach(logger: logging.Logger, base_context: Optional[Dict[str, Any]] = None,
            logger_context: Optional[Dict[str, Any]] = None) -> None:
    setattr(logger, "_base_context", dict(base_context or {}))
    setattr(logger, "_logger_context", dict(logger_context or {}))
    if not any(isinstance(f, _StructuredFilter) for f in logger.filters):
        logger.addFilter(_StructuredFilter())


def bind_context(logger: logging.Logger, context: Dict[str, Any]) -> logging.Logger:
    """Return a child logger carrying ``context`` on top of the parent's context.

    The parent is left untouched so stages and cities can each bind their own keys.
    """
    child_name = f"{logger.name}.ctx{abs(hash(frozenset((k, str(v)) for k, v in context.items()))) % 100000}"
    child = logging.getLogger(child_name)
    child.setLevel(logger.level)
    child.propagate = True

    merged = {**getattr(logger, "_logger_context", {}), **context}
    _attach(child, base_context=getattr(logger, "_base_context", {}), logger_context=merged)
    return child


def get_structured_logger(name: str, *, base_context: Optional[Dict[str, Any]] = None,
                          level: int = logging.INFO) -> logging.Logger:
    """Create or configure a logger that emits JSON lines regardless of handler formatting."""
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False

    _attach(logger, base_context=base_context or {}, logger_context={})

    if not logger.handlers:
        logger.addHandler(logging.StreamHandler())
    return logger


def add_run_log_file(logger: logging.Logger, log_dir: Union[str, Path], label: str) -> Path:
    """Mirror JSON lines into ``<log_dir>/harvest-<label>.log``."""
    path = Path(log_dir)
    path.mkdir(parents=True, exist_ok=True)
    log_file = path / f"harvest-{label}.log"
    logger.addHandler(logging.FileHandler(log_file, encoding="utf-8"))
    return log_file
