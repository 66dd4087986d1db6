"""Structured logging helpers."""

from .logging import add_run_log_file, bind_context, get_structured_logger

__all__ = ["add_run_log_file", "bind_context", "get_structured_logger"]
