"""Observability - structured logging."""

from .logger import LogContext, configure_logging, current_context, get_log_level

__all__ = ["LogContext", "configure_logging", "current_context", "get_log_level"]
