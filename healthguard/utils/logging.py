"""Structured logging setup for the claims review app."""

import functools
import inspect
import logging
from contextvars import ContextVar
from typing import Any, Dict, Optional
from pathlib import Path

# Each asyncio task runs in a copy of the current context, so concurrent
# requests see their own fields. Values are replaced, never mutated.
_log_context: ContextVar[Dict[str, Any]] = ContextVar("healthguard_log_context", default={})


class ContextFilter(logging.Filter):
    """
    Stamp context fields onto log records.

    Fields come from ``defaults`` first, then from whatever ``set_context``
    or ``with_context`` put in the current execution context.
    """

    def __init__(self, **defaults: Any):
        super().__init__()
        self.defaults = defaults

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in {**self.defaults, **_log_context.get()}.items():
            setattr(record, key, value)
        return True


_context_filter = ContextFilter()


def setup_logging(
    level: str = "INFO",
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    log_file: Optional[str] = None
) -> logging.Logger:
    """
    Configure the root logger with a console handler and an optional file handler.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Format string for log messages
        log_file: Optional path to log file; parent directories are created

    Returns:
        Configured root logger
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    formatter = logging.Formatter(log_format)
    handlers = [logging.StreamHandler()]

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    for handler in handlers:
        handler.setLevel(numeric_level)
        handler.setFormatter(formatter)
        handler.addFilter(_context_filter)
        root_logger.addHandler(handler)

    return root_logger


def get_context() -> Dict[str, Any]:
    """Return a copy of the logging context of the current task."""
    return dict(_log_context.get())


def set_context(**kwargs):
    """
    Add fields to the logging context of the current task.

    Example:
        set_context(claim_id="CLM-1A2B3C4D")
        logger.info("Recording claim")  # record carries claim_id
    """
    _log_context.set({**_log_context.get(), **kwargs})


def clear_context():
    _log_context.set({})


def with_context(**context_kwargs):
    """
    Decorator that adds fields to the logging context for the duration of a call.

    Works on plain and coroutine functions. Anything the call adds with
    ``set_context`` is dropped when it returns.

    Example:
        @with_context(component="submission")
        async def submit(draft, document):
            logger.info("Submitting")  # record carries component
    """
    def decorator(func):
        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                token = _log_context.set({**_log_context.get(), **context_kwargs})
                try:
                    return await func(*args, **kwargs)
                finally:
                    _log_context.reset(token)

            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            token = _log_context.set({**_log_context.get(), **context_kwargs})
            try:
                return func(*args, **kwargs)
            finally:
                _log_context.reset(token)

        return wrapper
    return decorator
