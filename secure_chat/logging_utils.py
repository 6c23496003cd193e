"""
Centralized logging and error handling utilities for the secure chat client.

This module provides decorators and helper functions to standardize logging
and error reporting across the codebase.

Features:
- Structured logging with contextual information
- Error classification for chat requests
- User-facing error messages
- Timed operation records
"""

from __future__ import annotations

import functools
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, ParamSpec, TypeVar

import httpx
import structlog
from pydantic import ValidationError

from secure_chat.llm.exceptions import (
    ChatError,
    PayloadParseError,
    ResponseFormatError,
    TransportError,
    UpstreamHTTPError,
)

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(colors=True),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

# Type variables for generic decorators
P = ParamSpec("P")
T = TypeVar("T")
AsyncCallable = Callable[P, Awaitable[T]]

FALLBACK_ERROR_MESSAGE = "Could not connect to server"

logger = structlog.get_logger(__name__)


class ChatErrorHandler:
    """Error classification and presentation for chat requests."""

    @staticmethod
    def classify_error(error: Exception) -> str:
        """
        Classify an error into a logging category.

        Args:
            error: The exception to classify

        Returns:
            The error category
        """
        if isinstance(error, UpstreamHTTPError):
            return "upstream_error"
        if isinstance(error, PayloadParseError | ResponseFormatError):
            return "parse_error"
        if isinstance(error, TimeoutError | httpx.TimeoutException):
            return "timeout_error"
        if isinstance(
            error, TransportError | httpx.TransportError | ConnectionError | OSError
        ):
            return "transport_error"
        if isinstance(error, ValidationError):
            return "validation_error"
        if isinstance(error, ValueError | TypeError):
            return "parameter_error"
        return "unknown_error"

    @staticmethod
    def describe_error(error: BaseException) -> str:
        """
        Build the message shown to the user for a failed request.

        Args:
            error: The exception raised by the request

        Returns:
            A single line prefixed with "Error: "
        """
        message = str(error) if isinstance(error, Exception) else ""
        return f"Error: {message or FALLBACK_ERROR_MESSAGE}"

    @staticmethod
    def log_error(
        error: Exception,
        operation: str,
        context: dict[str, Any] | None = None,
    ) -> str:
        """Log a failed operation with its category and return the category."""
        category = ChatErrorHandler.classify_error(error)
        extra: dict[str, Any] = dict(context or {})
        if isinstance(error, ChatError):
            extra.setdefault("model", error.model)
            if error.status_code is not None:
                extra["status_code"] = error.status_code

        logger.error(
            "Operation failed",
            operation=operation,
            error_type=type(error).__name__,
            error_category=category,
            error_message=str(error),
            **extra,
        )
        return category


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


@asynccontextmanager
async def operation_context(
    operation: str,
    *,
    context: dict[str, Any] | None = None,
    debug: bool = False,
) -> AsyncIterator[Any]:
    """
    Bind a logger to one operation and record its start, outcome and duration.

    Args:
        operation: Name of the operation
        context: Extra fields bound to every record
        debug: Record start and completion at debug rather than info level

    Yields:
        Bound logger for the operation
    """
    operation_logger = logger.bind(operation=operation, **(context or {}))
    record = operation_logger.debug if debug else operation_logger.info

    record("Operation started")
    start = time.perf_counter()
    try:
        yield operation_logger
    except Exception as e:
        operation_logger.error(
            "Operation failed",
            error_type=type(e).__name__,
            error_message=str(e),
            duration_ms=_elapsed_ms(start),
        )
        raise
    record("Operation completed", duration_ms=_elapsed_ms(start))


def log_operation(
    operation: str, *, context: dict[str, Any] | None = None
) -> Callable[[AsyncCallable[P, T]], AsyncCallable[P, T]]:
    """Run each call of the decorated coroutine inside `operation_context`."""
    def decorator(func: AsyncCallable[P, T]) -> AsyncCallable[P, T]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            bound = {"function": func.__name__, **(context or {})}
            async with operation_context(operation, context=bound, debug=True):
                return await func(*args, **kwargs)

        return wrapper
    return decorator
