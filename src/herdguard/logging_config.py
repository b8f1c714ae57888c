"""
HerdGuard Structured Logging Module
JSON-based structured logging for cache diagnostics
"""

import logging
import sys
from typing import Any, Optional, TextIO

import structlog
from pythonjsonlogger import jsonlogger

from herdguard.core.secrets import get_secret

# ============================================================================
# STRUCTURED LOGGING CONFIGURATION
# ============================================================================

def setup_json_logging(
    log_level: str = "INFO",
    service_name: str = "herdguard",
    environment: Optional[str] = None,
    stream: Optional[TextIO] = None,
):
    """
    Setup JSON structured logging.

    structlog events are handed to the standard library and rendered by a
    python-json-logger formatter, so records from ``logging.getLogger``
    and from ``get_logger`` end up in the same JSON stream.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        service_name: Name of the service
        environment: Environment name, defaults to $ENVIRONMENT or "development"
        stream: Output stream (default: stdout)
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    environment = environment or get_secret("ENVIRONMENT", "development")

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.render_to_log_kwargs,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    json_handler = logging.StreamHandler(stream or sys.stdout)
    json_handler.setFormatter(
        jsonlogger.JsonFormatter(fmt="%(levelname)s %(name)s %(message)s")
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(json_handler)

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        service=service_name,
        environment=environment,
    )


def get_logger(name: str = __name__) -> structlog.BoundLogger:
    """
    Get a structured logger instance

    Args:
        name: Logger name (typically __name__)

    Returns:
        Bound structlog logger instance
    """
    return structlog.get_logger(name)


# ============================================================================
# EVENT HELPERS
# ============================================================================

def log_backend_fallback(
    logger: Any,
    namespace: str,
    operation: str,
    error: Exception,
    **extra
):
    """
    Log a call served from memory because the distributed backend failed

    Args:
        logger: Structlog logger instance
        namespace: Cache namespace
        operation: Backend operation that failed (get, set, try_acquire, ...)
        error: The availability error
        **extra: Additional context fields
    """
    logger.warning(
        "cache_backend_fallback",
        namespace=namespace,
        operation=operation,
        error_type=type(error).__name__,
        error_message=str(error),
        **extra
    )


def log_lock_wait_timeout(
    logger: Any,
    namespace: str,
    key: str,
    waited_ms: float,
    **extra
):
    """
    Log a waiter giving up on a held lock and computing the value itself

    Args:
        logger: Structlog logger instance
        namespace: Cache namespace
        key: Logical cache key
        waited_ms: How long the caller polled before giving up
        **extra: Additional context fields
    """
    logger.info(
        "cache_lock_wait_timeout",
        namespace=namespace,
        key=key,
        waited_ms=round(waited_ms, 1),
        **extra
    )
