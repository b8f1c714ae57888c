"""
Centralized Error Handling

Exception hierarchy for the cache layer. Availability problems are recovered
inside the package; only configuration faults and caller (fetcher) errors
ever reach application code.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


# ============================================================================
# Custom Exception Hierarchy
# ============================================================================

class HerdGuardException(Exception):
    """Base exception for all HerdGuard-specific errors."""

    def __init__(self, message: str, component: str = "unknown",
                 context: Optional[Dict[str, Any]] = None):
        """Initialize HerdGuard exception with metadata.

        Args:
            message: Error message
            component: Component where error occurred
            context: Additional context data
        """
        self.message = message
        self.component = component
        self.context = context or {}
        self.timestamp = datetime.now()
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to structured log format."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "component": self.component,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }


class CacheConfigurationError(HerdGuardException, ValueError):
    """Raised at construction time when the cache is misconfigured.

    This is the one fault the cache never degrades around: a malformed
    Redis URL or a non-positive size limit points at a deployment mistake,
    not at a transient outage.
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, component="config", context=context)


class BackendUnavailableError(HerdGuardException):
    """Raised by a distributed backend when it cannot serve a call.

    Never escapes ``CacheService``: the facade catches it and repeats the
    operation against the in-process store.
    """

    def __init__(self, operation: str, reason: str,
                 context: Optional[Dict[str, Any]] = None):
        self.operation = operation
        self.reason = reason
        super().__init__(
            f"Backend unavailable during {operation}: {reason}",
            component="storage",
            context=context,
        )
