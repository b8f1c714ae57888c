"""Core utilities shared by the storage and cache layers."""

from herdguard.core.error_handling import (
    HerdGuardException,
    CacheConfigurationError,
    BackendUnavailableError,
)

__all__ = [
    "HerdGuardException",
    "CacheConfigurationError",
    "BackendUnavailableError",
]
