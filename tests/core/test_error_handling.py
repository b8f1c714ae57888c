"""Tests for the exception hierarchy."""

from herdguard.core.error_handling import (
    BackendUnavailableError,
    CacheConfigurationError,
    HerdGuardException,
)


def test_configuration_error_is_value_error():
    error = CacheConfigurationError("bad namespace", context={"namespace": "a:b"})

    assert isinstance(error, ValueError)
    assert isinstance(error, HerdGuardException)
    assert error.component == "config"
    assert error.context == {"namespace": "a:b"}


def test_backend_unavailable_message():
    error = BackendUnavailableError("get", "timeout")

    assert error.operation == "get"
    assert error.reason == "timeout"
    assert str(error) == "Backend unavailable during get: timeout"
    assert error.component == "storage"


def test_to_dict():
    data = HerdGuardException("boom", component="cache").to_dict()

    assert data["error_type"] == "HerdGuardException"
    assert data["message"] == "boom"
    assert data["component"] == "cache"
    assert data["context"] == {}
    assert "timestamp" in data
