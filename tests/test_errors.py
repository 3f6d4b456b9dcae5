"""Tests for the source error taxonomy."""

from __future__ import annotations

import pytest

from trustcore.errors import (
    SourceAuthError,
    SourceConfigError,
    SourceError,
    SourceTimeoutError,
    SourceUnavailableError,
    classify_http_error,
)


@pytest.mark.parametrize(
    "status_code,expected,transient",
    [
        (401, SourceAuthError, False),
        (403, SourceAuthError, False),
        (408, SourceTimeoutError, True),
        (429, SourceUnavailableError, True),
        (500, SourceUnavailableError, True),
        (502, SourceUnavailableError, True),
        (400, SourceConfigError, False),
        (404, SourceConfigError, False),
        (302, SourceUnavailableError, True),
    ],
)
def test_classify_http_error(status_code, expected, transient):
    """Test HTTP status codes map to the right error class."""
    error = classify_http_error(status_code, "boom", source_id="guru")

    assert type(error) is expected
    assert error.is_transient is transient
    assert error.status_code == status_code
    assert error.source_id == "guru"
    assert str(error) == "boom"


def test_all_source_errors_share_base():
    """Test every source error can be caught as SourceError."""
    for cls in (SourceAuthError, SourceConfigError, SourceTimeoutError, SourceUnavailableError):
        assert issubclass(cls, SourceError)
