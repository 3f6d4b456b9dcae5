"""Error taxonomy for collection, scoring, persistence and publishing."""

from __future__ import annotations


class TrustError(Exception):
    """Base class for all trust pipeline errors."""


class SourceError(TrustError):
    """A source adapter failed to produce a signal."""

    def __init__(self, message: str, *, source_id: str = "", is_transient: bool = False, status_code: int | None = None):
        super().__init__(message)
        self.source_id = source_id
        self.is_transient = is_transient
        self.status_code = status_code


class SourceTimeoutError(SourceError):
    """The source did not answer within its timeout (retry-able)."""

    def __init__(self, message: str, *, source_id: str = "", status_code: int | None = None):
        super().__init__(message, source_id=source_id, is_transient=True, status_code=status_code)


class SourceUnavailableError(SourceError):
    """Transient upstream failure: rate limited, 5xx, network error (retry-able)."""

    def __init__(self, message: str, *, source_id: str = "", status_code: int | None = None):
        super().__init__(message, source_id=source_id, is_transient=True, status_code=status_code)


class SourceAuthError(SourceError):
    """Credentials rejected or missing. Never retried; marks the source degraded."""

    def __init__(self, message: str, *, source_id: str = "", status_code: int | None = None):
        super().__init__(message, source_id=source_id, is_transient=False, status_code=status_code)


class SourceConfigError(SourceError):
    """The request can never succeed as configured (bad path, unknown entity, ...).

    Scoped to the binding that raised it; the source itself stays healthy.
    """

    def __init__(self, message: str, *, source_id: str = "", status_code: int | None = None):
        super().__init__(message, source_id=source_id, is_transient=False, status_code=status_code)


class SourceFaultError(SourceError):
    """The adapter raised something outside the source error contract. Marks the source degraded."""

    def __init__(self, message: str, *, source_id: str = ""):
        super().__init__(message, source_id=source_id, is_transient=False)


class ExtractionFailure(TrustError):
    """A signal payload could not be parsed into its schema."""

    def __init__(self, message: str, *, signal_type: str = "", source_id: str = ""):
        super().__init__(message)
        self.signal_type = signal_type
        self.source_id = source_id


class SnapshotWriteError(TrustError):
    """A snapshot could not be committed. Fatal only for that entity-cycle."""


class SnapshotSchemaError(TrustError):
    """A persisted snapshot carries a schema version this build cannot read."""


class EventPublishError(TrustError):
    """An update event could not be delivered. Never fatal."""


def classify_http_error(status_code: int, message: str, *, source_id: str = "") -> SourceError:
    """Map an HTTP status code to the source error taxonomy."""
    if status_code in {401, 403}:
        return SourceAuthError(message, source_id=source_id, status_code=status_code)

    if status_code == 408:
        return SourceTimeoutError(message, source_id=source_id, status_code=status_code)

    if status_code == 429 or 500 <= status_code < 600:
        return SourceUnavailableError(message, source_id=source_id, status_code=status_code)

    if 400 <= status_code < 500:
        return SourceConfigError(message, source_id=source_id, status_code=status_code)

    # Unknown - treat as transient to be safe
    return SourceUnavailableError(message, source_id=source_id, status_code=status_code)
