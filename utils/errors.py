"""
Error taxonomy for the synchronization service.

Two propagation scopes exist:
- run-scoped errors (ConfigurationError, UpstreamTransportError) stop the whole
  run and must reach the process boundary;
- partition-scoped errors (UpstreamFormatError, RecordFormatError,
  PersistenceError) stop extraction for one store only. They are listed in
  PARTITION_SCOPED_ERRORS, which is what the sync loop catches.
"""

from typing import Any, Optional


class SyncError(Exception):
    """Base class for every error raised by the service."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        """
        Initialize the error.

        Args:
            message: Human readable description
            details: Extra context, logged alongside the message
        """
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(SyncError):
    """Missing or unusable settings. Raised pre-flight."""


class SignerVerificationError(ConfigurationError):
    """The request signer does not reproduce the known upstream vectors."""


class UpstreamTransportError(SyncError):
    """Network failure or non-success HTTP status from the upstream API."""

    def __init__(self, message: str, url: str, status_code: Optional[int] = None) -> None:
        self.url = url
        self.status_code = status_code
        super().__init__(message, details={"url": url, "status_code": status_code})


class UpstreamFormatError(SyncError):
    """Upstream response failed structural validation."""


class RecordFormatError(SyncError):
    """A field of a raw entry could not be coerced to its record type."""

    def __init__(self, field: str, value: Any, reason: str) -> None:
        self.field = field
        self.value = value
        super().__init__(
            f"Invalid value for {field}: {value!r} ({reason})",
            details={"field": field, "value": value},
        )


class PersistenceError(SyncError):
    """The sink rejected a record."""

    def __init__(self, message: str, store_id: str, source_id: Optional[int] = None) -> None:
        self.store_id = store_id
        self.source_id = source_id
        super().__init__(message, details={"store_id": store_id, "source_id": source_id})


PARTITION_SCOPED_ERRORS = (UpstreamFormatError, RecordFormatError, PersistenceError)
