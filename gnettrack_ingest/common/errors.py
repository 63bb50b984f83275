"""Domain errors and failure typing."""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for pipeline failures."""

    error_code = "PIPELINE_ERROR"

    def __init__(self, message: str, *, stage: str | None = None, position: int | None = None) -> None:
        super().__init__(message)
        self.stage = stage
        self.position = position


class ConfigError(PipelineError):
    """Raised for invalid or missing configuration."""

    error_code = "CONFIG_ERROR"


class InputUnreadable(PipelineError):
    """Raised when the source stream cannot be opened or decoded."""

    error_code = "INPUT_UNREADABLE"


class UnsupportedStructure(PipelineError):
    """Raised when a mandatory structural element of the detected format is absent."""

    error_code = "UNSUPPORTED_STRUCTURE"


class MalformedRecord(PipelineError):
    """Raised for an invalid record when invalid records are not skipped."""

    error_code = "MALFORMED_RECORD"


class TransportError(PipelineError):
    error_code = "TRANSPORT_ERROR"

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        stage: str | None = None,
        position: int | None = None,
    ) -> None:
        super().__init__(message, stage=stage, position=position)
        self.status_code = status_code
        self.retry_state = None


class TransportTransient(TransportError):
    """Network failure or retryable status; retried before it becomes fatal."""

    error_code = "TRANSPORT_TRANSIENT"


class TransportRejected(TransportError):
    """Non-retryable client error such as a bad request or an auth failure."""

    error_code = "TRANSPORT_REJECTED"


PARTIAL_DELIVERY = "PARTIAL_DELIVERY"
