"""Error taxonomy for provisioning and ingestion failures."""

from __future__ import annotations

from typing import Any, Optional


class IngestError(Exception):
    """Base class for every failure surfaced by the workflow."""

    code = "ingest_error"
    retryable = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ConfigurationError(IngestError):
    """Missing or invalid setup input. Fatal to the run."""

    code = "configuration_error"


class ConnectivityError(IngestError):
    """Transport or authentication failure talking to the store."""

    code = "connectivity_error"
    retryable = True

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ValidationError(IngestError):
    """Malformed item or procedure body; the caller must fix the input."""

    code = "validation_error"


class ConflictError(IngestError):
    """A resource with the same id already exists."""

    code = "conflict"


class ProcedureError(IngestError):
    """The server-side routine raised a fault."""

    code = "procedure_error"

    # Diagnostic markers the store uses for conditions worth retrying.
    TRANSIENT_MARKERS = (
        "RequestTimeout",
        "ServiceUnavailable",
        "TooManyRequests",
        "Error 408",
        "Error 429",
        "Error 503",
    )

    def __init__(
        self,
        message: str,
        diagnostic: Any = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.diagnostic = diagnostic
        self.status_code = status_code

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        if self.status_code in (408, 429, 503):
            return True
        text = str(self.diagnostic or "")
        return any(marker in text for marker in self.TRANSIENT_MARKERS)


class WorkflowStateError(IngestError):
    """An operation was called from a state that does not allow it."""

    code = "workflow_state_error"


__all__ = [
    "IngestError",
    "ConfigurationError",
    "ConnectivityError",
    "ValidationError",
    "ConflictError",
    "ProcedureError",
    "WorkflowStateError",
]
