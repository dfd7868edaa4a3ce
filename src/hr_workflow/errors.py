"""Error taxonomy for workflow operations.

Every failure that reaches the presentation layer is one of these types.
Raw ``httpx`` exceptions are converted at the service-client boundary.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping


class WorkflowError(Exception):
    """Base class for workflow failures with a machine-readable code."""

    code = "workflow_error"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ValidationError(WorkflowError):
    """Client-side validation failure. Never reaches the network."""

    code = "validation_error"

    def __init__(
        self,
        message: str,
        field_errors: Mapping[str, Iterable[str]] | None = None,
    ) -> None:
        super().__init__(message)
        self.field_errors: dict[str, list[str]] = {
            key: list(messages) for key, messages in (field_errors or {}).items()
        }


class AlreadyProcessing(WorkflowError):
    """Raised when a record already has an operation in flight."""

    code = "already_processing"

    def __init__(self, record_ids: Iterable[object]) -> None:
        self.record_ids = tuple(record_ids)
        ids = ", ".join(str(record_id) for record_id in self.record_ids)
        super().__init__(f"Record(s) {ids} already being processed")


class RemoteRejected(WorkflowError):
    """The record service refused the request (validation, permission, stale state)."""

    code = "remote_rejected"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        field_errors: Mapping[str, Iterable[str]] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.field_errors: dict[str, list[str]] = {
            key: list(messages) for key, messages in (field_errors or {}).items()
        }

    @property
    def messages(self) -> list[str]:
        """Flattened server messages, falling back to the summary message."""
        flattened = [msg for msgs in self.field_errors.values() for msg in msgs]
        return flattened or [self.message]


class NetworkFailure(WorkflowError):
    """Transport-level failure talking to the record service."""

    code = "network_failure"


class RecordNotFound(WorkflowError):
    """The targeted record is not present in the local store."""

    code = "record_not_found"

    def __init__(self, record_id: object) -> None:
        super().__init__(f"Record {record_id} not found")
        self.record_id = record_id
