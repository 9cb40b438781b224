"""Exception taxonomy for takeoff imports.

Every exception carries an ``ErrorKind`` so the orchestrator can convert it
into a failed ImportResult and callers can pick an HTTP status without
inspecting messages.
"""

from __future__ import annotations

from takeoff.models import ErrorDetail
from takeoff.pipeline.types import ErrorKind


class TakeoffImportError(Exception):
    """Base class for all import failures."""

    kind: ErrorKind = ErrorKind.UNEXPECTED

    def __init__(self, message: str, details: list[ErrorDetail] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or []


class PayloadError(TakeoffImportError):
    """Request is missing fields or has the wrong shape."""

    kind = ErrorKind.PAYLOAD


class PayloadTooLargeError(PayloadError):
    """Request or file exceeds the configured byte threshold."""

    kind = ErrorKind.PAYLOAD_TOO_LARGE

    def __init__(self, size_bytes: int, max_bytes: int):
        size_mb = size_bytes / (1024 * 1024)
        max_mb = max_bytes / (1024 * 1024)
        message = f"Payload too large: {size_mb:.2f}MB (max {max_mb:.2f}MB)"
        super().__init__(message, [ErrorDetail(row=0, issue=message)])
        self.size_bytes = size_bytes
        self.max_bytes = max_bytes


class RowLimitError(PayloadError):
    """Too many data rows in a single import."""

    def __init__(self, row_count: int, max_rows: int):
        message = f"Too many rows ({row_count:,}). Maximum allowed: {max_rows:,}"
        super().__init__(message, [ErrorDetail(row=0, issue=message)])
        self.row_count = row_count
        self.max_rows = max_rows


class ComponentLimitError(PayloadError):
    """Rows would expand into more components than one import may create."""

    def __init__(self, component_count: int, max_components: int):
        message = (
            f"Import would create too many components ({component_count:,}). "
            f"Maximum allowed: {max_components:,}"
        )
        super().__init__(message, [ErrorDetail(row=0, issue=message)])
        self.component_count = component_count
        self.max_components = max_components


class RowValidationError(TakeoffImportError):
    """One or more rows were classified as errors; the import is refused."""

    kind = ErrorKind.VALIDATION


class ConsistencyError(TakeoffImportError):
    """Re-fetched records do not match what was requested.

    Signals a race or a normalization defect rather than a user error.
    """

    kind = ErrorKind.CONSISTENCY


class AggregateConflictError(ConsistencyError):
    """Compare-and-set on an aggregate component kept losing to other writers."""

    def __init__(self, pipe_id: str, attempts: int):
        message = f"Aggregate {pipe_id} changed concurrently; gave up after {attempts} attempts"
        super().__init__(message)
        self.pipe_id = pipe_id
        self.attempts = attempts


class BatchWriteError(TakeoffImportError):
    """A component batch failed to persist; later batches were not attempted."""

    kind = ErrorKind.PERSISTENCE

    def __init__(
        self,
        batch_index: int,
        committed: int,
        cause: Exception,
        committed_by_type: dict[str, int] | None = None,
    ):
        message = (
            f"Failed to create components (batch {batch_index}): {cause}. "
            f"{committed} components were already committed"
        )
        super().__init__(message)
        self.batch_index = batch_index
        self.committed = committed
        self.cause = cause
        self.committed_by_type = dict(committed_by_type or {})


class AuthorizationError(TakeoffImportError):
    """Caller is not allowed to import into the project."""

    kind = ErrorKind.AUTHORIZATION
