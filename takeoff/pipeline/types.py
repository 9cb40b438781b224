"""Type definitions for pipeline operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from takeoff.models import ErrorDetail


class ImportStatus(str, Enum):
    """Status of an import operation."""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class ErrorKind(str, Enum):
    """Failure families; callers map these to HTTP status codes."""

    PAYLOAD = "payload"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    VALIDATION = "validation"
    AUTHORIZATION = "authorization"
    CONSISTENCY = "consistency"
    PERSISTENCE = "persistence"
    UNEXPECTED = "unexpected"


@dataclass
class MetadataCreated:
    """Metadata rows actually inserted per dimension."""

    areas: int = 0
    systems: int = 0
    test_packages: int = 0

    def to_dict(self) -> dict:
        return {
            "areas": self.areas,
            "systems": self.systems,
            "testPackages": self.test_packages,
        }


@dataclass
class ImportResult:
    """Result of a takeoff import. Always returned, never raised."""

    project_id: str
    status: ImportStatus
    components_created: int = 0
    components_updated: int = 0
    components_skipped: int = 0
    drawings_created: int = 0
    drawings_reused: int = 0
    metadata_created: MetadataCreated = field(default_factory=MetadataCreated)
    components_by_type: dict[str, int] = field(default_factory=dict)
    duration_ms: int = 0
    error: str | None = None
    error_kind: ErrorKind | None = None
    details: list[ErrorDetail] = field(default_factory=list)
    warnings: list[ErrorDetail] = field(default_factory=list)
    import_id: str | None = None

    @property
    def success(self) -> bool:
        """Check if import was successful."""
        return self.status == ImportStatus.SUCCESS

    @property
    def total_components(self) -> int:
        """Components touched by this import."""
        return self.components_created + self.components_updated + self.components_skipped

    def fail(self, error: str, kind: ErrorKind, details: list[ErrorDetail] | None = None) -> None:
        """Mark the import failed, keeping counts of work already committed."""
        self.status = ImportStatus.FAILED
        self.error = error
        self.error_kind = kind
        self.details = details or [ErrorDetail(row=0, issue=error)]

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "importId": self.import_id,
            "projectId": self.project_id,
            "componentsCreated": self.components_created,
            "componentsUpdated": self.components_updated,
            "componentsSkipped": self.components_skipped,
            "drawingsCreated": self.drawings_created,
            "drawingsUpdated": self.drawings_reused,
            "metadataCreated": self.metadata_created.to_dict(),
            "componentsByType": dict(self.components_by_type),
            "duration": self.duration_ms,
            "error": self.error,
            "errorKind": self.error_kind.value if self.error_kind else None,
            "details": [d.model_dump(exclude_none=True) for d in self.details],
            "warnings": [w.model_dump(exclude_none=True) for w in self.warnings],
        }
