"""Metadata discovery and import previews.

Read-only helpers used before an import runs: which area / system /
test-package names a file references, which of them already exist, and
a preview of what the import would create.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from takeoff.canonical.identity import resolve_identity_keys
from takeoff.config import ImportConfig
from takeoff.db.models import METADATA_MODELS
from takeoff.ingestion.column_mapper import map_columns
from takeoff.ingestion.validator import RowValidator
from takeoff.models import ColumnMappingResult, MetadataToCreate, ParsedRow, ValidationSummary
from takeoff.pipeline.metadata_resolver import fetch_existing, unique_names


def extract_unique_metadata(rows: list[ParsedRow]) -> MetadataToCreate:
    """Distinct names per dimension, first-seen order, blanks ignored."""
    return MetadataToCreate(
        areas=unique_names(r.area for r in rows),
        systems=unique_names(r.system for r in rows),
        test_packages=unique_names(r.test_package for r in rows),
    )


@dataclass
class MetadataDiscovery:
    name: str
    exists: bool
    record_id: UUID | None = None


@dataclass
class MetadataAnalysis:
    areas: list[MetadataDiscovery] = field(default_factory=list)
    systems: list[MetadataDiscovery] = field(default_factory=list)
    test_packages: list[MetadataDiscovery] = field(default_factory=list)

    def _all(self) -> list[MetadataDiscovery]:
        return [*self.areas, *self.systems, *self.test_packages]

    @property
    def total_count(self) -> int:
        return len(self._all())

    @property
    def existing_count(self) -> int:
        return sum(1 for d in self._all() if d.exists)

    @property
    def will_create_count(self) -> int:
        return self.total_count - self.existing_count

    def to_dict(self) -> dict:
        def entries(items: list[MetadataDiscovery]) -> list[dict]:
            return [
                {
                    "name": d.name,
                    "exists": d.exists,
                    "recordId": str(d.record_id) if d.record_id else None,
                }
                for d in items
            ]

        return {
            "areas": entries(self.areas),
            "systems": entries(self.systems),
            "testPackages": entries(self.test_packages),
            "totalCount": self.total_count,
            "existingCount": self.existing_count,
            "willCreateCount": self.will_create_count,
        }


async def analyze_metadata(
    session: AsyncSession, project_id: str, rows: list[ParsedRow]
) -> MetadataAnalysis:
    """Report which referenced metadata names already exist. Never writes."""
    unique = extract_unique_metadata(rows)
    analysis = MetadataAnalysis()

    for dimension, model in METADATA_MODELS.items():
        names = getattr(unique, dimension)
        existing = await fetch_existing(session, model, project_id, names) if names else {}
        setattr(
            analysis,
            dimension,
            [MetadataDiscovery(name=n, exists=n in existing, record_id=existing.get(n)) for n in names],
        )

    return analysis


@dataclass
class ImportPreview:
    file_name: str
    file_size: int
    mapping: ColumnMappingResult
    validation: ValidationSummary
    sample_rows: list[ParsedRow] = field(default_factory=list)
    component_counts: dict[str, int] = field(default_factory=dict)

    @property
    def can_import(self) -> bool:
        return self.mapping.has_all_required_fields and self.validation.can_import

    @property
    def total_components(self) -> int:
        return sum(self.component_counts.values())

    def to_dict(self) -> dict:
        return {
            "fileName": self.file_name,
            "fileSize": self.file_size,
            "columnMappings": self.mapping.model_dump(by_alias=True, mode="json"),
            "validation": self.validation.model_dump(by_alias=True, mode="json", exclude={"results"}),
            "errors": [d.model_dump(exclude_none=True) for d in self.validation.error_details()],
            "warnings": [d.model_dump(exclude_none=True) for d in self.validation.skip_details()],
            "sampleData": [r.model_dump(by_alias=True, mode="json") for r in self.sample_rows],
            "componentCounts": self.component_counts,
            "totalComponents": self.total_components,
            "canImport": self.can_import,
        }


def count_components(rows: list[ParsedRow]) -> dict[str, int]:
    """Components an import would produce per type (aggregates count once per pipe id)."""
    counts: Counter = Counter()
    seen_aggregates: set[tuple[str, str]] = set()

    for row in rows:
        keys = resolve_identity_keys(row.type, row.drawing, row.size, row.commodity_code, row.qty)
        if row.type.is_aggregate:
            for key in keys:
                marker = (row.type.value, key.render())
                if marker not in seen_aggregates:
                    seen_aggregates.add(marker)
                    counts[row.type.value] += 1
        else:
            counts[row.type.value] += len(keys)

    return dict(counts)


def build_preview(
    headers: list[str],
    records: list[dict],
    file_name: str,
    file_size: int,
    config: ImportConfig | None = None,
) -> ImportPreview:
    """Map, validate and summarize a file without touching the database.

    Raises:
        PayloadTooLargeError: If file_size exceeds the file limit
        RowLimitError: If there are too many rows
    """
    config = config or ImportConfig()
    mapping = map_columns(headers)
    validator = RowValidator(config)

    if mapping.has_all_required_fields:
        validation = validator.validate_records(records, mapping, file_size)
    else:
        validator.check_limits(len(records), file_size)
        validation = ValidationSummary.from_results([])
        validation.can_import = False

    valid = [row for _, row in validation.valid_rows()]
    return ImportPreview(
        file_name=file_name,
        file_size=file_size,
        mapping=mapping,
        validation=validation,
        sample_rows=valid[: config.preview_sample_size],
        component_counts=count_components(valid),
    )
