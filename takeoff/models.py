"""Takeoff Pydantic models for type-safe data validation.

Row-level and request-level shapes shared by the ingestion and pipeline
layers. JSON field names are camelCase (``cmdtyCode``, ``testPackage``)
to match what upstream spreadsheet tooling emits; Python attributes are
snake_case.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, Field
from pydantic.alias_generators import to_camel


class ComponentType(str, Enum):
    """Supported component types, persisted lowercase."""

    SPOOL = "spool"
    FIELD_WELD = "field_weld"
    VALVE = "valve"
    INSTRUMENT = "instrument"
    SUPPORT = "support"
    PIPE = "pipe"
    FITTING = "fitting"
    FLANGE = "flange"
    TUBING = "tubing"
    HOSE = "hose"
    MISC_COMPONENT = "misc_component"
    THREADED_PIPE = "threaded_pipe"

    @classmethod
    def parse(cls, value: str | None) -> ComponentType | None:
        """Case-insensitive lookup; returns None for unknown types."""
        if not value:
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None

    @property
    def is_aggregate(self) -> bool:
        """Linear-footage types accumulate into one component per pipe id."""
        return self in AGGREGATE_TYPES


AGGREGATE_TYPES = frozenset({ComponentType.PIPE, ComponentType.THREADED_PIPE})


class CanonicalField(str, Enum):
    """System field names that spreadsheet columns can map to."""

    DRAWING = "DRAWING"
    TYPE = "TYPE"
    QTY = "QTY"
    CMDTY_CODE = "CMDTY CODE"
    SIZE = "SIZE"
    SPEC = "SPEC"
    DESCRIPTION = "DESCRIPTION"
    COMMENTS = "COMMENTS"
    AREA = "AREA"
    SYSTEM = "SYSTEM"
    TEST_PACKAGE = "TEST_PACKAGE"


REQUIRED_FIELDS: tuple[CanonicalField, ...] = (
    CanonicalField.DRAWING,
    CanonicalField.TYPE,
    CanonicalField.QTY,
    CanonicalField.CMDTY_CODE,
)

# Tier 3 aliases, compared case-insensitively
COLUMN_SYNONYMS: dict[CanonicalField, list[str]] = {
    CanonicalField.DRAWING: ["DRAWINGS", "DRAWING NUMBER", "DWG", "DWG NO", "DWG NUM"],
    CanonicalField.CMDTY_CODE: ["COMMODITY CODE", "CMDTY", "COMMODITY", "CODE", "PART CODE"],
    CanonicalField.AREA: ["AREAS", "LOCATION", "ZONE"],
    CanonicalField.SYSTEM: ["SYSTEMS", "SYS"],
    CanonicalField.TEST_PACKAGE: ["TEST PACKAGE", "TEST PKG", "PKG", "PACKAGE"],
    CanonicalField.SIZE: ["NOM SIZE", "NOMINAL SIZE", "NOMSIZE"],
    CanonicalField.QTY: ["QUANTITY", "COUNT", "CNT"],
    CanonicalField.SPEC: ["SPECIFICATION", "MATERIAL SPEC", "MAT SPEC"],
    CanonicalField.COMMENTS: ["COMMENT", "NOTES", "NOTE", "REMARKS"],
}

# Canonical field -> key used in structured payload rows
FIELD_KEYS: dict[CanonicalField, str] = {
    CanonicalField.DRAWING: "drawing",
    CanonicalField.TYPE: "type",
    CanonicalField.QTY: "qty",
    CanonicalField.CMDTY_CODE: "cmdtyCode",
    CanonicalField.SIZE: "size",
    CanonicalField.SPEC: "spec",
    CanonicalField.DESCRIPTION: "description",
    CanonicalField.COMMENTS: "comments",
    CanonicalField.AREA: "area",
    CanonicalField.SYSTEM: "system",
    CanonicalField.TEST_PACKAGE: "testPackage",
}


class MatchTier(str, Enum):
    """Matching algorithm tier used for column detection."""

    EXACT = "exact"
    CASE_INSENSITIVE = "case-insensitive"
    SYNONYM = "synonym"


TIER_CONFIDENCE: dict[MatchTier, int] = {
    MatchTier.EXACT: 100,
    MatchTier.CASE_INSENSITIVE: 95,
    MatchTier.SYNONYM: 85,
}


class _CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True


class ColumnMapping(_CamelModel):
    """Detected relationship between a source column and a canonical field."""

    source_column: str = Field(validation_alias=AliasChoices("sourceColumn", "csvColumn", "source_column"))
    canonical_field: CanonicalField = Field(
        validation_alias=AliasChoices("canonicalField", "expectedField", "canonical_field")
    )
    confidence: Literal[100, 95, 85]
    match_tier: MatchTier


class ColumnMappingResult(_CamelModel):
    """Result of mapping every header of one file."""

    mappings: list[ColumnMapping] = Field(default_factory=list)
    unmapped_columns: list[str] = Field(default_factory=list)
    missing_required_fields: list[CanonicalField] = Field(default_factory=list)
    has_all_required_fields: bool = False

    def lookup(self) -> dict[str, CanonicalField]:
        """Source column -> canonical field."""
        return {m.source_column: m.canonical_field for m in self.mappings}


class ParsedRow(_CamelModel):
    """One normalized takeoff row that passed validation."""

    drawing: str
    type: ComponentType
    qty: int = Field(ge=0)
    commodity_code: str = Field(
        validation_alias=AliasChoices("cmdtyCode", "commodityCode", "commodity_code")
    )
    size: str | None = None
    spec: str | None = None
    description: str | None = None
    comments: str | None = None
    area: str | None = None
    system: str | None = None
    test_package: str | None = None
    unmapped_fields: dict[str, str] = Field(default_factory=dict)


class ValidationStatus(str, Enum):
    VALID = "valid"
    SKIPPED = "skipped"
    ERROR = "error"


class ValidationCategory(str, Enum):
    """Sub-categorization of skipped/error rows."""

    UNSUPPORTED_TYPE = "unsupported_type"
    ZERO_QUANTITY = "zero_quantity"
    MISSING_REQUIRED_FIELD = "missing_required_field"
    DUPLICATE_IDENTITY_KEY = "duplicate_identity_key"
    EMPTY_DRAWING = "empty_drawing"
    INVALID_QUANTITY = "invalid_quantity"
    MALFORMED_DATA = "malformed_data"


class ValidationResult(_CamelModel):
    """Validation outcome for one row (1-indexed, header excluded)."""

    row_number: int
    status: ValidationStatus
    reason: str | None = None
    category: ValidationCategory | None = None
    drawing: str | None = None
    data: ParsedRow | None = None

    @classmethod
    def valid(cls, row_number: int, data: ParsedRow) -> ValidationResult:
        return cls(
            row_number=row_number,
            status=ValidationStatus.VALID,
            drawing=data.drawing,
            data=data,
        )

    @classmethod
    def skipped(
        cls,
        row_number: int,
        reason: str,
        category: ValidationCategory,
        drawing: str | None = None,
    ) -> ValidationResult:
        return cls(
            row_number=row_number,
            status=ValidationStatus.SKIPPED,
            reason=reason,
            category=category,
            drawing=drawing,
        )

    @classmethod
    def error(
        cls,
        row_number: int,
        reason: str,
        category: ValidationCategory,
        drawing: str | None = None,
    ) -> ValidationResult:
        return cls(
            row_number=row_number,
            status=ValidationStatus.ERROR,
            reason=reason,
            category=category,
            drawing=drawing,
        )


class ErrorDetail(BaseModel):
    """Row-level problem reported back to the caller."""

    row: int
    issue: str
    drawing: str | None = None


class ValidationSummary(_CamelModel):
    """Aggregated validation results for one file or payload."""

    total_rows: int
    valid_count: int
    skipped_count: int
    error_count: int
    can_import: bool
    results: list[ValidationResult] = Field(default_factory=list)

    @classmethod
    def from_results(cls, results: list[ValidationResult]) -> ValidationSummary:
        counts = {status: 0 for status in ValidationStatus}
        for result in results:
            counts[result.status] += 1

        return cls(
            total_rows=len(results),
            valid_count=counts[ValidationStatus.VALID],
            skipped_count=counts[ValidationStatus.SKIPPED],
            error_count=counts[ValidationStatus.ERROR],
            can_import=counts[ValidationStatus.ERROR] == 0,
            results=results,
        )

    def by_status(self, status: ValidationStatus) -> list[ValidationResult]:
        return [r for r in self.results if r.status == status]

    def by_category(self) -> dict[ValidationCategory, list[ValidationResult]]:
        grouped: dict[ValidationCategory, list[ValidationResult]] = {}
        for result in self.results:
            if result.category is not None:
                grouped.setdefault(result.category, []).append(result)
        return grouped

    def valid_rows(self) -> list[tuple[int, ParsedRow]]:
        """(row_number, row) pairs for every valid row, in file order."""
        return [
            (r.row_number, r.data)
            for r in self.results
            if r.status == ValidationStatus.VALID and r.data is not None
        ]

    def error_details(self) -> list[ErrorDetail]:
        return [
            ErrorDetail(row=r.row_number, issue=r.reason or "", drawing=r.drawing)
            for r in self.by_status(ValidationStatus.ERROR)
        ]

    def skip_details(self) -> list[ErrorDetail]:
        return [
            ErrorDetail(row=r.row_number, issue=r.reason or "", drawing=r.drawing)
            for r in self.by_status(ValidationStatus.SKIPPED)
        ]


class MetadataToCreate(_CamelModel):
    """Metadata names per dimension to resolve during import."""

    areas: list[str] = Field(default_factory=list)
    systems: list[str] = Field(default_factory=list)
    test_packages: list[str] = Field(default_factory=list)


class ImportPayload(_CamelModel):
    """Structured import request.

    ``rows`` stay loosely typed here; every row is re-validated by the row
    validator so both entry points share one set of rules. Rows already
    use canonical field names, so ``column_mappings`` only records how the
    client mapped its file and is logged with the import.
    """

    project_id: str = Field(min_length=1)
    rows: list[Any]
    column_mappings: list[ColumnMapping]
    metadata: MetadataToCreate

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "projectId": "7f8d1c1e-3d0a-4b53-9a55-0a7d2d8c1f42",
                "rows": [
                    {
                        "drawing": "P-001",
                        "type": "Valve",
                        "qty": 2,
                        "cmdtyCode": "V100",
                        "size": "2\"",
                        "area": "North",
                        "unmappedFields": {"Item #": "12"},
                    }
                ],
                "columnMappings": [
                    {
                        "sourceColumn": "DRAWING",
                        "canonicalField": "DRAWING",
                        "confidence": 100,
                        "matchTier": "exact",
                    }
                ],
                "metadata": {"areas": ["North"], "systems": [], "testPackages": []},
            }
        }
