"""Three-tier column detection for takeoff spreadsheets.

Tiers, strongest first:
1. exact (case-sensitive)          -> confidence 100
2. case-insensitive                -> confidence 95
3. synonym table (case-insensitive) -> confidence 85

Tiers are applied across all fields before the next tier runs, so an
exact header always beats a synonym that appears further left. Each source
column maps to at most one field and each field to at most one column;
later candidates are reported as unmapped.
"""

from __future__ import annotations

from takeoff.models import (
    COLUMN_SYNONYMS,
    REQUIRED_FIELDS,
    TIER_CONFIDENCE,
    CanonicalField,
    ColumnMapping,
    ColumnMappingResult,
    MatchTier,
)


def map_columns(
    headers: list[str],
    synonyms: dict[CanonicalField, list[str]] | None = None,
) -> ColumnMappingResult:
    """Map raw headers to canonical fields.

    Never raises for missing fields; the caller decides whether to abort
    when ``has_all_required_fields`` is False.
    """
    synonyms = COLUMN_SYNONYMS if synonyms is None else synonyms
    synonym_lookup = {
        field: {alias.strip().upper() for alias in aliases}
        for field, aliases in synonyms.items()
    }

    claimed: dict[int, ColumnMapping] = {}
    mapped_fields: set[CanonicalField] = set()

    tiers = (
        (MatchTier.EXACT, lambda header, field: header == field.value),
        (
            MatchTier.CASE_INSENSITIVE,
            lambda header, field: header.strip().upper() == field.value.upper(),
        ),
        (
            MatchTier.SYNONYM,
            lambda header, field: header.strip().upper() in synonym_lookup.get(field, ()),
        ),
    )

    for tier, matches in tiers:
        for field in CanonicalField:
            if field in mapped_fields:
                continue
            for index, header in enumerate(headers):
                if index in claimed or not header or not header.strip():
                    continue
                if matches(header, field):
                    claimed[index] = ColumnMapping(
                        source_column=header,
                        canonical_field=field,
                        confidence=TIER_CONFIDENCE[tier],
                        match_tier=tier,
                    )
                    mapped_fields.add(field)
                    break

    mappings = [claimed[index] for index in sorted(claimed)]
    unmapped = [
        header
        for index, header in enumerate(headers)
        if index not in claimed and header and header.strip()
    ]
    missing = [field for field in REQUIRED_FIELDS if field not in mapped_fields]

    return ColumnMappingResult(
        mappings=mappings,
        unmapped_columns=unmapped,
        missing_required_fields=missing,
        has_all_required_fields=not missing,
    )
