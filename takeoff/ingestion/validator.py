"""Row validation for takeoff imports.

Both entry points (raw file records keyed by source column, structured
payload rows keyed by camelCase field) funnel into ``_validate_fields`` so
one set of rules produces ``ParsedRow`` objects for the pipeline.

Per-row checks run in a fixed order; the first failure classifies the row:

1. DRAWING empty               -> error / empty_drawing
2. TYPE empty                  -> error / missing_required_field
3. CMDTY CODE empty            -> error / missing_required_field
4. TYPE not in enumeration     -> error / unsupported_type
5. QTY empty                   -> error / missing_required_field
6. QTY not a whole number >= 0 -> error / invalid_quantity
7. QTY == 0                    -> skipped / zero_quantity

A second pass flags rows whose identity keys collide with another row of
the same file (every row in the collision is reported).
"""

from __future__ import annotations

import logging
import math
import re
from typing import Any

from takeoff.canonical.identity import component_count, resolve_identity_keys
from takeoff.canonical.normalize import clean_cell
from takeoff.config import ImportConfig
from takeoff.errors import ComponentLimitError, PayloadTooLargeError, RowLimitError
from takeoff.models import (
    FIELD_KEYS,
    CanonicalField,
    ColumnMappingResult,
    ComponentType,
    ParsedRow,
    ValidationCategory,
    ValidationResult,
    ValidationStatus,
    ValidationSummary,
)

logger = logging.getLogger(__name__)

# Plain decimal notation only; exponents, inf and nan are not quantities
_QTY_PATTERN = re.compile(r"^[+-]?\d+(\.\d*)?$")

# Extra spellings accepted in structured payload rows
_PAYLOAD_KEY_ALIASES: dict[CanonicalField, tuple[str, ...]] = {
    CanonicalField.CMDTY_CODE: ("commodityCode", "commodity_code"),
    CanonicalField.TEST_PACKAGE: ("test_package",),
}

_OPTIONAL_FIELDS = (
    CanonicalField.SIZE,
    CanonicalField.SPEC,
    CanonicalField.DESCRIPTION,
    CanonicalField.COMMENTS,
    CanonicalField.AREA,
    CanonicalField.SYSTEM,
    CanonicalField.TEST_PACKAGE,
)


class MalformedRowError(ValueError):
    """Row structure cannot be interpreted at all."""


class RowValidator:
    """Classifies takeoff rows as valid, skipped or error."""

    def __init__(self, config: ImportConfig | None = None):
        self.config = config or ImportConfig()

    def check_limits(self, row_count: int, size_bytes: int | None = None) -> None:
        """Enforce the global size limits.

        Raises:
            PayloadTooLargeError: If size_bytes exceeds the file limit
            RowLimitError: If row_count exceeds the row limit
        """
        if size_bytes is not None and size_bytes > self.config.max_file_size_bytes:
            raise PayloadTooLargeError(size_bytes, self.config.max_file_size_bytes)
        if row_count > self.config.max_rows:
            raise RowLimitError(row_count, self.config.max_rows)

    def check_component_limit(self, results: list[ValidationResult]) -> None:
        """Bound the components valid rows expand into, before any key is built.

        Raises:
            ComponentLimitError: If the total exceeds ``max_components``
        """
        total = 0
        for result in results:
            if result.status != ValidationStatus.VALID or result.data is None:
                continue
            total += component_count(result.data.type, result.data.qty)
            if total > self.config.max_components:
                raise ComponentLimitError(total, self.config.max_components)

    def validate_records(
        self,
        records: list[dict],
        mapping: ColumnMappingResult,
        size_bytes: int | None = None,
    ) -> ValidationSummary:
        """Validate raw records keyed by source column header."""
        self.check_limits(len(records), size_bytes)

        columns = mapping.lookup()
        results = []
        for index, record in enumerate(records, start=1):
            try:
                fields, unmapped = self._fields_from_record(record, columns)
            except MalformedRowError as e:
                results.append(
                    ValidationResult.error(index, str(e), ValidationCategory.MALFORMED_DATA)
                )
                continue
            results.append(self._validate_fields(index, fields, unmapped))

        return self._summarize(results)

    def validate_payload_rows(self, rows: list[Any]) -> ValidationSummary:
        """Validate structured payload rows (``drawing``, ``cmdtyCode``, ...)."""
        self.check_limits(len(rows))

        results = []
        for index, row in enumerate(rows, start=1):
            try:
                fields, unmapped = self._fields_from_payload_row(row)
            except MalformedRowError as e:
                results.append(
                    ValidationResult.error(index, str(e), ValidationCategory.MALFORMED_DATA)
                )
                continue
            results.append(self._validate_fields(index, fields, unmapped))

        return self._summarize(results)

    def _summarize(self, results: list[ValidationResult]) -> ValidationSummary:
        self.check_component_limit(results)
        results = flag_duplicate_keys(results)
        summary = ValidationSummary.from_results(results)
        logger.info(
            f"Validated {summary.total_rows} rows: {summary.valid_count} valid, "
            f"{summary.skipped_count} skipped, {summary.error_count} errors"
        )
        return summary

    @staticmethod
    def _fields_from_record(
        record: Any, columns: dict[str, CanonicalField]
    ) -> tuple[dict[CanonicalField, Any], dict[str, str]]:
        if not isinstance(record, dict):
            raise MalformedRowError("Row could not be parsed")
        if record.get(None):
            # csv.DictReader puts surplus values under the None key
            extra = len(record[None])
            raise MalformedRowError(f"Row has {extra} more value(s) than the header row")

        fields: dict[CanonicalField, Any] = {}
        unmapped: dict[str, str] = {}
        for column, value in record.items():
            if column is None:
                continue
            if isinstance(value, (list, dict)):
                raise MalformedRowError(f"Column {column} holds a nested value")
            field = columns.get(column)
            if field is not None:
                fields[field] = value
            else:
                text = clean_cell(value)
                if text:
                    unmapped[column] = text
        return fields, unmapped

    @staticmethod
    def _fields_from_payload_row(row: Any) -> tuple[dict[CanonicalField, Any], dict[str, str]]:
        if not isinstance(row, dict):
            raise MalformedRowError("Row must be an object")

        fields: dict[CanonicalField, Any] = {}
        for field, key in FIELD_KEYS.items():
            candidates = (key,) + _PAYLOAD_KEY_ALIASES.get(field, ())
            for candidate in candidates:
                if candidate in row and row[candidate] is not None:
                    value = row[candidate]
                    if isinstance(value, (list, dict)):
                        raise MalformedRowError(f"Field {key} must be a scalar value")
                    fields[field] = value
                    break

        raw_unmapped = row.get("unmappedFields", row.get("unmapped_fields")) or {}
        if not isinstance(raw_unmapped, dict):
            raise MalformedRowError("unmappedFields must be an object")
        unmapped = {
            str(name): clean_cell(value)
            for name, value in raw_unmapped.items()
            if not isinstance(value, (list, dict))
        }
        return fields, unmapped

    def _validate_fields(
        self,
        row_number: int,
        fields: dict[CanonicalField, Any],
        unmapped: dict[str, str],
    ) -> ValidationResult:
        drawing = clean_cell(fields.get(CanonicalField.DRAWING))
        if not drawing:
            return ValidationResult.error(
                row_number, "Required field DRAWING is empty", ValidationCategory.EMPTY_DRAWING
            )

        type_raw = clean_cell(fields.get(CanonicalField.TYPE))
        if not type_raw:
            return ValidationResult.error(
                row_number,
                "Required field TYPE is empty",
                ValidationCategory.MISSING_REQUIRED_FIELD,
                drawing,
            )

        commodity_code = clean_cell(fields.get(CanonicalField.CMDTY_CODE))
        if not commodity_code:
            return ValidationResult.error(
                row_number,
                "Required field CMDTY CODE is empty",
                ValidationCategory.MISSING_REQUIRED_FIELD,
                drawing,
            )

        component_type = ComponentType.parse(type_raw)
        if component_type is None:
            return ValidationResult.error(
                row_number,
                f"Unsupported component type: {type_raw}",
                ValidationCategory.UNSUPPORTED_TYPE,
                drawing,
            )

        raw_qty = fields.get(CanonicalField.QTY)
        if raw_qty is None or (isinstance(raw_qty, str) and not raw_qty.strip()):
            return ValidationResult.error(
                row_number,
                "Required field QTY is empty",
                ValidationCategory.MISSING_REQUIRED_FIELD,
                drawing,
            )

        qty = parse_quantity(raw_qty)
        if qty is None:
            return ValidationResult.error(
                row_number,
                f"Invalid quantity: {raw_qty!r} (must be a whole number >= 0)",
                ValidationCategory.INVALID_QUANTITY,
                drawing,
            )

        if qty == 0:
            return ValidationResult.skipped(
                row_number,
                "Quantity is 0",
                ValidationCategory.ZERO_QUANTITY,
                drawing,
            )

        optional = {field: clean_cell(fields.get(field)) or None for field in _OPTIONAL_FIELDS}
        parsed = ParsedRow(
            drawing=drawing,
            type=component_type,
            qty=qty,
            commodity_code=commodity_code,
            size=optional[CanonicalField.SIZE],
            spec=optional[CanonicalField.SPEC],
            description=optional[CanonicalField.DESCRIPTION],
            comments=optional[CanonicalField.COMMENTS],
            area=optional[CanonicalField.AREA],
            system=optional[CanonicalField.SYSTEM],
            test_package=optional[CanonicalField.TEST_PACKAGE],
            unmapped_fields=unmapped,
        )
        return ValidationResult.valid(row_number, parsed)


def parse_quantity(raw: Any) -> int | None:
    """Parse a quantity cell; None when it is not a whole number >= 0.

    "3", 3, 3.0, "3.0" and "1,200" are whole numbers; "2.5", "abc", "1e3",
    -1 and NaN are rejected.
    """
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        value = float(raw)
    elif isinstance(raw, float):
        value = raw
    else:
        text = str(raw).strip().replace(",", "")
        if not _QTY_PATTERN.match(text):
            return None
        value = float(text)

    if math.isnan(value) or math.isinf(value):
        return None
    if value < 0 or not value.is_integer():
        return None
    return int(value)


def flag_duplicate_keys(results: list[ValidationResult]) -> list[ValidationResult]:
    """Re-classify valid rows whose identity keys collide within the file.

    Aggregate types are exempt; their rows merge into one component.
    Every row taking part in a collision becomes an error naming all of
    the rows involved.
    """
    owners: dict[tuple[ComponentType, str], list[int]] = {}
    for result in results:
        if result.status != ValidationStatus.VALID or result.data is None:
            continue
        row = result.data
        if row.type.is_aggregate:
            continue
        keys = resolve_identity_keys(row.type, row.drawing, row.size, row.commodity_code, row.qty)
        for key in keys:
            rows = owners.setdefault((row.type, key.render()), [])
            if result.row_number not in rows:
                rows.append(result.row_number)

    collisions: dict[int, tuple[str, list[int]]] = {}
    for (_, rendered), rows in owners.items():
        if len(rows) < 2:
            continue
        for row_number in rows:
            if row_number in collisions:
                _, seen = collisions[row_number]
                seen.extend(r for r in rows if r not in seen)
            else:
                collisions[row_number] = (rendered, list(rows))

    if not collisions:
        return results

    logger.warning(f"Found {len(collisions)} rows with duplicate identity keys")

    flagged = []
    for result in results:
        if result.row_number in collisions:
            rendered, rows = collisions[result.row_number]
            row_list = ", ".join(str(r) for r in sorted(rows))
            flagged.append(
                ValidationResult.error(
                    result.row_number,
                    f"Duplicate identity key {rendered} (rows {row_list})",
                    ValidationCategory.DUPLICATE_IDENTITY_KEY,
                    result.drawing,
                )
            )
        else:
            flagged.append(result)
    return flagged
