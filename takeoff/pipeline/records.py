"""Component records built from validated rows, ready for persistence."""

from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID, uuid4

from takeoff.canonical.identity import IdentityKey, resolve_identity_keys
from takeoff.canonical.normalize import normalize_drawing
from takeoff.errors import ConsistencyError
from takeoff.models import ComponentType, ParsedRow
from takeoff.pipeline.metadata_resolver import MetadataLookup
from takeoff.pipeline.templates import TemplateRef, initial_milestones


@dataclass
class ComponentRecord:
    """One component to insert (or, for aggregates, to merge)."""

    project_id: str
    component_type: ComponentType
    drawing_id: UUID
    identity_key: IdentityKey
    row_number: int
    attributes: dict = field(default_factory=dict)
    current_milestones: dict = field(default_factory=dict)
    progress_template_id: UUID | None = None
    area_id: UUID | None = None
    system_id: UUID | None = None
    test_package_id: UUID | None = None

    @property
    def identity_key_text(self) -> str:
        return self.identity_key.render()

    def to_insert_values(self) -> dict:
        return {
            "id": uuid4(),
            "project_id": self.project_id,
            "component_type": self.component_type.value,
            "drawing_id": self.drawing_id,
            "identity_key": self.identity_key.to_json(),
            "identity_key_text": self.identity_key_text,
            "area_id": self.area_id,
            "system_id": self.system_id,
            "test_package_id": self.test_package_id,
            "progress_template_id": self.progress_template_id,
            "attributes": self.attributes,
            "current_milestones": self.current_milestones,
            "is_retired": False,
            "version": 1,
        }


def build_attributes(row: ParsedRow) -> dict:
    """Descriptive attributes stored with every component of a row."""
    return {
        "spec": row.spec or "",
        "description": row.description or "",
        "size": row.size or "",
        "cmdty_code": row.commodity_code,
        "comments": row.comments or "",
        "original_qty": row.qty,
        "unmapped_fields": dict(row.unmapped_fields),
    }


class ComponentBuilder:
    """Turns validated rows into ComponentRecords using resolved lookups."""

    def __init__(
        self,
        project_id: str,
        drawing_ids: dict[str, UUID],
        metadata: MetadataLookup,
        templates: dict[ComponentType, TemplateRef],
    ):
        self.project_id = project_id
        self.drawing_ids = drawing_ids
        self.metadata = metadata
        self.templates = templates

    def drawing_id_for(self, row: ParsedRow) -> UUID:
        norm = normalize_drawing(row.drawing)
        drawing_id = self.drawing_ids.get(norm)
        if drawing_id is None:
            raise ConsistencyError(f'Drawing ID not found for "{row.drawing}" (normalized: "{norm}")')
        return drawing_id

    def record(
        self,
        row_number: int,
        row: ParsedRow,
        identity_key: IdentityKey,
        attributes: dict | None = None,
    ) -> ComponentRecord:
        template = self.templates.get(row.type)
        area_id, system_id, test_package_id = self.metadata.ids_for(row)
        return ComponentRecord(
            project_id=self.project_id,
            component_type=row.type,
            drawing_id=self.drawing_id_for(row),
            identity_key=identity_key,
            row_number=row_number,
            attributes=attributes if attributes is not None else build_attributes(row),
            current_milestones=initial_milestones(row.type, template),
            progress_template_id=template.id if template else None,
            area_id=area_id,
            system_id=system_id,
            test_package_id=test_package_id,
        )

    def build(self, row_number: int, row: ParsedRow) -> list[ComponentRecord]:
        """Records for one non-aggregate row (N for exploded types)."""
        if row.type.is_aggregate:
            raise ValueError(f"Row {row_number}: {row.type.value} rows are merged, not built directly")

        keys = resolve_identity_keys(row.type, row.drawing, row.size, row.commodity_code, row.qty)
        attributes = build_attributes(row)
        return [self.record(row_number, row, key, dict(attributes)) for key in keys]
