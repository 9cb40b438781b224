"""Progress-template lookup and initial milestone maps.

The import engine never evaluates milestones. It links each component to
the latest template for its type and seeds ``current_milestones`` with
untouched values: partial milestones at 0, discrete milestones at False.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from uuid import UUID

import yaml
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from takeoff.db.models import ProgressTemplateModel
from takeoff.models import ComponentType

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATES_PATH = Path(__file__).resolve().parent.parent / "data" / "progress_templates.yaml"

# Used for aggregates when no template exists for the type
LINEAR_FOOTAGE_MILESTONES: dict[str, int | bool] = {
    "Fabricate_LF": 0,
    "Install_LF": 0,
    "Erect_LF": 0,
    "Connect_LF": 0,
    "Support_LF": 0,
    "Punch": False,
    "Test": False,
    "Restore": False,
}


@dataclass
class TemplateSpec:
    """One template definition from the seed file."""

    component_type: str
    version: int = 1
    workflow_type: str = "discrete"
    milestones: list[dict] = field(default_factory=list)


@dataclass
class TemplateRef:
    """Resolved template for a component type."""

    id: UUID
    milestones_config: list[dict]


def load_template_specs(config_path: Path | None = None) -> list[TemplateSpec]:
    """Load template definitions from YAML.

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ValueError: If the file has no ``templates`` section or names an
            unknown component type
    """
    config_path = config_path or DEFAULT_TEMPLATES_PATH
    if not config_path.exists():
        raise FileNotFoundError(f"Template config not found: {config_path}")

    with open(config_path) as f:
        config = yaml.safe_load(f)

    if not config or "templates" not in config:
        raise ValueError("Invalid template config: missing 'templates' section")

    specs = []
    for entry in config["templates"]:
        component_type = ComponentType.parse(entry.get("component_type"))
        if component_type is None:
            raise ValueError(f"Unknown component type in template config: {entry.get('component_type')!r}")
        specs.append(
            TemplateSpec(
                component_type=component_type.value,
                version=int(entry.get("version", 1)),
                workflow_type=entry.get("workflow_type", "discrete"),
                milestones=list(entry.get("milestones", [])),
            )
        )
    return specs


async def seed_templates(session: AsyncSession, specs: list[TemplateSpec] | None = None) -> int:
    """Insert templates whose (component_type, version) is not stored yet.

    Returns:
        Number of templates inserted
    """
    specs = specs if specs is not None else load_template_specs()

    result = await session.execute(
        select(ProgressTemplateModel.component_type, ProgressTemplateModel.version)
    )
    existing = {(row[0], row[1]) for row in result.all()}

    inserted = 0
    for spec in specs:
        if (spec.component_type, spec.version) in existing:
            continue
        session.add(
            ProgressTemplateModel(
                component_type=spec.component_type,
                version=spec.version,
                workflow_type=spec.workflow_type,
                milestones_config=spec.milestones,
            )
        )
        inserted += 1

    await session.flush()
    logger.info(f"Seeded {inserted} progress templates ({len(specs) - inserted} already present)")
    return inserted


async def fetch_template_lookup(
    session: AsyncSession, component_types: set[ComponentType] | None = None
) -> dict[ComponentType, TemplateRef]:
    """Latest template per component type (highest version wins)."""
    stmt = select(ProgressTemplateModel).order_by(
        ProgressTemplateModel.component_type, ProgressTemplateModel.version
    )
    if component_types:
        stmt = stmt.where(
            ProgressTemplateModel.component_type.in_([t.value for t in component_types])
        )

    result = await session.execute(stmt)
    lookup: dict[ComponentType, TemplateRef] = {}
    for template in result.scalars():
        component_type = ComponentType.parse(template.component_type)
        if component_type is None:
            continue
        # Ordered by version, so later rows replace earlier ones
        lookup[component_type] = TemplateRef(
            id=template.id, milestones_config=list(template.milestones_config or [])
        )
    return lookup


def initial_milestones(component_type: ComponentType, template: TemplateRef | None) -> dict:
    """Untouched milestone map for a freshly imported component.

    Partial milestones on aggregate types are tracked in linear feet and
    carry an ``_LF`` suffix.
    """
    if template is None or not template.milestones_config:
        return dict(LINEAR_FOOTAGE_MILESTONES) if component_type.is_aggregate else {}

    milestones: dict[str, int | bool] = {}
    for milestone in template.milestones_config:
        name = milestone.get("name")
        if not name:
            continue
        if milestone.get("is_partial"):
            key = f"{name}_LF" if component_type.is_aggregate else name
            milestones[key] = 0
        else:
            milestones[name] = False
    return milestones
