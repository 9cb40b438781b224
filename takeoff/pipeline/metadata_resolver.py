"""Idempotent resolution of area / system / test-package names.

For each dimension: check existing -> insert only missing names (each in
its own savepoint, a unique violation meaning a concurrent import won) ->
re-fetch everything -> build ``name -> id``. A re-fetch that does not
return every requested name is a consistency defect and aborts the import.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from takeoff.db.models import METADATA_MODELS
from takeoff.errors import ConsistencyError
from takeoff.models import MetadataToCreate, ParsedRow
from takeoff.pipeline.types import MetadataCreated
from takeoff.utils.performance import chunked

logger = logging.getLogger(__name__)

# Bound on IN (...) list sizes
LOOKUP_CHUNK_SIZE = 500


@dataclass
class MetadataLookup:
    """``name -> id`` per dimension."""

    areas: dict[str, UUID] = field(default_factory=dict)
    systems: dict[str, UUID] = field(default_factory=dict)
    test_packages: dict[str, UUID] = field(default_factory=dict)

    def ids_for(self, row: ParsedRow) -> tuple[UUID | None, UUID | None, UUID | None]:
        """(area_id, system_id, test_package_id); None where absent or unresolved."""
        return (
            self.areas.get(row.area) if row.area else None,
            self.systems.get(row.system) if row.system else None,
            self.test_packages.get(row.test_package) if row.test_package else None,
        )


def unique_names(names) -> list[str]:
    """Stripped, non-blank names in first-seen order."""
    seen: dict[str, None] = {}
    for name in names:
        if name is None:
            continue
        cleaned = str(name).strip()
        if cleaned:
            seen.setdefault(cleaned, None)
    return list(seen)


def merge_requested_metadata(
    requested: MetadataToCreate | None, rows: list[ParsedRow]
) -> MetadataToCreate:
    """Union of the request's metadata lists and names referenced by rows."""
    requested = requested or MetadataToCreate()
    return MetadataToCreate(
        areas=unique_names([*requested.areas, *(r.area for r in rows)]),
        systems=unique_names([*requested.systems, *(r.system for r in rows)]),
        test_packages=unique_names([*requested.test_packages, *(r.test_package for r in rows)]),
    )


async def fetch_existing(session: AsyncSession, model, project_id: str, names: list[str]) -> dict[str, UUID]:
    """Existing ``name -> id`` for the given names."""
    found: dict[str, UUID] = {}
    for chunk in chunked(names, LOOKUP_CHUNK_SIZE):
        stmt = select(model.name, model.id).where(
            model.project_id == project_id,
            model.name.in_(list(chunk)),
        )
        result = await session.execute(stmt)
        for name, record_id in result.all():
            found[name] = record_id
    return found


async def upsert_dimension(
    session: AsyncSession, model, project_id: str, names: list[str]
) -> tuple[dict[str, UUID], int]:
    """Resolve one dimension, inserting names that don't exist yet.

    Returns:
        (name -> id for every requested name, number of rows inserted)

    Raises:
        ConsistencyError: If the re-fetch misses a requested name
    """
    names = unique_names(names)
    if not names:
        return {}, 0

    existing = await fetch_existing(session, model, project_id, names)
    created = 0

    # Sorted so concurrent imports take unique-index locks in the same order
    for name in sorted(names):
        if name in existing:
            continue
        try:
            async with session.begin_nested():
                session.add(model(project_id=project_id, name=name))
        except IntegrityError:
            # Inserted by a concurrent import; treat as already present
            logger.debug(f"{model.__tablename__}: {name!r} already exists, reusing")
            continue
        created += 1

    lookup = await fetch_existing(session, model, project_id, names)
    if len(lookup) != len(names):
        missing = [n for n in names if n not in lookup]
        raise ConsistencyError(
            f"Metadata consistency check failed for {model.__tablename__}: "
            f"expected {len(names)} records, found {len(lookup)} (missing: {', '.join(missing[:10])})"
        )

    return lookup, created


async def resolve_metadata(
    session: AsyncSession, project_id: str, metadata: MetadataToCreate
) -> tuple[MetadataLookup, MetadataCreated]:
    """Resolve all three dimensions within the caller's transaction."""
    lookup = MetadataLookup()
    created = MetadataCreated()

    for dimension, model in METADATA_MODELS.items():
        names = getattr(metadata, dimension)
        mapping, inserted = await upsert_dimension(session, model, project_id, names)
        setattr(lookup, dimension, mapping)
        setattr(created, dimension, inserted)

    logger.info(
        f"Resolved metadata for project {project_id}: "
        f"{len(lookup.areas)} areas, {len(lookup.systems)} systems, "
        f"{len(lookup.test_packages)} test packages "
        f"({created.areas + created.systems + created.test_packages} new)"
    )
    return lookup, created
