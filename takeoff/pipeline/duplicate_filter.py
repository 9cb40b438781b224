"""Partition new component records into insert vs already-exists."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from takeoff.canonical.identity import identity_key_from_json
from takeoff.db.models import ComponentModel
from takeoff.models import ComponentType
from takeoff.pipeline.records import ComponentRecord

logger = logging.getLogger(__name__)


async def fetch_existing_keys(
    session: AsyncSession, project_id: str, component_types: set[ComponentType]
) -> set[tuple[str, str]]:
    """``(component_type, rendered key)`` for every active component of the types.

    Keys are re-rendered from their JSON form so rows written by other
    tools compare on the same normalized string.
    """
    if not component_types:
        return set()

    stmt = select(
        ComponentModel.component_type,
        ComponentModel.identity_key,
        ComponentModel.identity_key_text,
    ).where(
        ComponentModel.project_id == project_id,
        ComponentModel.component_type.in_([t.value for t in component_types]),
        ComponentModel.is_retired == False,  # noqa: E712
    )
    result = await session.execute(stmt)

    keys: set[tuple[str, str]] = set()
    for component_type, identity_key, identity_key_text in result.all():
        try:
            rendered = identity_key_from_json(component_type, identity_key or {}).render()
        except ValueError:
            logger.debug(f"Unparseable identity key {identity_key!r}; using stored text")
            rendered = identity_key_text
        keys.add((component_type, rendered))
    return keys


async def filter_existing(
    session: AsyncSession, project_id: str, records: list[ComponentRecord]
) -> tuple[list[ComponentRecord], list[ComponentRecord]]:
    """Split records into (to_insert, already_existing)."""
    if not records:
        return [], []

    existing = await fetch_existing_keys(
        session, project_id, {r.component_type for r in records}
    )

    to_insert: list[ComponentRecord] = []
    skipped: list[ComponentRecord] = []
    for record in records:
        if (record.component_type.value, record.identity_key_text) in existing:
            skipped.append(record)
        else:
            to_insert.append(record)

    logger.info(
        f"Duplicate filter: {len(to_insert)} new, {len(skipped)} already exist "
        f"(checked against {len(existing)} existing components)"
    )
    return to_insert, skipped
