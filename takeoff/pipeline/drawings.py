"""Drawing resolution: reuse existing drawings, insert the new ones."""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from takeoff.canonical.normalize import normalize_drawing
from takeoff.db.models import DrawingModel
from takeoff.errors import ConsistencyError
from takeoff.utils.performance import chunked

logger = logging.getLogger(__name__)

LOOKUP_CHUNK_SIZE = 500


async def fetch_drawings(session: AsyncSession, project_id: str, norms: list[str]) -> dict[str, UUID]:
    """Active drawings ``drawing_no_norm -> id``."""
    found: dict[str, UUID] = {}
    for chunk in chunked(norms, LOOKUP_CHUNK_SIZE):
        stmt = select(DrawingModel.drawing_no_norm, DrawingModel.id).where(
            DrawingModel.project_id == project_id,
            DrawingModel.drawing_no_norm.in_(list(chunk)),
            DrawingModel.is_retired == False,  # noqa: E712
        )
        result = await session.execute(stmt)
        for norm, drawing_id in result.all():
            found[norm] = drawing_id
    return found


async def resolve_drawings(
    session: AsyncSession, project_id: str, raw_drawings: list[str]
) -> tuple[dict[str, UUID], int, int]:
    """Resolve drawing numbers to ids, creating missing drawings.

    Args:
        session: Active session; caller commits
        project_id: Project scope
        raw_drawings: Drawing numbers as they appeared in the file

    Returns:
        (drawing_no_norm -> id, drawings created, drawings reused)

    Raises:
        ConsistencyError: If the re-fetch misses a requested drawing
    """
    # First raw spelling wins for each normalized number
    raw_by_norm: dict[str, str] = {}
    for raw in raw_drawings:
        norm = normalize_drawing(raw)
        if norm:
            raw_by_norm.setdefault(norm, raw.strip())

    if not raw_by_norm:
        return {}, 0, 0

    norms = list(raw_by_norm)
    existing = await fetch_drawings(session, project_id, norms)
    created = 0

    # Sorted so concurrent imports take unique-index locks in the same order
    for norm in sorted(norms):
        if norm in existing:
            continue
        try:
            async with session.begin_nested():
                # drawing_no_norm is filled by the model default
                session.add(DrawingModel(project_id=project_id, drawing_no_raw=raw_by_norm[norm]))
        except IntegrityError:
            logger.debug(f"Drawing {norm} created concurrently, reusing")
            continue
        created += 1

    lookup = await fetch_drawings(session, project_id, norms)
    if len(lookup) != len(norms):
        missing = [n for n in norms if n not in lookup]
        raise ConsistencyError(
            f"Drawing consistency check failed: expected {len(norms)} drawings, "
            f"found {len(lookup)} (missing: {', '.join(missing[:10])})"
        )

    reused = len(norms) - created
    logger.info(f"Resolved {len(norms)} drawings for project {project_id}: {created} new, {reused} existing")
    return lookup, created, reused
