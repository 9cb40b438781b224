"""Linear-footage aggregation for pipe-like component types.

Rows of an aggregate type that share drawing + size + commodity code
target one component (``pipe_id``). Merging happens twice:

1. Within the import: quantities are summed per pipe id and each row's
   line number (1-indexed data row) is recorded once.
2. Against the store: new pipe ids are inserted; existing ones get the
   quantities of line numbers they have not recorded yet added to
   ``total_linear_feet``. ``current_milestones`` is never touched on update.

Line numbers are row positions within a takeoff file, not global ids. A
re-import of a revised file that adds rows at the end contributes only
those rows. A different file that places the same pipe id at a row
position already recorded is treated as a repeat of that line and its
footage for that row is not added.

Updates are a compare-and-set on ``components.version`` (the select also
takes a row lock where the database supports it) and are retried when
another writer got there first. Drafts are reconciled in (type, pipe id)
order so concurrent imports lock aggregates in the same sequence.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from takeoff.canonical.identity import AggregateKey, resolve_identity_keys
from takeoff.db.connection import is_lock_conflict
from takeoff.db.models import ComponentModel
from takeoff.errors import AggregateConflictError
from takeoff.models import ComponentType, ParsedRow
from takeoff.pipeline.records import ComponentBuilder, build_attributes

logger = logging.getLogger(__name__)


@dataclass
class AggregateDraft:
    """Merged contribution of one import to one aggregate component."""

    component_type: ComponentType
    key: AggregateKey
    row_number: int
    row: ParsedRow
    # line number -> linear feet, in file order
    contributions: dict[str, int] = field(default_factory=dict)

    @property
    def pipe_id(self) -> str:
        return self.key.pipe_id

    @property
    def total_linear_feet(self) -> int:
        return sum(self.contributions.values())

    @property
    def line_numbers(self) -> list[str]:
        return list(self.contributions)

    def add(self, line_number: str, qty: int) -> None:
        if line_number in self.contributions:
            return
        self.contributions[line_number] = qty


def merge_aggregate_rows(rows: list[tuple[int, ParsedRow]]) -> list[AggregateDraft]:
    """Fold aggregate-type rows into one draft per (type, pipe id).

    Non-aggregate rows are ignored. Draft order follows first occurrence.
    """
    drafts: dict[tuple[ComponentType, str], AggregateDraft] = {}

    for row_number, row in rows:
        if not row.type.is_aggregate:
            continue
        keys = resolve_identity_keys(row.type, row.drawing, row.size, row.commodity_code, row.qty)
        if not keys:
            continue
        key = keys[0]
        draft = drafts.get((row.type, key.pipe_id))
        if draft is None:
            draft = AggregateDraft(
                component_type=row.type, key=key, row_number=row_number, row=row
            )
            drafts[(row.type, key.pipe_id)] = draft
        draft.add(str(row_number), row.qty)

    return list(drafts.values())


class AggregateOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"


@dataclass
class AggregateStats:
    created: int = 0
    updated: int = 0
    skipped: int = 0
    by_type: Counter = field(default_factory=Counter)

    def record(self, draft: AggregateDraft, outcome: AggregateOutcome) -> None:
        if outcome == AggregateOutcome.CREATED:
            self.created += 1
        elif outcome == AggregateOutcome.UPDATED:
            self.updated += 1
        else:
            self.skipped += 1
            return
        self.by_type[draft.component_type.value] += 1


class AggregateReconciler:
    """Applies aggregate drafts to persisted components.

    Each draft is handled on its own; the caller commits once all drafts
    are reconciled.
    """

    def __init__(self, session: AsyncSession, builder: ComponentBuilder, max_retries: int = 5):
        self.session = session
        self.builder = builder
        self.max_retries = max_retries

    async def reconcile_all(self, drafts: list[AggregateDraft]) -> AggregateStats:
        stats = AggregateStats()
        # Fixed lock order across imports
        for draft in sorted(drafts, key=lambda d: (d.component_type.value, d.pipe_id)):
            outcome = await self.reconcile(draft)
            stats.record(draft, outcome)

        if drafts:
            logger.info(
                f"Reconciled {len(drafts)} aggregates: {stats.created} created, "
                f"{stats.updated} updated, {stats.skipped} unchanged"
            )
        return stats

    async def reconcile(self, draft: AggregateDraft) -> AggregateOutcome:
        """Insert or merge one aggregate.

        Each attempt runs in a savepoint; a lost race or a lock conflict
        rolls back to it and tries again.

        Raises:
            AggregateConflictError: If every attempt lost a race
        """
        for attempt in range(1, self.max_retries + 1):
            try:
                async with self.session.begin_nested():
                    outcome = await self._attempt(draft)
            except DBAPIError as e:
                if not is_lock_conflict(e):
                    raise
                logger.warning(f"Aggregate {draft.pipe_id} lock conflict (attempt {attempt}): {e.orig}")
                continue

            if outcome is not None:
                return outcome
            logger.debug(f"Aggregate {draft.pipe_id} changed concurrently (attempt {attempt})")

        raise AggregateConflictError(draft.pipe_id, self.max_retries)

    async def _attempt(self, draft: AggregateDraft) -> AggregateOutcome | None:
        """One read-then-write pass; None when another writer got there first."""
        existing = await self._fetch_existing(draft)

        if existing is None:
            if await self._try_insert(draft):
                return AggregateOutcome.CREATED
            return None

        recorded = [str(n) for n in (existing.attributes or {}).get("line_numbers", [])]
        new_lines = {ln: qty for ln, qty in draft.contributions.items() if ln not in recorded}
        if not new_lines:
            return AggregateOutcome.SKIPPED

        if await self._try_update(existing, recorded, new_lines):
            return AggregateOutcome.UPDATED
        return None

    async def _fetch_existing(self, draft: AggregateDraft) -> ComponentModel | None:
        stmt = (
            select(ComponentModel)
            .where(
                ComponentModel.project_id == self.builder.project_id,
                ComponentModel.component_type == draft.component_type.value,
                ComponentModel.identity_key_text == draft.key.render(),
                ComponentModel.is_retired == False,  # noqa: E712
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _try_insert(self, draft: AggregateDraft) -> bool:
        attributes = build_attributes(draft.row)
        attributes["total_linear_feet"] = draft.total_linear_feet
        attributes["line_numbers"] = draft.line_numbers

        record = self.builder.record(draft.row_number, draft.row, draft.key, attributes)
        try:
            async with self.session.begin_nested():
                self.session.add(ComponentModel(**record.to_insert_values()))
        except IntegrityError:
            return False
        return True

    async def _try_update(
        self, existing: ComponentModel, recorded: list[str], new_lines: dict[str, int]
    ) -> bool:
        attributes = dict(existing.attributes or {})
        attributes["total_linear_feet"] = attributes.get("total_linear_feet", 0) + sum(new_lines.values())
        attributes["line_numbers"] = recorded + list(new_lines)

        stmt = (
            update(ComponentModel)
            .where(
                ComponentModel.id == existing.id,
                ComponentModel.version == existing.version,
            )
            .values(
                attributes=attributes,
                version=existing.version + 1,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1
