"""Batched component inserts with per-batch commits.

Each batch is one multi-row INSERT inside a savepoint. When the batch
trips the unique index (a concurrent import inserted some of the same
keys after the duplicate filter ran), it is replayed row by row and the
losing rows are counted as skipped. Any other failure aborts the load
with the batch index and the number of components already committed.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field

from sqlalchemy import insert, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from takeoff.db.models import ComponentModel
from takeoff.errors import BatchWriteError
from takeoff.pipeline.records import ComponentRecord
from takeoff.utils.performance import chunked

logger = logging.getLogger(__name__)


@dataclass
class LoadStats:
    created: int = 0
    skipped: int = 0
    batches: int = 0
    by_type: Counter = field(default_factory=Counter)


class BatchLoader:
    """Writes component records in fixed-size batches."""

    def __init__(self, session: AsyncSession, batch_size: int = 1000):
        self.session = session
        self.batch_size = batch_size

    async def load(self, records: list[ComponentRecord]) -> LoadStats:
        """Insert records, committing after every batch.

        Raises:
            BatchWriteError: On the first batch that cannot be written
        """
        stats = LoadStats()
        total_batches = (len(records) + self.batch_size - 1) // self.batch_size

        for index, batch in enumerate(chunked(records, self.batch_size), start=1):
            try:
                written = await self._write_batch(batch)
                await self.session.commit()
            except SQLAlchemyError as e:
                await self.session.rollback()
                logger.error(f"Component batch {index}/{total_batches} failed: {e}")
                raise BatchWriteError(index, stats.created, e, stats.by_type) from e

            stats.batches += 1
            stats.created += len(written)
            stats.skipped += len(batch) - len(written)
            stats.by_type.update(r.component_type.value for r in written)
            logger.debug(f"Committed batch {index}/{total_batches}: {len(written)} components")

        return stats

    async def _write_batch(self, batch) -> list[ComponentRecord]:
        try:
            async with self.session.begin_nested():
                await self.session.execute(
                    insert(ComponentModel), [r.to_insert_values() for r in batch]
                )
            return list(batch)
        except IntegrityError:
            logger.warning(f"Batch of {len(batch)} hit a conflict; retrying row by row")

        written = []
        for record in batch:
            try:
                async with self.session.begin_nested():
                    await self.session.execute(insert(ComponentModel), [record.to_insert_values()])
            except IntegrityError:
                if not await self._exists(record):
                    raise
                logger.debug(f"Component {record.identity_key_text} already exists, skipping")
                continue
            written.append(record)
        return written

    async def _exists(self, record: ComponentRecord) -> bool:
        stmt = select(ComponentModel.id).where(
            ComponentModel.project_id == record.project_id,
            ComponentModel.component_type == record.component_type.value,
            ComponentModel.identity_key_text == record.identity_key_text,
            ComponentModel.is_retired == False,  # noqa: E712
        )
        result = await self.session.execute(stmt)
        return result.first() is not None
