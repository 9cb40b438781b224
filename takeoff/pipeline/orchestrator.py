"""Takeoff import orchestrator.

Sequences one import end to end and always returns an ImportResult:

1. Payload checks (size, shape) or file parsing + column mapping
2. Row validation; any error row refuses the whole import
3. Metadata and drawings resolved and committed together
4. Aggregates merged and reconciled, then committed
5. Discrete components filtered against the store and inserted in
   committed batches

Any failure stops the remaining steps. Counts of work committed before
the failure stay on the returned result. Every run is written to the
``import_runs`` audit table afterwards.
"""

from __future__ import annotations

import time
from collections import Counter
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from uuid import UUID, uuid4
from zipfile import BadZipFile

import structlog
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from takeoff.config import ImportConfig, get_config
from takeoff.db.connection import get_session_factory, is_lock_conflict
from takeoff.db.models import ImportRunModel
from takeoff.errors import (
    AuthorizationError,
    BatchWriteError,
    PayloadError,
    RowValidationError,
    TakeoffImportError,
)
from takeoff.ingestion.column_mapper import map_columns
from takeoff.ingestion.reader import read_takeoff
from takeoff.ingestion.validator import RowValidator
from takeoff.models import MetadataToCreate, ParsedRow, ValidationSummary
from takeoff.pipeline.aggregate import AggregateReconciler, merge_aggregate_rows
from takeoff.pipeline.drawings import resolve_drawings
from takeoff.pipeline.duplicate_filter import filter_existing
from takeoff.pipeline.loader import BatchLoader
from takeoff.pipeline.metadata_resolver import merge_requested_metadata, resolve_metadata
from takeoff.pipeline.payload_validator import validate_payload
from takeoff.pipeline.records import ComponentBuilder
from takeoff.pipeline.templates import fetch_template_lookup
from takeoff.pipeline.types import ErrorKind, ImportResult, ImportStatus
from takeoff.utils.performance import StageTimer

logger = structlog.get_logger()

Steps = Callable[[ImportResult, structlog.stdlib.BoundLogger], Awaitable[None]]


class TakeoffImportOrchestrator:
    """Runs takeoff imports against one database."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        config: ImportConfig | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            session_factory: Session factory; defaults to the configured database
            config: Import limits; defaults to the environment configuration
        """
        self.session_factory = session_factory or get_session_factory()
        self.config = config if config is not None else get_config().imports
        self.validator = RowValidator(self.config)

    async def run_payload(
        self,
        raw: bytes | str | dict,
        project_id: str | None = None,
        authorized: bool = True,
    ) -> ImportResult:
        """Import a structured payload (``projectId``, ``rows``, ...).

        Args:
            raw: JSON body or decoded dict
            project_id: Project the caller was authorized for, if known
            authorized: Outcome of the caller's authorization check
        """

        async def steps(progress: ImportResult, log) -> None:
            payload = validate_payload(raw, self.config.max_payload_bytes, project_id)
            progress.project_id = payload.project_id
            log.info(
                "payload_accepted",
                rows=len(payload.rows),
                column_mappings={
                    m.source_column: m.canonical_field.value for m in payload.column_mappings
                },
            )
            summary = self.validator.validate_payload_rows(payload.rows)
            await self._import_validated(progress, summary, payload.metadata, log)

        return await self._guarded(
            project_id or _peek_project_id(raw), "payload", authorized, steps
        )

    async def import_file(
        self,
        project_id: str,
        content: bytes | str,
        file_name: str = "takeoff.csv",
        authorized: bool = True,
    ) -> ImportResult:
        """Legacy path: parse a CSV/XLSX file, map columns, validate, import."""

        async def steps(progress: ImportResult, log) -> None:
            size = len(content.encode("utf-8")) if isinstance(content, str) else len(content)
            self.validator.check_limits(0, size)

            try:
                table = read_takeoff(content, file_name)
            except (ValueError, BadZipFile) as e:
                raise PayloadError(f"Could not read {file_name}: {e}") from e

            mapping = map_columns(table.headers)
            if not mapping.has_all_required_fields:
                missing = ", ".join(f.value for f in mapping.missing_required_fields)
                raise PayloadError(f"Missing required columns: {missing}")

            log.info("columns_mapped", mapped=len(mapping.mappings), unmapped=mapping.unmapped_columns)
            summary = self.validator.validate_records(table.records, mapping, table.size_bytes)
            await self._import_validated(progress, summary, None, log)

        return await self._guarded(project_id, file_name, authorized, steps)

    async def _guarded(self, project_id: str, source: str, authorized: bool, steps: Steps) -> ImportResult:
        import_id = uuid4()
        log = logger.bind(project_id=project_id, import_id=str(import_id), source=source)
        started_at = datetime.now(timezone.utc)
        start = time.perf_counter()

        progress = ImportResult(
            project_id=project_id, status=ImportStatus.SUCCESS, import_id=str(import_id)
        )
        log.info("import_started")

        try:
            if not authorized:
                raise AuthorizationError(f"Not authorized to import into project {project_id}")
            await steps(progress, log)
        except TakeoffImportError as e:
            log.warning("import_failed", error=e.message, kind=e.kind.value)
            progress.fail(e.message, e.kind, e.details)
        except DBAPIError as e:
            if is_lock_conflict(e):
                log.error("import_lock_conflict", error=str(e.orig))
                progress.fail(f"Database busy, retry the import: {e.orig}", ErrorKind.PERSISTENCE)
            else:
                log.error("import_crashed", error=str(e), exc_info=True)
                progress.fail(f"Unexpected error: {e}", ErrorKind.UNEXPECTED)
        except Exception as e:
            log.error("import_crashed", error=str(e), exc_info=True)
            progress.fail(f"Unexpected error: {e}", ErrorKind.UNEXPECTED)

        progress.duration_ms = int((time.perf_counter() - start) * 1000)
        log.info(
            "import_finished",
            status=progress.status.value,
            created=progress.components_created,
            updated=progress.components_updated,
            skipped=progress.components_skipped,
            duration_ms=progress.duration_ms,
        )

        await self._record_run(import_id, progress, source, started_at, log)
        return progress

    async def _import_validated(
        self,
        progress: ImportResult,
        summary: ValidationSummary,
        requested_metadata: MetadataToCreate | None,
        log,
    ) -> None:
        if not summary.can_import:
            raise RowValidationError(
                f"Validation failed: {summary.error_count} row(s) with errors",
                summary.error_details(),
            )
        progress.warnings = summary.skip_details()

        rows = summary.valid_rows()
        await self._execute(progress, rows, requested_metadata, log)

    async def _execute(
        self,
        progress: ImportResult,
        rows: list[tuple[int, ParsedRow]],
        requested_metadata: MetadataToCreate | None,
        log,
    ) -> None:
        project_id = progress.project_id
        parsed = [row for _, row in rows]

        async with self.session_factory() as session:
            # Metadata and drawings commit together
            with StageTimer("resolve metadata and drawings"):
                metadata = merge_requested_metadata(requested_metadata, parsed)
                lookup, metadata_created = await resolve_metadata(session, project_id, metadata)
                drawing_ids, drawings_created, drawings_reused = await resolve_drawings(
                    session, project_id, [row.drawing for row in parsed]
                )
                await session.commit()

            progress.metadata_created = metadata_created
            progress.drawings_created = drawings_created
            progress.drawings_reused = drawings_reused
            log.info("references_resolved", drawings=len(drawing_ids), drawings_created=drawings_created)

            templates = await fetch_template_lookup(session, {row.type for row in parsed})
            builder = ComponentBuilder(project_id, drawing_ids, lookup, templates)
            by_type: Counter = Counter()

            # Aggregates: one atomic merge each, committed as a group
            drafts = merge_aggregate_rows(rows)
            reconciler = AggregateReconciler(session, builder, self.config.aggregate_max_retries)
            aggregate_stats = await reconciler.reconcile_all(drafts)
            await session.commit()

            progress.components_created += aggregate_stats.created
            progress.components_updated += aggregate_stats.updated
            progress.components_skipped += aggregate_stats.skipped
            by_type.update(aggregate_stats.by_type)
            progress.components_by_type = dict(by_type)

            # Discrete components
            records = [
                record
                for row_number, row in rows
                if not row.type.is_aggregate
                for record in builder.build(row_number, row)
            ]
            to_insert, existing = await filter_existing(session, project_id, records)
            progress.components_skipped += len(existing)

            loader = BatchLoader(session, self.config.batch_size)
            try:
                with StageTimer(f"load {len(to_insert)} components"):
                    load_stats = await loader.load(to_insert)
            except BatchWriteError as e:
                progress.components_created += e.committed
                by_type.update(e.committed_by_type)
                progress.components_by_type = dict(by_type)
                raise

            progress.components_created += load_stats.created
            progress.components_skipped += load_stats.skipped
            by_type.update(load_stats.by_type)
            progress.components_by_type = dict(by_type)

    async def _record_run(
        self,
        import_id: UUID,
        result: ImportResult,
        source: str,
        started_at: datetime,
        log,
    ) -> None:
        """Write the audit row in its own transaction; failures are only logged."""
        run = ImportRunModel(
            id=import_id,
            project_id=result.project_id or "",
            source=source,
            status=result.status.value,
            components_created=result.components_created,
            components_updated=result.components_updated,
            components_skipped=result.components_skipped,
            drawings_created=result.drawings_created,
            metadata_created=result.metadata_created.to_dict(),
            duration_ms=result.duration_ms,
            error_kind=result.error_kind.value if result.error_kind else None,
            error_message=result.error,
            details=[d.model_dump(exclude_none=True) for d in result.details[:500]],
            started_at=started_at,
            completed_at=datetime.now(timezone.utc),
        )
        try:
            async with self.session_factory() as session:
                session.add(run)
                await session.commit()
        except SQLAlchemyError as e:
            log.error("import_run_audit_failed", error=str(e))


def _peek_project_id(raw: bytes | str | dict) -> str:
    """Best-effort project id for logging before the payload is validated."""
    if isinstance(raw, dict):
        value = raw.get("projectId") or raw.get("project_id")
        return str(value) if value else ""
    return ""
