"""SQLAlchemy async database models for takeoff imports.

Maps to PostgreSQL in production; SQLite (aiosqlite) for tests and local
development. Partial unique indexes carry both dialect predicates.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    TIMESTAMP,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func

from takeoff.canonical.normalize import normalize_drawing


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


def _drawing_norm_default(context) -> str:
    return normalize_drawing(context.get_current_parameters()["drawing_no_raw"])


class DrawingModel(Base):
    """Engineering drawing referenced by takeoff rows.

    ``drawing_no_norm`` defaults to ``normalize_drawing(drawing_no_raw)``,
    the same function identity keys use.
    """

    __tablename__ = "drawings"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    project_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    drawing_no_raw: Mapped[str] = mapped_column(Text, nullable=False)
    drawing_no_norm: Mapped[str] = mapped_column(
        Text, nullable=False, default=_drawing_norm_default
    )
    is_retired: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        # At most one active drawing per normalized number
        Index(
            "idx_drawings_active_norm",
            "project_id",
            "drawing_no_norm",
            unique=True,
            postgresql_where=text("is_retired = false"),
            sqlite_where=text("is_retired = 0"),
        ),
    )


class AreaModel(Base):
    """Area metadata dimension."""

    __tablename__ = "areas"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    project_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (UniqueConstraint("project_id", "name", name="uq_areas_project_name"),)


class SystemModel(Base):
    """System metadata dimension."""

    __tablename__ = "systems"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    project_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (UniqueConstraint("project_id", "name", name="uq_systems_project_name"),)


class TestPackageModel(Base):
    """Test package metadata dimension."""

    __tablename__ = "test_packages"
    __test__ = False  # not a pytest test class

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    project_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("project_id", "name", name="uq_test_packages_project_name"),
    )


# Dimension name (as used in MetadataToCreate / MetadataCreated) -> model
METADATA_MODELS: dict[str, type[Base]] = {
    "areas": AreaModel,
    "systems": SystemModel,
    "test_packages": TestPackageModel,
}


class ProgressTemplateModel(Base):
    """Milestone workflow for one component type.

    ``milestones_config`` is a list of ``{"name", "weight", "is_partial"}``
    entries. Milestone evaluation happens elsewhere; imports only read the
    config to seed ``components.current_milestones``.
    """

    __tablename__ = "progress_templates"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    component_type: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    workflow_type: Mapped[str] = mapped_column(Text, nullable=False, default="discrete")
    milestones_config: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("component_type", "version", name="uq_template_type_version"),
        CheckConstraint(
            "workflow_type IN ('discrete', 'quantity', 'hybrid')",
            name="check_template_workflow_valid",
        ),
    )


class ComponentModel(Base):
    """Persisted takeoff component.

    Created once by an import; ``current_milestones`` is owned by the
    milestone-update subsystem afterwards. Aggregate (linear footage)
    components are updated in place under a ``version`` compare-and-set.
    """

    __tablename__ = "components"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    project_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    component_type: Mapped[str] = mapped_column(Text, nullable=False)
    drawing_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("drawings.id"), nullable=False, index=True
    )

    # Identity: JSON form for consumers, rendered text for uniqueness
    identity_key: Mapped[dict] = mapped_column(JSON, nullable=False)
    identity_key_text: Mapped[str] = mapped_column(Text, nullable=False)

    # Optional metadata links
    area_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), ForeignKey("areas.id"))
    system_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), ForeignKey("systems.id"))
    test_package_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("test_packages.id")
    )

    progress_template_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("progress_templates.id")
    )
    attributes: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    current_milestones: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    is_retired: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        # One active component per (type, identity key)
        Index(
            "idx_components_active_identity",
            "project_id",
            "component_type",
            "identity_key_text",
            unique=True,
            postgresql_where=text("is_retired = false"),
            sqlite_where=text("is_retired = 0"),
        ),
        Index("idx_components_project_type", "project_id", "component_type"),
        CheckConstraint("version >= 1", name="check_component_version_positive"),
    )


class ImportRunModel(Base):
    """Audit log: one row per orchestrated import."""

    __tablename__ = "import_runs"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    project_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    source: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False)

    components_created: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    components_updated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    components_skipped: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    drawings_created: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    metadata_created: Mapped[dict | None] = mapped_column(JSON)

    duration_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_kind: Mapped[str | None] = mapped_column(Text)
    error_message: Mapped[str | None] = mapped_column(Text)
    details: Mapped[list | None] = mapped_column(JSON)

    started_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        CheckConstraint("status IN ('SUCCESS', 'FAILED')", name="check_import_status_valid"),
        Index("idx_import_runs_project_started", "project_id", "started_at"),
    )
