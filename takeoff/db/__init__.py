"""Database layer for takeoff imports with async SQLAlchemy."""

from takeoff.db.connection import get_session, init_db
from takeoff.db.models import (
    AreaModel,
    Base,
    ComponentModel,
    DrawingModel,
    ImportRunModel,
    ProgressTemplateModel,
    SystemModel,
    TestPackageModel,
)

__all__ = [
    "Base",
    "DrawingModel",
    "AreaModel",
    "SystemModel",
    "TestPackageModel",
    "ProgressTemplateModel",
    "ComponentModel",
    "ImportRunModel",
    "get_session",
    "init_db",
]
