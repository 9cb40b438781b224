"""Pytest configuration and fixtures for takeoff import tests.

Provides common fixtures for testing.
"""

from __future__ import annotations

import json

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from takeoff.config import ImportConfig, reset_config
from takeoff.db.connection import create_engine_for_url
from takeoff.db.models import Base
from takeoff.pipeline.orchestrator import TakeoffImportOrchestrator


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch):
    """Set up test environment variables."""
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    reset_config()
    yield
    reset_config()


@pytest.fixture
def test_project_id() -> str:
    """Test project ID."""
    return "test-project"


@pytest.fixture
def import_config() -> ImportConfig:
    """Default import limits."""
    return ImportConfig()


@pytest_asyncio.fixture()
async def engine(tmp_path):
    """File-backed SQLite database with the full schema.

    A file (not :memory:) so every pooled connection sees the same data.
    """
    engine = create_engine_for_url(f"sqlite+aiosqlite:///{tmp_path}/takeoff.db")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture()
async def db_session(session_factory) -> AsyncSession:
    session = session_factory()
    try:
        yield session
    finally:
        await session.close()


@pytest.fixture
def orchestrator(session_factory, import_config) -> TakeoffImportOrchestrator:
    return TakeoffImportOrchestrator(session_factory=session_factory, config=import_config)


def make_row(drawing="P-001", type="Valve", qty=1, code="V100", **extra) -> dict:
    """Structured payload row with sensible defaults."""
    row = {"drawing": drawing, "type": type, "qty": qty, "cmdtyCode": code}
    row.update(extra)
    return row


def make_payload(project_id: str, rows: list[dict], **metadata) -> dict:
    """Structured import request around ``rows``."""
    return {
        "projectId": project_id,
        "rows": rows,
        "columnMappings": [
            {
                "sourceColumn": "DRAWING",
                "canonicalField": "DRAWING",
                "confidence": 100,
                "matchTier": "exact",
            },
            {"sourceColumn": "TYPE", "canonicalField": "TYPE", "confidence": 100, "matchTier": "exact"},
            {"sourceColumn": "QTY", "canonicalField": "QTY", "confidence": 100, "matchTier": "exact"},
            {
                "sourceColumn": "CMDTY CODE",
                "canonicalField": "CMDTY CODE",
                "confidence": 100,
                "matchTier": "exact",
            },
        ],
        "metadata": {
            "areas": metadata.get("areas", []),
            "systems": metadata.get("systems", []),
            "testPackages": metadata.get("test_packages", []),
        },
    }


@pytest.fixture
def row_factory():
    return make_row


@pytest.fixture
def payload_factory():
    return make_payload


@pytest.fixture
def sample_payload(test_project_id) -> bytes:
    """Mixed payload: exploded valves, one instrument, two pipe rows."""
    rows = [
        make_row("P-001", "Valve", 2, "V100", size='2"', area="North"),
        make_row("P-001", "Instrument", 3, "FT-101", size="1"),
        make_row("P-002", "Pipe", 10, "PIPE-CS", size="4", system="Cooling"),
        make_row("p-002", "pipe", 15, "PIPE-CS", size="4"),
    ]
    return json.dumps(make_payload(test_project_id, rows, areas=["North"])).encode("utf-8")


SAMPLE_CSV = (
    "DRAWING,TYPE,QTY,CMDTY CODE,SIZE,AREA,SYSTEM,Item #\n"
    "P-001,Valve,2,V100,2,North,Cooling,1\n"
    "P-001,Flange,1,F200,2,North,,2\n"
    "P-002,Pipe,10,PIPE-CS,4,South,Cooling,3\n"
    "P-002,Pipe,15,PIPE-CS,4,South,Cooling,4\n"
)


@pytest.fixture
def sample_csv() -> bytes:
    """Small takeoff CSV with exact headers and one unmapped column."""
    return SAMPLE_CSV.encode("utf-8")
