"""Tests for takeoff.web.routes.imports - Import routes."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from takeoff.config import reset_config
from takeoff.db.connection import get_db
from takeoff.ingestion.metadata_analyzer import MetadataAnalysis, MetadataDiscovery
from takeoff.pipeline.types import ErrorKind, ImportResult, ImportStatus
from takeoff.web.dependencies import authorize_project, get_orchestrator
from takeoff.web.routes import imports

CSV = b"DRAWING,TYPE,QTY,CMDTY CODE\nP-001,Valve,2,V100\n"


def _success(**counts) -> ImportResult:
    return ImportResult(project_id="proj-1", status=ImportStatus.SUCCESS, **counts)


def _failure(kind: ErrorKind, message: str = "failed") -> ImportResult:
    result = ImportResult(project_id="proj-1", status=ImportStatus.SUCCESS)
    result.fail(message, kind)
    return result


@pytest.fixture
def mock_orchestrator():
    orchestrator = MagicMock()
    orchestrator.run_payload = AsyncMock(return_value=_success(components_created=2))
    orchestrator.import_file = AsyncMock(return_value=_success(components_created=2))
    return orchestrator


@pytest.fixture
def app(mock_orchestrator):
    """Create test FastAPI app with the imports router."""
    test_app = FastAPI()
    test_app.include_router(imports.router)

    async def fake_db():
        yield MagicMock()

    test_app.dependency_overrides[get_orchestrator] = lambda: mock_orchestrator
    test_app.dependency_overrides[get_db] = fake_db
    return test_app


@pytest.fixture
def client(app):
    """Create test client."""
    return TestClient(app)


def _deny(app):
    async def deny(project_id: str) -> bool:
        return False

    app.dependency_overrides[authorize_project] = deny


class TestImportTakeoff:
    """Tests for POST /projects/{project_id}/imports/takeoff."""

    def test_success(self, client, mock_orchestrator):
        body = json.dumps({"projectId": "proj-1", "rows": []})

        response = client.post("/projects/proj-1/imports/takeoff", content=body)

        assert response.status_code == 200
        assert response.json()["componentsCreated"] == 2
        mock_orchestrator.run_payload.assert_awaited_once_with(
            body.encode(), project_id="proj-1", authorized=True
        )

    @pytest.mark.parametrize(
        "kind,status_code",
        [
            (ErrorKind.PAYLOAD, 400),
            (ErrorKind.VALIDATION, 400),
            (ErrorKind.PAYLOAD_TOO_LARGE, 413),
            (ErrorKind.AUTHORIZATION, 403),
            (ErrorKind.CONSISTENCY, 500),
            (ErrorKind.PERSISTENCE, 500),
            (ErrorKind.UNEXPECTED, 500),
        ],
    )
    def test_failure_status_codes(self, client, mock_orchestrator, kind, status_code):
        mock_orchestrator.run_payload.return_value = _failure(kind, "nope")

        response = client.post("/projects/proj-1/imports/takeoff", content=b"{}")

        assert response.status_code == status_code
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "nope"
        assert body["errorKind"] == kind.value

    def test_authorization_outcome_is_forwarded(self, app, client, mock_orchestrator):
        _deny(app)

        client.post("/projects/proj-1/imports/takeoff", content=b"{}")

        assert mock_orchestrator.run_payload.await_args.kwargs["authorized"] is False


class TestImportCsv:
    """Tests for POST /projects/{project_id}/imports/csv."""

    def test_upload(self, client, mock_orchestrator):
        response = client.post(
            "/projects/proj-1/imports/csv",
            files={"file": ("takeoff.csv", CSV, "text/csv")},
        )

        assert response.status_code == 200
        mock_orchestrator.import_file.assert_awaited_once_with(
            "proj-1", CSV, "takeoff.csv", authorized=True
        )

    def test_validation_failure(self, client, mock_orchestrator):
        mock_orchestrator.import_file.return_value = _failure(ErrorKind.VALIDATION)

        response = client.post(
            "/projects/proj-1/imports/csv",
            files={"file": ("takeoff.csv", CSV, "text/csv")},
        )

        assert response.status_code == 400

    def test_file_is_required(self, client):
        response = client.post("/projects/proj-1/imports/csv")
        assert response.status_code == 422


class TestPreviewImport:
    """Tests for POST /projects/{project_id}/imports/preview."""

    def test_preview(self, client):
        response = client.post(
            "/projects/proj-1/imports/preview",
            files={"file": ("takeoff.csv", CSV, "text/csv")},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["canImport"] is True
        assert body["componentCounts"] == {"valve": 2}
        assert body["metadata"]["totalCount"] == 0

    @patch("takeoff.web.routes.imports.analyze_metadata", new_callable=AsyncMock)
    def test_preview_reports_metadata(self, mock_analyze, client):
        mock_analyze.return_value = MetadataAnalysis(
            areas=[MetadataDiscovery(name="North", exists=False)]
        )
        csv = b"DRAWING,TYPE,QTY,CMDTY CODE,AREA\nP-001,Valve,1,V100,North\n"

        response = client.post(
            "/projects/proj-1/imports/preview",
            files={"file": ("takeoff.csv", csv, "text/csv")},
        )

        assert response.status_code == 200
        assert response.json()["metadata"]["willCreateCount"] == 1
        (_, project_id, rows), _ = mock_analyze.await_args
        assert project_id == "proj-1"
        assert rows[0].area == "North"

    def test_preview_with_errors(self, client):
        csv = b"DRAWING,TYPE,QTY,CMDTY CODE\nP-001,Gasket,1,G1\n"

        response = client.post(
            "/projects/proj-1/imports/preview",
            files={"file": ("takeoff.csv", csv, "text/csv")},
        )

        body = response.json()
        assert response.status_code == 200
        assert body["canImport"] is False
        assert body["errors"][0]["issue"] == "Unsupported component type: Gasket"

    def test_empty_file(self, client):
        response = client.post(
            "/projects/proj-1/imports/preview",
            files={"file": ("takeoff.csv", b"", "text/csv")},
        )
        assert response.status_code == 400

    def test_file_too_large(self, client, monkeypatch):
        monkeypatch.setenv("IMPORT_MAX_FILE_SIZE_BYTES", "10")
        reset_config()

        response = client.post(
            "/projects/proj-1/imports/preview",
            files={"file": ("takeoff.csv", CSV, "text/csv")},
        )
        assert response.status_code == 413

    def test_row_limit(self, client, monkeypatch):
        monkeypatch.setenv("IMPORT_MAX_ROWS", "0")
        reset_config()

        response = client.post(
            "/projects/proj-1/imports/preview",
            files={"file": ("takeoff.csv", CSV, "text/csv")},
        )
        assert response.status_code == 400

    def test_forbidden(self, app, client):
        _deny(app)

        response = client.post(
            "/projects/proj-1/imports/preview",
            files={"file": ("takeoff.csv", CSV, "text/csv")},
        )
        assert response.status_code == 403
