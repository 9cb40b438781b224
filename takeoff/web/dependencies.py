"""Shared dependencies for takeoff web routes.

Dependencies are injected using FastAPI's Depends() system and can be
replaced through ``app.dependency_overrides``.

Usage:
    from fastapi import Depends
    from takeoff.web.dependencies import authorize_project

    @router.post("/projects/{project_id}/imports/takeoff")
    async def import_takeoff(
        project_id: str,
        authorized: bool = Depends(authorize_project),
    ):
        ...
"""

from __future__ import annotations

from takeoff.pipeline.orchestrator import TakeoffImportOrchestrator

# Global singleton for the orchestrator
_orchestrator: TakeoffImportOrchestrator | None = None


async def authorize_project(project_id: str) -> bool:
    """Pass/fail authorization for importing into ``project_id``.

    Access policy lives outside this service; deployments override this
    dependency with their own check. The default allows every request.
    """
    return True


def get_orchestrator() -> TakeoffImportOrchestrator:
    """Orchestrator bound to the configured database."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = TakeoffImportOrchestrator()
    return _orchestrator


def reset_orchestrator() -> None:
    """Forget the cached orchestrator (the engine was disposed)."""
    global _orchestrator
    _orchestrator = None
