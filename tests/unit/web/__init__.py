"""Unit tests for takeoff web route modules.

Testing pattern:
    - Use FastAPI's TestClient for route testing
    - Replace the orchestrator and database with dependency overrides
    - Test status codes per failure family
"""
