"""
Unit tests for the FastAPI application wiring.
"""

from fastapi.testclient import TestClient

from core.config import SchedulingSettings
from main import create_app


class TestApplication:
    """Test root endpoints and backend construction at startup."""

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json() == {
            "message": "Therapy Scheduling Backend API",
            "version": "1.0.0",
            "status": "running",
        }

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_backend_built_from_settings_at_startup(self):
        app = create_app(settings=SchedulingSettings(store_backend="memory"))

        with TestClient(app) as test_client:
            assert test_client.get("/health").status_code == 200
            assert app.state.backend is not None
            assert app.state.backend.settings.store_backend == "memory"

    def test_sqlite_backend_at_startup(self):
        app = create_app(settings=SchedulingSettings(store_backend="sql", database_url="sqlite://"))

        with TestClient(app):
            assert app.state.backend.engine is not None
            assert app.state.backend.engine.dialect.name == "sqlite"
