"""API endpoint tests"""

import pytest
from fastapi.testclient import TestClient

from conftest import global_layer_for, trip_records, write_props
from tablestreamer.api.deps import get_service
from tablestreamer.core.config import Settings
from tablestreamer.main import app
from tablestreamer.services.ingestion_service import IngestionService


class TestAPI:
    """Test API endpoints"""

    @pytest.fixture
    def service(self, config_root, tmp_path, session_factory):
        """Service wired to a temporary config root and an in-memory database"""
        config = Settings(
            CONFIG_ROOT=str(config_root),
            GLOBAL_CONFIG_FILE="ingestion.properties",
            CHECKPOINT_DIR=str(tmp_path / "checkpoints"),
            CHECKPOINT_BACKEND="file",
        )
        return IngestionService(config=config, session_factory=session_factory)

    @pytest.fixture
    def client(self, service):
        """Create test client"""
        app.dependency_overrides[get_service] = lambda: service
        yield TestClient(app)
        app.dependency_overrides.clear()

    @pytest.fixture
    def two_tables(self, config_root, make_table):
        make_table("db1.t1", records=trip_records(5))
        make_table("db2.t2", records=trip_records(2))
        write_props(config_root / "ingestion.properties", dict(global_layer_for("db1.t1", "db2.t2")))

    def test_health_check(self, client, two_tables):
        """Test health check endpoint"""
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {
            "database": "ok",
            "config": "ok",
            "tables_configured": 2,
            "last_run_id": None,
            "last_run_failed_tables": [],
        }

    def test_health_reports_broken_config(self, client):
        """Test a missing global config is reported without failing liveness"""
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["config"].startswith("invalid:")
        assert body["tables_configured"] == 0

    def test_readiness(self, client, two_tables):
        response = client.get("/health/ready")
        assert response.status_code == 200
        assert response.json()["status"] == "ready"
        assert response.json()["tables"] == ["db1.t1", "db2.t2"]

    def test_not_ready_without_global_config(self, client):
        response = client.get("/health/ready")
        assert response.status_code == 503
        assert response.json()["status"] == "not_ready"

    def test_run_all_tables(self, client, two_tables):
        """Test a run ingests every configured table"""
        response = client.post("/ingestion/run")
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["report"]["status"] == "success"
        assert [o["table_id"] for o in body["report"]["outcomes"]] == ["db1.t1", "db2.t2"]
        assert body["report"]["outcomes"][0]["records_written"] == 5

    def test_run_selected_tables(self, client, two_tables):
        response = client.post("/ingestion/run", json={"tables": ["db2.t2"]})
        body = response.json()
        assert [o["table_id"] for o in body["report"]["outcomes"]] == ["db2.t2"]

    def test_partial_failure_reported(self, client, config_root, make_table):
        """Test a failed table makes the run partial, not an HTTP error"""
        make_table("db1.t1", records=trip_records(1))
        make_table("db2.t2", include="base.properties,missing.properties")
        write_props(config_root / "ingestion.properties", dict(global_layer_for("db1.t1", "db2.t2")))

        response = client.post("/ingestion/run")
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is False
        assert body["report"]["status"] == "partial_success"
        failed = body["report"]["outcomes"][1]
        assert failed["status"] == "failed"
        assert failed["error_type"] == "MissingIncludeError"

        health = client.get("/health").json()
        assert health["last_run_id"] == body["report"]["run_id"]
        assert health["last_run_failed_tables"] == ["db2.t2"]

    def test_missing_global_config(self, client):
        response = client.post("/ingestion/run")
        body = response.json()
        assert body["success"] is False
        assert body["report"] is None
        assert "ingestion.properties" in body["error"]

    def test_checkpoint_after_run(self, client, two_tables):
        client.post("/ingestion/run")
        response = client.get("/ingestion/checkpoints/db1.t1")
        assert response.status_code == 200
        assert response.json()["marker"] == "part-0000.jsonl#5"

    def test_checkpoint_not_found(self, client):
        """Test unknown table returns 404"""
        response = client.get("/ingestion/checkpoints/db9.t9")
        assert response.status_code == 404

    def test_run_history(self, client, two_tables):
        client.post("/ingestion/run")
        client.post("/ingestion/run")

        runs = client.get("/ingestion/runs").json()
        assert len(runs) == 4
        assert {run["status"] for run in runs} == {"committed", "no_new_data"}

        only_t1 = client.get("/ingestion/runs", params={"table_id": "db1.t1", "limit": 1}).json()
        assert len(only_t1) == 1
        assert only_t1[0]["table_id"] == "db1.t1"

        health = client.get("/health").json()
        assert health["last_run_id"] == runs[0]["run_id"]
        assert health["last_run_failed_tables"] == []

    def test_invalid_endpoint(self, client):
        """Test invalid endpoint returns 404"""
        response = client.get("/invalid")
        assert response.status_code == 404
