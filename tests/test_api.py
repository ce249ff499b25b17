import pytest
from fastapi.testclient import TestClient

from orion.core.config import AppConfig, DeveloperConfig
from orion.main import create_app
from orion.services import ServiceRegistry


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("ORION_CONFIG_PATH", str(tmp_path / "orion.json"))
    registry = ServiceRegistry(AppConfig(developer=DeveloperConfig(simulated=True)))
    with TestClient(create_app(registry=registry)) as test_client:
        yield test_client


def test_status_view_shape(client):
    response = client.get("/api/status")
    assert response.status_code == 200
    body = response.json()
    assert body["transport"] == "polling"
    assert body["sse_supported"] is None
    assert "X-Request-ID" in response.headers


def test_request_id_is_echoed(client):
    response = client.get("/api/health", headers={"X-Request-ID": "abc123"})
    assert response.headers["X-Request-ID"] == "abc123"


def test_refresh_reports_idle_printer(client):
    body = client.post("/api/status/refresh").json()
    assert body["has_ever_connected"] is True
    assert body["is_idle"] is True
    assert body["is_printing"] is False


def test_start_print_flow(client):
    files = client.get("/api/files").json()["files"]
    assert len(files) == 5
    path = files[1]["file_data"]["path"]

    response = client.post("/api/control/start", json={"file_path": path})
    assert response.status_code == 202

    body = client.post("/api/status/refresh").json()
    assert body["is_printing"] is True
    assert body["status"]["print_data"]["file_data"]["path"] == path
    assert body["awaiting_new_print_data"] is False

    paused = client.post("/api/control/pause-resume").json()
    assert paused["success"] is True
    assert paused["message"] == "Pause requested"

    canceled = client.post("/api/control/cancel").json()
    assert canceled["success"] is True


def test_unsupported_capability_is_501(client):
    response = client.post("/api/control/cure", json={"cure": True})
    assert response.status_code == 501
    assert response.json()["error"] == "unsupported"


def test_move_validation(client):
    assert client.post("/api/control/move", json={"height": -1}).status_code == 422
    assert client.post("/api/control/move", json={"height": 10}).json()["success"] is True
    assert client.post("/api/control/top").json()["message"] == "Moving to top"


def test_metadata_for_unknown_file_is_404(client):
    response = client.get("/api/files/metadata", params={"path": "missing.zip"})
    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


def test_metadata_for_plate(client):
    response = client.get("/api/files/metadata", params={"path": "sim_part_1.zip"})
    assert response.status_code == 200
    assert response.json()["layer_count"] == 200


def test_file_thumbnail_marks_placeholder(client):
    response = client.get("/api/files/thumbnail", params={"path": "sim_part_1.zip", "size": "Large"})
    assert response.status_code == 200
    assert response.headers["content-type"] == "image/png"
    assert response.headers["X-Thumbnail-Placeholder"] == "1"


def test_job_thumbnail_missing_when_idle(client):
    assert client.get("/api/status/thumbnail").status_code == 404


def test_analytics_endpoints(client):
    body = client.get("/api/analytics").json()
    assert body["capacity"] == 120
    assert client.get("/api/analytics/NoSuchMetric").status_code == 404


def test_health_and_config(client):
    health = client.get("/api/health").json()
    assert health["backend"] == "simulated"
    assert health["nanodlp_mode"] is True

    config = client.get("/api/config").json()
    assert config["options"]["is_nanodlp_mode"] is True
    assert config["options"]["simulated"] is True

    backend_config = client.get("/api/config/backend").json()
    assert backend_config["config"]["general"]["hostname"] == "orion-sim"


def test_polling_pause_and_resume(client):
    assert client.post("/api/status/polling/pause").json()["message"] == "Polling paused"
    assert client.get("/api/status").json()["polling_paused"] is True
    client.post("/api/status/polling/resume")
    assert client.get("/api/status").json()["polling_paused"] is False


def test_unknown_stream_channel_is_rejected(client):
    response = client.get("/api/state/stream", params={"channel": "nope"})
    assert response.status_code == 400


def test_metrics_group_api_and_cache(client):
    client.get("/api/health")
    body = client.get("/api/metrics").json()
    assert "api./api/health" in body["api"]
    assert body["thumbnail_cache"]["budget_bytes"] == 50 * 1024 * 1024


def test_analytics_series_by_metric_id(client):
    analytics = client.app.state.services.analytics_service
    analytics.ingest_batch([{"ID": 1, "T": 6, "V": 2.5}])
    body = client.get("/api/analytics/6").json()
    assert body["key"] == "Pressure"
    assert body["latest"] == 2.5


def test_config_update_is_persisted(client, tmp_path):
    response = client.put("/api/config", json={"backend": "nanodlp", "simulated": False})
    assert response.status_code == 200
    body = response.json()
    assert body["restart_required"] is True
    assert body["app"]["backend"] == "nanodlp"
    assert (tmp_path / "orion.json").exists()

    persisted = client.get("/api/config").json()["persisted"]
    assert persisted["backend"] == "nanodlp"
    assert persisted["developer"]["simulated"] is False


def test_config_update_rejects_unknown_backend(client):
    assert client.put("/api/config", json={"backend": "klipper"}).status_code == 422
