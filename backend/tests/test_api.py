"""Tests for the crawl HTTP API."""
import uuid

from fastapi.testclient import TestClient

from brandcrawl.models.crawl_job import CrawlStatus
from brandcrawl.services.job_store import CrawlJobStore

from tests.conftest import CRON_SECRET

START_BODY = {"url": "https://acme.test", "brandId": "brand-1", "workspaceId": "ws-1"}


def test_health(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_detailed_health_reports_queue(client: TestClient, store: CrawlJobStore, make_processing_job) -> None:
    make_processing_job("https://busy.test")
    store.insert("brand-1", "ws-1", "https://queued.test")

    response = client.get("/health/detailed")

    assert response.status_code == 200
    checks = response.json()["checks"]
    assert checks["database"] == {"ok": True}
    assert checks["queue"]["jobs"] == {"pending": 1, "processing": 1, "completed": 0, "failed": 0}
    # The processing job last beat on the fixed test clock, long before now.
    assert checks["queue"]["stale_processing"] == 1
    assert checks["queue"]["ok"] is False
    assert "redis" in checks


class TestStart:
    """POST /api/crawl/start"""

    def test_start_creates_job(self, client: TestClient) -> None:
        response = client.post("/api/crawl/start", json=START_BODY)

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "pending"
        assert data["pollUrl"] == f"/api/crawl/status/{data['runId']}"

    def test_start_accepts_snake_case_body(self, client: TestClient) -> None:
        response = client.post(
            "/api/crawl/start",
            json={"url": "https://acme.test", "brand_id": "brand-1", "workspace_id": "ws-1"},
        )
        assert response.status_code == 201

    def test_duplicate_returns_existing_job(self, client: TestClient) -> None:
        first = client.post("/api/crawl/start", json=START_BODY)
        second = client.post("/api/crawl/start", json={**START_BODY, "url": "https://acme.test/"})

        assert second.status_code == 200
        assert second.json()["runId"] == first.json()["runId"]

    def test_invalid_url_is_rejected(self, client: TestClient, store: CrawlJobStore) -> None:
        response = client.post("/api/crawl/start", json={**START_BODY, "url": "javascript:alert(1)"})

        assert response.status_code == 400
        assert "url" in response.json()["detail"]
        assert store.list_for_brand("brand-1") == []

    def test_missing_brand_is_rejected(self, client: TestClient) -> None:
        response = client.post("/api/crawl/start", json={"url": "https://acme.test", "workspaceId": "ws-1"})

        assert response.status_code == 400
        assert "brandId" in response.json()["detail"]


class TestStatus:
    """GET /api/crawl/status/{id}"""

    def test_pending_job_projection(self, client: TestClient) -> None:
        run_id = client.post("/api/crawl/start", json=START_BODY).json()["runId"]

        response = client.get(f"/api/crawl/status/{run_id}")

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == run_id
        assert data["status"] == "pending"
        assert data["progress"] == 0
        assert data["result"] is None
        assert data["errorMessage"] is None
        for hidden in ("workerInfo", "claimToken", "retryCount", "worker_info", "claim_token"):
            assert hidden not in data

    def test_unknown_job_is_404(self, client: TestClient) -> None:
        response = client.get(f"/api/crawl/status/{uuid.uuid4()}")
        assert response.status_code == 404

    def test_malformed_id_is_404(self, client: TestClient) -> None:
        response = client.get("/api/crawl/status/not-a-uuid")
        assert response.status_code == 404


class TestRuns:
    """GET /api/crawl/runs"""

    def test_lists_brand_runs(self, client: TestClient) -> None:
        client.post("/api/crawl/start", json=START_BODY)
        client.post("/api/crawl/start", json={**START_BODY, "url": "https://acme.test/shop"})
        client.post("/api/crawl/start", json={**START_BODY, "brandId": "brand-2"})

        response = client.get("/api/crawl/runs", params={"brand_id": "brand-1"})

        assert response.status_code == 200
        assert len(response.json()) == 2

    def test_brand_id_is_required(self, client: TestClient) -> None:
        assert client.get("/api/crawl/runs").status_code == 422


class TestProcessJobs:
    """POST /api/crawl/process-jobs"""

    def test_missing_secret_is_forbidden(self, client: TestClient) -> None:
        run_id = client.post("/api/crawl/start", json=START_BODY).json()["runId"]

        response = client.post("/api/crawl/process-jobs")

        assert response.status_code == 403
        assert client.get(f"/api/crawl/status/{run_id}").json()["status"] == "pending"

    def test_wrong_secret_is_forbidden(self, client: TestClient) -> None:
        response = client.post("/api/crawl/process-jobs", params={"secret": "wrong"})
        assert response.status_code == 403

    def test_unset_secret_disables_trigger(self, client: TestClient, settings) -> None:
        settings.cron_secret = ""
        response = client.post("/api/crawl/process-jobs", params={"secret": ""})
        assert response.status_code == 403

    def test_happy_path_end_to_end(self, client: TestClient, pipeline) -> None:
        """Enqueue, trigger a tick, then poll the completed brand kit."""
        run_id = client.post("/api/crawl/start", json=START_BODY).json()["runId"]

        response = client.post("/api/crawl/process-jobs", params={"secret": CRON_SECRET})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["claimed"] == 1
        assert data["completed"] == 1
        assert data["failed"] == 0
        assert pipeline.seen == [uuid.UUID(run_id)]

        status = client.get(f"/api/crawl/status/{run_id}").json()
        assert status["status"] == CrawlStatus.COMPLETED.value
        assert status["progress"] == 100
        assert status["result"]["brandName"] == "Acme"
        assert status["finishedAt"] is not None
        assert status["errorMessage"] is None

    def test_empty_queue(self, client: TestClient) -> None:
        response = client.post("/api/crawl/process-jobs", params={"secret": CRON_SECRET})

        assert response.status_code == 200
        assert response.json()["claimed"] == 0
        assert response.json()["message"] == "No pending jobs to process"
