import pytest
from fastapi.testclient import TestClient

from jobpipe.core.outcome import ExtractionOutcome
from jobpipe.dashboard.app import create_app
from jobpipe.orchestrator import build_pipeline
from jobpipe.utils.logger import logger


class StubExtractor:
    def __init__(self, name):
        self.name = name

    async def scrape(self):
        return ExtractionOutcome(source=self.name, success=True, scraped=2, new=2)


@pytest.fixture
def pipeline(settings, db):
    return build_pipeline(settings, db=db, extractors=[StubExtractor("jobsdb")], setup_logging=False)


@pytest.fixture
def client(pipeline):
    with TestClient(create_app(pipeline, start_background=False)) as test_client:
        yield test_client


def test_list_sources(client):
    response = client.get("/api/scraping/sources")
    assert response.status_code == 200
    assert response.json()["sources"] == [{"name": "jobsdb", "portal": "jobsdb", "url": None}]


def test_trigger_enqueues_scraping_job(client, pipeline):
    response = client.post("/api/scraping/trigger", json={"portal": "JobsDB", "max_concurrent": 2})

    assert response.status_code == 202
    body = response.json()
    job = pipeline.queue.get_job(body["job_id"])
    assert job.type == "scraping"
    assert job.payload == {"source": "jobsdb", "max_concurrent": 2}
    assert body["available_portals"] == ["jobsdb"]


def test_trigger_unknown_portal_is_rejected(client, pipeline):
    response = client.post("/api/scraping/trigger", json={"portal": "monster"})

    assert response.status_code == 400
    assert "Available: jobsdb" in response.json()["detail"]
    assert pipeline.queue.stats()["total"] == 0


def test_status_reports_store_and_queue(client):
    body = client.get("/api/scraping/status").json()

    assert body["listings"]["total"] == 0
    assert body["recent_runs"] == []
    assert body["queue"]["total"] == 0


def test_logs_are_paginated(client, db):
    for scraped in range(3):
        db.log_outcome(ExtractionOutcome(source="jobsdb", success=True, scraped=scraped))

    body = client.get("/api/scraping/logs", params={"page": 2, "limit": 2}).json()

    assert body["total"] == 3
    assert body["total_pages"] == 2
    assert [record["scraped"] for record in body["data"]] == [0]


def test_cleanup_validates_days_old(client):
    assert client.post("/api/scraping/cleanup", json={"days_old": 0}).status_code == 422
    assert client.post("/api/scraping/cleanup", json={"days_old": 400}).status_code == 422

    response = client.post("/api/scraping/cleanup", json={})
    assert response.status_code == 200
    assert response.json() == {"message": "Cleanup completed", "deactivated": 0, "days_old": 30}


def test_scheduler_endpoints(client, pipeline):
    status = client.get("/api/scheduler/status").json()
    assert {task["name"] for task in status["tasks"]} >= {"daily-scraping", "cleanup-queue"}

    response = client.post("/api/scheduler/tasks/daily-scraping/trigger")
    assert response.status_code == 200
    assert pipeline.queue.stats()["by_type"] == {"scraping": 1}

    response = client.post("/api/scheduler/tasks/daily-scraping/enabled", json={"enabled": False})
    assert response.json()["enabled"] is False

    assert client.post("/api/scheduler/tasks/ghost/trigger").status_code == 404
    assert client.post("/api/scheduler/tasks/ghost/enabled", json={"enabled": True}).status_code == 404


def test_failing_task_trigger_returns_500(client, pipeline):
    def explode():
        raise RuntimeError("boom")

    pipeline.scheduler.add_task("explodes", "0 0 * * *", explode)

    response = client.post("/api/scheduler/tasks/explodes/trigger")

    assert response.status_code == 500
    assert "boom" in response.json()["detail"]


def test_queue_stats_and_memory_logs(client, pipeline):
    pipeline.queue.enqueue("scraping", {"source": "all"})
    logger.info("dashboard test marker")

    assert client.get("/api/queue/stats").json()["pending"] == 1
    logs = client.get("/api/logs", params={"n": 20}).json()["logs"]
    assert any("dashboard test marker" in line for line in logs)


def test_memory_logs_filter_by_level(client):
    logger.info("routine heartbeat")
    logger.warning("portal slow to respond")

    warnings = client.get("/api/logs", params={"level": "warning"}).json()["logs"]

    assert any("portal slow to respond" in line for line in warnings)
    assert not any("routine heartbeat" in line for line in warnings)
    assert client.get("/api/logs", params={"level": "chatty"}).status_code == 400
