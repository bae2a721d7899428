import asyncio

from fakes import FakePage, FakeSession, jobsdb_card
from jobpipe.core.outcome import ExtractionOutcome
from jobpipe.orchestrator import build_pipeline
from jobpipe.queue.task_queue import JobStatus
from jobpipe.scrapers.sources import SOURCES


class StubExtractor:
    def __init__(self, name, success=True):
        self.name = name
        self.success = success
        self.calls = 0

    async def scrape(self):
        self.calls += 1
        if not self.success:
            return ExtractionOutcome(source=self.name, success=False, errors=("timeout",))
        return ExtractionOutcome(source=self.name, success=True, scraped=1, new=1)


def test_build_pipeline_wires_built_in_sources(settings, db):
    session = FakeSession(FakePage([[jobsdb_card("Analyst", job_id="1")]]))

    pipeline = build_pipeline(settings, db=db, session_factory=session, setup_logging=False)

    assert pipeline.manager.available_sources() == list(SOURCES)
    assert pipeline.manager.audit_sink is db
    assert set(pipeline.scheduler.tasks) == {"daily-scraping", "cleanup-listings", "cleanup-queue", "cleanup-logs"}
    status = pipeline.get_status()
    assert status["listings"]["total"] == 0
    assert status["queue"]["total"] == 0


def test_scraping_job_runs_sources_and_audits(settings, db):
    extractors = [StubExtractor("jobsdb"), StubExtractor("recruit", success=False)]
    pipeline = build_pipeline(settings, db=db, extractors=extractors, setup_logging=False)

    job_id = pipeline.queue.enqueue("scraping", {"source": "all"})
    asyncio.run(pipeline.queue.drain())

    # A failed source does not fail the job
    assert pipeline.queue.get_job(job_id).status == JobStatus.COMPLETED
    assert [e.calls for e in extractors] == [1, 1]
    records = db.get_recent_logs()
    assert [(r["source"], r["success"]) for r in records] == [("recruit", False), ("jobsdb", True)]
    assert records[0]["errors"] == ["timeout"]


def test_scraping_job_for_a_list_of_sources(settings, db):
    extractors = [StubExtractor("a"), StubExtractor("b"), StubExtractor("c")]
    pipeline = build_pipeline(settings, db=db, extractors=extractors, setup_logging=False)

    pipeline.queue.enqueue("scraping", {"source": ["a", "c"], "max_concurrent": 2})
    asyncio.run(pipeline.queue.drain())

    assert [e.calls for e in extractors] == [1, 0, 1]


def test_cleanup_jobs(settings, db, tmp_path):
    pipeline = build_pipeline(settings, db=db, extractors=[], setup_logging=False)

    listings_job = pipeline.queue.enqueue("cleanup-listings", {"days_old": 1})
    logs_job = pipeline.queue.enqueue("cleanup-logs", {"days_to_keep": 7, "log_dir": str(tmp_path / "missing")})
    asyncio.run(pipeline.queue.drain())

    assert pipeline.queue.get_job(listings_job).status == JobStatus.COMPLETED
    assert pipeline.queue.get_job(logs_job).status == JobStatus.COMPLETED


def test_pipeline_start_and_stop(settings, db):
    pipeline = build_pipeline(settings, db=db, extractors=[], setup_logging=False)

    async def scenario():
        await pipeline.start()
        running = (pipeline.queue.running, pipeline.scheduler.running)
        await pipeline.stop()
        return running

    assert asyncio.run(scenario()) == (True, True)
    assert pipeline.queue.running is False
    assert pipeline.scheduler.running is False
