import pytest
from typer.testing import CliRunner

import main
from jobpipe.core.listing import ListingCandidate
from jobpipe.core.outcome import ExtractionOutcome
from jobpipe.orchestrator import build_pipeline

runner = CliRunner()


class StubExtractor:
    def __init__(self, name, scraped=3):
        self.name = name
        self.scraped = scraped
        self.calls = 0

    async def scrape(self):
        self.calls += 1
        return ExtractionOutcome(source=self.name, success=True, scraped=self.scraped, new=self.scraped)


@pytest.fixture
def extractors():
    return [StubExtractor("jobsdb"), StubExtractor("recruit", scraped=1)]


@pytest.fixture
def pipeline(settings, db, extractors, monkeypatch):
    pipeline = build_pipeline(settings, db=db, extractors=extractors, setup_logging=False)
    monkeypatch.setattr(main, "_pipeline", lambda: pipeline)
    return pipeline


def test_sources_lists_registered_sources(pipeline):
    result = runner.invoke(main.app, ["sources"])
    assert result.exit_code == 0
    assert "jobsdb" in result.output
    assert "recruit" in result.output


def test_scrape_single_source(pipeline, extractors):
    result = runner.invoke(main.app, ["scrape", "--source", "jobsdb", "--cleanup-days", "0"])

    assert result.exit_code == 0
    assert extractors[0].calls == 1
    assert extractors[1].calls == 0
    assert "Total: 3 scraped, 3 new" in result.output
    assert pipeline.db.count_logs() == 1


def test_scrape_all_concurrently(pipeline, extractors):
    result = runner.invoke(main.app, ["scrape", "--concurrent", "2"])

    assert result.exit_code == 0
    assert [e.calls for e in extractors] == [1, 1]
    assert "Total: 4 scraped" in result.output


def test_scrape_unknown_source_exits_non_zero(pipeline):
    result = runner.invoke(main.app, ["scrape", "--source", "monster"])
    assert result.exit_code == 1
    assert "Unknown scraper" in result.output


def test_cleanup_and_status(pipeline):
    pipeline.repository.upsert(ListingCandidate(
        title="Analyst",
        organization="Acme",
        source_url="https://hk.jobsdb.com/job/1",
        source="jobsdb",
    ))

    result = runner.invoke(main.app, ["cleanup", "--days-old", "30"])
    assert result.exit_code == 0
    assert "Deactivated 0 listings" in result.output

    result = runner.invoke(main.app, ["status"])
    assert result.exit_code == 0
    assert "Active" in result.output
    assert "jobsdb" in result.output


def test_cleanup_rejects_out_of_range_days(pipeline):
    result = runner.invoke(main.app, ["cleanup", "--days-old", "0"])
    assert result.exit_code != 0
