from jobpipe.scrapers.sources import SOURCES, JOBSDB, build_extractors
from jobpipe.utils.config import Settings, SourceOverride


def test_with_overrides_applies_only_set_values():
    config = JOBSDB.with_overrides(SourceOverride(max_pages=3, request_delay=0.5))

    assert config.pagination.max_pages == 3
    assert config.request_delay == 0.5
    assert config.max_retries == JOBSDB.max_retries
    assert JOBSDB.pagination.max_pages == 10


def test_with_no_override_returns_same_config():
    assert JOBSDB.with_overrides(None) is JOBSDB


def test_build_extractors_skips_disabled_sources(repository):
    settings = Settings(sources={"recruit": {"enabled": False}, "jobsdb": {"max_pages": 2}})

    extractors = build_extractors(settings, repository, session_factory=lambda: None)

    names = [extractor.name for extractor in extractors]
    assert "recruit" not in names
    assert len(names) == len(SOURCES) - 1
    jobsdb = next(e for e in extractors if e.name == "jobsdb")
    assert jobsdb.config.pagination.max_pages == 2


def test_start_url_joins_base_and_path():
    assert JOBSDB.start_url.startswith("https://hk.jobsdb.com/jobs")


def test_source_override_keys_are_case_insensitive(repository):
    settings = Settings(sources={"CTgoodjobs": {"enabled": False}})

    assert settings.source_override("ctgoodjobs").enabled is False
    assert settings.source_override("jobsdb") == SourceOverride()
    names = [e.name for e in build_extractors(settings, repository, session_factory=lambda: None)]
    assert "ctgoodjobs" not in names
