import pytest

from jobpipe.core.repository import DeduplicationRepository
from jobpipe.scrapers.sources import JOBSDB
from jobpipe.utils.config import Settings
from jobpipe.utils.database import Database


@pytest.fixture
def db(tmp_path):
    return Database(db_path=str(tmp_path / "listings.db"))


@pytest.fixture
def repository(db):
    return DeduplicationRepository(db)


@pytest.fixture
def fast_jobsdb():
    """JobsDB definition without the politeness delays"""
    return JOBSDB.model_copy(update={"request_delay": 0, "base_delay": 0})


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database={"path": str(tmp_path / "pipeline.db")},
        logging={"file": str(tmp_path / "logs" / "jobpipe.log")},
        scraping={"inter_run_delay": 0, "chunk_delay": 0},
    )
