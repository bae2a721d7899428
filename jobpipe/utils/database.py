"""
Database utilities - SQLite with SQLAlchemy ORM
"""

from datetime import datetime
from pathlib import Path
from typing import Optional
from contextlib import contextmanager

from sqlalchemy import (
    create_engine,
    func,
    Column,
    String,
    Integer,
    Float,
    Boolean,
    DateTime,
    Text,
    JSON,
)
from sqlalchemy.orm import sessionmaker, declarative_base, Session

from jobpipe.core.listing import ListingCandidate, Listing
from jobpipe.core.outcome import ExtractionOutcome
from jobpipe.utils.logger import logger

Base = declarative_base()


class ListingModel(Base):
    """SQLAlchemy model for Listing"""
    __tablename__ = "listings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String, nullable=False)
    organization = Column(String, nullable=False)
    location = Column(String, default="")
    description = Column(Text, default="")
    compensation = Column(String)
    salary_min = Column(Float)
    salary_max = Column(Float)
    salary_currency = Column(String)
    employment_type = Column(String)
    category = Column(String)
    posted_at = Column(DateTime)
    deadline = Column(DateTime)
    source_url = Column(String, nullable=False)
    source = Column(String, nullable=False, index=True)
    extracted_at = Column(DateTime, default=datetime.now)
    content_fingerprint = Column(String(64), nullable=False, unique=True, index=True)
    first_seen_at = Column(DateTime, nullable=False)
    last_seen_at = Column(DateTime, nullable=False, index=True)
    reobserved_count = Column(Integer, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)

    # Fields a re-observation is allowed to overwrite
    MUTABLE_FIELDS = (
        "title",
        "organization",
        "location",
        "description",
        "compensation",
        "salary_min",
        "salary_max",
        "salary_currency",
        "employment_type",
        "category",
        "posted_at",
        "deadline",
        "source_url",
        "source",
        "extracted_at",
    )

    def to_listing(self) -> Listing:
        """Convert to Listing model"""
        return Listing(
            id=self.id,
            title=self.title,
            organization=self.organization,
            location=self.location or "",
            description=self.description or "",
            compensation=self.compensation,
            salary_min=self.salary_min,
            salary_max=self.salary_max,
            salary_currency=self.salary_currency,
            employment_type=self.employment_type,
            category=self.category,
            posted_at=self.posted_at,
            deadline=self.deadline,
            source_url=self.source_url,
            source=self.source,
            extracted_at=self.extracted_at,
            content_fingerprint=self.content_fingerprint,
            first_seen_at=self.first_seen_at,
            last_seen_at=self.last_seen_at,
            reobserved_count=self.reobserved_count or 0,
            active=bool(self.active),
        )

    @classmethod
    def from_candidate(cls, candidate: ListingCandidate, fingerprint: str, seen_at: datetime) -> "ListingModel":
        """Create a fresh row from a candidate"""
        model = cls(
            content_fingerprint=fingerprint,
            first_seen_at=seen_at,
            last_seen_at=seen_at,
            reobserved_count=0,
            active=True,
        )
        model.apply_candidate(candidate)
        return model

    def apply_candidate(self, candidate: ListingCandidate) -> None:
        for name in self.MUTABLE_FIELDS:
            setattr(self, name, getattr(candidate, name))


class ScrapeLogModel(Base):
    """Audit log row, one per extractor run"""
    __tablename__ = "scrape_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    source = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False)
    scraped = Column(Integer, default=0)
    new = Column(Integer, default=0)
    updated = Column(Integer, default=0)
    errors = Column(JSON, default=list)
    error_message = Column(Text)
    started_at = Column(DateTime)
    finished_at = Column(DateTime)
    duration_seconds = Column(Float, default=0.0)
    created_at = Column(DateTime, default=datetime.now)

    def to_record(self) -> dict:
        return {
            "id": self.id,
            "success": self.status == "SUCCESS",
            "scraped": self.scraped,
            "new": self.new,
            "updated": self.updated,
            "errors": self.errors or [],
            "source": self.source,
            "durationSeconds": self.duration_seconds,
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
        }


class Database:
    """
    Database manager for jobpipe.
    Owns the engine and session factory; the listing store and the audit log live here.
    """

    def __init__(self, db_path: str = "data/listings.db", echo: bool = False):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self.engine = create_engine(
            f"sqlite:///{self.db_path}",
            echo=echo,
            connect_args={"check_same_thread": False}
        )
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

        # Create tables
        Base.metadata.create_all(self.engine)

    @contextmanager
    def session(self) -> Session:
        """Get a database session"""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # Audit log operations
    def log_outcome(self, outcome: ExtractionOutcome) -> int:
        """Persist one extractor run as an audit row"""
        with self.session() as session:
            row = ScrapeLogModel(
                source=outcome.source,
                status="SUCCESS" if outcome.success else "ERROR",
                scraped=outcome.scraped,
                new=outcome.new,
                updated=outcome.updated,
                errors=list(outcome.errors),
                error_message="; ".join(outcome.errors) if outcome.errors else None,
                started_at=outcome.started_at,
                finished_at=outcome.finished_at,
                duration_seconds=outcome.duration_seconds,
            )
            session.add(row)
            session.flush()
            return row.id

    def get_recent_logs(self, limit: int = 10, offset: int = 0, source: Optional[str] = None) -> list[dict]:
        with self.session() as session:
            query = session.query(ScrapeLogModel)
            if source:
                query = query.filter(ScrapeLogModel.source == source.lower())
            rows = query.order_by(ScrapeLogModel.id.desc()).offset(offset).limit(limit).all()
            return [row.to_record() for row in rows]

    def count_logs(self, source: Optional[str] = None) -> int:
        with self.session() as session:
            query = session.query(ScrapeLogModel)
            if source:
                query = query.filter(ScrapeLogModel.source == source.lower())
            return query.count()

    def get_listing_stats(self) -> dict:
        """Get listing statistics"""
        with self.session() as session:
            total = session.query(ListingModel).count()
            active = session.query(ListingModel).filter(ListingModel.active.is_(True)).count()
            by_source = dict(
                session.query(ListingModel.source, func.count(ListingModel.id))
                .filter(ListingModel.active.is_(True))
                .group_by(ListingModel.source)
                .all()
            )
            last_update = session.query(func.max(ListingModel.last_seen_at)).scalar()

            return {
                "total": total,
                "active": active,
                "inactive": total - active,
                "by_source": by_source,
                "last_update": last_update.isoformat() if last_update else None,
            }


def get_database(settings) -> Database:
    """Build a Database from the database section of the settings"""
    logger.debug(f"Opening database at {settings.database.path}")
    return Database(db_path=settings.database.path, echo=settings.database.echo)
