"""
Deduplication repository - content fingerprinting and idempotent upserts
"""

import hashlib
import re
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError

from jobpipe.core.listing import ListingCandidate, Listing
from jobpipe.utils.database import Database, ListingModel
from jobpipe.utils.logger import logger

# Only the start of the description takes part in the fingerprint
DESCRIPTION_PREFIX_CHARS = 500

_WHITESPACE = re.compile(r"\s+")


def normalize_text(value: Optional[str]) -> str:
    if not value:
        return ""
    return _WHITESPACE.sub(" ", value).strip().lower()


def fingerprint(candidate: ListingCandidate) -> str:
    """
    Deterministic dedup key for a candidate.

    Hashes the normalized title, organization, location and the first
    DESCRIPTION_PREFIX_CHARS characters of the description. Empty parts are
    left out of the joined content.
    """
    parts = [
        normalize_text(candidate.title),
        normalize_text(candidate.organization),
        normalize_text(candidate.location),
        normalize_text(candidate.description)[:DESCRIPTION_PREFIX_CHARS],
    ]
    content = "|".join(part for part in parts if part)
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


class DeduplicationRepository:
    """
    Insert-or-update store for listings keyed by content fingerprint.

    Two postings that normalize to the same fingerprint are treated as the
    same listing; there is no further disambiguation.
    """

    def __init__(self, db: Database, clock: Callable[[], datetime] = datetime.now):
        self.db = db
        self.clock = clock

    def upsert(self, candidate: ListingCandidate) -> tuple[Listing, bool]:
        """
        Save a candidate. Returns (listing, is_new).
        """
        content_fingerprint = fingerprint(candidate)
        now = self.clock()

        try:
            with self.db.session() as session:
                existing = session.query(ListingModel).filter(
                    ListingModel.content_fingerprint == content_fingerprint
                ).first()
                if existing:
                    self._reobserve(existing, candidate, now)
                    return existing.to_listing(), False

                model = ListingModel.from_candidate(candidate, content_fingerprint, now)
                session.add(model)
                session.flush()
                return model.to_listing(), True
        except IntegrityError:
            # Another writer inserted the same fingerprint first
            logger.debug(f"Fingerprint {content_fingerprint[:12]} inserted concurrently, updating instead")
            with self.db.session() as session:
                existing = session.query(ListingModel).filter(
                    ListingModel.content_fingerprint == content_fingerprint
                ).one()
                self._reobserve(existing, candidate, now)
                return existing.to_listing(), False

    def _reobserve(self, model: ListingModel, candidate: ListingCandidate, now: datetime) -> None:
        model.apply_candidate(candidate)
        model.last_seen_at = now
        model.reobserved_count = (model.reobserved_count or 0) + 1
        model.active = True

    def get_by_fingerprint(self, content_fingerprint: str) -> Optional[Listing]:
        with self.db.session() as session:
            model = session.query(ListingModel).filter(
                ListingModel.content_fingerprint == content_fingerprint
            ).first()
            return model.to_listing() if model else None

    def count(self, active_only: bool = False) -> int:
        with self.db.session() as session:
            query = session.query(ListingModel)
            if active_only:
                query = query.filter(ListingModel.active.is_(True))
            return query.count()

    def deactivate_stale(self, max_age_days: int = 30) -> int:
        """
        Mark listings not seen for max_age_days as inactive.
        Returns the number of listings affected.
        """
        if max_age_days < 0:
            raise ValueError(f"max_age_days must be >= 0, got {max_age_days}")

        cutoff = self.clock() - timedelta(days=max_age_days)
        with self.db.session() as session:
            count = session.query(ListingModel).filter(
                ListingModel.last_seen_at < cutoff,
                ListingModel.active.is_(True),
            ).update({ListingModel.active: False}, synchronize_session=False)

        logger.info(f"🧹 Deactivated {count} listings not seen since {cutoff:%Y-%m-%d}")
        return count
