"""
Listing data models - a scraped candidate and its persisted form
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class ListingCandidate(BaseModel):
    """
    A listing extracted from a source page that has not been persisted yet.
    Owned by the extractor that produced it until handed to the repository.
    """
    # Basic info
    title: str = Field(..., description="Job title")
    organization: str = Field(..., description="Hiring organization")
    location: str = Field(default="", description="Job location")
    description: str = Field(default="", description="Free-text summary shown on the listing card")

    # Compensation
    compensation: Optional[str] = Field(default=None, description="Raw compensation text")
    salary_min: Optional[float] = Field(default=None, description="Lower bound parsed from compensation")
    salary_max: Optional[float] = Field(default=None, description="Upper bound parsed from compensation")
    salary_currency: Optional[str] = Field(default=None, description="Currency of the parsed range")

    # Classification
    employment_type: Optional[str] = Field(default=None, description="Full-time, Part-time, Contract, ...")
    category: Optional[str] = Field(default=None, description="Job category / classification")
    posted_at: Optional[datetime] = Field(default=None, description="When the job was posted")
    deadline: Optional[datetime] = Field(default=None, description="Application deadline")

    # Provenance
    source_url: str = Field(..., description="URL of the posting on the source site")
    source: str = Field(..., description="Registry name of the source")
    extracted_at: datetime = Field(default_factory=datetime.now, description="When the item was extracted")

    def __str__(self) -> str:
        return f"{self.title} at {self.organization}"


class Listing(ListingCandidate):
    """
    A persisted listing. Exactly one exists per content fingerprint.
    """
    id: int = Field(..., description="Internal listing ID")
    content_fingerprint: str = Field(..., description="Dedup key derived from the visible content")
    first_seen_at: datetime
    last_seen_at: datetime
    reobserved_count: int = Field(default=0, ge=0, description="Times seen again after the first insert")
    active: bool = True

    def __repr__(self) -> str:
        return f"Listing(id={self.id}, title='{self.title}', organization='{self.organization}', active={self.active})"
