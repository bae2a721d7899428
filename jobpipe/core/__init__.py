"""
Core models package
"""

from jobpipe.core.listing import ListingCandidate, Listing
from jobpipe.core.outcome import ExtractionOutcome, OutcomeTally

__all__ = [
    "ListingCandidate",
    "Listing",
    "ExtractionOutcome",
    "OutcomeTally",
]
