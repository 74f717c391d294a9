"""Pydantic models for steamagg."""

from steamagg.models.identity import IdentityRecord
from steamagg.models.snapshot import ScrapeSnapshot
from steamagg.models.profile import MergedProfile

__all__ = [
    "IdentityRecord",
    "ScrapeSnapshot",
    "MergedProfile",
]
