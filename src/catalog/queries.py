"""
Profile persistence and lookup.

This module handles:
- Saving a profile as the current version of its dataset
- Loading a stored profile back into a ``Profile``
- Listing stored datasets
"""

import logging
import time
from dataclasses import dataclass
from functools import wraps
from typing import Callable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from src.catalog.models import ProfileRecord
from src.profiling.profile import Profile

logger = logging.getLogger(__name__)

# Performance monitoring threshold (milliseconds)
SLOW_QUERY_THRESHOLD_MS = 150


def log_query_time(func: Callable) -> Callable:
    """
    Decorator to log query execution time and warn on slow queries.

    Args:
        func: Function to decorate

    Returns:
        Decorated function with timing instrumentation
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        start = time.perf_counter()
        result = func(*args, **kwargs)
        duration_ms = (time.perf_counter() - start) * 1000

        logger.debug(f"Query {func.__name__} took {duration_ms:.2f}ms")

        if duration_ms > SLOW_QUERY_THRESHOLD_MS:
            logger.warning(
                f"SLOW QUERY: {func.__name__} exceeded {SLOW_QUERY_THRESHOLD_MS}ms target "
                f"(took {duration_ms:.2f}ms)"
            )

        return result
    return wrapper


@dataclass
class ProfileSummary:
    """Listing entry for one stored profile."""
    dataset: str
    record_count: int
    unique_fields: List[str]
    version: int


class ProfileStore:
    """
    Stores profiles in the catalog database.

    The caller owns the session and its transaction; ``save`` only flushes.
    """

    def __init__(self, db: Session):
        self.db = db

    @log_query_time
    def save(self, profile: Profile, profile_path: Optional[str] = None) -> ProfileRecord:
        record = self.db.execute(
            select(ProfileRecord).where(ProfileRecord.dataset == profile.dataset)
        ).scalar_one_or_none()

        if record is None:
            record = ProfileRecord(dataset=profile.dataset, version=1)
            self.db.add(record)
        else:
            record.version += 1

        record.input_path = profile.input
        record.output_path = profile.output
        record.profile_path = profile_path
        record.record_count = profile.record_count
        record.unique_fields = list(profile.unique_fields)
        record.tags = list(profile.tags)
        record.document = profile.to_dict()

        self.db.flush()
        logger.info(
            f"Stored profile for dataset {profile.dataset} (v{record.version})",
            extra={"extra_fields": {"dataset": profile.dataset, "version": record.version}},
        )
        return record

    @log_query_time
    def get(self, dataset: str) -> Optional[Profile]:
        record = self.db.execute(
            select(ProfileRecord).where(ProfileRecord.dataset == dataset)
        ).scalar_one_or_none()
        if record is None:
            return None
        return Profile.from_dict(record.document, source=f"catalog:{dataset}")

    @log_query_time
    def list_profiles(self) -> List[ProfileSummary]:
        records = self.db.execute(
            select(ProfileRecord).order_by(ProfileRecord.dataset)
        ).scalars()
        return [
            ProfileSummary(r.dataset, r.record_count, list(r.unique_fields or []), r.version)
            for r in records
        ]

    def delete(self, dataset: str) -> bool:
        record = self.db.execute(
            select(ProfileRecord).where(ProfileRecord.dataset == dataset)
        ).scalar_one_or_none()
        if record is None:
            return False
        self.db.delete(record)
        self.db.flush()
        return True
