"""
Database models for the ingest catalog.

Profiles are stored whole as JSON, with the fields most often filtered on
(dataset, record count, unique fields) copied into columns.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import DateTime, Integer, JSON, String, Text, Index  # type: ignore
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column  # type: ignore


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


class ProfileRecord(Base):
    """
    Latest profile of one dataset.

    Re-profiling a dataset replaces its row; ``version`` counts how many
    times that happened.
    """
    __tablename__ = "profile"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    dataset: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    input_path: Mapped[str] = mapped_column(Text, nullable=False, default="")
    output_path: Mapped[str] = mapped_column(Text, nullable=False, default="")
    profile_path: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    record_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unique_fields: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    tags: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    document: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index('idx_profile_dataset', 'dataset'),
    )

    def __repr__(self) -> str:
        return f"<ProfileRecord(dataset={self.dataset!r}, records={self.record_count}, v{self.version})>"
