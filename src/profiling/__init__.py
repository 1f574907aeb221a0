"""
Profiling module for record streams.

Provides per-field statistics, primary-key detection, the profile
artifact and its consumers (report, CSV export).
"""

from src.profiling.field_profiler import FieldProfiler, FieldStats, ProfileThresholds
from src.profiling.primary_key import PrimaryKeyDetector
from src.profiling.profile import (
    Profile,
    ProfileInvalidError,
    build_transforms,
    default_profile_path,
    load_profile,
)
from src.profiling.report import build_report_rows, render_report
from src.profiling.csv_exporter import CsvProfileExporter

__all__ = [  # ruff: noqa: RUF022
    # Statistics
    "FieldProfiler",
    "FieldStats",
    "ProfileThresholds",
    "PrimaryKeyDetector",
    # Artifact
    "Profile",
    "ProfileInvalidError",
    "build_transforms",
    "default_profile_path",
    "load_profile",
    # Consumers
    "build_report_rows",
    "render_report",
    "CsvProfileExporter",
]
