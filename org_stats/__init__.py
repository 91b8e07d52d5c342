"""
GitHub Organization Statistics

Snapshots GitHub organization metadata (aggregate statistics, projects and
contributors) into a store keyed by organization id and snapshot date, and
serves the history through a JSON API.
"""

__version__ = "1.0.0"

from .app import DatabaseManager, OrganizationStatsCollector, run_snapshot
from .errors import DuplicateKeyConflict, OrgStatsError, StorageUnavailable, ValidationError
from .models import Contributor, Project, Statistics, StatisticsKey
from .scoring import Scorer, update_scores

__all__ = [
    "DatabaseManager",
    "OrganizationStatsCollector",
    "run_snapshot",
    "Statistics",
    "StatisticsKey",
    "Project",
    "Contributor",
    "Scorer",
    "update_scores",
    "OrgStatsError",
    "StorageUnavailable",
    "DuplicateKeyConflict",
    "ValidationError",
]
