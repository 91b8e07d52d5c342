#!/usr/bin/env python3
"""
Configuration loaded from environment variables.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

DEFAULT_DATABASE_PATH = "org_stats.db"
DEFAULT_SCORING_PROJECT = "forks_count * 2 + stars_count + contributors_count * 5 + commits_count / 3"


def split_organizations(value: Optional[str]) -> List[str]:
    """Split a comma separated organization list, dropping blanks."""
    if not value:
        return []
    return [org.strip() for org in value.split(",") if org.strip()]


@dataclass
class AppConfig:
    """Settings shared by the collector, the server and the CLI."""
    github_token: Optional[str] = None
    organizations: List[str] = field(default_factory=list)
    scoring_project: str = DEFAULT_SCORING_PROJECT
    database_path: str = DEFAULT_DATABASE_PATH
    use_firestore: bool = False

    @property
    def organization_list(self) -> str:
        return ",".join(self.organizations)


def load_configuration(require_token: bool = False) -> AppConfig:
    """Load configuration from environment variables."""
    github_token = os.environ.get('GITHUB_TOKEN')
    if require_token and not github_token:
        raise ValueError("GITHUB_TOKEN environment variable not set.")

    is_gae = os.environ.get('GAE_ENV', '').startswith('standard')

    return AppConfig(
        github_token=github_token,
        organizations=split_organizations(os.environ.get('ORGANIZATION_LIST')),
        scoring_project=os.environ.get('SCORING_PROJECT') or DEFAULT_SCORING_PROJECT,
        database_path=os.environ.get('DATABASE_PATH', DEFAULT_DATABASE_PATH),
        use_firestore=os.environ.get('USE_FIRESTORE', '').lower() == 'true' or is_gae,
    )
