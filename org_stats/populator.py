#!/usr/bin/env python3
"""
Test data for local development and demos.
"""

import logging
import random
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from .models import Contributor, Project, Statistics
from .scoring import Scorer

LANGUAGES = ["Python", "Java", "Go", "JavaScript", "Scala", "Rust"]


class DatabasePopulator:
    """
    Fills a store with deterministic sample data.

    Args:
        db_manager: An entered database manager.
        organizations: Organization names to create data for.
        days: Number of daily statistics snapshots per organization.
        projects_per_organization: Projects stored with the latest snapshot.
        seed: Seed for the random generator, so runs are reproducible.
    """

    def __init__(self, db_manager, organizations: List[str], days: int = 30,
                 projects_per_organization: int = 5, seed: int = 42,
                 scorer: Optional[Scorer] = None):
        self.db_manager = db_manager
        self.organizations = organizations or ["sample-org"]
        self.days = days
        self.projects_per_organization = projects_per_organization
        self.random = random.Random(seed)
        self.scorer = scorer or Scorer()
        self.logger = logging.getLogger(__name__)

    def populate_test_data(self, now: Optional[datetime] = None) -> Dict[str, int]:
        now = (now or datetime.now(timezone.utc)).replace(hour=0, minute=0, second=0, microsecond=0)
        counts = {"statistics": 0, "projects": 0, "contributors": 0}

        for index, organization in enumerate(self.organizations):
            organization_id = 1000 + index
            for day in range(self.days, -1, -1):
                self.db_manager.save_statistics(
                    self._statistics(organization_id, organization, now - timedelta(days=day), day)
                )
                counts["statistics"] += 1

            for number in range(self.projects_per_organization):
                self.db_manager.save_project(self._project(organization, now, number))
                counts["projects"] += 1

            for number in range(3):
                self.db_manager.save_contributor(self._contributor(organization_id, organization, now, number))
                counts["contributors"] += 1

        self.logger.info(f"Populated test data: {counts}")
        return counts

    def _statistics(self, organization_id: int, organization: str,
                    snapshot_date: datetime, age_in_days: int) -> Statistics:
        growth = self.days - age_in_days
        public_projects = 10 + growth // 3
        return Statistics.create(
            organization_id,
            snapshot_date,
            organization_name=organization,
            public_project_count=public_projects,
            private_project_count=self.random.randint(0, 5),
            members_count=20 + growth,
            teams_count=self.random.randint(1, 8),
            all_contributors_count=30 + growth * 2,
            all_stars_count=500 + growth * self.random.randint(5, 20),
            all_forks_count=100 + growth * self.random.randint(1, 5),
            all_size_count=public_projects * 1024,
            program_languages_count=self.random.randint(1, len(LANGUAGES)),
            tags_count=self.random.randint(0, 40),
        )

    def _project(self, organization: str, snapshot_date: datetime, number: int) -> Project:
        languages = self.random.sample(LANGUAGES, self.random.randint(1, 3))
        project = Project(
            name=f"{organization}-project-{number}",
            organization_name=organization,
            snapshot_date=snapshot_date,
            git_hub_project_id=self.random.randint(10_000, 99_999_999),
            url=f"https://github.com/{organization}/{organization}-project-{number}",
            description=f"Sample project {number} of {organization}",
            stars_count=self.random.randint(0, 2000),
            forks_count=self.random.randint(0, 300),
            last_pushed=(snapshot_date - timedelta(days=self.random.randint(0, 90))).isoformat(),
            primary_language=languages[0],
            language_list=languages,
            commits_count=self.random.randint(10, 5000),
            contributors_count=self.random.randint(1, 60),
            maintainers=[f"{organization}-maintainer-{number}"],
        )
        project.score = self.scorer.score(project)
        return project

    def _contributor(self, organization_id: int, organization: str,
                     snapshot_date: datetime, number: int) -> Contributor:
        return Contributor(
            id=organization_id * 100 + number,
            organization_id=organization_id,
            snapshot_date=snapshot_date,
            name=f"{organization}-contributor-{number}",
            url=f"https://github.com/{organization}-contributor-{number}",
            organizational_commits_count=self.random.randint(0, 500),
            personal_commits_count=self.random.randint(0, 500),
            personal_projects_count=self.random.randint(0, 20),
            organizational_projects_count=self.random.randint(1, 10),
            organization_name=organization,
        )
