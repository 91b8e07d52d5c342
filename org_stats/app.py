#!/usr/bin/env python3
"""
GitHub Organization Statistics Collector

Snapshots GitHub organization metadata (aggregate statistics and projects)
and keeps the history in a SQLite database keyed by organization id and
snapshot date.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

import requests

from .config import AppConfig, load_configuration
from .errors import DuplicateKeyConflict, StorageUnavailable, ValidationError
from .models import (
    COUNTER_FIELDS,
    Contributor,
    Project,
    Statistics,
    StatisticsKey,
    format_date,
    from_millis,
    normalize_date,
    to_millis,
)
from .scoring import Scorer

GITHUB_API_URL = "https://api.github.com"

_PROJECT_COLUMNS = (
    "id", "git_hub_project_id", "snapshot_date", "name", "url", "description",
    "stars_count", "forks_count", "last_pushed", "primary_language", "language_list",
    "commits_count", "contributors_count", "organization_name", "score", "maintainers",
)

_CONTRIBUTOR_COLUMNS = (
    "id", "organization_id", "snapshot_date", "name", "url",
    "organizational_commits_count", "personal_commits_count",
    "personal_projects_count", "organizational_projects_count", "organization_name",
)


class DatabaseManager:
    """Handles all SQLite operations for statistics, projects and contributors."""

    def __init__(self, db_path: str):
        """
        Initialize the database manager.

        Args:
            db_path: Path to the SQLite database file.
        """
        self.db_path = db_path
        self.conn = None
        self._in_transaction = False
        self.logger = logging.getLogger(__name__)

    def __enter__(self):
        try:
            self.conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            self.logger.error(f"Could not open database {self.db_path}: {e}")
            raise StorageUnavailable(f"Could not open database {self.db_path}: {e}") from e
        self.conn.row_factory = sqlite3.Row
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.conn:
            self.conn.close()
            self.conn = None

    def setup_database(self):
        """Create the necessary tables if they don't exist."""
        counter_columns = ",\n".join(f"{name} INTEGER" for name in COUNTER_FIELDS)
        try:
            with self._connection():
                self.conn.execute(f"""
                    CREATE TABLE IF NOT EXISTS statistics (
                        organization_id INTEGER NOT NULL,
                        snapshot_date INTEGER NOT NULL,
                        organization_name TEXT,
                        {counter_columns},
                        PRIMARY KEY (organization_id, snapshot_date)
                    )
                """)
                self.conn.execute("""
                    CREATE INDEX IF NOT EXISTS idx_statistics_name_date
                    ON statistics (organization_name, snapshot_date)
                """)
                self.conn.execute("""
                    CREATE TABLE IF NOT EXISTS projects (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        git_hub_project_id INTEGER,
                        snapshot_date INTEGER NOT NULL,
                        name TEXT NOT NULL,
                        url TEXT,
                        description TEXT,
                        stars_count INTEGER,
                        forks_count INTEGER,
                        last_pushed TEXT,
                        primary_language TEXT,
                        language_list TEXT NOT NULL DEFAULT '[]',
                        commits_count INTEGER,
                        contributors_count INTEGER,
                        organization_name TEXT NOT NULL,
                        score INTEGER,
                        maintainers TEXT NOT NULL DEFAULT '[]'
                    )
                """)
                self.conn.execute("""
                    CREATE INDEX IF NOT EXISTS idx_projects_org_date
                    ON projects (organization_name, snapshot_date)
                """)
                self.conn.execute("""
                    CREATE TABLE IF NOT EXISTS contributors (
                        id INTEGER NOT NULL,
                        organization_id INTEGER NOT NULL,
                        snapshot_date INTEGER NOT NULL,
                        name TEXT,
                        url TEXT,
                        organizational_commits_count INTEGER,
                        personal_commits_count INTEGER,
                        personal_projects_count INTEGER,
                        organizational_projects_count INTEGER,
                        organization_name TEXT,
                        PRIMARY KEY (id, organization_id, snapshot_date)
                    )
                """)
            self.logger.info("Database setup complete.")
        except sqlite3.Error as e:
            self.logger.error(f"Database setup failed: {e}")
            raise StorageUnavailable(f"Database setup failed: {e}") from e

    def _connection(self) -> sqlite3.Connection:
        if self.conn is None:
            raise StorageUnavailable("Database connection is not open")
        return self.conn

    @contextmanager
    def transaction(self):
        """Commit the enclosed writes together, or roll all of them back."""
        conn = self._connection()
        if self._in_transaction:
            yield conn
            return
        self._in_transaction = True
        try:
            with conn:
                yield conn
        finally:
            self._in_transaction = False

    def _execute_query(self, query: str, params: tuple = (), fetch_all: bool = True):
        """Execute a database query with consistent error handling."""
        try:
            with self.transaction() as conn:
                cursor = conn.execute(query, params)
                if fetch_all:
                    return cursor.fetchall()
                return cursor.fetchone()
        except sqlite3.IntegrityError as e:
            self.logger.error(f"Database constraint violated: {e}")
            raise DuplicateKeyConflict(str(e)) from e
        except sqlite3.Error as e:
            self.logger.error(f"Database query failed: {e}")
            raise StorageUnavailable(f"Database query failed: {e}") from e

    # -- statistics --------------------------------------------------------

    @staticmethod
    def _row_to_statistics(row: sqlite3.Row) -> Statistics:
        return Statistics(
            key=StatisticsKey(row["organization_id"], from_millis(row["snapshot_date"])),
            organization_name=row["organization_name"],
            **{name: row[name] for name in COUNTER_FIELDS},
        )

    def save_statistics(self, statistics: Statistics) -> Statistics:
        """Insert a snapshot, replacing any stored snapshot with the same key."""
        if statistics.key is None:
            raise ValidationError("Statistics record has no key")
        statistics.key.validate()

        columns = ("organization_id", "snapshot_date", "organization_name") + COUNTER_FIELDS
        placeholders = ", ".join("?" for _ in columns)
        values = (
            statistics.organization_id,
            to_millis(statistics.snapshot_date),
            statistics.organization_name,
        ) + tuple(getattr(statistics, name) for name in COUNTER_FIELDS)

        self._execute_query(
            f"INSERT OR REPLACE INTO statistics ({', '.join(columns)}) VALUES ({placeholders})",
            values,
            fetch_all=False,
        )
        self.logger.info(
            f"Saved statistics for {statistics.organization_name} "
            f"({statistics.organization_id}) at {format_date(statistics.snapshot_date)}"
        )
        return statistics

    def delete_all_statistics(self) -> None:
        self._execute_query("DELETE FROM statistics", fetch_all=False)
        self.logger.info("Deleted all statistics.")

    def find_all_statistics(self) -> List[Statistics]:
        rows = self._execute_query("SELECT * FROM statistics")
        return [self._row_to_statistics(row) for row in rows]

    def find_statistics_by_organization_name(self, organization_name: str) -> List[Statistics]:
        """Get every snapshot whose organization name matches exactly."""
        rows = self._execute_query(
            "SELECT * FROM statistics WHERE organization_name = ?",
            (organization_name,)
        )
        return [self._row_to_statistics(row) for row in rows]

    def find_latest_statistics(self, organization_name: str, limit: int = 1) -> List[Statistics]:
        """Get up to ``limit`` snapshots of an organization, most recent first."""
        if limit < 1:
            return []
        rows = self._execute_query(
            "SELECT * FROM statistics WHERE organization_name = ? "
            "ORDER BY snapshot_date DESC, organization_id ASC LIMIT ?",
            (organization_name, limit)
        )
        return [self._row_to_statistics(row) for row in rows]

    def find_statistics_in_period(self, organization_name: str, start_date: datetime,
                                  end_date: datetime) -> List[Statistics]:
        """Get the snapshots taken within [start_date, end_date], most recent first."""
        if start_date is None or end_date is None:
            raise ValidationError("Both start_date and end_date are required")
        rows = self._execute_query(
            "SELECT * FROM statistics "
            "WHERE organization_name = ? AND snapshot_date >= ? AND snapshot_date <= ? "
            "ORDER BY snapshot_date DESC, organization_id ASC",
            (organization_name, to_millis(start_date), to_millis(end_date))
        )
        return [self._row_to_statistics(row) for row in rows]

    # -- projects ----------------------------------------------------------

    @staticmethod
    def _row_to_project(row: sqlite3.Row) -> Project:
        values = {name: row[name] for name in _PROJECT_COLUMNS}
        values["snapshot_date"] = from_millis(row["snapshot_date"])
        values["language_list"] = json.loads(row["language_list"] or "[]")
        values["maintainers"] = json.loads(row["maintainers"] or "[]")
        return Project(**values)

    def save_project(self, project: Project) -> Project:
        """Insert a project, or replace it when it already carries an id."""
        project.validate()

        values = {name: getattr(project, name) for name in _PROJECT_COLUMNS}
        values["snapshot_date"] = to_millis(project.snapshot_date)
        values["language_list"] = json.dumps(project.language_list)
        values["maintainers"] = json.dumps(project.maintainers)
        if project.id is None:
            del values["id"]

        columns = list(values)
        try:
            with self.transaction() as conn:
                cursor = conn.execute(
                    f"INSERT OR REPLACE INTO projects ({', '.join(columns)}) "
                    f"VALUES ({', '.join('?' for _ in columns)})",
                    tuple(values.values())
                )
        except sqlite3.Error as e:
            self.logger.error(f"Failed to save project {project.name}: {e}")
            raise StorageUnavailable(f"Failed to save project {project.name}: {e}") from e

        if project.id is None:
            project.id = cursor.lastrowid
        self.logger.debug(f"Saved project {project.organization_name}/{project.name} ({project.id})")
        return project

    def find_projects(self, organization_name: str) -> List[Project]:
        """Get the projects of the most recent project snapshot of an organization."""
        rows = self._execute_query(
            "SELECT * FROM projects WHERE organization_name = ? AND snapshot_date = ("
            "SELECT MAX(snapshot_date) FROM projects WHERE organization_name = ?) "
            "ORDER BY score DESC, name ASC",
            (organization_name, organization_name)
        )
        return [self._row_to_project(row) for row in rows]

    def find_all_projects(self) -> List[Project]:
        rows = self._execute_query("SELECT * FROM projects ORDER BY id")
        return [self._row_to_project(row) for row in rows]

    def delete_all_projects(self) -> None:
        self._execute_query("DELETE FROM projects", fetch_all=False)
        self.logger.info("Deleted all projects.")

    # -- contributors ------------------------------------------------------

    @staticmethod
    def _row_to_contributor(row: sqlite3.Row) -> Contributor:
        values = {name: row[name] for name in _CONTRIBUTOR_COLUMNS}
        values["snapshot_date"] = from_millis(row["snapshot_date"])
        return Contributor(**values)

    def save_contributor(self, contributor: Contributor) -> Contributor:
        contributor.validate()
        values = [getattr(contributor, name) for name in _CONTRIBUTOR_COLUMNS]
        values[_CONTRIBUTOR_COLUMNS.index("snapshot_date")] = to_millis(contributor.snapshot_date)
        self._execute_query(
            f"INSERT OR REPLACE INTO contributors ({', '.join(_CONTRIBUTOR_COLUMNS)}) "
            f"VALUES ({', '.join('?' for _ in _CONTRIBUTOR_COLUMNS)})",
            tuple(values),
            fetch_all=False,
        )
        return contributor

    def find_all_contributors(self) -> List[Contributor]:
        rows = self._execute_query("SELECT * FROM contributors")
        return [self._row_to_contributor(row) for row in rows]

    def delete_all_contributors(self) -> None:
        self._execute_query("DELETE FROM contributors", fetch_all=False)
        self.logger.info("Deleted all contributors.")

    # -- bulk --------------------------------------------------------------

    def delete_all(self) -> None:
        self.delete_all_contributors()
        self.delete_all_projects()
        self.delete_all_statistics()

    def export_database(self) -> Dict:
        """Export the complete database to a dictionary."""
        export_data = {
            "export_timestamp": format_date(datetime.now(timezone.utc)),
            "version": "1.0",
            "statistics": [s.to_dict() for s in self.find_all_statistics()],
            "projects": [p.to_dict() for p in self.find_all_projects()],
            "contributors": [c.to_dict() for c in self.find_all_contributors()],
        }
        self.logger.info(
            f"Database exported successfully with {len(export_data['statistics'])} statistics, "
            f"{len(export_data['projects'])} projects, "
            f"and {len(export_data['contributors'])} contributors"
        )
        return export_data

    def import_database(self, import_data: Dict, replace_existing: bool = False) -> Dict[str, int]:
        """
        Import an exported bundle, saving every element of every collection.

        The whole bundle is validated before anything is written, and the
        writes run in one transaction, so a bad bundle leaves the database as
        it was.
        """
        bundle = parse_bundle(import_data)

        with self.transaction():
            if replace_existing:
                self.logger.info("Clearing existing data before import...")
                self.delete_all()

            for contributor in bundle["contributors"]:
                self.save_contributor(contributor)
            for project in bundle["projects"]:
                self.save_project(project)
            for statistics in bundle["statistics"]:
                self.save_statistics(statistics)

        counts = {name: len(items) for name, items in bundle.items()}
        self.logger.info(f"Database import completed successfully: {counts}")
        return counts


def parse_bundle(import_data: Dict) -> Dict[str, list]:
    """Turn an export bundle into model objects, validating every entry."""
    if not isinstance(import_data, dict):
        raise ValidationError("Import data must be a JSON object")
    try:
        bundle = {
            "statistics": [Statistics.from_dict(item) for item in import_data.get("statistics") or []],
            "projects": [Project.from_dict(item) for item in import_data.get("projects") or []],
            "contributors": [Contributor.from_dict(item) for item in import_data.get("contributors") or []],
        }
    except (TypeError, AttributeError) as e:
        raise ValidationError(f"Malformed import data: {e}") from e

    for statistics in bundle["statistics"]:
        statistics.key.validate()
    for project in bundle["projects"]:
        project.validate()
    for contributor in bundle["contributors"]:
        contributor.validate()
    return bundle


class OrganizationStatsCollector:
    """Takes snapshots of GitHub organizations and stores them."""

    def __init__(self, github_token: str, organizations: List[str], db_manager,
                 scorer: Optional[Scorer] = None, session: Optional[requests.Session] = None):
        """
        Initialize the collector.

        Args:
            github_token: GitHub Personal Access Token
            organizations: Organization logins to snapshot
            db_manager: An entered DatabaseManager or FirestoreDatabaseManager
            scorer: Scorer applied to the collected projects
            session: HTTP session, created when not given
        """
        self.organizations = organizations
        self.db_manager = db_manager
        self.scorer = scorer or Scorer()
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"token {github_token}",
            "Accept": "application/vnd.github.v3+json"
        })
        self.logger = logging.getLogger(__name__)

    def _fetch_json(self, path: str) -> Dict:
        """Fetch a single JSON document from the GitHub API."""
        url = f"{GITHUB_API_URL}{path}"
        try:
            response = self.session.get(url, timeout=30)
            response.raise_for_status()
            return response.json()
        except requests.RequestException as e:
            self.logger.error(f"Error fetching {url}: {e}")
            raise

    def _fetch_all_pages(self, path: str) -> List[Dict]:
        """Fetch a list resource, following the Link: next headers."""
        url = f"{GITHUB_API_URL}{path}"
        params = {"per_page": 100}
        items = []
        while url:
            response = self.session.get(url, params=params, timeout=30)
            response.raise_for_status()
            items.extend(response.json())
            url = response.links.get("next", {}).get("url")
            params = None
        return items

    def _count_optional(self, path: str) -> Optional[int]:
        """Count a list resource, or None when the token may not see it."""
        try:
            return len(self._fetch_all_pages(path))
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            if status in (403, 404):
                self.logger.warning(f"Not allowed to read {path} ({status}); leaving it unset")
                return None
            raise

    def collect_organization(self, organization: str,
                             snapshot_date: datetime) -> Tuple[Statistics, List[Project]]:
        """Build the statistics and project records of one organization."""
        org_data = self._fetch_json(f"/orgs/{organization}")
        repos = self._fetch_all_pages(f"/orgs/{organization}/repos")

        projects = []
        for repo in repos:
            language = repo.get("language")
            project = Project(
                name=repo["name"],
                organization_name=organization,
                snapshot_date=snapshot_date,
                git_hub_project_id=repo.get("id"),
                url=repo.get("html_url"),
                description=repo.get("description"),
                stars_count=repo.get("stargazers_count"),
                forks_count=repo.get("forks_count"),
                last_pushed=repo.get("pushed_at"),
                primary_language=language,
                language_list=[language] if language else [],
            )
            try:
                project.score = self.scorer.score(project)
            except Exception as e:
                self.logger.warning(f"Could not score {organization}/{project.name}: {e}")
            projects.append(project)

        statistics = Statistics.create(
            org_data["id"],
            snapshot_date,
            organization_name=organization,
            public_project_count=org_data.get("public_repos"),
            private_project_count=org_data.get("total_private_repos"),
            members_count=self._count_optional(f"/orgs/{organization}/members"),
            teams_count=self._count_optional(f"/orgs/{organization}/teams"),
            all_stars_count=sum(repo.get("stargazers_count") or 0 for repo in repos),
            all_forks_count=sum(repo.get("forks_count") or 0 for repo in repos),
            all_size_count=sum(repo.get("size") or 0 for repo in repos),
            program_languages_count=len({repo["language"] for repo in repos if repo.get("language")}),
        )
        return statistics, projects

    def _snapshot_organization(self, organization: str, snapshot_date: datetime) -> None:
        self.logger.info(f"Taking snapshot of {organization}")
        statistics, projects = self.collect_organization(organization, snapshot_date)
        for project in projects:
            self.db_manager.save_project(project)
        self.db_manager.save_statistics(statistics)
        self.logger.info(f"Snapshot of {organization} stored with {len(projects)} projects")

    def snapshot_all_organizations(self) -> int:
        """Snapshot every configured organization; returns how many succeeded."""
        self.logger.info("Starting snapshot for all organizations")
        snapshot_date = normalize_date(datetime.now(timezone.utc))

        succeeded = 0
        for organization in self.organizations:
            try:
                self._snapshot_organization(organization, snapshot_date)
                succeeded += 1
            except Exception as e:
                self.logger.error(f"Failed to snapshot {organization}: {e}")
                continue

        self.logger.info(f"Finished snapshot: {succeeded}/{len(self.organizations)} organizations")
        return succeeded


def run_snapshot(config: Optional[AppConfig] = None) -> Tuple[bool, str]:
    """Runs one snapshot of all configured organizations."""
    from .db_factory import get_database_manager

    logger = logging.getLogger(__name__)
    try:
        config = config or load_configuration(require_token=True)
        if not config.github_token:
            raise ValueError("GITHUB_TOKEN environment variable not set.")
        if not config.organizations:
            raise ValueError("ORGANIZATION_LIST environment variable not set.")

        with get_database_manager(config) as db_manager:
            db_manager.setup_database()
            collector = OrganizationStatsCollector(
                config.github_token, config.organizations, db_manager,
                scorer=Scorer(config.scoring_project)
            )
            succeeded = collector.snapshot_all_organizations()
    except Exception as e:
        logger.error(f"Application error: {e}")
        return False, str(e)

    if succeeded < len(config.organizations):
        message = f"Snapshot stored for {succeeded} of {len(config.organizations)} organizations"
        logger.warning(message)
        return False, message
    logger.info("Snapshot successful")
    return True, "Snapshot successful"


def main() -> None:
    """Main entry point of the application."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )
    try:
        run_snapshot()
    except KeyboardInterrupt:
        print("\nOperation cancelled by user")


if __name__ == "__main__":
    main()
