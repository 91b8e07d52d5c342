#!/usr/bin/env python3
"""
Firestore database manager for Google App Engine deployment.

Implements the same store operations as the SQLite DatabaseManager, with
one document per statistics snapshot, project and contributor.
"""

import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, Iterable, List

from google.api_core import exceptions as google_exceptions
from google.cloud import firestore

from .app import parse_bundle
from .errors import StorageUnavailable, ValidationError
from .models import (
    COUNTER_FIELDS,
    Contributor,
    Project,
    Statistics,
    StatisticsKey,
    format_date,
    from_millis,
    to_millis,
)

BATCH_SIZE = 500


class FirestoreDatabaseManager:
    """Handles all database operations for organization statistics using Firestore."""

    def __init__(self, client=None):
        """
        Initialize the Firestore database manager.

        Args:
            client: Firestore client to use; a default client is created when omitted.
        """
        self.logger = logging.getLogger(__name__)
        try:
            self.db = client if client is not None else firestore.Client()
        except google_exceptions.GoogleAPIError as e:
            raise StorageUnavailable(f"Could not create Firestore client: {e}") from e

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        pass

    def setup_database(self):
        """Initialize collections - Firestore creates them automatically."""
        self.logger.info("Firestore collections will be created automatically")

    @contextmanager
    def _storage_errors(self, action: str):
        try:
            yield
        except google_exceptions.GoogleAPIError as e:
            self.logger.error(f"Firestore failed to {action}: {e}")
            raise StorageUnavailable(f"Firestore failed to {action}: {e}") from e

    def _delete_collection(self, name: str) -> int:
        deleted = 0
        with self._storage_errors(f"delete {name}"):
            batch = self.db.batch()
            pending = 0
            for doc in self.db.collection(name).stream():
                batch.delete(doc.reference)
                pending += 1
                deleted += 1
                if pending == BATCH_SIZE:
                    batch.commit()
                    batch = self.db.batch()
                    pending = 0
            if pending:
                batch.commit()
        self.logger.info(f"Deleted {deleted} documents from {name}")
        return deleted

    # -- statistics --------------------------------------------------------

    @staticmethod
    def _statistics_doc_id(key: StatisticsKey) -> str:
        return f"{key.organization_id}_{to_millis(key.snapshot_date)}"

    @staticmethod
    def _doc_to_statistics(data: Dict) -> Statistics:
        return Statistics(
            key=StatisticsKey(data["organization_id"], from_millis(data["snapshot_date"])),
            organization_name=data.get("organization_name"),
            **{name: data.get(name) for name in COUNTER_FIELDS},
        )

    def _statistics_list(self, docs: Iterable) -> List[Statistics]:
        return [self._doc_to_statistics(doc.to_dict()) for doc in docs]

    def save_statistics(self, statistics: Statistics) -> Statistics:
        """Write a snapshot document, replacing one with the same key."""
        if statistics.key is None:
            raise ValidationError("Statistics record has no key")
        statistics.key.validate()

        data = {
            "organization_id": statistics.organization_id,
            "snapshot_date": to_millis(statistics.snapshot_date),
            "organization_name": statistics.organization_name,
        }
        data.update(statistics.counters())

        with self._storage_errors("save statistics"):
            self.db.collection('statistics').document(self._statistics_doc_id(statistics.key)).set(data)
        self.logger.info(
            f"Saved statistics for {statistics.organization_name} "
            f"({statistics.organization_id}) at {format_date(statistics.snapshot_date)}"
        )
        return statistics

    def delete_all_statistics(self) -> None:
        self._delete_collection('statistics')

    def find_all_statistics(self) -> List[Statistics]:
        with self._storage_errors("read statistics"):
            return self._statistics_list(self.db.collection('statistics').stream())

    def find_statistics_by_organization_name(self, organization_name: str) -> List[Statistics]:
        with self._storage_errors("read statistics"):
            docs = (self.db.collection('statistics')
                    .where('organization_name', '==', organization_name)
                    .stream())
            return self._statistics_list(docs)

    def find_latest_statistics(self, organization_name: str, limit: int = 1) -> List[Statistics]:
        if limit < 1:
            return []
        with self._storage_errors("read statistics"):
            docs = (self.db.collection('statistics')
                    .where('organization_name', '==', organization_name)
                    .order_by('snapshot_date', direction=firestore.Query.DESCENDING)
                    .order_by('organization_id')
                    .limit(limit)
                    .stream())
            return self._statistics_list(docs)

    def find_statistics_in_period(self, organization_name: str, start_date: datetime,
                                  end_date: datetime) -> List[Statistics]:
        if start_date is None or end_date is None:
            raise ValidationError("Both start_date and end_date are required")
        with self._storage_errors("read statistics"):
            docs = (self.db.collection('statistics')
                    .where('organization_name', '==', organization_name)
                    .where('snapshot_date', '>=', to_millis(start_date))
                    .where('snapshot_date', '<=', to_millis(end_date))
                    .order_by('snapshot_date', direction=firestore.Query.DESCENDING)
                    .order_by('organization_id')
                    .stream())
            return self._statistics_list(docs)

    # -- projects ----------------------------------------------------------

    @staticmethod
    def _doc_to_project(data: Dict) -> Project:
        data = dict(data)
        data["snapshot_date"] = from_millis(data["snapshot_date"])
        return Project(**data)

    def save_project(self, project: Project) -> Project:
        """Write a project document; projects without an id get a random one."""
        project.validate()
        if project.id is None:
            project.id = uuid.uuid4().int >> 65

        data = project.to_dict()
        data["snapshot_date"] = to_millis(project.snapshot_date)
        with self._storage_errors(f"save project {project.name}"):
            self.db.collection('projects').document(str(project.id)).set(data)
        return project

    def find_projects(self, organization_name: str) -> List[Project]:
        """Get the projects of the most recent project snapshot of an organization."""
        with self._storage_errors("read projects"):
            latest = list(self.db.collection('projects')
                          .where('organization_name', '==', organization_name)
                          .order_by('snapshot_date', direction=firestore.Query.DESCENDING)
                          .limit(1)
                          .stream())
            if not latest:
                return []
            docs = (self.db.collection('projects')
                    .where('organization_name', '==', organization_name)
                    .where('snapshot_date', '==', latest[0].to_dict()["snapshot_date"])
                    .stream())
            projects = [self._doc_to_project(doc.to_dict()) for doc in docs]

        # score descending with unscored projects last, then name
        projects.sort(key=lambda p: (p.score is None, -(p.score or 0), p.name))
        return projects

    def find_all_projects(self) -> List[Project]:
        with self._storage_errors("read projects"):
            return [self._doc_to_project(doc.to_dict()) for doc in self.db.collection('projects').stream()]

    def delete_all_projects(self) -> None:
        self._delete_collection('projects')

    # -- contributors ------------------------------------------------------

    def save_contributor(self, contributor: Contributor) -> Contributor:
        contributor.validate()
        data = contributor.to_dict()
        data["snapshot_date"] = to_millis(contributor.snapshot_date)
        doc_id = f"{contributor.id}_{contributor.organization_id}_{data['snapshot_date']}"
        with self._storage_errors("save contributor"):
            self.db.collection('contributors').document(doc_id).set(data)
        return contributor

    def find_all_contributors(self) -> List[Contributor]:
        with self._storage_errors("read contributors"):
            result = []
            for doc in self.db.collection('contributors').stream():
                data = doc.to_dict()
                data["snapshot_date"] = from_millis(data["snapshot_date"])
                result.append(Contributor(**data))
            return result

    def delete_all_contributors(self) -> None:
        self._delete_collection('contributors')

    # -- bulk --------------------------------------------------------------

    def delete_all(self) -> None:
        self.delete_all_contributors()
        self.delete_all_projects()
        self.delete_all_statistics()

    def export_database(self) -> Dict:
        """Export every collection to a dictionary."""
        export_data = {
            "export_timestamp": format_date(datetime.now(timezone.utc)),
            "version": "1.0",
            "statistics": [s.to_dict() for s in self.find_all_statistics()],
            "projects": [p.to_dict() for p in self.find_all_projects()],
            "contributors": [c.to_dict() for c in self.find_all_contributors()],
        }
        self.logger.info(f"Exported {len(export_data['statistics'])} statistics from Firestore")
        return export_data

    def import_database(self, import_data: Dict, replace_existing: bool = False) -> Dict[str, int]:
        """
        Import an exported bundle, saving every element of every collection.

        Every entry is validated before the first write, so a bad bundle never
        clears or partially fills the collections.
        """
        bundle = parse_bundle(import_data)

        if replace_existing:
            self.delete_all()

        for contributor in bundle["contributors"]:
            self.save_contributor(contributor)
        for project in bundle["projects"]:
            self.save_project(project)
        for statistics in bundle["statistics"]:
            self.save_statistics(statistics)

        counts = {name: len(items) for name, items in bundle.items()}
        self.logger.info(f"Firestore import completed: {counts}")
        return counts
