import copy
import operator

import pytest
from google.api_core import exceptions as google_exceptions
from google.cloud import firestore

from org_stats.app import DatabaseManager
from org_stats.config import AppConfig
from org_stats.firestore_db import FirestoreDatabaseManager

_OPERATORS = {
    "==": operator.eq,
    ">=": operator.ge,
    "<=": operator.le,
    ">": operator.gt,
    "<": operator.lt,
}


class FakeSnapshot:
    def __init__(self, reference, data):
        self.reference = reference
        self.id = reference.id
        self._data = data

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return copy.deepcopy(self._data)


class FakeDocument:
    def __init__(self, collection, doc_id):
        self.collection = collection
        self.id = doc_id

    def set(self, data, merge=False):
        self.collection.client.check()
        if merge and self.id in self.collection.docs:
            self.collection.docs[self.id].update(copy.deepcopy(data))
        else:
            self.collection.docs[self.id] = copy.deepcopy(data)

    def get(self):
        self.collection.client.check()
        return FakeSnapshot(self, self.collection.docs.get(self.id))

    def delete(self):
        self.collection.docs.pop(self.id, None)


class FakeQuery:
    def __init__(self, collection, filters=(), orders=(), limit=None):
        self.collection = collection
        self.filters = filters
        self.orders = orders
        self._limit = limit

    def where(self, field, op, value):
        return FakeQuery(self.collection, self.filters + ((field, op, value),), self.orders, self._limit)

    def order_by(self, field, direction=firestore.Query.ASCENDING):
        return FakeQuery(self.collection, self.filters, self.orders + ((field, direction),), self._limit)

    def limit(self, count):
        return FakeQuery(self.collection, self.filters, self.orders, count)

    def stream(self):
        self.collection.client.check()
        items = [
            (doc_id, data) for doc_id, data in self.collection.docs.items()
            if all(field in data and _OPERATORS[op](data[field], value) for field, op, value in self.filters)
        ]
        for field, direction in reversed(self.orders):
            items.sort(key=lambda item: item[1][field], reverse=direction == firestore.Query.DESCENDING)
        if self._limit is not None:
            items = items[:self._limit]
        return iter([FakeSnapshot(FakeDocument(self.collection, doc_id), data) for doc_id, data in items])


class FakeCollection(FakeQuery):
    def __init__(self, client, name):
        self.client = client
        self.name = name
        self.docs = {}
        super().__init__(self)

    def document(self, doc_id):
        return FakeDocument(self, doc_id)


class FakeBatch:
    def __init__(self, client):
        self.client = client
        self.operations = []

    def set(self, reference, data):
        self.operations.append(lambda: reference.set(data))

    def delete(self, reference):
        self.operations.append(reference.delete)

    def commit(self):
        self.client.check()
        for operation in self.operations:
            operation()
        self.operations = []


class FakeFirestoreClient:
    """In-memory stand-in for firestore.Client covering the calls the store makes."""

    def __init__(self):
        self.collections = {}
        self.available = True

    def check(self):
        if not self.available:
            raise google_exceptions.ServiceUnavailable("firestore is down")

    def collection(self, name):
        self.check()
        if name not in self.collections:
            self.collections[name] = FakeCollection(self, name)
        return self.collections[name]

    def batch(self):
        return FakeBatch(self)


@pytest.fixture
def database_path(tmp_path):
    return str(tmp_path / "org_stats.db")


@pytest.fixture
def sqlite_manager(database_path):
    with DatabaseManager(database_path) as db_manager:
        db_manager.setup_database()
        yield db_manager


@pytest.fixture
def firestore_client():
    return FakeFirestoreClient()


@pytest.fixture
def firestore_manager(firestore_client):
    with FirestoreDatabaseManager(client=firestore_client) as db_manager:
        db_manager.setup_database()
        yield db_manager


@pytest.fixture(params=["sqlite", "firestore"])
def store(request):
    """Each store backend, so contract tests run against both."""
    return request.getfixturevalue(f"{request.param}_manager")


@pytest.fixture
def config(database_path):
    return AppConfig(
        github_token="test-token",
        organizations=["organization1", "organization2"],
        database_path=database_path,
    )
