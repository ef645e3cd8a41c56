"""
Shared fixtures for governance tests.

`InMemoryStorage` implements the `Storage` interface over plain dicts and enforces the unique indexes
declared in `governance_indexes`, so uniqueness and conflict behavior match MongoDB closely enough for
service tests.
"""
import copy
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from pastry_publishing.database.governance_indexes import (
    CONTENT_ITEMS_COLLECTION,
    SITES_COLLECTION,
    unique_keys,
)
from pastry_publishing.database.storage import Storage, key_filter
from pastry_publishing.errors import ConflictError
from pastry_publishing.models.governance_models import Actor, ContentKind, ContentStatus, Role

BASE_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _matches_condition(value: Any, condition: Any) -> bool:
    if isinstance(condition, dict) and any(str(k).startswith("$") for k in condition):
        for op, operand in condition.items():
            if op == "$ne":
                if value == operand:
                    return False
            elif op == "$in":
                if value not in operand:
                    return False
            elif op == "$nin":
                if value in operand:
                    return False
            elif op in ("$gte", "$gt", "$lte", "$lt"):
                if value is None:
                    return False
                if op == "$gte" and not value >= operand:
                    return False
                if op == "$gt" and not value > operand:
                    return False
                if op == "$lte" and not value <= operand:
                    return False
                if op == "$lt" and not value < operand:
                    return False
            else:
                raise NotImplementedError(op)
        return True
    return value == condition


def matches(document: Dict[str, Any], filter: Dict[str, Any]) -> bool:
    return all(_matches_condition(document.get(field), condition) for field, condition in filter.items())


def _equality_fields(filter: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in filter.items() if not (isinstance(v, dict) and any(str(x).startswith("$") for x in v))}


class InMemoryStorage(Storage):
    """Dict-backed `Storage` double."""

    def __init__(self):
        self.data: Dict[str, List[Dict[str, Any]]] = {}
        self.writes = 0
        self.transactions_opened = 0

    # helpers
    def seed(self, collection: str, document: Dict[str, Any]) -> Dict[str, Any]:
        self.data.setdefault(collection, []).append(copy.deepcopy(document))
        return document

    def all(self, collection: str) -> List[Dict[str, Any]]:
        return copy.deepcopy(self.data.get(collection, []))

    def _docs(self, collection: str) -> List[Dict[str, Any]]:
        return self.data.setdefault(collection, [])

    def _check_unique(self, collection: str, candidate: Dict[str, Any], ignore: Optional[Dict[str, Any]] = None):
        for fields in unique_keys(collection):
            values = tuple(candidate.get(f) for f in fields)
            for existing in self._docs(collection):
                if existing is ignore:
                    continue
                if tuple(existing.get(f) for f in fields) == values:
                    raise ConflictError("Resource already exists")

    # Storage interface
    async def get(self, collection, key):
        return await self.find_one(collection, key_filter(collection, key))

    async def find_one(self, collection, filter):
        for document in self._docs(collection):
            if matches(document, filter):
                return copy.deepcopy(document)
        return None

    async def find_many(self, collection, filter, page=1, page_size=None, sort=None):
        results = [copy.deepcopy(d) for d in self._docs(collection) if matches(d, filter)]
        for field, direction in reversed(list(sort or [])):
            results.sort(key=lambda d: d.get(field), reverse=direction < 0)
        if page_size:
            start = (max(page, 1) - 1) * page_size
            results = results[start:start + page_size]
        return results

    async def create(self, collection, document):
        self._check_unique(collection, document)
        self._docs(collection).append(copy.deepcopy(document))
        self.writes += 1
        return copy.deepcopy(document)

    async def update(self, collection, key, patch):
        filter = key_filter(collection, key)
        for document in self._docs(collection):
            if matches(document, filter):
                candidate = {**document, **patch}
                self._check_unique(collection, candidate, ignore=document)
                document.update(copy.deepcopy(patch))
                self.writes += 1
                return copy.deepcopy(document)
        return None

    async def delete(self, collection, key):
        filter = key_filter(collection, key)
        docs = self._docs(collection)
        for index, document in enumerate(docs):
            if matches(document, filter):
                del docs[index]
                self.writes += 1
                return True
        return False

    async def delete_many(self, collection, filter):
        docs = self._docs(collection)
        keep = [d for d in docs if not matches(d, filter)]
        deleted = len(docs) - len(keep)
        self.data[collection] = keep
        if deleted:
            self.writes += 1
        return deleted

    async def upsert(self, collection, key, create, update=None, increment=None):
        filter = key_filter(collection, key)
        update = update or {}
        increment = increment or {}
        self.writes += 1
        for document in self._docs(collection):
            if matches(document, filter):
                document.update(copy.deepcopy(update))
                for field, amount in increment.items():
                    document[field] = document.get(field, 0) + amount
                return copy.deepcopy(document)
        document = {**_equality_fields(filter), **copy.deepcopy(create), **copy.deepcopy(update)}
        for field, amount in increment.items():
            document[field] = amount
        self._check_unique(collection, document)
        self._docs(collection).append(document)
        return copy.deepcopy(document)

    async def count(self, collection, filter):
        return sum(1 for d in self._docs(collection) if matches(d, filter))

    async def group_count(self, collection, filter, field):
        counts: Dict[Any, int] = {}
        for document in self._docs(collection):
            if matches(document, filter):
                value = document.get(field) if isinstance(field, str) else tuple(document.get(f) for f in field)
                counts[value] = counts.get(value, 0) + 1
        return counts

    async def distinct(self, collection, field, filter):
        values = []
        for document in self._docs(collection):
            if matches(document, filter) and document.get(field) not in values:
                values.append(document.get(field))
        return values

    async def average(self, collection, filter, field):
        values = [d[field] for d in self._docs(collection) if matches(d, filter) and d.get(field) is not None]
        if not values:
            return None
        return sum(values) / len(values)

    @asynccontextmanager
    async def transaction(self):
        self.transactions_opened += 1
        yield self


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def admin():
    return Actor(id="admin-1", role=Role.ADMIN, email="admin@example.com")


@pytest.fixture
def editor():
    return Actor(id="editor-1", role=Role.EDITOR, email="editor@example.com")


@pytest.fixture
def other_editor():
    return Actor(id="editor-2", role=Role.EDITOR)


@pytest.fixture
def viewer():
    return Actor(id="viewer-1", role=Role.VIEWER)


@pytest.fixture
def visitor():
    return Actor(id="visitor-1", role=Role.VISITOR)


@pytest.fixture
def anonymous():
    return Actor.anonymous()


@pytest.fixture
def site_owner():
    return Actor(id="owner-1", role=Role.SITE_OWNER)


def make_site(storage: InMemoryStorage, site_id: str = "site-1", owner_id: str = "owner-1", status: str = "ACTIVE"):
    return storage.seed(
        SITES_COLLECTION,
        {"site_id": site_id, "owner_id": owner_id, "name": site_id, "status": status, "created_at": BASE_TIME},
    )


def make_content(storage: InMemoryStorage, **overrides) -> Dict[str, Any]:
    document = {
        "content_id": "content-1",
        "kind": ContentKind.BLOG_POST.value,
        "site_id": "site-1",
        "site_owner_id": "owner-1",
        "author_id": "editor-1",
        "title": "Lemon Tart",
        "slug": "lemon-tart",
        "body": "Zest, then bake.",
        "status": ContentStatus.PUBLISHED.value,
        "published_at": BASE_TIME,
        "scheduled_at": None,
        "comments_allowed": True,
        "created_at": BASE_TIME - timedelta(days=1),
        "updated_at": BASE_TIME - timedelta(days=1),
    }
    document.update(overrides)
    return storage.seed(CONTENT_ITEMS_COLLECTION, document)


@pytest.fixture
def seeded(storage):
    """Storage with an active site and one published post."""
    make_site(storage)
    make_content(storage)
    return storage
