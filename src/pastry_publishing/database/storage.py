"""
# Storage Interface

The governance services persist through the `Storage` interface defined here rather than touching
Motor collections directly. This keeps the services testable against an in-memory double and puts
every driver concern (deadlines, error translation, transactions) in one place.

## Operations

| Operation | Semantics |
|-----------|-----------|
| `get` / `find_one` / `find_many` | Reads; `find_many` supports sort and 1-based pagination |
| `create` | Insert; duplicate unique key raises `ConflictError` |
| `update` / `delete` / `delete_many` | Keyed or filtered writes |
| `upsert` | Atomic create-or-update with `$setOnInsert`, `$set` and `$inc` |
| `count` / `group_count` / `distinct` / `average` | Aggregations |
| `transaction()` | Async context manager yielding a transaction-bound `Storage` |

A **key** is either the primary id of the collection (see `PRIMARY_KEYS`) or a filter document.

## Failure Translation

`MongoStorage` bounds every call with `asyncio.wait_for` and translates driver failures:

- `DuplicateKeyError`, write conflicts → `ConflictError`
- deadline exceeded → `StorageTimeoutError`
- any other `PyMongoError` → `StorageUnavailableError` (driver detail kept on `__cause__` only)

## Usage Example

```python
storage = MongoStorage()
async with storage.transaction() as tx:
    await tx.delete_many("content_interactions", {"visitor_id": "u1", "content_id": "c1", "type": "dislike"})
    await tx.create("content_interactions", record)
```
"""

import asyncio
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Dict, List, Optional, Sequence, Tuple, Union

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, OperationFailure, PyMongoError

from pastry_publishing.config import settings
from pastry_publishing.database.governance_indexes import PRIMARY_KEYS
from pastry_publishing.database.manager import DatabaseManager, db_manager
from pastry_publishing.errors import ConflictError, StorageTimeoutError, StorageUnavailableError
from pastry_publishing.managers.logging_manager import get_logger

logger = get_logger(prefix="[Storage]")

Key = Union[str, Dict[str, Any]]
Filter = Dict[str, Any]
SortSpec = Optional[Sequence[Tuple[str, int]]]
GroupBy = Union[str, Sequence[str]]

# MongoDB server code for a write conflict inside a transaction
WRITE_CONFLICT_CODE = 112


def key_filter(collection: str, key: Key) -> Filter:
    """Turn a key (primary id or filter document) into a filter document."""
    if isinstance(key, dict):
        return dict(key)
    try:
        return {PRIMARY_KEYS[collection]: key}
    except KeyError:
        raise ValueError(f"Collection '{collection}' has no primary key; pass a filter document") from None


class Storage(ABC):
    """Async persistence interface consumed by the governance services."""

    @abstractmethod
    async def get(self, collection: str, key: Key) -> Optional[Dict[str, Any]]:
        """Fetch a document by key, `None` if absent."""

    @abstractmethod
    async def find_one(self, collection: str, filter: Filter) -> Optional[Dict[str, Any]]:
        """Fetch the first document matching a filter."""

    @abstractmethod
    async def find_many(
        self,
        collection: str,
        filter: Filter,
        page: int = 1,
        page_size: Optional[int] = None,
        sort: SortSpec = None,
    ) -> List[Dict[str, Any]]:
        """Fetch matching documents; `page` is 1-based and `page_size=None` returns everything."""

    @abstractmethod
    async def create(self, collection: str, document: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a document. Raises `ConflictError` on a unique-key violation."""

    @abstractmethod
    async def update(self, collection: str, key: Key, patch: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Apply a `$set` patch; returns the updated document or `None` if absent."""

    @abstractmethod
    async def delete(self, collection: str, key: Key) -> bool:
        """Delete one document; returns whether something was deleted."""

    @abstractmethod
    async def delete_many(self, collection: str, filter: Filter) -> int:
        """Delete matching documents; returns the number deleted."""

    @abstractmethod
    async def upsert(
        self,
        collection: str,
        key: Key,
        create: Dict[str, Any],
        update: Optional[Dict[str, Any]] = None,
        increment: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Atomically create or update the document identified by `key`.

        `create` fields are written only on insert, `update` fields always, and `increment` fields are
        added to (and start from zero on insert). Returns the document after the write.
        """

    @abstractmethod
    async def count(self, collection: str, filter: Filter) -> int:
        """Count matching documents."""

    @abstractmethod
    async def group_count(self, collection: str, filter: Filter, field: GroupBy) -> Dict[Any, int]:
        """
        Count matching documents grouped by the value of `field`.

        With a sequence of fields the keys are tuples of their values, in the given order.
        """

    @abstractmethod
    async def distinct(self, collection: str, field: str, filter: Filter) -> List[Any]:
        """Distinct values of `field` over matching documents."""

    @abstractmethod
    async def average(self, collection: str, filter: Filter, field: str) -> Optional[float]:
        """Average of `field` over matching documents, `None` when nothing matches."""

    @abstractmethod
    def transaction(self) -> Any:
        """Async context manager yielding a `Storage` whose writes commit or abort together."""


def _write_conflict(exc: OperationFailure) -> bool:
    return exc.code == WRITE_CONFLICT_CODE or exc.has_error_label("TransientTransactionError")


class MongoStorage(Storage):
    """
    `Storage` over Motor collections from `DatabaseManager`.

    Args:
        manager (DatabaseManager): Connected database manager. Defaults to the global `db_manager`.
        timeout (Optional[float]): Deadline in seconds for each call. Defaults to
            `settings.STORAGE_OPERATION_TIMEOUT_SECONDS`.
        session: Client session binding calls to an open transaction (set by `transaction()`).
    """

    def __init__(self, manager: Optional[DatabaseManager] = None, timeout: Optional[float] = None, session=None):
        self.manager = manager or db_manager
        self.timeout = timeout if timeout is not None else settings.STORAGE_OPERATION_TIMEOUT_SECONDS
        self._session = session

    def _collection(self, name: str):
        return self.manager.get_collection(name)

    async def _run(self, operation: str, awaitable: Awaitable[Any]) -> Any:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            logger.warning("Storage operation %s exceeded %.2fs deadline", operation, self.timeout)
            raise StorageTimeoutError(f"Storage operation '{operation}' timed out") from e
        except DuplicateKeyError as e:
            raise ConflictError("Resource already exists") from e
        except OperationFailure as e:
            if _write_conflict(e):
                raise ConflictError("Concurrent write conflict") from e
            logger.warning("Storage operation %s failed: %s", operation, e)
            raise StorageUnavailableError() from e
        except PyMongoError as e:
            logger.warning("Storage operation %s failed: %s", operation, e)
            raise StorageUnavailableError() from e

    async def get(self, collection: str, key: Key) -> Optional[Dict[str, Any]]:
        return await self.find_one(collection, key_filter(collection, key))

    async def find_one(self, collection: str, filter: Filter) -> Optional[Dict[str, Any]]:
        return await self._run(
            "find_one", self._collection(collection).find_one(filter, {"_id": 0}, session=self._session)
        )

    async def find_many(
        self,
        collection: str,
        filter: Filter,
        page: int = 1,
        page_size: Optional[int] = None,
        sort: SortSpec = None,
    ) -> List[Dict[str, Any]]:
        cursor = self._collection(collection).find(filter, {"_id": 0}, session=self._session)
        if sort:
            cursor = cursor.sort(list(sort))
        if page_size:
            cursor = cursor.skip((max(page, 1) - 1) * page_size).limit(page_size)
        return await self._run("find_many", cursor.to_list(length=None))

    async def create(self, collection: str, document: Dict[str, Any]) -> Dict[str, Any]:
        # insert_one adds _id to the dict it is given
        await self._run("create", self._collection(collection).insert_one(dict(document), session=self._session))
        return dict(document)

    async def update(self, collection: str, key: Key, patch: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return await self._run(
            "update",
            self._collection(collection).find_one_and_update(
                key_filter(collection, key),
                {"$set": patch},
                projection={"_id": 0},
                return_document=ReturnDocument.AFTER,
                session=self._session,
            ),
        )

    async def delete(self, collection: str, key: Key) -> bool:
        result = await self._run(
            "delete", self._collection(collection).delete_one(key_filter(collection, key), session=self._session)
        )
        return result.deleted_count > 0

    async def delete_many(self, collection: str, filter: Filter) -> int:
        result = await self._run(
            "delete_many", self._collection(collection).delete_many(filter, session=self._session)
        )
        return result.deleted_count

    async def upsert(
        self,
        collection: str,
        key: Key,
        create: Dict[str, Any],
        update: Optional[Dict[str, Any]] = None,
        increment: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        update = update or {}
        increment = increment or {}
        # A field may appear in only one update operator
        on_insert = {k: v for k, v in create.items() if k not in update and k not in increment}
        operations: Dict[str, Any] = {}
        if on_insert:
            operations["$setOnInsert"] = on_insert
        if update:
            operations["$set"] = update
        if increment:
            operations["$inc"] = increment
        return await self._run(
            "upsert",
            self._collection(collection).find_one_and_update(
                key_filter(collection, key),
                operations,
                projection={"_id": 0},
                upsert=True,
                return_document=ReturnDocument.AFTER,
                session=self._session,
            ),
        )

    async def count(self, collection: str, filter: Filter) -> int:
        return await self._run(
            "count", self._collection(collection).count_documents(filter, session=self._session)
        )

    async def group_count(self, collection: str, filter: Filter, field: GroupBy) -> Dict[Any, int]:
        fields = None if isinstance(field, str) else list(field)
        group_id: Any = f"${field}" if fields is None else {name: f"${name}" for name in fields}
        pipeline = [
            {"$match": filter},
            {"$group": {"_id": group_id, "count": {"$sum": 1}}},
        ]
        rows = await self._run(
            "group_count",
            self._collection(collection).aggregate(pipeline, session=self._session).to_list(length=None),
        )
        if fields is None:
            return {row["_id"]: row["count"] for row in rows}
        return {tuple((row["_id"] or {}).get(name) for name in fields): row["count"] for row in rows}

    async def distinct(self, collection: str, field: str, filter: Filter) -> List[Any]:
        return await self._run(
            "distinct", self._collection(collection).distinct(field, filter, session=self._session)
        )

    async def average(self, collection: str, filter: Filter, field: str) -> Optional[float]:
        pipeline = [
            {"$match": filter},
            {"$group": {"_id": None, "avg": {"$avg": f"${field}"}}},
        ]
        rows = await self._run(
            "average",
            self._collection(collection).aggregate(pipeline, session=self._session).to_list(length=None),
        )
        if not rows or rows[0].get("avg") is None:
            return None
        return float(rows[0]["avg"])

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["MongoStorage"]:
        """
        Open a multi-document transaction when the deployment supports it.

        On a standalone server (or when already inside a transaction) this yields `self` and each
        write commits on its own; callers rely on unique indexes plus retry for consistency there.
        """
        if self._session is not None or not self.manager.transactions_supported:
            yield self
            return

        try:
            async with await self.manager.client.start_session() as session:
                async with session.start_transaction():
                    yield MongoStorage(self.manager, self.timeout, session=session)
        except DuplicateKeyError as e:
            raise ConflictError("Resource already exists") from e
        except OperationFailure as e:
            if _write_conflict(e):
                raise ConflictError("Concurrent write conflict") from e
            logger.warning("Transaction failed: %s", e)
            raise StorageUnavailableError() from e
        except PyMongoError as e:
            logger.warning("Transaction failed: %s", e)
            raise StorageUnavailableError() from e
