"""
# Database Management Module

This module provides the **MongoDB connection lifecycle** for the governance core through the
`DatabaseManager` class, built on the **Motor** async driver.

## Key Features

### 1. Connection Lifecycle Management
- **Async Initialization**: Connection is established during application startup via `connect()`.
- **Graceful Shutdown**: `disconnect()` closes the pooled connections.
- **Health Monitoring**: `health_check()` pings the server without raising.

### 2. Resilience
- **Exponential Backoff**: Connection attempts are retried with 1s, 2s, 4s delays.
- **Transaction Support Detection**: Replica sets and mongos routers are detected after connecting so
  `MongoStorage.transaction()` knows whether it can open a real multi-document transaction.

## Usage Example

```python
from pastry_publishing.database import db_manager

await db_manager.connect()
items = db_manager.get_collection("content_items")
```

## Module Attributes

Attributes:
    db_logger (Logger): Logger for database operations (`[DATABASE]`).
    perf_logger (Logger): Logger for timing metrics (`[DB_PERFORMANCE]`).
    health_logger (Logger): Logger for health checks (`[DB_HEALTH]`).
    db_manager (DatabaseManager): Global instance used throughout the application.
"""

import asyncio
import time
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo.errors import ConnectionFailure, PyMongoError, ServerSelectionTimeoutError

from pastry_publishing.config import settings
from pastry_publishing.managers.logging_manager import get_logger

db_logger = get_logger(prefix="[DATABASE]")
perf_logger = get_logger(prefix="[DB_PERFORMANCE]")
health_logger = get_logger(prefix="[DB_HEALTH]")


class DatabaseManager:
    """
    Owns the Motor client and database handle.

    **Transaction Support Detection:**
    After connecting, a `hello` command (or `isMaster` for older servers) decides whether the
    deployment supports transactions:
    - **Replica Set** (`setName` present): `transactions_supported = True`
    - **Sharded Cluster** (`msg == 'isdbgrid'`): `transactions_supported = True`
    - **Standalone**: `transactions_supported = False`
    """

    def __init__(self):
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = None
        self._connection_retries = 3
        # Set after connect(); True on a replica set or mongos
        self.transactions_supported: Optional[bool] = None

    def _connection_string(self) -> str:
        if settings.MONGODB_USERNAME and settings.MONGODB_PASSWORD:
            password = settings.MONGODB_PASSWORD.get_secret_value()
            db_logger.debug("Using authenticated connection to MongoDB")
            return (
                f"mongodb://{settings.MONGODB_USERNAME}:"
                f"{password}@"
                f"{settings.MONGODB_URL.replace('mongodb://', '')}"
            )
        db_logger.debug("Using unauthenticated connection to MongoDB")
        return settings.MONGODB_URL

    async def _detect_transaction_support(self) -> bool:
        try:
            try:
                hello = await self.client.admin.command({"hello": 1})
            except PyMongoError:
                hello = await self.client.admin.command({"isMaster": 1})
            return bool(hello.get("setName") or hello.get("msg") == "isdbgrid")
        except PyMongoError as e:
            db_logger.warning("Could not detect transaction support, assuming none: %s", e)
            return False

    async def connect(self):
        """
        Establish connection to MongoDB with exponential backoff retry logic.

        Raises:
            ServerSelectionTimeoutError: If MongoDB is unreachable after all retry attempts.
            ConnectionFailure: If authentication fails or connection is refused.
        """
        start_time = time.time()
        db_logger.info("Starting MongoDB connection process")

        for attempt in range(self._connection_retries):
            attempt_start = time.time()
            try:
                db_logger.info("Connection attempt %d/%d to MongoDB", attempt + 1, self._connection_retries)
                db_logger.info(
                    "MongoDB connection config - URL: %s, Database: %s, MaxPool: %d, MinPool: %d, "
                    "ServerTimeout: %dms, ConnTimeout: %dms",
                    settings.MONGODB_URL,
                    settings.MONGODB_DATABASE,
                    settings.MONGODB_MAX_POOL_SIZE,
                    settings.MONGODB_MIN_POOL_SIZE,
                    settings.MONGODB_SERVER_SELECTION_TIMEOUT,
                    settings.MONGODB_CONNECTION_TIMEOUT,
                )

                self.client = AsyncIOMotorClient(
                    self._connection_string(),
                    serverSelectionTimeoutMS=settings.MONGODB_SERVER_SELECTION_TIMEOUT,
                    connectTimeoutMS=settings.MONGODB_CONNECTION_TIMEOUT,
                    maxPoolSize=settings.MONGODB_MAX_POOL_SIZE,
                    minPoolSize=settings.MONGODB_MIN_POOL_SIZE,
                    tz_aware=True,
                )
                self.database = self.client[settings.MONGODB_DATABASE]

                ping_start = time.time()
                await self.client.admin.command("ping")
                ping_duration = time.time() - ping_start

                self.transactions_supported = await self._detect_transaction_support()

                perf_logger.info(
                    "MongoDB connection established successfully in %.3fs (ping: %.3fs)",
                    time.time() - start_time,
                    ping_duration,
                )
                db_logger.info(
                    "Connected to MongoDB database: %s (transactions supported: %s)",
                    settings.MONGODB_DATABASE,
                    self.transactions_supported,
                )
                return

            except (ServerSelectionTimeoutError, ConnectionFailure) as e:
                perf_logger.warning(
                    "Connection attempt %d failed after %.3fs", attempt + 1, time.time() - attempt_start
                )
                db_logger.warning(
                    "Failed to connect to MongoDB (attempt %d/%d): %s", attempt + 1, self._connection_retries, e
                )
                if attempt == self._connection_retries - 1:
                    db_logger.error("All connection attempts failed after %.3fs", time.time() - start_time)
                    raise

                backoff_time = 2**attempt
                db_logger.info("Waiting %.1fs before retry (exponential backoff)", backoff_time)
                await asyncio.sleep(backoff_time)

    async def disconnect(self):
        """Close the Motor client. Safe to call when not connected."""
        if self.client:
            self.client.close()
            db_logger.info("Successfully disconnected from MongoDB")
        else:
            db_logger.warning("Disconnect called but no active MongoDB connection found")

    async def health_check(self) -> bool:
        """
        Verify MongoDB connection health with a `ping`.

        Returns:
            bool: `True` if the database responds, `False` otherwise. Never raises.
        """
        if self.client is None:
            health_logger.warning("Health check failed: No database client available")
            return False
        start_time = time.time()
        try:
            await self.client.admin.command("ping")
            perf_logger.debug("Database health check completed in %.3fs", time.time() - start_time)
            return True
        except (ServerSelectionTimeoutError, ConnectionFailure) as e:
            health_logger.error("Database health check failed: %s", e)
            return False
        except PyMongoError as e:
            health_logger.error("Unexpected error during health check: %s", e)
            return False

    def get_collection(self, collection_name: str) -> AsyncIOMotorCollection:
        """
        Retrieve a collection from the connected database.

        Raises:
            ConnectionError: If `connect()` has not been called.
        """
        if self.database is None:
            raise ConnectionError("Database not connected")
        return self.database[collection_name]


db_manager = DatabaseManager()
