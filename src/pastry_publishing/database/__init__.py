"""
# Database Package

The persistence layer of the governance core, built on **Motor** (async MongoDB driver).

- **`manager`**: `DatabaseManager` and the `db_manager` instance handling the connection lifecycle.
- **`storage`**: The `Storage` interface used by services and its `MongoStorage` implementation.
- **`governance_indexes`**: Index specifications, including the unique indexes the services rely on.

## Usage

```python
from pastry_publishing.database import db_manager

await db_manager.connect()
await create_governance_indexes()
...
await db_manager.disconnect()
```

## Module Attributes

Attributes:
    db_manager (DatabaseManager): The global instance for database access.
    DatabaseManager (class): The manager class (exported for type hinting).
"""

from pastry_publishing.database.manager import DatabaseManager, db_manager

__all__ = ["DatabaseManager", "db_manager"]
