"""
# Governance Index Definitions

This module declares the **MongoDB indexes** the governance core depends on. Several of them are
load-bearing for correctness rather than speed: the storage layer enforces uniqueness through them.

## Uniqueness Guarantees

| Collection | Unique key | Guarantees |
|------------|------------|------------|
| `content_interactions` | `(visitor_id, content_id, type)` | At most one interaction per key, even under concurrent requests |
| `visitor_sessions` | `visitor_id` | One session aggregate per visitor for increment upserts |
| `content_items` | `(site_id, slug)` | Slugs unique within a site |
| every collection | its primary id | No duplicate records |

## Usage Example

```python
from pastry_publishing.database.governance_indexes import (
    create_governance_indexes,
    verify_governance_indexes,
)

await create_governance_indexes()
report = await verify_governance_indexes()
```

## Module Attributes

Attributes:
    GOVERNANCE_INDEXES (List[Dict]): Index specifications across the governance collections.
    logger (Logger): Logger for index operations (`[GovernanceIndexes]`).
"""

from typing import Any, Dict, List, Tuple

from pymongo.errors import PyMongoError

from pastry_publishing.database.manager import db_manager
from pastry_publishing.managers.logging_manager import get_logger

logger = get_logger(prefix="[GovernanceIndexes]")

SITES_COLLECTION = "sites"
CONTENT_ITEMS_COLLECTION = "content_items"
INTERACTIONS_COLLECTION = "content_interactions"
COMMENTS_COLLECTION = "content_comments"
VIEWS_COLLECTION = "content_views"
VISITOR_SESSIONS_COLLECTION = "visitor_sessions"

# Primary key field of each collection
PRIMARY_KEYS: Dict[str, str] = {
    SITES_COLLECTION: "site_id",
    CONTENT_ITEMS_COLLECTION: "content_id",
    COMMENTS_COLLECTION: "comment_id",
    VIEWS_COLLECTION: "view_id",
    VISITOR_SESSIONS_COLLECTION: "visitor_id",
}

GOVERNANCE_INDEXES: List[Dict[str, Any]] = [
    # Sites
    {
        "collection": SITES_COLLECTION,
        "index": [("site_id", 1)],
        "options": {"name": "site_id_unique_idx", "unique": True},
    },
    {
        "collection": SITES_COLLECTION,
        "index": [("owner_id", 1)],
        "options": {"name": "owner_idx"},
    },
    # Content items
    {
        "collection": CONTENT_ITEMS_COLLECTION,
        "index": [("content_id", 1)],
        "options": {"name": "content_id_unique_idx", "unique": True},
    },
    {
        "collection": CONTENT_ITEMS_COLLECTION,
        "index": [("site_id", 1), ("slug", 1)],
        "options": {"name": "site_slug_unique_idx", "unique": True},
    },
    {
        "collection": CONTENT_ITEMS_COLLECTION,
        "index": [("site_id", 1), ("status", 1), ("published_at", -1)],
        "options": {"name": "site_status_published_idx"},
    },
    {
        "collection": CONTENT_ITEMS_COLLECTION,
        "index": [("author_id", 1), ("status", 1)],
        "options": {"name": "author_status_idx"},
    },
    # Interactions
    {
        "collection": INTERACTIONS_COLLECTION,
        "index": [("visitor_id", 1), ("content_id", 1), ("type", 1)],
        "options": {"name": "visitor_content_type_unique_idx", "unique": True},
    },
    {
        "collection": INTERACTIONS_COLLECTION,
        "index": [("content_id", 1), ("type", 1)],
        "options": {"name": "content_type_idx"},
    },
    {
        "collection": INTERACTIONS_COLLECTION,
        "index": [("content_id", 1), ("created_at", -1)],
        "options": {"name": "content_created_idx"},
    },
    # Comments
    {
        "collection": COMMENTS_COLLECTION,
        "index": [("comment_id", 1)],
        "options": {"name": "comment_id_unique_idx", "unique": True},
    },
    {
        "collection": COMMENTS_COLLECTION,
        "index": [("content_id", 1), ("approved", 1), ("created_at", -1)],
        "options": {"name": "content_approved_created_idx"},
    },
    {
        "collection": COMMENTS_COLLECTION,
        "index": [("parent_id", 1), ("created_at", 1)],
        "options": {"name": "parent_created_idx"},
    },
    # Views
    {
        "collection": VIEWS_COLLECTION,
        "index": [("view_id", 1)],
        "options": {"name": "view_id_unique_idx", "unique": True},
    },
    {
        "collection": VIEWS_COLLECTION,
        "index": [("content_id", 1), ("created_at", -1)],
        "options": {"name": "content_created_idx"},
    },
    {
        "collection": VIEWS_COLLECTION,
        "index": [("visitor_id", 1)],
        "options": {"name": "visitor_idx"},
    },
    # Visitor sessions
    {
        "collection": VISITOR_SESSIONS_COLLECTION,
        "index": [("visitor_id", 1)],
        "options": {"name": "visitor_id_unique_idx", "unique": True},
    },
    {
        "collection": VISITOR_SESSIONS_COLLECTION,
        "index": [("last_seen", -1)],
        "options": {"name": "last_seen_idx"},
    },
]


def unique_keys(collection_name: str) -> List[Tuple[str, ...]]:
    """Return the field tuples of every unique index declared for a collection."""
    return [
        tuple(field for field, _ in spec["index"])
        for spec in GOVERNANCE_INDEXES
        if spec["collection"] == collection_name and spec.get("options", {}).get("unique")
    ]


async def create_governance_indexes() -> bool:
    """
    Create all governance indexes.

    Idempotent: existing indexes are left alone. Individual failures are logged as warnings and do
    not stop the remaining indexes from being created.

    Returns:
        bool: `True` if the process completed, `False` if a critical error prevented it.
    """
    try:
        logger.info("Creating governance indexes...")

        created_count = 0
        failed_count = 0

        for index_spec in GOVERNANCE_INDEXES:
            collection_name = index_spec["collection"]
            options = index_spec.get("options", {})
            index_name = options.get("name", "unnamed")

            try:
                collection = db_manager.get_collection(collection_name)
                await collection.create_index(index_spec["index"], **options)
                created_count += 1
                logger.debug("Created index %s on collection %s", index_name, collection_name)
            except PyMongoError as e:
                failed_count += 1
                logger.warning("Failed to create index %s on collection %s: %s", index_name, collection_name, e)

        logger.info(
            "Governance index creation completed: %d/%d indexes created, %d failed/already exist",
            created_count,
            len(GOVERNANCE_INDEXES),
            failed_count,
        )
        return True

    except ConnectionError as e:
        logger.error("Failed to create governance indexes: %s", e, exc_info=True)
        return False


async def verify_governance_indexes() -> Dict[str, Any]:
    """
    Check that every declared index exists.

    Returns:
        Dict[str, Any]: `total_indexes`, `verified_indexes`, `missing_indexes` and
        `collections_checked`; an `error` key is added when verification could not run.
    """
    try:
        logger.info("Verifying governance indexes...")
        results: Dict[str, Any] = {
            "total_indexes": len(GOVERNANCE_INDEXES),
            "verified_indexes": 0,
            "missing_indexes": [],
            "collections_checked": set(),
        }
        existing: Dict[str, List[str]] = {}

        for index_spec in GOVERNANCE_INDEXES:
            collection_name = index_spec["collection"]
            index_name = index_spec.get("options", {}).get("name", "unnamed")
            results["collections_checked"].add(collection_name)

            try:
                if collection_name not in existing:
                    collection = db_manager.get_collection(collection_name)
                    indexes = await collection.list_indexes().to_list(length=None)
                    existing[collection_name] = [idx.get("name") for idx in indexes]

                if index_name in existing[collection_name]:
                    results["verified_indexes"] += 1
                else:
                    results["missing_indexes"].append(
                        {"collection": collection_name, "index_name": index_name, "index_spec": index_spec["index"]}
                    )
                    logger.warning("Missing index %s on collection %s", index_name, collection_name)
            except PyMongoError as e:
                logger.warning("Failed to verify index %s on collection %s: %s", index_name, collection_name, e)
                results["missing_indexes"].append(
                    {"collection": collection_name, "index_name": index_name, "error": str(e)}
                )

        results["collections_checked"] = sorted(results["collections_checked"])
        logger.info(
            "Governance index verification completed: %d/%d indexes verified",
            results["verified_indexes"],
            results["total_indexes"],
        )
        return results

    except ConnectionError as e:
        logger.error("Failed to verify governance indexes: %s", e, exc_info=True)
        return {
            "total_indexes": len(GOVERNANCE_INDEXES),
            "verified_indexes": 0,
            "missing_indexes": [],
            "collections_checked": [],
            "error": str(e),
        }
