"""
# Interaction Ledger Service

This module manages **visitor interactions** with content: likes and dislikes (toggles) and
non-exclusive actions such as shares, prints, saves and copies.

## Invariants

1.  **Uniqueness**: At most one record per `(visitor_id, content_id, type)`. Enforced by the
    `visitor_content_type_unique_idx` unique index, so it holds under concurrent requests.
2.  **Mutual exclusion**: `like` and `dislike` never coexist for a visitor on a piece of content.

## Toggle Algorithm

```
1. delete opposite type            (like <-> dislike)
2. delete requested type  ── deleted? ──▶ "removed"
3. create requested type
4. delete opposite type created at or before step 3   ──▶ "added"
```

The steps run inside `Storage.transaction()`. On deployments without transactions, step 4 settles a
lost race between opposite toggles to whichever was created last, and a unique-key conflict makes the
whole toggle retry once.

## Gating

| Caller | Mutations | `get_counts` |
|--------|-----------|--------------|
| Anonymous | `UnauthorizedError` | allowed |
| VISITOR | `ForbiddenError` (must upgrade) | allowed |
| VIEWER and above | allowed | allowed |

Unknown interaction types fail with `InvalidArgumentError`; content the caller cannot see fails with
`NotFoundError`.
"""

from typing import Dict, Iterable, List, Optional, Set, Union

from pastry_publishing.config import settings
from pastry_publishing.database.governance_indexes import INTERACTIONS_COLLECTION
from pastry_publishing.database.storage import MongoStorage, Storage
from pastry_publishing.errors import ConflictError, ForbiddenError, InvalidArgumentError, UnauthorizedError
from pastry_publishing.managers.logging_manager import get_logger
from pastry_publishing.models.engagement_models import (
    OPPOSITE_TOGGLE,
    TOGGLE_TYPES,
    InteractionAction,
    InteractionCounts,
    InteractionRecord,
    InteractionType,
    ToggleResult,
)
from pastry_publishing.models.governance_models import Actor
from pastry_publishing.services import policy_engine
from pastry_publishing.services.content_lifecycle import fetch_visible_content
from pastry_publishing.utils import clock
from pastry_publishing.utils.documents import to_document

logger = get_logger(prefix="[InteractionLedger]")

TOGGLE_TYPE_VALUES = {t.value for t in TOGGLE_TYPES}
MAX_ATTEMPTS = 2


class InteractionLedger:
    """
    Service recording visitor interactions.

    Args:
        storage (Optional[Storage]): Persistence collaborator. Defaults to `MongoStorage`.
        custom_types (Optional[Iterable[str]]): Extra non-exclusive types. Defaults to
            `settings.INTERACTION_CUSTOM_TYPES`.
    """

    def __init__(self, storage: Optional[Storage] = None, custom_types: Optional[Iterable[str]] = None):
        self.storage = storage or MongoStorage()
        self.collection = INTERACTIONS_COLLECTION
        if custom_types is None:
            custom_types = settings.INTERACTION_CUSTOM_TYPES
        self.custom_types = [t.strip().lower() for t in custom_types if t and t.strip()]

    @property
    def known_types(self) -> List[str]:
        types = [t.value for t in InteractionType]
        for custom in self.custom_types:
            if custom not in types:
                types.append(custom)
        return types

    def _validate_type(self, interaction_type: Union[str, InteractionType]) -> str:
        value = interaction_type.value if isinstance(interaction_type, InteractionType) else str(interaction_type)
        if value not in self.known_types:
            raise InvalidArgumentError(
                f"Invalid interaction type '{value}'",
                details={"valid_types": self.known_types},
            )
        return value

    def _require_interactive(self, actor: Optional[Actor]):
        if actor is None or actor.is_anonymous:
            raise UnauthorizedError()
        if not policy_engine.can_interact(actor):
            raise ForbiddenError("Upgrade your account to interact with content")

    @staticmethod
    def _key(visitor_id: str, content_id: str, interaction_type: str) -> Dict[str, str]:
        return {"visitor_id": visitor_id, "content_id": content_id, "type": interaction_type}

    async def _toggle_once(
        self, visitor_id: str, content_id: str, interaction_type: str, value: Optional[str]
    ) -> ToggleResult:
        opposite = OPPOSITE_TOGGLE[InteractionType(interaction_type)].value
        key = self._key(visitor_id, content_id, interaction_type)

        async with self.storage.transaction() as tx:
            await tx.delete_many(self.collection, self._key(visitor_id, content_id, opposite))

            if await tx.delete(self.collection, key):
                return ToggleResult(action=InteractionAction.REMOVED)

            now = clock.utc_now()
            record = InteractionRecord(
                visitor_id=visitor_id,
                content_id=content_id,
                type=interaction_type,
                value=value,
                created_at=now,
                updated_at=now,
            )
            await tx.create(self.collection, to_document(record))

            # An opposite toggle racing us may have landed after step 1
            await tx.delete_many(
                self.collection,
                {**self._key(visitor_id, content_id, opposite), "created_at": {"$lte": now}},
            )
            return ToggleResult(action=InteractionAction.ADDED, record=record)

    async def toggle(
        self,
        actor: Optional[Actor],
        content_id: str,
        interaction_type: Union[str, InteractionType],
        value: Optional[str] = None,
    ) -> ToggleResult:
        """
        Toggle a mutually exclusive interaction (like/dislike).

        Returns:
            ToggleResult: `added` with the new record, or `removed`.

        Raises:
            UnauthorizedError: Anonymous caller.
            ForbiddenError: VISITOR caller.
            InvalidArgumentError: Unknown or non-toggle type.
            NotFoundError: Content absent or hidden.
            ConflictError: Still conflicting after one retry.
        """
        self._require_interactive(actor)
        interaction_type = self._validate_type(interaction_type)
        if interaction_type not in TOGGLE_TYPE_VALUES:
            raise InvalidArgumentError(f"'{interaction_type}' is not a toggle interaction")
        await fetch_visible_content(self.storage, actor, content_id)

        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                result = await self._toggle_once(actor.id, content_id, interaction_type, value)
                logger.info(
                    "Toggle %s by %s on %s: %s", interaction_type, actor.id, content_id, result.action.value
                )
                return result
            except ConflictError:
                if attempt == MAX_ATTEMPTS:
                    logger.warning("Toggle %s by %s on %s still conflicting", interaction_type, actor.id, content_id)
                    raise
                logger.info("Toggle %s by %s on %s conflicted, retrying", interaction_type, actor.id, content_id)

    async def record(
        self,
        actor: Optional[Actor],
        content_id: str,
        interaction_type: Union[str, InteractionType],
        value: Optional[str] = None,
    ) -> InteractionRecord:
        """
        Record a non-exclusive interaction by upsert on its unique key.

        Repeating the call keeps a single record: `value` is last-write-wins and `updated_at` is bumped.
        """
        self._require_interactive(actor)
        interaction_type = self._validate_type(interaction_type)
        if interaction_type in TOGGLE_TYPE_VALUES:
            raise InvalidArgumentError(f"'{interaction_type}' is a toggle interaction")
        await fetch_visible_content(self.storage, actor, content_id)

        key = self._key(actor.id, content_id, interaction_type)
        for attempt in range(1, MAX_ATTEMPTS + 1):
            now = clock.utc_now()
            try:
                document = await self.storage.upsert(
                    self.collection,
                    key,
                    create={**key, "created_at": now},
                    update={"value": value, "updated_at": now},
                )
                break
            except ConflictError:
                # Two first-time upserts raced on the unique index; the retry updates the winner
                if attempt == MAX_ATTEMPTS:
                    raise
                logger.info("Record %s by %s on %s conflicted, retrying", interaction_type, actor.id, content_id)

        logger.debug("Recorded %s by %s on %s", interaction_type, actor.id, content_id)
        return InteractionRecord(**document)

    async def interact(
        self,
        actor: Optional[Actor],
        content_id: str,
        interaction_type: Union[str, InteractionType],
        value: Optional[str] = None,
    ) -> ToggleResult:
        """Dispatch toggle types to `toggle` and everything else to `record`."""
        self._require_interactive(actor)
        interaction_type = self._validate_type(interaction_type)
        if interaction_type in TOGGLE_TYPE_VALUES:
            return await self.toggle(actor, content_id, interaction_type, value)
        record = await self.record(actor, content_id, interaction_type, value)
        return ToggleResult(action=InteractionAction.RECORDED, record=record)

    async def get_counts(self, content_id: str, actor: Optional[Actor] = None) -> InteractionCounts:
        """
        Count interactions per type. Every known type is present, defaulting to 0.

        Available to anonymous callers for content they can see.
        """
        await fetch_visible_content(self.storage, actor, content_id)
        grouped = await self.storage.group_count(self.collection, {"content_id": content_id}, "type")

        counts = {t: 0 for t in self.known_types}
        for interaction_type, count in grouped.items():
            if interaction_type is None:
                continue
            counts[str(interaction_type)] = max(int(count), 0)
        return InteractionCounts(content_id=content_id, counts=counts)

    async def get_user_state(self, actor: Optional[Actor], content_id: str) -> Set[str]:
        """Interaction types currently recorded by the actor on the content; empty for anonymous callers."""
        await fetch_visible_content(self.storage, actor, content_id)
        if actor is None or actor.is_anonymous:
            return set()
        documents = await self.storage.find_many(
            self.collection, {"visitor_id": actor.id, "content_id": content_id}
        )
        return {document["type"] for document in documents}


interaction_ledger = InteractionLedger()
