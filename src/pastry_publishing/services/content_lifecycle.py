"""
# Content Lifecycle Service

This module implements the **content status state machine** and its publish-timestamp semantics.
Every transition is authorized by the policy engine before anything is written, and a rejected
transition never leaves a partial write behind.

## State Machine

```
            publish                 suspend
   DRAFT ────────────▶ PUBLISHED ────────────▶ SUSPENDED
     ▲                   │   ▲                    │
     └──── unpublish ────┘   └───── unsuspend ────┘

   DRAFT / PUBLISHED / SUSPENDED ── archive ──▶ ARCHIVED (terminal)
```

| Transition | Authorization | `published_at` |
|------------|---------------|----------------|
| DRAFT → PUBLISHED | `can_publish` | set to now if unset, otherwise preserved |
| PUBLISHED → DRAFT | `can_edit_content` | cleared |
| PUBLISHED → SUSPENDED | `can_suspend` | untouched |
| SUSPENDED → PUBLISHED | `can_unsuspend` | untouched |
| any → ARCHIVED | `can_delete_content` | untouched |

Moving to the current state is a no-op. Every other move, including any move out of `ARCHIVED`,
fails with `PreconditionFailedError`.

## Failure Semantics

- Content that is absent or hidden from the actor → `NotFoundError`
- Policy denies the transition → `ForbiddenError`, no write
- Publishing into a site that is not `ACTIVE` → `PreconditionFailedError`
- Slug already used on the same site → `ConflictError`
- The item changed status between read and write → `ConflictError`

## Usage Example

```python
from pastry_publishing.services.content_lifecycle import content_lifecycle

item = await content_lifecycle.publish(actor, "cnt_1a2b3c")
```
"""

from typing import Any, Dict, Optional, Union
import uuid

from pastry_publishing.database.governance_indexes import CONTENT_ITEMS_COLLECTION, SITES_COLLECTION
from pastry_publishing.database.storage import MongoStorage, Storage
from pastry_publishing.errors import (
    ConflictError,
    ForbiddenError,
    InvalidArgumentError,
    NotFoundError,
    PreconditionFailedError,
    UnauthorizedError,
)
from pastry_publishing.managers.logging_manager import get_logger
from pastry_publishing.models.governance_models import (
    Actor,
    ContentItem,
    ContentStatus,
    ContentUpdateRequest,
    CreateContentRequest,
    Site,
    SiteStatus,
    slugify,
)
from pastry_publishing.services import policy_engine
from pastry_publishing.utils import clock
from pastry_publishing.utils.documents import parse_request, to_document

logger = get_logger(prefix="[ContentLifecycle]")

# (from, to) -> transition name
TRANSITIONS: Dict[tuple, str] = {
    (ContentStatus.DRAFT, ContentStatus.PUBLISHED): "publish",
    (ContentStatus.PUBLISHED, ContentStatus.DRAFT): "unpublish",
    (ContentStatus.PUBLISHED, ContentStatus.SUSPENDED): "suspend",
    (ContentStatus.SUSPENDED, ContentStatus.PUBLISHED): "unsuspend",
    (ContentStatus.DRAFT, ContentStatus.ARCHIVED): "archive",
    (ContentStatus.PUBLISHED, ContentStatus.ARCHIVED): "archive",
    (ContentStatus.SUSPENDED, ContentStatus.ARCHIVED): "archive",
}

# Editable fields that may be cleared with an explicit null
NULLABLE_FIELDS = {"scheduled_at"}


def parse_status(value: Union[ContentStatus, str]) -> ContentStatus:
    """Parse a caller-supplied status, rejecting unknown values with `InvalidArgumentError`."""
    try:
        return ContentStatus(value)
    except ValueError:
        raise InvalidArgumentError(
            f"Invalid status '{value}'",
            details={"valid_statuses": [s.value for s in ContentStatus]},
        ) from None


def _authorized(transition: str, actor: Optional[Actor], item: ContentItem) -> bool:
    if transition == "publish":
        return policy_engine.can_publish(actor, item)
    if transition == "unpublish":
        return policy_engine.can_edit_content(actor, item)
    if transition == "suspend":
        return policy_engine.can_suspend(actor, item)
    if transition == "unsuspend":
        return policy_engine.can_unsuspend(actor, item)
    if transition == "archive":
        return policy_engine.can_delete_content(actor, item)
    return False


async def fetch_visible_content(storage: Storage, actor: Optional[Actor], content_id: str) -> ContentItem:
    """
    Load a content item the actor is allowed to see.

    Raises:
        NotFoundError: If the item does not exist or is hidden from the actor.
    """
    document = await storage.get(CONTENT_ITEMS_COLLECTION, content_id)
    if document is None:
        raise NotFoundError("Content not found")
    item = ContentItem(**document)
    if not policy_engine.can_view_content(actor, item):
        raise NotFoundError("Content not found")
    return item


class ContentLifecycle:
    """
    Service applying authorized status transitions and content edits.

    Args:
        storage (Optional[Storage]): Persistence collaborator. Defaults to `MongoStorage`.
    """

    def __init__(self, storage: Optional[Storage] = None):
        self.storage = storage or MongoStorage()
        self.items_collection = CONTENT_ITEMS_COLLECTION
        self.sites_collection = SITES_COLLECTION

    async def get_content(self, actor: Optional[Actor], content_id: str) -> ContentItem:
        return await fetch_visible_content(self.storage, actor, content_id)

    async def _get_site(self, site_id: str) -> Optional[Site]:
        document = await self.storage.get(self.sites_collection, site_id)
        return Site(**document) if document else None

    async def _ensure_slug_available(self, site_id: str, slug: str, content_id: Optional[str] = None):
        query: Dict[str, Any] = {"site_id": site_id, "slug": slug}
        if content_id:
            query["content_id"] = {"$ne": content_id}
        if await self.storage.find_one(self.items_collection, query):
            raise ConflictError(f"Slug '{slug}' is already used on this site")

    async def _plan_transition(
        self, actor: Optional[Actor], item: ContentItem, target: ContentStatus
    ) -> Dict[str, Any]:
        """
        Validate and authorize a transition, returning the fields it changes.

        Nothing is written here, so a failure leaves the item untouched.
        """
        if item.status == ContentStatus.ARCHIVED:
            raise PreconditionFailedError("Archived content cannot change status")

        transition = TRANSITIONS.get((item.status, target))
        if transition is None:
            raise PreconditionFailedError(f"Cannot move content from {item.status.value} to {target.value}")

        if not _authorized(transition, actor, item):
            logger.info(
                "Denied %s of %s for actor %s (%s)",
                transition,
                item.content_id,
                actor.id if actor else None,
                actor.role.value if actor else None,
            )
            raise ForbiddenError(f"Not allowed to {transition} this content")

        now = clock.utc_now()
        changes: Dict[str, Any] = {"status": target.value, "updated_at": now}

        if target == ContentStatus.PUBLISHED:
            site = await self._get_site(item.site_id)
            if site is None or site.status != SiteStatus.ACTIVE:
                raise PreconditionFailedError("Content can only be published on an active site")
            if transition == "publish" and item.published_at is None:
                changes["published_at"] = now
        elif transition == "unpublish":
            changes["published_at"] = None

        return changes

    async def _commit(self, item: ContentItem, changes: Dict[str, Any]) -> ContentItem:
        # Conditional on the status we authorized against
        updated = await self.storage.update(
            self.items_collection,
            {"content_id": item.content_id, "status": item.status.value},
            changes,
        )
        if updated is None:
            raise ConflictError("Content was modified concurrently, retry the request")
        return ContentItem(**updated)

    async def transition(
        self, actor: Optional[Actor], content_id: str, target: Union[ContentStatus, str]
    ) -> ContentItem:
        """
        Move a content item to `target` status.

        Args:
            actor (Optional[Actor]): Caller.
            content_id (str): Item to transition.
            target (Union[ContentStatus, str]): Desired status.

        Returns:
            ContentItem: The item after the transition.

        Raises:
            NotFoundError: Item absent or hidden.
            ForbiddenError: Policy denies the transition.
            InvalidArgumentError: Unknown target status.
            PreconditionFailedError: Transition not allowed from the current state, or publishing into
                an inactive site.
            ConflictError: The item changed concurrently.
        """
        target = parse_status(target)
        item = await fetch_visible_content(self.storage, actor, content_id)

        if item.status == target:
            logger.debug("Content %s already %s, nothing to do", content_id, target.value)
            return item

        changes = await self._plan_transition(actor, item, target)
        updated = await self._commit(item, changes)
        logger.info("Content %s moved %s -> %s", content_id, item.status.value, target.value)
        return updated

    async def publish(self, actor: Optional[Actor], content_id: str) -> ContentItem:
        return await self.transition(actor, content_id, ContentStatus.PUBLISHED)

    async def unpublish(self, actor: Optional[Actor], content_id: str) -> ContentItem:
        return await self.transition(actor, content_id, ContentStatus.DRAFT)

    async def suspend(self, actor: Optional[Actor], content_id: str) -> ContentItem:
        return await self.transition(actor, content_id, ContentStatus.SUSPENDED)

    async def unsuspend(self, actor: Optional[Actor], content_id: str) -> ContentItem:
        return await self.transition(actor, content_id, ContentStatus.PUBLISHED)

    async def archive(self, actor: Optional[Actor], content_id: str) -> ContentItem:
        return await self.transition(actor, content_id, ContentStatus.ARCHIVED)

    async def create_content(
        self, actor: Optional[Actor], request: Union[CreateContentRequest, Dict[str, Any]]
    ) -> ContentItem:
        """
        Create a content item authored by `actor`.

        The initial status comes from `default_status_for`: top tier creators publish directly, everyone
        else starts from DRAFT. On a site that is not ACTIVE the item always starts as DRAFT.

        Raises:
            UnauthorizedError: Anonymous caller.
            ForbiddenError: Role may not create content.
            InvalidArgumentError: Malformed request or a title that yields no slug.
            NotFoundError: Unknown site.
            ConflictError: Slug already used on the site.
        """
        if actor is None or actor.is_anonymous:
            raise UnauthorizedError()
        if not policy_engine.can_create_content(actor):
            raise ForbiddenError("Your role cannot create content")

        request = parse_request(CreateContentRequest, request)
        site = await self._get_site(request.site_id)
        if site is None:
            raise NotFoundError("Site not found")

        slug = request.slug or slugify(request.title)
        if not slug:
            raise InvalidArgumentError("Could not derive a slug from the title")

        now = clock.utc_now()
        item = ContentItem(
            content_id=f"cnt_{uuid.uuid4().hex[:12]}",
            kind=request.kind,
            site_id=site.site_id,
            site_owner_id=site.owner_id,
            author_id=actor.id,
            title=request.title,
            slug=slug,
            body=request.body,
            comments_allowed=request.comments_allowed,
            scheduled_at=request.scheduled_at,
            created_at=now,
            updated_at=now,
        )

        status = policy_engine.default_status_for(actor, item)
        if status == ContentStatus.PUBLISHED and site.status != SiteStatus.ACTIVE:
            logger.warning(
                "Site %s is %s, creating content by %s as DRAFT instead of PUBLISHED",
                site.site_id,
                site.status.value,
                actor.id,
            )
            status = ContentStatus.DRAFT
        item.status = status
        if status == ContentStatus.PUBLISHED:
            item.published_at = now

        await self._ensure_slug_available(site.site_id, slug)
        await self.storage.create(self.items_collection, to_document(item))
        logger.info("Created %s %s on site %s as %s", item.kind.value, item.content_id, site.site_id, status.value)
        return item

    async def update_content(
        self,
        actor: Optional[Actor],
        content_id: str,
        request: Union[ContentUpdateRequest, Dict[str, Any]],
    ) -> ContentItem:
        """
        Apply an edit, optionally combined with a status transition, as one write.

        A changed title regenerates the slug unless a slug is given explicitly. A changed slug is
        re-checked for uniqueness within the site before anything is written.
        """
        request = parse_request(ContentUpdateRequest, request)
        item = await fetch_visible_content(self.storage, actor, content_id)

        fields = request.model_dump(exclude_unset=True, exclude={"status"})
        changes: Dict[str, Any] = {
            k: v
            for k, v in fields.items()
            if (v is not None or k in NULLABLE_FIELDS) and getattr(item, k) != v
        }

        if "slug" not in changes and "title" in changes and fields.get("slug") is None:
            derived = slugify(changes["title"])
            if derived and derived != item.slug:
                changes["slug"] = derived

        # Status-only requests are authorized by the transition itself
        if changes and not policy_engine.can_edit_content(actor, item):
            raise ForbiddenError("Not allowed to edit this content")

        if request.status is not None and request.status != item.status:
            changes.update(await self._plan_transition(actor, item, request.status))

        if not changes:
            logger.debug("Update of %s changed nothing", content_id)
            return item

        if "slug" in changes:
            await self._ensure_slug_available(item.site_id, changes["slug"], content_id)

        changes.setdefault("updated_at", clock.utc_now())
        updated = await self._commit(item, changes)
        logger.info("Updated content %s fields: %s", content_id, ", ".join(sorted(changes)))
        return updated


content_lifecycle = ContentLifecycle()
