"""
# Moderation Workflow Service

This module handles **threaded comments** on content and their **approval** lifecycle.

## Submission Rules

1.  The caller must be signed in with a verified account (VIEWER or above).
2.  The content must be visible to the caller and `PUBLISHED`, otherwise `NotFoundError`.
3.  Content with `comments_allowed=False` rejects new comments with `ForbiddenError`.
4.  A reply's parent must belong to the **same** content (`NotFoundError` otherwise). Replies to
    replies are attached to the thread root, so threads stay one level deep.
5.  `approved` is decided once, at submission: top tier authors are auto-approved, everyone else waits
    for a moderator. A later role change does not re-evaluate it.

## Listing Order

Top-level comments are returned **newest first** for discovery; replies inside a thread are returned
**oldest first** so a conversation reads chronologically. Pending comments are only included when a
moderator explicitly asks for them.

## Moderation

| Operation | Effect |
|-----------|--------|
| `approve` | Marks the comment approved (idempotent) |
| `reject` | Deletes the comment and its replies |
| `comment_stats` | Approved/pending counts and average rating |
"""

from typing import Any, Dict, List, Optional, Union
import uuid

from pastry_publishing.database.governance_indexes import COMMENTS_COLLECTION
from pastry_publishing.database.storage import MongoStorage, Storage
from pastry_publishing.errors import ForbiddenError, NotFoundError, UnauthorizedError
from pastry_publishing.managers.logging_manager import get_logger
from pastry_publishing.models.engagement_models import (
    Comment,
    CommentStats,
    CommentThread,
    CreateCommentRequest,
)
from pastry_publishing.models.governance_models import Actor, ContentItem, ContentStatus
from pastry_publishing.services import policy_engine
from pastry_publishing.services.content_lifecycle import fetch_visible_content
from pastry_publishing.utils import clock
from pastry_publishing.utils.documents import parse_request, to_document

logger = get_logger(prefix="[ModerationWorkflow]")


class ModerationWorkflow:
    """
    Service for comment submission, listing and moderation.

    Args:
        storage (Optional[Storage]): Persistence collaborator. Defaults to `MongoStorage`.
    """

    def __init__(self, storage: Optional[Storage] = None):
        self.storage = storage or MongoStorage()
        self.collection = COMMENTS_COLLECTION

    async def _get_comment(self, comment_id: str) -> Comment:
        document = await self.storage.get(self.collection, comment_id)
        if document is None:
            raise NotFoundError("Comment not found")
        return Comment(**document)

    async def _resolve_parent(
        self, actor: Actor, item: ContentItem, parent_id: str
    ) -> str:
        document = await self.storage.get(self.collection, parent_id)
        if document is None:
            raise NotFoundError("Parent comment not found")
        parent = Comment(**document)
        if parent.content_id != item.content_id:
            logger.warning(
                "Rejected reply by %s on %s to comment %s of other content %s",
                actor.id,
                item.content_id,
                parent_id,
                parent.content_id,
            )
            raise NotFoundError("Parent comment not found")
        if not parent.approved and not policy_engine.can_moderate_comments(actor, item):
            raise NotFoundError("Parent comment not found")
        return parent.parent_id or parent.comment_id

    async def submit_comment(
        self,
        actor: Optional[Actor],
        content_id: str,
        request: Union[CreateCommentRequest, Dict[str, Any]],
    ) -> Comment:
        """
        Submit a comment or reply.

        Raises:
            UnauthorizedError: Anonymous caller.
            ForbiddenError: VISITOR caller, or comments disabled on the content.
            InvalidArgumentError: Malformed request.
            NotFoundError: Content absent, hidden or unpublished, or a parent on other content.
        """
        if actor is None or actor.is_anonymous:
            raise UnauthorizedError()
        if not policy_engine.can_interact(actor):
            raise ForbiddenError("Upgrade your account to comment")

        request = parse_request(CreateCommentRequest, request)
        item = await fetch_visible_content(self.storage, actor, content_id)
        if item.status != ContentStatus.PUBLISHED:
            raise NotFoundError("Content not found")
        if not item.comments_allowed:
            raise ForbiddenError("Comments are disabled for this content")

        parent_id = None
        if request.parent_id:
            parent_id = await self._resolve_parent(actor, item, request.parent_id)

        comment = Comment(
            comment_id=f"cmt_{uuid.uuid4().hex[:12]}",
            content_id=content_id,
            visitor_id=actor.id,
            name=request.name,
            email=request.email,
            content=request.content,
            parent_id=parent_id,
            rating=request.rating,
            approved=policy_engine.can_auto_approve_comments(actor, item),
            created_at=clock.utc_now(),
        )
        await self.storage.create(self.collection, to_document(comment))
        logger.info(
            "Comment %s submitted on %s by %s (approved=%s)",
            comment.comment_id,
            content_id,
            actor.id,
            comment.approved,
        )
        return comment

    async def list_comments(
        self,
        actor: Optional[Actor],
        content_id: str,
        include_unapproved: bool = False,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> List[CommentThread]:
        """
        List comment threads for a content item.

        Pagination applies to top-level comments; each thread carries all of its visible replies.
        Replies whose parent is not part of the listing are omitted.
        """
        item = await fetch_visible_content(self.storage, actor, content_id)
        show_pending = include_unapproved and policy_engine.can_moderate_comments(actor, item)

        base: Dict[str, Any] = {"content_id": content_id}
        if not show_pending:
            base["approved"] = True

        top_level = await self.storage.find_many(
            self.collection,
            {**base, "parent_id": None},
            page=page,
            page_size=page_size,
            sort=[("created_at", -1)],
        )
        if not top_level:
            return []

        threads = {document["comment_id"]: CommentThread(comment=Comment(**document)) for document in top_level}
        replies = await self.storage.find_many(
            self.collection,
            {**base, "parent_id": {"$in": list(threads)}},
            sort=[("created_at", 1)],
        )
        for document in replies:
            thread = threads.get(document.get("parent_id"))
            if thread is not None:
                thread.replies.append(Comment(**document))

        logger.debug("Listed %d threads on %s (pending included: %s)", len(threads), content_id, show_pending)
        return list(threads.values())

    async def approve(self, actor: Optional[Actor], comment_id: str) -> Comment:
        """Approve a pending comment. Approving an approved comment returns it unchanged."""
        comment = await self._get_comment(comment_id)
        item = await fetch_visible_content(self.storage, actor, comment.content_id)
        if not policy_engine.can_moderate_comments(actor, item):
            raise ForbiddenError("Moderation privileges required")

        if comment.approved:
            return comment

        updated = await self.storage.update(self.collection, comment_id, {"approved": True})
        if updated is None:
            raise NotFoundError("Comment not found")
        logger.info("Comment %s approved by %s", comment_id, actor.id)
        return Comment(**updated)

    async def reject(self, actor: Optional[Actor], comment_id: str) -> int:
        """
        Reject a comment by deleting it together with its replies.

        Returns:
            int: Number of comments deleted.
        """
        comment = await self._get_comment(comment_id)
        item = await fetch_visible_content(self.storage, actor, comment.content_id)
        if not policy_engine.can_moderate_comments(actor, item):
            raise ForbiddenError("Moderation privileges required")

        async with self.storage.transaction() as tx:
            deleted = await tx.delete_many(self.collection, {"parent_id": comment_id})
            if await tx.delete(self.collection, comment_id):
                deleted += 1

        logger.info("Comment %s rejected by %s (%d removed)", comment_id, actor.id, deleted)
        return deleted

    async def comment_stats(self, actor: Optional[Actor], content_id: str) -> CommentStats:
        """
        Approved count, pending count (moderators only, otherwise 0) and the average rating of approved
        comments rounded to one decimal.
        """
        item = await fetch_visible_content(self.storage, actor, content_id)

        approved_count = await self.storage.count(self.collection, {"content_id": content_id, "approved": True})
        pending_count = 0
        if policy_engine.can_moderate_comments(actor, item):
            pending_count = await self.storage.count(
                self.collection, {"content_id": content_id, "approved": False}
            )

        rated = {"content_id": content_id, "approved": True, "rating": {"$ne": None}}
        rating_count = await self.storage.count(self.collection, rated)
        average = await self.storage.average(self.collection, rated, "rating") if rating_count else None

        return CommentStats(
            content_id=content_id,
            approved_count=approved_count,
            pending_count=pending_count,
            average_rating=round(average, 1) if average is not None else None,
            rating_count=rating_count,
        )


moderation_workflow = ModerationWorkflow()
